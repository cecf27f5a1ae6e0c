"""
Weight-decay regularization.

`Regularizer` adds the decay term to a parameter's gradient before the
update rule sees it:

- ``L2``: ``g += decay * w``
- ``L1``: ``g += decay * sign(w)``

L1 needs a scratch buffer per parameter for ``sign(w)``; those are allocated
together with the rule's buffers and are never persisted.
"""

from __future__ import annotations

from typing import List, Sequence

from ...domain._blob import IBlob
from ...domain._buffer_ops import IBufferOps
from ...domain._errors import UnknownPolicyError
from ...domain._parameter import IParameter


class Regularizer:
    """
    Parameters
    ----------
    regularization_type : str
        ``"L2"`` or ``"L1"``. Other values are accepted here and rejected
        the first time a non-zero decay is applied.
    """

    def __init__(self, regularization_type: str) -> None:
        self.regularization_type = str(regularization_type)
        self._sign: List[IBlob] = []

    def allocate(self, params: Sequence[IParameter], ops: IBufferOps) -> None:
        if self.regularization_type == "L1":
            self._sign = [ops.new_blob(p.shape) for p in params]

    def apply(self, ops: IBufferOps, param_id: int, param: IParameter, local_decay: float) -> None:
        """
        Add the decay term to ``param.diff`` in place.

        Raises
        ------
        UnknownPolicyError
            If the regularization type is unknown and `local_decay` is
            non-zero.
        """
        if local_decay == 0:
            return
        n = param.count
        if self.regularization_type == "L2":
            ops.axpy(n, local_decay, ops.data(param), ops.mutable_diff(param))
        elif self.regularization_type == "L1":
            tmp = ops.mutable_data(self._sign[param_id])
            ops.sign(n, ops.data(param), tmp)
            ops.axpy(n, local_decay, tmp, ops.mutable_diff(param))
        else:
            raise UnknownPolicyError("regularization type", self.regularization_type)
