"""
Domain-level update-rule contract.

This module defines the `IUpdateRule` protocol, the strategy interface that
turns a parameter's (regularized) gradient into its final update value.

Notes
-----
- The solver computes the shared preamble (scheduled learning rate, the
  per-parameter multipliers, the accumulation scaling and the regularization
  term) and then hands each parameter to the active rule.
- A rule owns its auxiliary buffers as explicitly named collections, one blob
  per parameter per role. Nothing outside the rule indexes into them except
  through `history_buffers()`, which the checkpoint code uses to persist and
  restore them.
- Rules are written against `IBufferOps`, so one implementation serves both
  host and accelerator execution.
"""

from __future__ import annotations

from typing import Protocol, Sequence, Tuple, runtime_checkable

from ._blob import IBlob
from ._buffer_ops import IBufferOps
from ._parameter import IParameter


@runtime_checkable
class IUpdateRule(Protocol):
    """
    Update-rule interface contract.

    Required members
    ----------------
    - `history_roles`: names of the persisted buffer collections, in the
      order they are serialized.
    - `allocate(params, ops)`: create zeroed auxiliary buffers shaped like
      each parameter. Called once before training.
    - `compute_update(ops, param_id, param, rate)`: transform
      `param.diff` in place into the update value.
    - `history_buffers()`: persisted buffers, role-major, parameter order.
    """

    @property
    def history_roles(self) -> Tuple[str, ...]: ...

    def allocate(self, params: Sequence[IParameter], ops: IBufferOps) -> None: ...

    def compute_update(
        self, ops: IBufferOps, param_id: int, param: IParameter, rate: float
    ) -> None: ...

    def history_buffers(self) -> Sequence[IBlob]: ...
