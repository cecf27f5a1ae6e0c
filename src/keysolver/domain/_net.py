"""
Domain-level network contract.

This module specifies what the solver needs from a network: forward and
backward passes, the parameter container with its per-parameter multipliers,
named outputs with loss weights, trained-value sharing between two instances
and a model payload for checkpoints.

Notes
-----
Graph construction, the layer set and the forward/backward mathematics are
outside the scope of the solver; any object satisfying `INet` can be trained.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ._parameter import IParameter
from ._phase import NetState, Phase


@runtime_checkable
class INet(Protocol):
    """
    Network interface contract.

    Required members
    ----------------
    - `name`, `state`
    - `params`: learnable parameters, in a stable order
    - `output_blob_names`, `output_blobs`, `blob_loss_weights`
    - `forward(phase=None) -> (outputs, loss)`
    - `backward()`; `forward_backward() -> loss`
    - `clear_param_diffs()`; `update()`
    - `share_trained_layers_with(other)`
    - `to_payload(write_diff)`; `copy_trained_layers_from(payload)`
    - `set_debug_info(flag)`
    """

    @property
    def name(self) -> str: ...

    @property
    def state(self) -> NetState: ...

    @property
    def params(self) -> Sequence[IParameter]: ...

    @property
    def output_blob_names(self) -> List[str]: ...

    @property
    def output_blobs(self) -> List[Any]: ...

    @property
    def blob_loss_weights(self) -> Dict[str, float]: ...

    def forward(self, phase: Optional[Phase] = None) -> Tuple[List[Any], float]:
        """
        Run a forward pass and return `(output_blobs, loss)`.

        `phase` overrides the phase the net was built for, for layers whose
        behavior depends on it. Passing it explicitly replaces any global
        phase switch.
        """
        ...

    def backward(self) -> None:
        """
        Back-propagate the loss, adding parameter gradients into `diff`.

        Parameter gradients accumulate across calls until
        `clear_param_diffs()`; this is what gradient accumulation over
        several micro-batches relies on.
        """
        ...

    def forward_backward(self) -> float: ...

    def clear_param_diffs(self) -> None: ...

    def update(self) -> None:
        """Apply `data -= diff` to every parameter."""
        ...

    def share_trained_layers_with(self, other: "INet") -> None:
        """Copy the current parameter values of `other` into this net by layer name."""
        ...

    def to_payload(self, write_diff: bool = False) -> Dict[str, Any]: ...

    def copy_trained_layers_from(self, payload: Mapping[str, Any]) -> None: ...

    def set_debug_info(self, value: bool) -> None: ...
