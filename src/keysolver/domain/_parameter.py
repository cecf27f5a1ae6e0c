"""
Trainable parameter interface definitions.

This module defines the domain-level interface for learnable parameters as
seen by the solver. A parameter is a blob owned by a layer; besides its
data/diff buffers it carries the per-parameter multipliers the solver folds
into the global learning rate and weight decay.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ._blob import IBlob


@runtime_checkable
class IParameter(IBlob, Protocol):
    """
    Domain-level interface for learnable parameters.

    Notes
    -----
    - `lr_mult` scales the scheduled learning rate for this parameter.
    - `decay_mult` scales the configured weight decay for this parameter.
    - `owner` names the layer that owns the parameter; it is the key used
      when trained values are shared between networks or loaded from a model
      file.
    """

    @property
    def lr_mult(self) -> float:
        """Per-parameter learning-rate multiplier."""
        ...

    @property
    def decay_mult(self) -> float:
        """Per-parameter weight-decay multiplier."""
        ...

    @property
    def owner(self) -> str:
        """Name of the layer owning this parameter."""
        ...
