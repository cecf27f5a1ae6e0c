"""
Concrete trainable parameter implementation.

This module defines `Parameter`, an infrastructure-level implementation of the
domain contract `IParameter`. A `Parameter` is a `Blob` owned by a layer and
updated by the solver. Its `diff` buffer receives gradients from the backward
pass, is transformed in place by the update rule, and is finally subtracted
from `data`.

Design notes
------------
- `Parameter` subclasses `Blob` to reuse storage and host/device coherence.
- `lr_mult` and `decay_mult` come from the layer's ``param`` entries in the
  network definition and default to 1.
- `owner` and `index` identify the parameter by layer name and position
  within that layer; the pair is the key used for model files and for sharing
  trained values between networks.
"""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from ..domain._parameter import IParameter
from .blob._blob import Blob, ShapeLike


class Parameter(Blob, IParameter):
    """
    Learnable blob with per-parameter multipliers.

    Parameters
    ----------
    shape : int or Iterable[int]
        Parameter shape.
    owner : str
        Name of the owning layer.
    index : int, optional
        Position of this parameter within the owning layer.
    lr_mult : float, optional
        Learning-rate multiplier. Defaults to 1.
    decay_mult : float, optional
        Weight-decay multiplier. Defaults to 1.
    dtype, runtime, device_index
        Forwarded to `Blob`.
    """

    def __init__(
        self,
        shape: ShapeLike,
        owner: str,
        index: int = 0,
        *,
        lr_mult: float = 1.0,
        decay_mult: float = 1.0,
        dtype: Any = np.float32,
        runtime: Optional[Any] = None,
        device_index: int = 0,
    ) -> None:
        super().__init__(shape, dtype=dtype, runtime=runtime, device_index=device_index)
        self._owner = str(owner)
        self._index = int(index)
        self._lr_mult = float(lr_mult)
        self._decay_mult = float(decay_mult)

    def __repr__(self) -> str:
        return (
            f"Parameter(owner={self._owner!r}, index={self._index}, shape={self.shape}, "
            f"lr_mult={self._lr_mult}, decay_mult={self._decay_mult})"
        )

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def index(self) -> int:
        return self._index

    @property
    def lr_mult(self) -> float:
        return self._lr_mult

    @property
    def decay_mult(self) -> float:
        return self._decay_mult
