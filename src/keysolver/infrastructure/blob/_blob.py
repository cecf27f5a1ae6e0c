"""
Concrete blob implementation.

A `Blob` pairs two `SyncedMemory` buffers of the same shape: `data` holds
values and `diff` holds gradients. Host accessors return arrays shaped like
the blob (views of the flat storage); device accessors return raw pointers.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Tuple, Union

import numpy as np

from ._synced_memory import SyncedMemory
from ...domain._blob import IBlob

ShapeLike = Union[int, Iterable[int]]


def _normalize_shape(shape: ShapeLike) -> Tuple[int, ...]:
    if isinstance(shape, (int, np.integer)):
        shape = (int(shape),)
    out = tuple(int(d) for d in shape)
    if any(d < 0 for d in out):
        raise ValueError(f"Blob dimensions must be non-negative, got {out}")
    return out


class Blob(IBlob):
    """
    Shaped data/diff buffer pair.

    Parameters
    ----------
    shape : int or Iterable[int]
        Blob shape.
    dtype : numpy dtype-like, optional
        Element dtype. Defaults to float32.
    runtime : object, optional
        CUDA runtime facade enabling the device accessors.
    device_index : int, optional
        CUDA device ordinal.
    """

    def __init__(
        self,
        shape: ShapeLike,
        dtype: Any = np.float32,
        runtime: Optional[Any] = None,
        device_index: int = 0,
    ) -> None:
        self._dtype = np.dtype(dtype)
        self._runtime = runtime
        self._device_index = int(device_index)
        self._shape: Tuple[int, ...] = ()
        self._data: SyncedMemory
        self._diff: SyncedMemory
        self._allocate(_normalize_shape(shape))

    def _allocate(self, shape: Tuple[int, ...]) -> None:
        self._shape = shape
        count = self.count
        self._data = SyncedMemory(count, self._dtype, self._runtime, self._device_index)
        self._diff = SyncedMemory(count, self._dtype, self._runtime, self._device_index)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(shape={self._shape}, dtype={self._dtype})"

    # ---- metadata ----
    @property
    def shape(self) -> Tuple[int, ...]:
        return self._shape

    @property
    def count(self) -> int:
        return int(np.prod(self._shape, dtype=np.int64)) if self._shape else 1

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def runtime(self) -> Optional[Any]:
        return self._runtime

    def reshape(self, shape: ShapeLike) -> None:
        """
        Change the blob shape.

        Storage is kept when the element count is unchanged; otherwise both
        buffers are reallocated zero-filled.
        """
        new_shape = _normalize_shape(shape)
        old_count = self.count
        if new_shape == self._shape:
            return
        self._shape = new_shape
        if self.count != old_count:
            self._allocate(new_shape)

    # ---- host accessors ----
    def cpu_data(self) -> np.ndarray:
        return self._data.cpu_data().reshape(self._shape)

    def mutable_cpu_data(self) -> np.ndarray:
        return self._data.mutable_cpu_data().reshape(self._shape)

    def cpu_diff(self) -> np.ndarray:
        return self._diff.cpu_data().reshape(self._shape)

    def mutable_cpu_diff(self) -> np.ndarray:
        return self._diff.mutable_cpu_data().reshape(self._shape)

    # ---- device accessors ----
    def gpu_data(self) -> int:
        return self._data.gpu_data()

    def mutable_gpu_data(self) -> int:
        return self._data.mutable_gpu_data()

    def gpu_diff(self) -> int:
        return self._diff.gpu_data()

    def mutable_gpu_diff(self) -> int:
        return self._diff.mutable_gpu_data()

    # ---- conveniences ----
    def set_data(self, values: Any) -> None:
        """Copy `values` (broadcast to the blob shape) into `data`."""
        self.mutable_cpu_data()[...] = np.asarray(values, dtype=self._dtype)

    def set_diff(self, values: Any) -> None:
        """Copy `values` (broadcast to the blob shape) into `diff`."""
        self.mutable_cpu_diff()[...] = np.asarray(values, dtype=self._dtype)

    def asum_data(self) -> float:
        return float(np.abs(self.cpu_data()).sum())

    def asum_diff(self) -> float:
        return float(np.abs(self.cpu_diff()).sum())

    def share_data_from(self, other: "Blob") -> None:
        """Copy `other`'s values into this blob's `data` (shapes must match)."""
        if other.shape != self._shape:
            raise ValueError(
                f"Cannot copy data of shape {other.shape} into blob of shape {self._shape}"
            )
        self.mutable_cpu_data()[...] = other.cpu_data()
