"""
Host/device synchronized memory.

This module defines `SyncedMemory`, one flat numeric buffer that can be read
or written from the host (as a NumPy array) or from the CUDA accelerator (as a
device pointer). The object tracks where the freshest copy lives and copies
lazily when the other side is requested.

Head states
-----------
- ``UNINITIALIZED``: nothing allocated yet; the first access allocates a
  zero-filled buffer on the requesting side.
- ``HEAD_AT_CPU``: the host copy was handed out for writing and is the
  freshest.
- ``HEAD_AT_GPU``: the device copy was handed out for writing and is the
  freshest.
- ``SYNCED``: both copies hold the same values.

Lifetime
--------
Device memory is owned by the object. A `weakref.finalize` callback frees it
when the object is collected; the callback captures only the runtime and the
plain pointer value so that it never keeps `self` alive.
"""

from __future__ import annotations

import weakref
from enum import Enum
from typing import Any, Optional

import numpy as np

from ...domain._errors import DeviceNotSupportedError


class SyncHead(Enum):
    """Location of the freshest copy of a `SyncedMemory` buffer."""

    UNINITIALIZED = "uninitialized"
    HEAD_AT_CPU = "head_at_cpu"
    HEAD_AT_GPU = "head_at_gpu"
    SYNCED = "synced"


class SyncedMemory:
    """
    Flat buffer mirrored between host and device.

    Parameters
    ----------
    count : int
        Number of elements.
    dtype : numpy dtype-like, optional
        Element dtype. Defaults to float32.
    runtime : object, optional
        CUDA runtime facade (`CudaKernels`). When None, only host accessors
        are usable.
    device_index : int, optional
        CUDA device ordinal for allocations.
    """

    def __init__(
        self,
        count: int,
        dtype: Any = np.float32,
        runtime: Optional[Any] = None,
        device_index: int = 0,
    ) -> None:
        if int(count) < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        self._count = int(count)
        self._dtype = np.dtype(dtype)
        self._runtime = runtime
        self._device_index = int(device_index)

        self._cpu: Optional[np.ndarray] = None
        self._gpu_ptr: int = 0
        self._finalizer: Optional[weakref.finalize] = None
        self._head = SyncHead.UNINITIALIZED

    @property
    def head(self) -> SyncHead:
        return self._head

    @property
    def count(self) -> int:
        return self._count

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def nbytes(self) -> int:
        return self._count * self._dtype.itemsize

    # ---- transfers ----
    def _ensure_cpu_alloc(self) -> np.ndarray:
        if self._cpu is None:
            self._cpu = np.zeros((self._count,), dtype=self._dtype)
        return self._cpu

    def _ensure_gpu_alloc(self) -> int:
        if self._runtime is None:
            raise DeviceNotSupportedError(
                "device access", "cuda", "no CUDA runtime attached to this buffer"
            )
        if self._gpu_ptr == 0 and self.nbytes > 0:
            rt = self._runtime
            dev = self._device_index
            rt.set_device(dev)
            ptr = rt.malloc(self.nbytes)

            def _free_ptr() -> None:
                rt.set_device(dev)
                rt.free(ptr)

            self._gpu_ptr = ptr
            self._finalizer = weakref.finalize(self, _free_ptr)
        return self._gpu_ptr

    def _to_cpu(self) -> None:
        if self._head is SyncHead.UNINITIALIZED:
            self._ensure_cpu_alloc()
            self._head = SyncHead.HEAD_AT_CPU
        elif self._head is SyncHead.HEAD_AT_GPU:
            host = self._ensure_cpu_alloc()
            if self.nbytes > 0:
                self._runtime.memcpy_d2h(host, self._gpu_ptr)
            self._head = SyncHead.SYNCED

    def _to_gpu(self) -> None:
        if self._head is SyncHead.UNINITIALIZED:
            ptr = self._ensure_gpu_alloc()
            if self.nbytes > 0:
                self._runtime.memcpy_h2d(ptr, self._ensure_cpu_alloc())
            self._head = SyncHead.HEAD_AT_GPU
        elif self._head is SyncHead.HEAD_AT_CPU:
            ptr = self._ensure_gpu_alloc()
            if self.nbytes > 0:
                self._runtime.memcpy_h2d(ptr, self._cpu)
            self._head = SyncHead.SYNCED

    # ---- accessors ----
    def cpu_data(self) -> np.ndarray:
        """Return the host copy for reading."""
        self._to_cpu()
        return self._cpu

    def mutable_cpu_data(self) -> np.ndarray:
        """Return the host copy for writing; the device copy becomes stale."""
        self._to_cpu()
        self._head = SyncHead.HEAD_AT_CPU
        return self._cpu

    def gpu_data(self) -> int:
        """Return the device pointer for reading."""
        self._to_gpu()
        return self._gpu_ptr

    def mutable_gpu_data(self) -> int:
        """Return the device pointer for writing; the host copy becomes stale."""
        self._to_gpu()
        self._head = SyncHead.HEAD_AT_GPU
        return self._gpu_ptr

    def free(self) -> None:
        """Release device memory now instead of at collection time."""
        if self._finalizer is not None and self._finalizer.alive:
            if self._head is SyncHead.HEAD_AT_GPU:
                self._to_cpu()
            self._finalizer()
        self._gpu_ptr = 0
        self._finalizer = None
        if self._head is SyncHead.SYNCED:
            self._head = SyncHead.HEAD_AT_CPU
