"""
CUDA implementation of the solver's kernel primitives.

Buffer handles are device pointers (Python ints) obtained from a blob's
device accessors. Every primitive forwards to the matching native kernel via
`CudaKernels`; NumPy arrays handed to this backend raise
`DeviceMismatchError`.
"""

from __future__ import annotations

from typing import Any, Tuple

import numpy as np

from ..blob._blob import Blob
from ...domain._blob import IBlob
from ...domain._device import Device
from ...domain._errors import DeviceMismatchError


def _dev(ptr: Any) -> int:
    if isinstance(ptr, (bool, np.ndarray)) or not isinstance(ptr, (int, np.integer)):
        raise DeviceMismatchError(expected="device pointer", got=type(ptr).__name__)
    return int(ptr)


class CudaBufferOps:
    """
    `IBufferOps` backend executing native CUDA kernels.

    Parameters
    ----------
    device : Device
        CUDA device descriptor ("cuda:<index>").
    kernels : CudaKernels
        Native kernel facade (or any object with the same methods).
    dtype : numpy dtype-like, optional
        Element dtype of the blobs this backend operates on.
    """

    def __init__(self, device: Device, kernels: Any, dtype=np.float32) -> None:
        if not device.is_cuda():
            raise ValueError(f"CudaBufferOps requires a CUDA device, got {device}")
        self._device = device
        self._k = kernels
        self._dtype = np.dtype(dtype)

    @property
    def device(self) -> Device:
        return self._device

    @property
    def kernels(self) -> Any:
        return self._k

    def new_blob(self, shape: Tuple[int, ...]) -> IBlob:
        return Blob(shape, dtype=self._dtype, runtime=self._k, device_index=self._device.index)

    def data(self, blob: IBlob) -> int:
        return blob.gpu_data()

    def mutable_data(self, blob: IBlob) -> int:
        return blob.mutable_gpu_data()

    def diff(self, blob: IBlob) -> int:
        return blob.gpu_diff()

    def mutable_diff(self, blob: IBlob) -> int:
        return blob.mutable_gpu_diff()

    def axpy(self, n, alpha, x, y) -> None:
        self._k.axpy(n, alpha, _dev(x), _dev(y), dtype=self._dtype)

    def axpby(self, n, alpha, x, beta, y) -> None:
        self._k.axpby(n, alpha, _dev(x), beta, _dev(y), dtype=self._dtype)

    def copy(self, n, x, y) -> None:
        src, dst = _dev(x), _dev(y)
        if src != dst:
            self._k.memcpy_d2d(dst, src, int(n) * self._dtype.itemsize)

    def set(self, n, alpha, y) -> None:
        self._k.set(n, alpha, _dev(y), dtype=self._dtype)

    def add_scalar(self, n, alpha, y) -> None:
        self._k.add_scalar(n, alpha, _dev(y), dtype=self._dtype)

    def sign(self, n, x, y) -> None:
        self._k.sign(n, _dev(x), _dev(y), dtype=self._dtype)

    def powx(self, n, x, p, y) -> None:
        self._k.powx(n, _dev(x), p, _dev(y), dtype=self._dtype)

    def add(self, n, a, b, y) -> None:
        self._k.add(n, _dev(a), _dev(b), _dev(y), dtype=self._dtype)

    def mul(self, n, a, b, y) -> None:
        self._k.mul(n, _dev(a), _dev(b), _dev(y), dtype=self._dtype)

    def div(self, n, a, b, y) -> None:
        self._k.div(n, _dev(a), _dev(b), _dev(y), dtype=self._dtype)
