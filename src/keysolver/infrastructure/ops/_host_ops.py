"""
Host (NumPy) implementation of the solver's kernel primitives.

Buffer handles are flat, writable NumPy views of a blob's host storage. Every
primitive writes in place into its last argument, so results land directly in
blob memory.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from ..blob._blob import Blob
from ...domain._blob import IBlob
from ...domain._device import Device
from ...domain._errors import DeviceMismatchError


def _host(buf, n: int) -> np.ndarray:
    if not isinstance(buf, np.ndarray):
        raise DeviceMismatchError(expected="host array", got=type(buf).__name__)
    if buf.size < n:
        raise ValueError(f"buffer holds {buf.size} elements, {n} requested")
    return buf[:n]


class HostBufferOps:
    """
    `IBufferOps` backend executing on the host with NumPy.

    Handles that are not NumPy arrays (for example device pointers) raise
    `DeviceMismatchError`.
    """

    def __init__(self, dtype=np.float32) -> None:
        self._device = Device("cpu")
        self._dtype = np.dtype(dtype)

    @property
    def device(self) -> Device:
        return self._device

    def new_blob(self, shape: Tuple[int, ...]) -> IBlob:
        return Blob(shape, dtype=self._dtype)

    def data(self, blob: IBlob) -> np.ndarray:
        return blob.cpu_data().reshape(-1)

    def mutable_data(self, blob: IBlob) -> np.ndarray:
        return blob.mutable_cpu_data().reshape(-1)

    def diff(self, blob: IBlob) -> np.ndarray:
        return blob.cpu_diff().reshape(-1)

    def mutable_diff(self, blob: IBlob) -> np.ndarray:
        return blob.mutable_cpu_diff().reshape(-1)

    def axpy(self, n, alpha, x, y) -> None:
        yv = _host(y, n)
        yv += yv.dtype.type(alpha) * _host(x, n)

    def axpby(self, n, alpha, x, beta, y) -> None:
        xv, yv = _host(x, n), _host(y, n)
        a = yv.dtype.type(alpha)
        if beta == 0:
            np.multiply(xv, a, out=yv)
            return
        yv *= yv.dtype.type(beta)
        yv += a * xv

    def copy(self, n, x, y) -> None:
        xv, yv = _host(x, n), _host(y, n)
        if xv is not yv:
            np.copyto(yv, xv)

    def set(self, n, alpha, y) -> None:
        _host(y, n).fill(alpha)

    def add_scalar(self, n, alpha, y) -> None:
        yv = _host(y, n)
        yv += yv.dtype.type(alpha)

    def sign(self, n, x, y) -> None:
        np.sign(_host(x, n), out=_host(y, n))

    def powx(self, n, x, p, y) -> None:
        yv = _host(y, n)
        np.power(_host(x, n), yv.dtype.type(p), out=yv)

    def add(self, n, a, b, y) -> None:
        np.add(_host(a, n), _host(b, n), out=_host(y, n))

    def mul(self, n, a, b, y) -> None:
        np.multiply(_host(a, n), _host(b, n), out=_host(y, n))

    def div(self, n, a, b, y) -> None:
        np.divide(_host(a, n), _host(b, n), out=_host(y, n))
