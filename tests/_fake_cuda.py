from __future__ import annotations

from typing import Dict

import numpy as np


class FakeCudaKernels:
    """
    In-memory stand-in for `CudaKernels` used by tests without a GPU.

    "Device memory" is a dict from integer pointers to byte arrays; every
    method follows the calling convention of the real facade (pointers as
    ints, element count first, output last, `dtype` keyword).
    """

    def __init__(self) -> None:
        self.mem: Dict[int, np.ndarray] = {}
        self.next_ptr = 0x1000
        self.device = None
        self.calls = []
        self.freed = []

    def _view(self, ptr: int, n: int, dtype) -> np.ndarray:
        return self.mem[int(ptr)].view(np.dtype(dtype))[: int(n)]

    def set_device(self, index: int) -> None:
        self.device = int(index)

    def synchronize(self) -> None:
        pass

    def malloc(self, nbytes: int) -> int:
        ptr = self.next_ptr
        self.next_ptr += max(int(nbytes), 1) + 0x100
        self.mem[ptr] = np.full((int(nbytes),), 0xAB, dtype=np.uint8)
        return ptr

    def free(self, dev_ptr: int) -> None:
        self.freed.append(int(dev_ptr))
        self.mem.pop(int(dev_ptr))

    def memcpy_h2d(self, dst_dev: int, src_host: np.ndarray) -> None:
        raw = np.ascontiguousarray(src_host).view(np.uint8).reshape(-1)
        self.mem[int(dst_dev)][: raw.size] = raw

    def memcpy_d2h(self, dst_host: np.ndarray, src_dev: int) -> None:
        raw = dst_host.view(np.uint8).reshape(-1)
        raw[...] = self.mem[int(src_dev)][: raw.size]

    def memcpy_d2d(self, dst_dev: int, src_dev: int, nbytes: int) -> None:
        self.mem[int(dst_dev)][: int(nbytes)] = self.mem[int(src_dev)][: int(nbytes)]

    def axpy(self, n, alpha, x, y, dtype=np.float32) -> None:
        self.calls.append("axpy")
        yv = self._view(y, n, dtype)
        yv += yv.dtype.type(alpha) * self._view(x, n, dtype)

    def axpby(self, n, alpha, x, beta, y, dtype=np.float32) -> None:
        self.calls.append("axpby")
        yv = self._view(y, n, dtype)
        yv[...] = yv.dtype.type(alpha) * self._view(x, n, dtype) + yv.dtype.type(beta) * yv

    def set(self, n, alpha, y, dtype=np.float32) -> None:
        self.calls.append("set")
        self._view(y, n, dtype)[...] = alpha

    def add_scalar(self, n, alpha, y, dtype=np.float32) -> None:
        self.calls.append("add_scalar")
        yv = self._view(y, n, dtype)
        yv += yv.dtype.type(alpha)

    def sign(self, n, x, y, dtype=np.float32) -> None:
        self.calls.append("sign")
        self._view(y, n, dtype)[...] = np.sign(self._view(x, n, dtype))

    def powx(self, n, x, p, y, dtype=np.float32) -> None:
        self.calls.append("powx")
        yv = self._view(y, n, dtype)
        yv[...] = np.power(self._view(x, n, dtype), yv.dtype.type(p))

    def add(self, n, a, b, y, dtype=np.float32) -> None:
        self.calls.append("add")
        self._view(y, n, dtype)[...] = self._view(a, n, dtype) + self._view(b, n, dtype)

    def mul(self, n, a, b, y, dtype=np.float32) -> None:
        self.calls.append("mul")
        self._view(y, n, dtype)[...] = self._view(a, n, dtype) * self._view(b, n, dtype)

    def div(self, n, a, b, y, dtype=np.float32) -> None:
        self.calls.append("div")
        self._view(y, n, dtype)[...] = self._view(a, n, dtype) / self._view(b, n, dtype)
