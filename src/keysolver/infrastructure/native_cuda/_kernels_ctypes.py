"""
ctypes bindings for the keysolver CUDA native kernels.

This module wraps the exported C entry points of the native library in a
small `CudaKernels` object offering two groups of calls:

Runtime
-------
- ``set_device(index)``, ``synchronize()``
- ``malloc(nbytes) -> dev_ptr`` / ``free(dev_ptr)``
- ``memcpy_h2d(dst_dev, src_host)``, ``memcpy_d2h(dst_host, src_dev)``,
  ``memcpy_d2d(dst_dev, src_dev, nbytes)``

Elementwise kernels (the solver's primitive set)
------------------------------------------------
``axpy``, ``axpby``, ``set``, ``add_scalar``, ``sign``, ``powx``, ``add``,
``mul``, ``div``.

Symbol conventions
------------------
- Every entry point returns an ``int`` status; non-zero raises
  `RuntimeError` naming the symbol.
- Kernels are dtype-specialized by suffix: ``*_f32`` / ``*_f64``.
- Element counts are ``int64``; device pointers are passed as Python ints.

Notes
-----
- These wrappers do not validate pointer validity or sizes; callers (the
  CUDA buffer backend and `SyncedMemory`) own that responsibility.
- Bound callables are cached per `(library handle, symbol)` so ctypes
  prototypes are only built once.
"""

from __future__ import annotations

import ctypes
from typing import Callable, Dict, Sequence, Tuple

import numpy as np

_FN_CACHE: Dict[Tuple[int, str], Callable[..., int]] = {}


def _get_fn(lib: ctypes.CDLL, sym: str, argtypes: Sequence[type]) -> Callable[..., int]:
    """
    Resolve, type and cache an exported function.

    Raises
    ------
    RuntimeError
        If the library does not export `sym`.
    """
    key = (int(getattr(lib, "_handle", 0) or 0), sym)
    fn = _FN_CACHE.get(key)
    if fn is None:
        try:
            fn = getattr(lib, sym)
        except AttributeError as e:
            raise RuntimeError(f"Native library missing symbol: {sym}") from e
        fn.argtypes = list(argtypes)
        fn.restype = ctypes.c_int
        _FN_CACHE[key] = fn
    return fn


def _select_sym_and_ctype(sym_base: str, dtype: np.dtype) -> tuple[str, type]:
    """
    Map a base symbol name and dtype to a concrete symbol and element ctype.

    Raises
    ------
    TypeError
        If `dtype` is not float32 or float64.
    """
    dtype = np.dtype(dtype)
    if dtype == np.float32:
        return f"{sym_base}_f32", ctypes.c_float
    if dtype == np.float64:
        return f"{sym_base}_f64", ctypes.c_double
    raise TypeError(f"{sym_base} supports float32/float64 only, got {dtype}")


def _check(sym: str, status: int) -> None:
    if int(status) != 0:
        raise RuntimeError(f"{sym} failed with status={int(status)}")


class CudaKernels:
    """
    Typed facade over the native library.

    Parameters
    ----------
    lib : ctypes.CDLL
        Handle returned by `load_keysolver_cuda_native()`.
    """

    def __init__(self, lib: ctypes.CDLL) -> None:
        self.lib = lib

    # ---- runtime ----
    def set_device(self, index: int) -> None:
        sym = "keysolver_cuda_set_device"
        _check(sym, _get_fn(self.lib, sym, [ctypes.c_int])(int(index)))

    def synchronize(self) -> None:
        sym = "keysolver_cuda_synchronize"
        _check(sym, _get_fn(self.lib, sym, [])())

    def malloc(self, nbytes: int) -> int:
        sym = "keysolver_cuda_malloc"
        out = ctypes.c_void_p(0)
        fn = _get_fn(self.lib, sym, [ctypes.POINTER(ctypes.c_void_p), ctypes.c_size_t])
        _check(sym, fn(ctypes.byref(out), ctypes.c_size_t(int(nbytes))))
        return int(out.value or 0)

    def free(self, dev_ptr: int) -> None:
        sym = "keysolver_cuda_free"
        _check(sym, _get_fn(self.lib, sym, [ctypes.c_void_p])(ctypes.c_void_p(int(dev_ptr))))

    def memcpy_h2d(self, dst_dev: int, src_host: np.ndarray) -> None:
        if not isinstance(src_host, np.ndarray):
            raise TypeError("src_host must be a numpy.ndarray")
        sym = "keysolver_cuda_memcpy_h2d"
        fn = _get_fn(self.lib, sym, [ctypes.c_void_p, ctypes.c_void_p, ctypes.c_size_t])
        src = np.ascontiguousarray(src_host)
        _check(
            sym,
            fn(
                ctypes.c_void_p(int(dst_dev)),
                ctypes.c_void_p(int(src.ctypes.data)),
                ctypes.c_size_t(int(src.nbytes)),
            ),
        )

    def memcpy_d2h(self, dst_host: np.ndarray, src_dev: int) -> None:
        if not isinstance(dst_host, np.ndarray) or not dst_host.flags.c_contiguous:
            raise TypeError("dst_host must be a C-contiguous numpy.ndarray")
        sym = "keysolver_cuda_memcpy_d2h"
        fn = _get_fn(self.lib, sym, [ctypes.c_void_p, ctypes.c_void_p, ctypes.c_size_t])
        _check(
            sym,
            fn(
                ctypes.c_void_p(int(dst_host.ctypes.data)),
                ctypes.c_void_p(int(src_dev)),
                ctypes.c_size_t(int(dst_host.nbytes)),
            ),
        )

    def memcpy_d2d(self, dst_dev: int, src_dev: int, nbytes: int) -> None:
        sym = "keysolver_cuda_memcpy_d2d"
        fn = _get_fn(self.lib, sym, [ctypes.c_void_p, ctypes.c_void_p, ctypes.c_size_t])
        _check(
            sym,
            fn(
                ctypes.c_void_p(int(dst_dev)),
                ctypes.c_void_p(int(src_dev)),
                ctypes.c_size_t(int(nbytes)),
            ),
        )

    # ---- elementwise kernels ----
    def _call(self, base: str, dtype: np.dtype, signature: str, *args) -> None:
        """
        Invoke ``<base>_<f32|f64>`` with a compact signature string.

        Signature letters: ``n`` element count, ``s`` scalar of the element
        type, ``p`` device pointer.
        """
        sym, elem_t = _select_sym_and_ctype(base, dtype)
        kinds = {"n": ctypes.c_int64, "s": elem_t, "p": ctypes.c_void_p}
        argtypes = [kinds[c] for c in signature]
        converted = []
        for c, a in zip(signature, args):
            if c == "n":
                converted.append(ctypes.c_int64(int(a)))
            elif c == "s":
                converted.append(elem_t(float(a)))
            else:
                converted.append(ctypes.c_void_p(int(a)))
        _check(sym, _get_fn(self.lib, sym, argtypes)(*converted))

    def axpy(self, n: int, alpha: float, x: int, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_axpy", dtype, "nspp", n, alpha, x, y)

    def axpby(self, n: int, alpha: float, x: int, beta: float, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_axpby", dtype, "nspsp", n, alpha, x, beta, y)

    def set(self, n: int, alpha: float, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_set", dtype, "nsp", n, alpha, y)

    def add_scalar(self, n: int, alpha: float, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_add_scalar", dtype, "nsp", n, alpha, y)

    def sign(self, n: int, x: int, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_sign", dtype, "npp", n, x, y)

    def powx(self, n: int, x: int, p: float, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_powx", dtype, "npsp", n, x, p, y)

    def add(self, n: int, a: int, b: int, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_add", dtype, "nppp", n, a, b, y)

    def mul(self, n: int, a: int, b: int, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_mul", dtype, "nppp", n, a, b, y)

    def div(self, n: int, a: int, b: int, y: int, dtype=np.float32) -> None:
        self._call("keysolver_cuda_div", dtype, "nppp", n, a, b, y)
