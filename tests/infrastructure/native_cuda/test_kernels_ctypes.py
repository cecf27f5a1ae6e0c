import ctypes
import unittest

import numpy as np

from src.keysolver.infrastructure.native_cuda._kernels_ctypes import CudaKernels


# Bound symbols are cached per library handle; keep every double alive so
# handles (ids) are never reused between tests.
_LIBS = []


class _RecordingLib:
    """Library double exposing a fixed set of symbols that record their calls."""

    def __init__(self, symbols, status=0):
        _LIBS.append(self)
        self._handle = id(self)
        self.calls = []
        for sym in symbols:
            setattr(self, sym, self._make(sym, status))

    def _make(self, sym, status):
        def fn(*args):
            self.calls.append((sym, args))
            return status

        return fn


class TestCudaKernelsBinding(unittest.TestCase):
    def test_axpy_dispatches_f32_symbol_with_typed_args(self):
        lib = _RecordingLib(["keysolver_cuda_axpy_f32"])
        CudaKernels(lib).axpy(3, 0.5, 0x10, 0x20)
        sym, args = lib.calls[0]
        self.assertEqual(sym, "keysolver_cuda_axpy_f32")
        self.assertIsInstance(args[0], ctypes.c_int64)
        self.assertEqual(args[0].value, 3)
        self.assertIsInstance(args[1], ctypes.c_float)
        self.assertAlmostEqual(args[1].value, 0.5)
        self.assertEqual([a.value for a in args[2:]], [0x10, 0x20])
        fn = getattr(lib, "keysolver_cuda_axpy_f32")
        self.assertEqual(fn.argtypes, [ctypes.c_int64, ctypes.c_float, ctypes.c_void_p, ctypes.c_void_p])
        self.assertIs(fn.restype, ctypes.c_int)

    def test_float64_selects_double_symbol(self):
        lib = _RecordingLib(["keysolver_cuda_powx_f64"])
        CudaKernels(lib).powx(2, 0x10, 0.5, 0x20, dtype=np.float64)
        sym, args = lib.calls[0]
        self.assertEqual(sym, "keysolver_cuda_powx_f64")
        self.assertIsInstance(args[2], ctypes.c_double)

    def test_unsupported_dtype_raises_type_error(self):
        lib = _RecordingLib(["keysolver_cuda_set_f32"])
        with self.assertRaises(TypeError):
            CudaKernels(lib).set(2, 1.0, 0x10, dtype=np.int32)

    def test_missing_symbol_raises_runtime_error(self):
        lib = _RecordingLib([])
        with self.assertRaises(RuntimeError):
            CudaKernels(lib).sign(2, 0x10, 0x20)

    def test_non_zero_status_raises_runtime_error(self):
        lib = _RecordingLib(["keysolver_cuda_set_device"], status=2)
        with self.assertRaises(RuntimeError) as cm:
            CudaKernels(lib).set_device(0)
        self.assertIn("keysolver_cuda_set_device", str(cm.exception))

    def test_memcpy_h2d_rejects_non_arrays(self):
        lib = _RecordingLib(["keysolver_cuda_memcpy_h2d"])
        with self.assertRaises(TypeError):
            CudaKernels(lib).memcpy_h2d(0x10, [1.0, 2.0])


if __name__ == "__main__":
    unittest.main()
