import unittest

import numpy as np

from src.keysolver.domain._device import Device
from src.keysolver.domain._errors import DeviceMismatchError
from src.keysolver.infrastructure.blob._blob import Blob
from src.keysolver.infrastructure.ops._cuda_ops import CudaBufferOps
from src.keysolver.infrastructure.ops._host_ops import HostBufferOps
from _fake_cuda import FakeCudaKernels


class TestCudaBufferOps(unittest.TestCase):
    def setUp(self):
        self.k = FakeCudaKernels()
        self.ops = CudaBufferOps(Device("cuda:0"), self.k)

    def _blob(self, values):
        b = self.ops.new_blob((len(values),))
        b.set_data(values)
        return b

    def test_requires_cuda_device(self):
        with self.assertRaises(ValueError):
            CudaBufferOps(Device("cpu"), self.k)

    def test_new_blob_lives_on_the_runtime(self):
        b = self.ops.new_blob((2, 3))
        self.assertIsInstance(b, Blob)
        self.assertIs(b.runtime, self.k)
        self.assertIn(self.ops.data(b), self.k.mem)

    def test_handles_are_device_pointers(self):
        b = self._blob([1.0, 2.0])
        self.assertIsInstance(self.ops.data(b), int)
        self.assertIsInstance(self.ops.mutable_diff(b), int)

    def test_axpy_updates_blob_data(self):
        x, y = self._blob([1.0, 2.0]), self._blob([10.0, 20.0])
        self.ops.axpy(2, -1.0, self.ops.data(x), self.ops.mutable_data(y))
        np.testing.assert_allclose(y.cpu_data(), [9.0, 18.0])
        self.assertIn("axpy", self.k.calls)

    def test_copy_uses_device_to_device_memcpy(self):
        x, y = self._blob([3.0, 4.0]), self._blob([0.0, 0.0])
        self.ops.copy(2, self.ops.data(x), self.ops.mutable_data(y))
        np.testing.assert_array_equal(y.cpu_data(), [3.0, 4.0])

    def test_host_array_is_rejected(self):
        y = self._blob([0.0, 0.0])
        with self.assertRaises(DeviceMismatchError):
            self.ops.axpy(2, 1.0, np.zeros(2, np.float32), self.ops.mutable_data(y))
        with self.assertRaises(DeviceMismatchError):
            self.ops.set(2, 1.0, True)

    def test_primitives_match_host_backend(self):
        rng = np.random.default_rng(0)
        a_vals = rng.uniform(0.5, 2.0, size=5).astype(np.float32)
        b_vals = rng.uniform(-1.0, 1.0, size=5).astype(np.float32)
        host = HostBufferOps()

        def run(ops, a, b, y):
            n = 5
            ops.axpby(n, 0.3, ops.data(a), 0.7, ops.mutable_data(y))
            ops.mul(n, ops.data(a), ops.data(y), ops.mutable_data(y))
            ops.add_scalar(n, 0.1, ops.mutable_data(y))
            ops.powx(n, ops.data(y), 2.0, ops.mutable_data(y))
            ops.sign(n, ops.data(b), ops.mutable_data(b))
            ops.add(n, ops.data(b), ops.data(y), ops.mutable_data(y))
            ops.div(n, ops.data(y), ops.data(a), ops.mutable_data(y))

        results = []
        for ops in (host, self.ops):
            a, b, y = (ops.new_blob((5,)) for _ in range(3))
            a.set_data(a_vals)
            b.set_data(b_vals)
            y.set_data(b_vals)
            run(ops, a, b, y)
            results.append(np.array(y.cpu_data()))
        np.testing.assert_allclose(results[0], results[1], rtol=1e-6)


if __name__ == "__main__":
    unittest.main()
