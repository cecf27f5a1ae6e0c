import unittest

import numpy as np

from src.keysolver.infrastructure.blob._blob import Blob
from _fake_cuda import FakeCudaKernels


class TestBlob(unittest.TestCase):
    def test_shape_count_dtype(self):
        b = Blob((2, 3), dtype=np.float64)
        self.assertEqual(b.shape, (2, 3))
        self.assertEqual(b.count, 6)
        self.assertEqual(b.dtype, np.float64)

    def test_int_shape_and_scalar_shape(self):
        self.assertEqual(Blob(4).shape, (4,))
        scalar = Blob(())
        self.assertEqual(scalar.count, 1)
        self.assertEqual(scalar.cpu_data().shape, ())

    def test_negative_dimension_raises(self):
        with self.assertRaises(ValueError):
            Blob((2, -1))

    def test_host_accessors_are_shaped_views(self):
        b = Blob((2, 2))
        b.mutable_cpu_data()[1, 0] = 5.0
        b.mutable_cpu_diff()[0, 1] = -2.0
        self.assertEqual(b.cpu_data().shape, (2, 2))
        self.assertEqual(float(b.cpu_data()[1, 0]), 5.0)
        self.assertEqual(float(b.cpu_diff()[0, 1]), -2.0)
        self.assertEqual(float(b.cpu_data()[0, 1]), 0.0)

    def test_reshape_same_count_keeps_values(self):
        b = Blob((2, 3))
        b.set_data(np.arange(6).reshape(2, 3))
        b.reshape((3, 2))
        self.assertEqual(b.shape, (3, 2))
        np.testing.assert_array_equal(b.cpu_data().reshape(-1), np.arange(6))

    def test_reshape_new_count_reallocates_zeroed(self):
        b = Blob((2,))
        b.set_data([1.0, 2.0])
        b.reshape((4,))
        np.testing.assert_array_equal(b.cpu_data(), np.zeros(4))

    def test_set_helpers_broadcast(self):
        b = Blob((2, 2))
        b.set_data(3.0)
        b.set_diff([1.0, -1.0])
        np.testing.assert_array_equal(b.cpu_data(), np.full((2, 2), 3.0))
        np.testing.assert_array_equal(b.cpu_diff(), [[1.0, -1.0], [1.0, -1.0]])

    def test_asum(self):
        b = Blob((3,))
        b.set_data([1.0, -2.0, 3.0])
        b.set_diff([-0.5, 0.5, 0.0])
        self.assertAlmostEqual(b.asum_data(), 6.0)
        self.assertAlmostEqual(b.asum_diff(), 1.0)

    def test_share_data_from_copies_values(self):
        a, b = Blob((2,)), Blob((2,))
        a.set_data([1.0, 2.0])
        b.share_data_from(a)
        a.set_data([9.0, 9.0])
        np.testing.assert_array_equal(b.cpu_data(), [1.0, 2.0])

    def test_share_data_from_shape_mismatch_raises(self):
        with self.assertRaises(ValueError):
            Blob((2,)).share_data_from(Blob((3,)))

    def test_device_accessors_use_runtime(self):
        rt = FakeCudaKernels()
        b = Blob((2,), runtime=rt)
        b.set_data([1.0, 2.0])
        ptr = b.gpu_data()
        np.testing.assert_array_equal(rt._view(ptr, 2, np.float32), [1.0, 2.0])
        dptr = b.mutable_gpu_diff()
        rt._view(dptr, 2, np.float32)[...] = [0.25, 0.5]
        np.testing.assert_array_equal(b.cpu_diff(), [0.25, 0.5])
        self.assertNotEqual(ptr, dptr)


if __name__ == "__main__":
    unittest.main()
