from unittest import TestCase
import unittest

import numpy as np

from src.keysolver.infrastructure._parameter import Parameter
from src.keysolver.infrastructure.blob._blob import Blob


class TestParameterInfrastructure(TestCase):

    def test_parameter_is_a_blob(self):
        """Parameter should reuse Blob storage and shape handling."""
        p = Parameter((2, 3), owner="ip1")
        self.assertIsInstance(p, Blob)
        self.assertEqual(p.shape, (2, 3))
        self.assertEqual(p.count, 6)

    def test_multipliers_default_to_one(self):
        p = Parameter((2,), owner="ip1")
        self.assertEqual(p.lr_mult, 1.0)
        self.assertEqual(p.decay_mult, 1.0)

    def test_multipliers_and_identity(self):
        p = Parameter((4,), owner="fc", index=1, lr_mult=2, decay_mult=0)
        self.assertEqual(p.owner, "fc")
        self.assertEqual(p.index, 1)
        self.assertEqual(p.lr_mult, 2.0)
        self.assertEqual(p.decay_mult, 0.0)
        self.assertIsInstance(p.lr_mult, float)

    def test_data_and_diff_start_at_zero(self):
        p = Parameter((3,), owner="fc")
        np.testing.assert_array_equal(p.cpu_data(), np.zeros(3))
        np.testing.assert_array_equal(p.cpu_diff(), np.zeros(3))

    def test_dtype_is_forwarded(self):
        p = Parameter((3,), owner="fc", dtype=np.float64)
        self.assertEqual(p.cpu_data().dtype, np.float64)

    def test_repr_mentions_owner_and_multipliers(self):
        r = repr(Parameter((1,), owner="fc", lr_mult=0.5))
        self.assertIn("fc", r)
        self.assertIn("lr_mult=0.5", r)


if __name__ == "__main__":
    unittest.main()
