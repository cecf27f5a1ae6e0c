import unittest

from src.keysolver.domain._errors import (
    DeviceMismatchError,
    DeviceNotSupportedError,
    KeySolverError,
    SolverConfigError,
    SolverStateError,
    UnknownPolicyError,
)


class TestErrorTaxonomy(unittest.TestCase):
    def test_every_error_is_a_keysolver_error(self):
        for cls in (SolverConfigError, SolverStateError):
            self.assertTrue(issubclass(cls, KeySolverError))
        self.assertIsInstance(UnknownPolicyError("lr policy", "x"), KeySolverError)
        self.assertIsInstance(DeviceNotSupportedError("op", "cuda:0"), KeySolverError)
        self.assertIsInstance(DeviceMismatchError("host array", "int"), KeySolverError)

    def test_builtin_bases(self):
        self.assertTrue(issubclass(SolverConfigError, ValueError))
        self.assertTrue(issubclass(UnknownPolicyError, ValueError))
        self.assertTrue(issubclass(DeviceNotSupportedError, RuntimeError))
        self.assertTrue(issubclass(DeviceMismatchError, RuntimeError))

    def test_unknown_policy_carries_kind_and_name(self):
        e = UnknownPolicyError("learning rate policy", "cosine")
        self.assertEqual(e.kind, "learning rate policy")
        self.assertEqual(e.name, "cosine")
        self.assertIn("'cosine'", str(e))

    def test_device_not_supported_message(self):
        e = DeviceNotSupportedError("solver_mode=GPU", "cuda:1", "library missing")
        self.assertEqual(e.op, "solver_mode=GPU")
        self.assertEqual(e.device, "cuda:1")
        self.assertIn("cuda:1", str(e))
        self.assertIn("library missing", str(e))

    def test_device_mismatch_attributes(self):
        e = DeviceMismatchError(expected="device pointer", got="ndarray")
        self.assertEqual(e.expected, "device pointer")
        self.assertEqual(e.got, "ndarray")


if __name__ == "__main__":
    unittest.main()
