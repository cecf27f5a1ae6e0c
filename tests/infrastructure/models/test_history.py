import unittest

from src.keysolver.infrastructure.models._history import History, TestResult


class TestHistory(unittest.TestCase):
    def test_append_display_tracks_keys_and_iterations(self):
        h = History()
        h.append_display(0, {"loss": 2.0, "lr": 0.1})
        h.append_display(10, {"loss": 1.5, "lr": 0.1, "accuracy": 0.75})
        self.assertEqual(h.iteration, [0, 10])
        self.assertEqual(h.history["loss"], [2.0, 1.5])
        self.assertEqual(h.history["accuracy"], [0.75])
        self.assertEqual(h.last(), {"loss": 1.5, "lr": 0.1, "accuracy": 0.75})

    def test_values_are_stored_as_floats(self):
        h = History()
        h.append_display(3, {"loss": 1})
        self.assertIsInstance(h.history["loss"][0], float)

    def test_empty_history(self):
        self.assertEqual(History().last(), {})

    def test_append_test(self):
        h = History()
        r = TestResult(test_net_id=1, iteration=20, outputs={"accuracy": [0.5]}, loss=0.3)
        h.append_test(r)
        self.assertEqual(h.tests, [r])


class TestTestResult(unittest.TestCase):
    def test_scalar(self):
        r = TestResult(0, 5, outputs={"accuracy": [0.9], "probs": [0.2, 0.8]})
        self.assertEqual(r.scalar("accuracy"), 0.9)
        with self.assertRaises(ValueError):
            r.scalar("probs")
        with self.assertRaises(KeyError):
            r.scalar("missing")

    def test_defaults(self):
        r = TestResult(0, 0)
        self.assertEqual(r.outputs, {})
        self.assertIsNone(r.loss)


if __name__ == "__main__":
    unittest.main()
