import logging
import tempfile
import unittest
from pathlib import Path

import numpy as np

from src.keysolver.domain._device import Device
from src.keysolver.domain._errors import SolverConfigError, SolverStateError, UnknownPolicyError
from src.keysolver.domain._phase import Phase
from src.keysolver.infrastructure.config._solver_config import SolverConfig
from src.keysolver.infrastructure.ops._execution_context import ExecutionContext
from src.keysolver.infrastructure.solvers._checkpoint import read_json, write_json
from src.keysolver.infrastructure.solvers._solver import Solver

from _fake_cuda import FakeCudaKernels

ROWS = [[0.0, 1.0], [1.0, 0.0], [1.0, 1.0], [0.5, -0.5]]
TARGETS = [[-0.5], [2.5], [1.5], [2.0]]


def regression_net(batch_size=4, with_metric=False):
    layers = [
        {
            "name": "data",
            "type": "MemoryData",
            "top": ["x", "target"],
            "memory_data_param": {
                "batch_size": batch_size,
                "arrays": {"x": ROWS, "target": TARGETS},
            },
        },
        {
            "name": "ip",
            "type": "InnerProduct",
            "bottom": ["x"],
            "top": ["ip"],
            "inner_product_param": {
                "num_output": 1,
                "weight_filler": {"type": "constant", "value": 0.1},
                "bias_filler": {"type": "constant", "value": -0.2},
            },
        },
        {"name": "loss", "type": "EuclideanLoss", "bottom": ["ip", "target"], "top": ["loss"]},
    ]
    if with_metric:
        layers.append(
            {"name": "err", "type": "EuclideanLoss", "bottom": ["ip", "target"], "top": ["err"],
             "loss_weight": 0, "include": {"phase": "TEST"}}
        )
    return {"name": "regress", "layers": layers}


class _SolverCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)

    def config(self, **kw):
        data = {
            "net_param": regression_net(),
            "base_lr": 0.05,
            "max_iter": 5,
            "snapshot_after_train": False,
            "snapshot_prefix": str(self.root / "run"),
        }
        data.update(kw)
        return SolverConfig.from_mapping(data)

    def weights(self, solver):
        return [np.array(p.cpu_data(), copy=True) for p in solver.net.params]


class TestSolverConstruction(_SolverCase):
    def test_builds_train_and_generic_test_nets(self):
        s = Solver(self.config(
            net_param=regression_net(with_metric=True), test_iter=[1, 2], test_interval=5
        ))
        self.assertIs(s.net.phase, Phase.TRAIN)
        self.assertEqual(len(s.test_nets), 2)
        self.assertTrue(all(n.phase is Phase.TEST for n in s.test_nets))
        self.assertIn("err", s.test_nets[0].layer_names)
        self.assertNotIn("err", s.net.layer_names)
        self.assertEqual(s.rule.NAME, "SGD")
        self.assertEqual(s.iter, 0)

    def test_accepts_raw_mapping(self):
        s = Solver({"net_param": regression_net(), "solver_type": "adagrad"})
        self.assertEqual(s.rule.NAME, "ADAGRAD")

    def test_explicit_test_nets_need_matching_test_iter(self):
        with self.assertRaises(SolverConfigError):
            Solver(self.config(
                net_param=None, train_net_param=regression_net(),
                test_net_param=[regression_net()], test_interval=1,
            ))
        with self.assertRaises(SolverConfigError):
            Solver(self.config(test_net_param=[regression_net(), regression_net()],
                               test_iter=[1], test_interval=1))

    def test_test_state_count_must_match(self):
        with self.assertRaises(SolverConfigError):
            Solver(self.config(test_iter=[1, 1], test_interval=1, test_state=[{"stage": "a"}]))

    def test_test_interval_required_with_test_nets(self):
        with self.assertRaises(SolverConfigError):
            Solver(self.config(test_iter=[1]))

    def test_unknown_solver_type(self):
        with self.assertRaises(SolverConfigError):
            Solver(self.config(solver_type="LBFGS"))

    def test_net_file_source_resolves_against_solver_dir(self):
        write_json(self.root / "net.json", regression_net())
        cfg = SolverConfig.from_mapping({"net": "net.json", "test_iter": [1], "test_interval": 1},
                                        base_dir=self.root)
        s = Solver(cfg)
        self.assertEqual(s.net.name, "regress")
        self.assertEqual(len(s.test_nets), 1)


class TestSolverLoop(_SolverCase):
    def test_loss_decreases_and_iter_advances(self):
        s = Solver(self.config(max_iter=30, display=1))
        history = s.solve()
        self.assertEqual(s.iter, 30)
        losses = history.history["loss"]
        self.assertEqual(len(losses), 30)
        self.assertLess(losses[-1], losses[0])
        self.assertEqual(history.iteration[:3], [0, 1, 2])
        self.assertEqual(history.history["lr"], [0.05] * 30)

    def test_display_logs_outputs_with_loss_weight_suffix(self):
        s = Solver(self.config(max_iter=2, display=1))
        with self.assertLogs("src.keysolver.infrastructure.solvers._solver", logging.INFO) as cm:
            s.solve()
        text = "\n".join(cm.output)
        self.assertIn("Iteration 0, loss = ", text)
        self.assertIn("Train net output #0: loss = ", text)
        self.assertIn("(* 1 = ", text)
        self.assertIn("Iteration 0, lr = 0.05", text)
        self.assertIn("Iteration 2, loss = ", text)
        self.assertTrue(cm.output[-1].endswith("Optimization Done."))

    def test_final_loss_pass_has_no_layer_trace(self):
        s = Solver(self.config(max_iter=1, display=1, debug_info=True))
        with self.assertLogs("src.keysolver", logging.INFO) as cm:
            s.solve()
        messages = [r.getMessage() for r in cm.records]
        self.assertTrue(any("[Forward]" in m for m in messages))
        last_update = max(i for i, m in enumerate(messages) if "[Update]" in m)
        final = max(i for i, m in enumerate(messages) if m.startswith("Iteration 1, loss = "))
        self.assertGreater(final, last_update)
        self.assertFalse(any("[Forward]" in m for m in messages[last_update:final]))
        self.assertFalse(s.net._debug_info)

    def test_history_loss_is_smoothed(self):
        s = Solver(self.config(max_iter=4, display=1, average_loss=4))
        history = s.solve()
        smoothed = history.history["loss"]
        self.assertEqual(len(smoothed), 4)
        self.assertAlmostEqual(s.smoothed_loss, smoothed[-1])

    def test_average_loss_must_be_positive(self):
        s = Solver(self.config(average_loss=0))
        with self.assertRaises(SolverConfigError):
            s.solve()

    def test_unknown_lr_policy_raises_on_first_update(self):
        s = Solver(self.config(lr_policy="triangular"))
        with self.assertRaises(UnknownPolicyError):
            s.solve()

    def test_unknown_regularization_raises_with_decay(self):
        s = Solver(self.config(regularization_type="L7", weight_decay=0.01))
        with self.assertRaises(UnknownPolicyError):
            s.solve()

    def test_gradient_accumulation_matches_full_batch(self):
        common = dict(max_iter=6, momentum=0.9, weight_decay=0.01)
        full = Solver(self.config(net_param=regression_net(batch_size=4), **common))
        split = Solver(self.config(net_param=regression_net(batch_size=2), update_interval=2, **common))
        full.solve()
        split.solve()
        for a, b in zip(self.weights(full), self.weights(split)):
            np.testing.assert_allclose(a, b, rtol=1e-5, atol=1e-6)

    def test_every_rule_trains(self):
        for name in ("SGD", "NESTEROV", "ADAGRAD", "RMSPROP", "ADADELTA"):
            with self.subTest(rule=name):
                base_lr = 1.0 if name == "ADADELTA" else 0.05
                s = Solver(self.config(solver_type=name, base_lr=base_lr, momentum=0.9,
                                       max_iter=3))
                before = self.weights(s)
                s.solve()
                self.assertEqual(s.iter, 3)
                self.assertFalse(np.array_equal(before[0], self.weights(s)[0]))
                self.assertTrue(all(np.isfinite(w).all() for w in self.weights(s)))

    def test_iter_is_not_reset_between_solves(self):
        s = Solver(self.config(max_iter=2))
        s.solve()
        before = self.weights(s)
        s.solve()
        self.assertEqual(s.iter, 2)
        for a, b in zip(before, self.weights(s)):
            np.testing.assert_array_equal(a, b)


class TestSolverEvaluation(_SolverCase):
    def test_test_reports_means_and_leaves_weights_alone(self):
        s = Solver(self.config(
            net_param=regression_net(with_metric=True), test_iter=[3], test_interval=10,
            test_compute_loss=True,
        ))
        before = self.weights(s)
        result = s.test(0)
        self.assertEqual(result.test_net_id, 0)
        self.assertEqual(result.iteration, 0)
        self.assertEqual(set(result.outputs), {"loss", "err"})
        self.assertAlmostEqual(result.scalar("loss"), result.scalar("err"), places=5)
        self.assertAlmostEqual(result.loss, result.scalar("loss"), places=5)
        for a, b in zip(before, self.weights(s)):
            np.testing.assert_array_equal(a, b)
        self.assertIs(s.history.tests[-1], result)

    def test_test_nets_see_current_training_weights(self):
        s = Solver(self.config(test_iter=[1], test_interval=5, test_initialization=False))
        s.solve()
        for a, b in zip(s.net.params, s.test_nets[0].params):
            np.testing.assert_array_equal(a.cpu_data(), b.cpu_data())

    def test_evaluation_cadence(self):
        s = Solver(self.config(max_iter=4, test_iter=[1], test_interval=2))
        s.solve()
        self.assertEqual([t.iteration for t in s.history.tests], [0, 2, 4])

        s = Solver(self.config(max_iter=4, test_iter=[1], test_interval=2,
                               test_initialization=False))
        s.solve()
        self.assertEqual([t.iteration for t in s.history.tests], [2, 4])

    def test_loss_omitted_without_test_compute_loss(self):
        s = Solver(self.config(test_iter=[2], test_interval=1))
        self.assertIsNone(s.test(0).loss)


class TestSolverCheckpoints(_SolverCase):
    def test_snapshot_files_and_cadence(self):
        s = Solver(self.config(max_iter=4, snapshot=2, snapshot_after_train=True))
        s.solve()
        names = sorted(p.name for p in self.root.iterdir())
        self.assertEqual(names, [
            "run_iter_2.keymodel", "run_iter_2.keymodel.solverstate",
            "run_iter_4.keymodel", "run_iter_4.keymodel.solverstate",
        ])
        state = read_json(self.root / "run_iter_4.keymodel.solverstate")
        self.assertEqual(state["iter"], 4)
        self.assertEqual(state["history_roles"], ["history"])
        self.assertEqual(len(state["history"]), 2)

    def test_snapshot_after_train_false_writes_nothing(self):
        Solver(self.config(max_iter=2)).solve()
        self.assertEqual(list(self.root.iterdir()), [])

    def test_snapshot_diff_writes_gradients(self):
        s = Solver(self.config(max_iter=1, snapshot_diff=True))
        s.solve()
        model_path, _ = s.snapshot()
        payload = read_json(model_path)
        self.assertIn("diff", payload["layers"][1]["params"][0])

    def test_prefix_defaults_to_net_name_in_base_dir(self):
        cfg = SolverConfig.from_mapping(
            {"net_param": regression_net(), "max_iter": 1}, base_dir=self.root
        )
        s = Solver(cfg)
        s.solve()
        self.assertTrue((self.root / "regress_iter_1.keymodel").exists())
        self.assertTrue((self.root / "regress_iter_1.keymodel.solverstate").exists())

    def test_resume_is_bit_identical(self):
        common = dict(max_iter=6, momentum=0.9, snapshot=3, solver_type="NESTEROV")
        ref = Solver(self.config(**common))
        ref.solve()

        resumed = Solver(self.config(snapshot_prefix=str(self.root / "other"), **common))
        resumed.solve(self.root / "run_iter_3.keymodel.solverstate")
        self.assertEqual(resumed.iter, 6)
        for a, b in zip(self.weights(ref), self.weights(resumed)):
            self.assertEqual(a.tobytes(), b.tobytes())
        for a, b in zip(ref.rule.history_buffers(), resumed.rule.history_buffers()):
            self.assertEqual(a.cpu_data().tobytes(), b.cpu_data().tobytes())

    def test_restore_loads_weights_history_and_iter(self):
        s = Solver(self.config(max_iter=3, momentum=0.5))
        s.solve()
        _, state_path = s.snapshot()

        fresh = Solver(self.config(max_iter=3, momentum=0.5))
        fresh.restore(state_path)
        self.assertEqual(fresh.iter, 3)
        for a, b in zip(self.weights(s), self.weights(fresh)):
            self.assertEqual(a.tobytes(), b.tobytes())

    def test_restore_with_relative_model_reference(self):
        s = Solver(self.config(max_iter=2))
        s.solve()
        model_path, state_path = s.snapshot()
        state = read_json(state_path)
        state["learned_net"] = model_path.name
        write_json(state_path, state)

        fresh = Solver(self.config())
        fresh.restore(state_path)
        for a, b in zip(self.weights(s), self.weights(fresh)):
            np.testing.assert_array_equal(a, b)

    def test_restore_into_other_rule_raises(self):
        s = Solver(self.config(max_iter=1, solver_type="ADADELTA", base_lr=1.0))
        s.solve()
        _, state_path = s.snapshot()
        with self.assertRaises(SolverStateError):
            Solver(self.config()).restore(state_path)

    def test_restore_same_roles_other_rule_raises(self):
        s = Solver(self.config(max_iter=1))
        s.solve()
        _, state_path = s.snapshot()
        fresh = Solver(self.config(solver_type="ADAGRAD"))
        before = self.weights(fresh)
        with self.assertRaises(SolverStateError):
            fresh.restore(state_path)
        self.assertEqual(fresh.iter, 0)
        for a, b in zip(before, self.weights(fresh)):
            self.assertEqual(a.tobytes(), b.tobytes())

    def test_restore_accepts_lowercase_solver_type(self):
        s = Solver(self.config(max_iter=1, solver_type="adagrad"))
        s.solve()
        _, state_path = s.snapshot()
        state = read_json(state_path)
        state["solver_type"] = "adagrad"
        write_json(state_path, state)
        fresh = Solver(self.config(solver_type="AdaGrad"))
        fresh.restore(state_path)
        self.assertEqual(fresh.iter, 1)

    def test_failed_model_load_leaves_solver_untouched(self):
        net = regression_net()
        net["layers"][1]["top"] = ["hidden"]
        net["layers"].insert(2, {
            "name": "ip_out", "type": "InnerProduct", "bottom": ["hidden"], "top": ["ip"],
            "inner_product_param": {
                "num_output": 1,
                "weight_filler": {"type": "constant", "value": 0.3},
            },
        })
        s = Solver(self.config(net_param=net, max_iter=2, momentum=0.9))
        s.solve()
        model_path, state_path = s.snapshot()
        model = read_json(model_path)
        self.assertEqual(model["layers"][2]["name"], "ip_out")
        model["layers"][2]["params"].pop()
        write_json(model_path, model)

        fresh = Solver(self.config(net_param=net, momentum=0.9))
        before = self.weights(fresh)
        history = [np.array(b.cpu_data(), copy=True) for b in fresh.rule.history_buffers()]
        with self.assertRaises(SolverStateError):
            fresh.restore(state_path)
        self.assertEqual(fresh.iter, 0)
        for a, b in zip(before, self.weights(fresh)):
            self.assertEqual(a.tobytes(), b.tobytes())
        for a, b in zip(history, fresh.rule.history_buffers()):
            self.assertEqual(a.tobytes(), b.cpu_data().tobytes())

    def test_restore_count_mismatch_raises(self):
        s = Solver(self.config(max_iter=1))
        s.solve()
        _, state_path = s.snapshot()
        state = read_json(state_path)
        state["history"] = state["history"][:1]
        write_json(state_path, state)
        with self.assertRaises(SolverStateError):
            Solver(self.config()).restore(state_path)

    def test_restore_shape_mismatch_raises(self):
        s = Solver(self.config(max_iter=1))
        s.solve()
        _, state_path = s.snapshot()
        state = read_json(state_path)
        state["history"] = list(reversed(state["history"]))
        write_json(state_path, state)
        with self.assertRaises(SolverStateError):
            Solver(self.config()).restore(state_path)

    def test_load_weights(self):
        s = Solver(self.config(max_iter=3))
        s.solve()
        model_path, _ = s.snapshot()
        fresh = Solver(self.config())
        fresh.load_weights(model_path)
        self.assertEqual(fresh.iter, 0)
        for a, b in zip(self.weights(s), self.weights(fresh)):
            np.testing.assert_array_equal(a, b)


class TestSolverOnFakeCuda(_SolverCase):
    def test_cuda_context_matches_host(self):
        common = dict(max_iter=5, momentum=0.9, weight_decay=0.001, solver_type="RMSPROP")
        host = Solver(self.config(**common))
        host.solve()

        runtime = FakeCudaKernels()
        ctx = ExecutionContext(device=Device("cuda:0"), runtime=runtime)
        dev = Solver(self.config(**common), context=ctx)
        dev.solve()

        self.assertIn("axpby", runtime.calls)
        for a, b in zip(self.weights(host), self.weights(dev)):
            np.testing.assert_allclose(a, b, rtol=1e-5, atol=1e-6)


if __name__ == "__main__":
    unittest.main()
