"""
Solver: the training loop.

`Solver` owns one training network and zero or more evaluation networks,
drives forward/backward passes, turns gradients into updates with the
configured update rule, tracks the smoothed loss, runs periodic evaluation
passes and writes/reads checkpoints.

Training loop
-------------
For every iteration ``iter`` in ``[start_iter, max_iter)``:

1. snapshot when ``snapshot > 0``, ``iter > start_iter`` and
   ``iter % snapshot == 0``;
2. evaluate every test net when ``test_interval > 0``,
   ``iter % test_interval == 0`` and (``iter > 0`` or
   ``test_initialization``);
3. clear gradients, then run ``update_interval`` forward/backward passes
   whose gradients accumulate; the iteration loss is their mean;
4. update the smoothed loss and, on display iterations, log it together
   with every element of every training-net output;
5. compute the update value for every parameter and apply
   ``data -= diff``.

After the loop the solver snapshots (unless ``snapshot_after_train`` is
false), logs a final loss-only forward pass and runs a final evaluation when
the respective cadences are due, then logs ``Optimization Done.``.

Update preamble
---------------
For parameter ``i`` at iteration ``t``::

    local_rate  = schedule(t) * lr_mult[i] / update_interval
    local_decay = weight_decay * decay_mult[i] * update_interval

The regularizer adds the decay term to the gradient, then the update rule
transforms it in place into the final update value.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple, Union

import numpy as np

from ._checkpoint import (
    build_state_payload,
    model_filename,
    parse_state_payload,
    read_json,
    resolve_model_path,
    state_filename,
    write_json,
)
from ._lr_policy import learning_rate
from ._regularizer import Regularizer
from ._smoothed_loss import SmoothedLoss
from .rules import UpdateRule, update_rule_class
from ..config._io import read_net_param_file
from ..config._solver_config import SolverConfig, load_solver_config
from ..models._history import History, TestResult
from ..net._net import Net
from ..ops._execution_context import ExecutionContext
from ...domain._errors import SolverConfigError, SolverStateError
from ...domain._phase import NetState, Phase

logger = logging.getLogger(__name__)

ConfigLike = Union[SolverConfig, Mapping[str, Any], str, Path]


def _coerce_config(config: ConfigLike) -> SolverConfig:
    if isinstance(config, SolverConfig):
        return config
    if isinstance(config, Mapping):
        return SolverConfig.from_mapping(config)
    return load_solver_config(config)


class Solver:
    """
    Iterative optimizer over a `Net`.

    Parameters
    ----------
    config : SolverConfig, Mapping or path
        Solver definition, validated or raw, or the path of a YAML / JSON
        solver file.
    context : ExecutionContext, optional
        Execution context to use instead of creating one from
        ``solver_mode`` / ``device_id``.

    Attributes
    ----------
    net : Net
        The training network.
    test_nets : List[Net]
        Evaluation networks, in source order.
    rule : UpdateRule
        Active update rule.
    iter : int
        Current iteration.
    history : History
        Values logged at display steps and evaluation results.

    Raises
    ------
    SolverConfigError
        On contradictory network sources, mismatched evaluation counts,
        a missing ``test_interval`` or an unknown ``solver_type``.
    DeviceNotSupportedError
        If GPU mode is requested and the native library is unavailable.
    """

    def __init__(self, config: ConfigLike, context: Optional[ExecutionContext] = None) -> None:
        self.config = _coerce_config(config)
        cfg = self.config
        logger.info(
            "Initializing solver: solver_type=%s, lr_policy=%s, base_lr=%g, max_iter=%d",
            cfg.solver_type, cfg.lr_policy, cfg.base_lr, cfg.max_iter,
        )

        self.context = context or ExecutionContext.create(cfg.solver_mode, cfg.device_id)
        self.rng = np.random.default_rng(cfg.random_seed if cfg.random_seed >= 0 else None)
        rule_cls = update_rule_class(cfg.solver_type)

        self.net: Net = self._init_train_net()
        self.test_nets: List[Net] = self._init_test_nets()

        self.ops = self.context.buffer_ops()
        self.rule: UpdateRule = rule_cls(cfg)
        self.regularizer = Regularizer(cfg.regularization_type)
        params = self.net.params
        self.rule.allocate(params, self.ops)
        self.regularizer.allocate(params, self.ops)

        self.iter = 0
        self.history = History()
        self._smoothed: Optional[SmoothedLoss] = None
        logger.info("Solver scaffolding done.")

    # ---- construction ----
    def _load_net_source(self, kind: str, value: Any) -> Tuple[Mapping[str, Any], Path]:
        if kind == "file":
            path = Path(value)
            return read_net_param_file(path), path.parent
        return value, self.config.resolved_base_dir

    def _init_train_net(self) -> Net:
        cfg = self.config
        if cfg.train_net_param is not None:
            logger.info("Creating training net specified in train_net_param.")
            net_param, base = self._load_net_source("inline", cfg.train_net_param)
        elif cfg.train_net is not None:
            logger.info("Creating training net from train_net file: %s", cfg.train_net)
            net_param, base = self._load_net_source("file", cfg.train_net)
        elif cfg.net_param is not None:
            logger.info("Creating training net specified in net_param.")
            net_param, base = self._load_net_source("inline", cfg.net_param)
        else:
            logger.info("Creating training net from net file: %s", cfg.net)
            net_param, base = self._load_net_source("file", cfg.net)

        state = self._merged_state(Phase.TRAIN, net_param, cfg.train_state)
        return Net(net_param, state, self.context, self.rng, base)

    def _merged_state(self, phase: Phase, net_param: Mapping[str, Any], override: NetState) -> NetState:
        try:
            own = NetState.from_mapping(net_param.get("state"))
        except ValueError as e:
            raise SolverConfigError(f"Invalid network state: {e}") from e
        return NetState(phase=phase).merged(own).merged(override)

    def _init_test_nets(self) -> List[Net]:
        cfg = self.config
        has_generic = cfg.net_param is not None or cfg.net is not None
        num_explicit = len(cfg.test_net_param) + len(cfg.test_net)
        num_iter = len(cfg.test_iter)
        if has_generic:
            if num_iter < num_explicit:
                raise SolverConfigError(
                    f"test_iter must be specified for each test network: "
                    f"got {num_iter} entries for {num_explicit} explicit test nets"
                )
        elif num_iter != num_explicit:
            raise SolverConfigError(
                f"test_iter must be specified for each test network: "
                f"got {num_iter} entries for {num_explicit} test nets"
            )

        num_generic_instances = num_iter - num_explicit
        num_instances = num_explicit + num_generic_instances
        if cfg.test_state and len(cfg.test_state) != num_instances:
            raise SolverConfigError(
                f"test_state must be unspecified or specified once per test net: "
                f"got {len(cfg.test_state)} for {num_instances} test nets"
            )
        if num_instances and cfg.test_interval <= 0:
            raise SolverConfigError("test_interval must be > 0 when test nets are defined")

        sources: List[Tuple[str, Any, str]] = []
        sources += [("inline", p, "test_net_param") for p in cfg.test_net_param]
        sources += [("file", f, "test_net file") for f in cfg.test_net]
        if num_generic_instances:
            if cfg.net_param is not None:
                sources += [("inline", cfg.net_param, "net_param")] * num_generic_instances
            else:
                sources += [("file", cfg.net, "net file")] * num_generic_instances

        nets: List[Net] = []
        for i, (kind, value, label) in enumerate(sources):
            logger.info("Creating test net (#%d) specified by %s", i, label)
            net_param, base = self._load_net_source(kind, value)
            override = cfg.test_state[i] if cfg.test_state else NetState()
            state = self._merged_state(Phase.TEST, net_param, override)
            nets.append(Net(net_param, state, self.context, self.rng, base))
        return nets

    # ---- loop ----
    @property
    def smoothed_loss(self) -> float:
        return self._smoothed.value if self._smoothed is not None else 0.0

    def solve(self, resume_file: Optional[Union[str, Path]] = None) -> History:
        """
        Train until ``max_iter``, optionally resuming from a state file.

        Returns
        -------
        History
            The solver's training history.

        Raises
        ------
        SolverConfigError
            If ``average_loss < 1`` or a policy parameter is invalid.
        UnknownPolicyError
            On an unknown learning-rate policy or regularization type.
        SolverStateError
            If the resume file does not match this solver.
        """
        cfg = self.config
        logger.info("Solving %s", self.net.name)
        logger.info("Learning Rate Policy: %s", cfg.lr_policy)

        if resume_file is not None:
            logger.info("Restoring previous solver status from %s", resume_file)
            self.restore(resume_file)

        start_iter = self.iter
        self._smoothed = SmoothedLoss(cfg.average_loss)
        while self.iter < cfg.max_iter:
            self._iteration(start_iter)

        if cfg.snapshot_after_train:
            self.snapshot()

        if cfg.display and self.iter % cfg.display == 0:
            self.net.set_debug_info(False)
            _, loss = self.net.forward()
            logger.info("Iteration %d, loss = %g", self.iter, loss)
        if cfg.test_interval and self.iter % cfg.test_interval == 0:
            self.test_all()
        logger.info("Optimization Done.")
        return self.history

    def _iteration(self, start_iter: int) -> None:
        cfg = self.config
        if cfg.snapshot and self.iter > start_iter and self.iter % cfg.snapshot == 0:
            self.snapshot()

        if cfg.test_interval and self.iter % cfg.test_interval == 0 and (
            self.iter > 0 or cfg.test_initialization
        ):
            self.test_all()

        display = bool(cfg.display) and self.iter % cfg.display == 0
        self.net.set_debug_info(display and cfg.debug_info)

        self.net.clear_param_diffs()
        loss = 0.0
        for _ in range(cfg.update_interval):
            loss += self.net.forward_backward()
        loss /= cfg.update_interval

        smoothed = self._smoothed.update(loss, self.iter - start_iter)
        logs = {}
        if display:
            logger.info("Iteration %d, loss = %g", self.iter, smoothed)
            logs = self._log_outputs(self.net, "Train", [
                b.cpu_data().reshape(-1).tolist() for b in self.net.output_blobs
            ])
            # "loss" is the smoothed value even when an output is named loss
            logs["loss"] = smoothed

        rate = self.compute_update_value()
        self.net.update()
        if display:
            logs["lr"] = rate
            self.history.append_display(self.iter, logs)
        self.iter += 1

    def _log_outputs(self, net: Net, label: str, values: List[List[float]]) -> dict:
        weights = net.blob_loss_weights
        logs = {}
        score_index = 0
        for name, vec in zip(net.output_blob_names, values):
            w = weights.get(name, 0.0)
            for k, v in enumerate(vec):
                suffix = f" (* {w:g} = {w * v:g} loss)" if w else ""
                logger.info("    %s net output #%d: %s = %g%s", label, score_index, name, v, suffix)
                logs[name if len(vec) == 1 else f"{name}[{k}]"] = v
                score_index += 1
        return logs

    def compute_update_value(self) -> float:
        """
        Turn every parameter's gradient into its update value in place.

        Returns
        -------
        float
            The scheduled (unscaled) learning rate of this iteration.
        """
        cfg = self.config
        rate = learning_rate(cfg, self.iter)
        if cfg.display and self.iter % cfg.display == 0:
            logger.info("Iteration %d, lr = %g", self.iter, rate)
        scaled_rate = rate / cfg.update_interval
        scaled_decay = cfg.weight_decay * cfg.update_interval
        for i, p in enumerate(self.net.params):
            self.regularizer.apply(self.ops, i, p, scaled_decay * p.decay_mult)
            self.rule.compute_update(self.ops, i, p, scaled_rate * p.lr_mult)
        return rate

    # ---- evaluation ----
    def test_all(self) -> List[TestResult]:
        return [self.test(i) for i in range(len(self.test_nets))]

    def test(self, test_net_id: int) -> TestResult:
        """
        Run one evaluation pass.

        The evaluation net receives the training net's current parameter
        values, then runs ``test_iter[test_net_id]`` forward passes in the
        TEST phase. Output elements and (with ``test_compute_loss``) the loss
        are averaged over the passes.
        """
        cfg = self.config
        logger.info("Iteration %d, Testing net (#%d)", self.iter, test_net_id)
        test_net = self.test_nets[test_net_id]
        test_net.share_trained_layers_with(self.net)

        n = cfg.test_iter[test_net_id]
        scores: Optional[List[np.ndarray]] = None
        loss = 0.0
        for _ in range(n):
            outputs, iter_loss = test_net.forward(Phase.TEST)
            if cfg.test_compute_loss:
                loss += iter_loss
            vecs = [b.cpu_data().astype(np.float64).reshape(-1) for b in outputs]
            if scores is None:
                scores = vecs
            else:
                scores = [s + v for s, v in zip(scores, vecs)]

        result = TestResult(test_net_id=test_net_id, iteration=self.iter)
        if cfg.test_compute_loss:
            result.loss = loss / n if n else 0.0
            logger.info("Test loss: %g", result.loss)
        if scores is not None:
            means = [(s / n).tolist() for s in scores]
            self._log_outputs(test_net, "Test", means)
            result.outputs = dict(zip(test_net.output_blob_names, means))
        self.history.append_test(result)
        return result

    # ---- checkpoints ----
    def _snapshot_prefix(self) -> str:
        if self.config.snapshot_prefix:
            return self.config.snapshot_prefix
        return str(self.config.resolved_base_dir / (self.net.name or "keysolver"))

    def snapshot(self) -> Tuple[Path, Path]:
        """
        Write the model and solver-state files for the current iteration.

        Returns
        -------
        (Path, Path)
            Model file and state file paths.
        """
        model_path = Path(model_filename(self._snapshot_prefix(), self.iter))
        logger.info("Snapshotting to %s", model_path)
        write_json(model_path, self.net.to_payload(write_diff=self.config.snapshot_diff))

        state_path = Path(state_filename(str(model_path)))
        history = [np.array(b.cpu_data(), copy=True) for b in self.rule.history_buffers()]
        payload = build_state_payload(
            self.iter, self.rule.NAME, self.rule.history_roles, history, str(model_path)
        )
        logger.info("Snapshotting solver state to %s", state_path)
        write_json(state_path, payload)
        return model_path, state_path

    def restore(self, state_file: Union[str, Path]) -> None:
        """
        Load a solver-state file (and the model file it references).

        Raises
        ------
        SolverStateError
            On a missing or corrupt file, a different solver type or set of
            history roles, a buffer count other than
            ``len(roles) * len(params)`` or a shape mismatch.
        """
        state_path = Path(state_file)
        state = parse_state_payload(read_json(state_path))

        stored_type = state["solver_type"]
        if stored_type and stored_type.upper() != self.rule.NAME:
            raise SolverStateError(
                f"Checkpoint was written by solver_type {stored_type!r}, "
                f"this solver runs {self.rule.NAME!r}"
            )
        roles = state["history_roles"]
        if roles and tuple(roles) != self.rule.history_roles:
            raise SolverStateError(
                f"Checkpoint history roles {roles} do not match "
                f"{self.rule.NAME} roles {list(self.rule.history_roles)}"
            )
        buffers = self.rule.history_buffers()
        self.rule.check_restorable(len(state["history"]))
        for i, (blob, arr) in enumerate(zip(buffers, state["history"])):
            if tuple(arr.shape) != tuple(blob.shape):
                raise SolverStateError(
                    f"History blob {i}: checkpoint shape {tuple(arr.shape)} "
                    f"does not match {tuple(blob.shape)}"
                )

        model_path = resolve_model_path(state["learned_net"], state_path)
        if model_path is not None:
            self.net.copy_trained_layers_from(read_json(model_path))

        for blob, arr in zip(buffers, state["history"]):
            blob.mutable_cpu_data()[...] = arr
        self.iter = state["iter"]

    def load_weights(self, model_file: Union[str, Path]) -> None:
        """Copy trained layers from a model file into the training net."""
        logger.info("Loading weights from %s", model_file)
        self.net.copy_trained_layers_from(read_json(Path(model_file)))
