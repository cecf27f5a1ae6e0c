"""
Layer-graph network.

`Net` builds a directed acyclic graph of layers from a network definition,
keeping only the layers whose include/exclude rules accept the network's
`NetState`, and implements the `INet` contract the solver trains against.

Definition format
-----------------
::

    name: xor
    state: {phase: TRAIN, level: 0, stage: []}   # optional
    layers:
      - name: data
        type: MemoryData
        top: [data, label]
        memory_data_param: {batch_size: 4, source: xor.npz}
      - name: ip1
        type: InnerProduct
        bottom: [data]
        top: [ip1]
        param: [{lr_mult: 1}, {lr_mult: 2, decay_mult: 0}]
        inner_product_param: {num_output: 8}
      - name: loss
        type: SoftmaxWithLoss
        bottom: [ip1, label]
        top: [loss]
        include: [{phase: TRAIN}]

Outputs
-------
Blobs produced by some layer and consumed by no later layer are the
network outputs, in production order. Each output has a loss weight (0 for
plain metrics); the forward loss is the weighted sum over all weighted tops.

Backward scheduling
-------------------
A layer runs backward only if it has learnable parameters or receives an
input that depends on some, and if at least one of its tops feeds a
weighted loss. Metric layers such as `Accuracy` are therefore skipped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .._parameter import Parameter
from ..blob._blob import Blob
from ..layers import Layer, LayerContext, layer_class
from ..layers._layer import LAYER_COMMON_KEYS
from ..ops._execution_context import ExecutionContext
from ...domain._device import Device
from ...domain._errors import SolverConfigError, SolverStateError
from ...domain._net import INet
from ...domain._phase import NetState, NetStateRule, Phase, layer_included
from ..encoding._b64 import ndarray_to_payload, payload_to_ndarray

logger = logging.getLogger(__name__)

MODEL_FORMAT = "keysolver.model.v1"


def _names(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def _rules(layer_name: str, value: Any) -> Tuple[NetStateRule, ...]:
    if value is None:
        return ()
    if isinstance(value, Mapping):
        value = [value]
    try:
        return tuple(NetStateRule.from_mapping(r) for r in value)
    except ValueError as e:
        raise SolverConfigError(f"Layer '{layer_name}': {e}") from e


class Net(INet):
    """
    Network built from a definition mapping.

    Parameters
    ----------
    net_param : Mapping[str, Any]
        Network definition (see module docstring).
    state : NetState, optional
        State the network is built for. Defaults to the TRAIN phase merged
        with the definition's own ``state``. A state without a phase is
        treated as TRAIN.
    context : ExecutionContext, optional
        Device and runtime for blobs and buffer primitives. Defaults to CPU.
    rng : numpy.random.Generator, optional
        Randomness for fillers and dropout.
    base_dir : str or Path, optional
        Directory for resolving relative data paths. Defaults to the current
        working directory.

    Raises
    ------
    SolverConfigError
        On unknown fields, unknown layer types or invalid wiring.
    """

    def __init__(
        self,
        net_param: Mapping[str, Any],
        state: Optional[NetState] = None,
        context: Optional[ExecutionContext] = None,
        rng: Optional[np.random.Generator] = None,
        base_dir: Optional[Any] = None,
    ) -> None:
        unknown = set(net_param) - {"name", "state", "layers"}
        if unknown:
            raise SolverConfigError(f"Unknown network definition fields: {sorted(unknown)}")

        if state is None:
            try:
                state = NetState(phase=Phase.TRAIN).merged(
                    NetState.from_mapping(net_param.get("state"))
                )
            except ValueError as e:
                raise SolverConfigError(f"Invalid network state: {e}") from e
        if state.phase is None:
            state = NetState(phase=Phase.TRAIN).merged(state)

        self._name = str(net_param.get("name", ""))
        self._state = state
        self._context = context or ExecutionContext(device=Device("cpu"))
        self._ops = self._context.buffer_ops()
        self._layer_context = LayerContext(
            blob_kwargs=self._context.blob_kwargs,
            rng=rng if rng is not None else np.random.default_rng(),
            base_dir=Path(base_dir) if base_dir is not None else Path.cwd(),
        )
        self._debug_info = False

        self._layers: List[Layer] = []
        self._bottom_names: List[List[str]] = []
        self._top_names: List[List[str]] = []
        self._bottom_need_backward: List[List[bool]] = []
        self._layer_need_backward: List[bool] = []
        self._blobs: Dict[str, Blob] = {}
        self._blob_loss_weights: Dict[str, float] = {}
        self._output_names: List[str] = []

        self._build(net_param.get("layers") or [])
        logger.info(
            "Network '%s' (%s) initialized: %d layers, %d params",
            self._name,
            self._state.phase.value,
            len(self._layers),
            len(self.params),
        )

    # ---- construction ----
    def _build(self, layer_defs: Sequence[Mapping[str, Any]]) -> None:
        seen_layers = set()
        available: Dict[str, None] = {}
        blob_need_backward: Dict[str, bool] = {}

        for i, ldef in enumerate(layer_defs):
            if not isinstance(ldef, Mapping):
                raise SolverConfigError(f"Layer definition #{i} must be a mapping")
            if "name" not in ldef or "type" not in ldef:
                raise SolverConfigError(f"Layer definition #{i} needs 'name' and 'type'")
            name = str(ldef["name"])
            cls = layer_class(str(ldef["type"]))

            allowed = set(LAYER_COMMON_KEYS) | ({cls.PARAM_KEY} if cls.PARAM_KEY else set())
            unknown = set(ldef) - allowed
            if unknown:
                raise SolverConfigError(f"Layer '{name}': unknown fields {sorted(unknown)}")

            include = _rules(name, ldef.get("include"))
            exclude = _rules(name, ldef.get("exclude"))
            if include and exclude:
                raise SolverConfigError(f"Layer '{name}': set either include or exclude, not both")
            if not layer_included(self._state, include, exclude):
                logger.debug("Layer '%s' excluded for state %s", name, self._state)
                continue

            if name in seen_layers:
                raise SolverConfigError(f"Duplicate layer name '{name}'")
            seen_layers.add(name)

            bottom_names = _names(ldef.get("bottom"))
            top_names = _names(ldef.get("top"))
            for b in bottom_names:
                if b not in self._blobs:
                    raise SolverConfigError(f"Layer '{name}': unknown bottom blob '{b}'")
            for t in top_names:
                if t in self._blobs and t not in bottom_names:
                    raise SolverConfigError(
                        f"Layer '{name}': top blob '{t}' is produced by an earlier layer"
                    )

            bottoms = [self._blobs[b] for b in bottom_names]
            tops = []
            for t in top_names:
                if t not in self._blobs:
                    self._blobs[t] = self._layer_context.new_blob(())
                tops.append(self._blobs[t])

            layer = cls(ldef, self._layer_context)
            layer.setup(bottoms, tops)

            bottom_need = [blob_need_backward.get(b, False) for b in bottom_names]
            need = layer.has_learnable_params or any(bottom_need)
            for t in top_names:
                blob_need_backward[t] = need
            for t, w in zip(top_names, layer.loss_weights):
                if w != 0:
                    self._blob_loss_weights[t] = float(w)

            for b in bottom_names:
                available.pop(b, None)
            for t in top_names:
                available[t] = None

            self._layers.append(layer)
            self._bottom_names.append(bottom_names)
            self._top_names.append(top_names)
            self._bottom_need_backward.append(bottom_need)
            self._layer_need_backward.append(need)

        # Drop backward work that no weighted loss depends on.
        under_loss = set()
        for idx in reversed(range(len(self._layers))):
            tops = self._top_names[idx]
            contributes = any(
                self._blob_loss_weights.get(t, 0.0) != 0 or t in under_loss for t in tops
            )
            if contributes:
                under_loss.update(self._bottom_names[idx])
            else:
                self._layer_need_backward[idx] = False

        self._output_names = list(available)

    # ---- introspection ----
    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> NetState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def context(self) -> ExecutionContext:
        return self._context

    @property
    def layers(self) -> List[Layer]:
        return list(self._layers)

    @property
    def layer_names(self) -> List[str]:
        return [layer.name for layer in self._layers]

    def layer_by_name(self, name: str) -> Layer:
        for layer in self._layers:
            if layer.name == name:
                return layer
        raise KeyError(f"No layer named '{name}' in network '{self._name}'")

    def blob_by_name(self, name: str) -> Blob:
        return self._blobs[name]

    @property
    def params(self) -> List[Parameter]:
        return [p for layer in self._layers for p in layer.params]

    @property
    def output_blob_names(self) -> List[str]:
        return list(self._output_names)

    @property
    def output_blobs(self) -> List[Blob]:
        return [self._blobs[n] for n in self._output_names]

    @property
    def blob_loss_weights(self) -> Dict[str, float]:
        return dict(self._blob_loss_weights)

    def set_debug_info(self, value: bool) -> None:
        self._debug_info = bool(value)

    # ---- computation ----
    def forward(self, phase: Optional[Phase] = None) -> Tuple[List[Blob], float]:
        phase = self._state.phase if phase is None else Phase.parse(phase)
        loss = 0.0
        for idx, layer in enumerate(self._layers):
            bottoms = [self._blobs[b] for b in self._bottom_names[idx]]
            tops = [self._blobs[t] for t in self._top_names[idx]]
            loss += layer.forward(bottoms, tops, phase)
            if self._debug_info:
                for t, blob in zip(self._top_names[idx], tops):
                    logger.info(
                        "    [Forward] Layer %s, top blob %s data: %.6g",
                        layer.name, t, blob.asum_data() / max(1, blob.count),
                    )
        return self.output_blobs, float(loss)

    def backward(self) -> None:
        for name, blob in self._blobs.items():
            blob.mutable_cpu_diff()[...] = self._blob_loss_weights.get(name, 0.0)

        for idx in reversed(range(len(self._layers))):
            if not self._layer_need_backward[idx]:
                continue
            layer = self._layers[idx]
            bottoms = [self._blobs[b] for b in self._bottom_names[idx]]
            tops = [self._blobs[t] for t in self._top_names[idx]]
            layer.backward(tops, bottoms, self._bottom_need_backward[idx])
            if self._debug_info:
                self._backward_debug_info(idx, bottoms)

    def _backward_debug_info(self, idx: int, bottoms: Sequence[Blob]) -> None:
        layer = self._layers[idx]
        for b, blob, need in zip(self._bottom_names[idx], bottoms, self._bottom_need_backward[idx]):
            if need:
                logger.info(
                    "    [Backward] Layer %s, bottom blob %s diff: %.6g",
                    layer.name, b, blob.asum_diff() / max(1, blob.count),
                )
        for p in layer.params:
            logger.info(
                "    [Backward] Layer %s, param blob %d diff: %.6g",
                layer.name, p.index, p.asum_diff() / max(1, p.count),
            )

    def forward_backward(self) -> float:
        _, loss = self.forward()
        self.backward()
        return loss

    def clear_param_diffs(self) -> None:
        ops = self._ops
        for p in self.params:
            ops.set(p.count, 0.0, ops.mutable_diff(p))

    def update(self) -> None:
        ops = self._ops
        for p in self.params:
            ops.axpy(p.count, -1.0, ops.diff(p), ops.mutable_data(p))
            if self._debug_info:
                logger.info(
                    "    [Update] Layer %s, param %d data: %.6g; diff: %.6g",
                    p.owner, p.index,
                    p.asum_data() / max(1, p.count), p.asum_diff() / max(1, p.count),
                )

    # ---- trained values ----
    def share_trained_layers_with(self, other: "Net") -> None:
        """
        Copy parameter values of same-named layers from `other`.

        Layers of `other` absent from this network are ignored.

        Raises
        ------
        SolverConfigError
            If a shared layer has a different number or shape of parameters.
        """
        source = {layer.name: layer for layer in other.layers}
        for layer in self._layers:
            src = source.get(layer.name)
            if src is None or not layer.params:
                continue
            if len(src.params) != len(layer.params):
                raise SolverConfigError(
                    f"Layer '{layer.name}' has {len(layer.params)} params, "
                    f"source has {len(src.params)}"
                )
            for dst_p, src_p in zip(layer.params, src.params):
                if dst_p.shape != src_p.shape:
                    raise SolverConfigError(
                        f"Layer '{layer.name}' param {dst_p.index} shape {dst_p.shape} "
                        f"does not match source shape {src_p.shape}"
                    )
                dst_p.mutable_cpu_data()[...] = src_p.cpu_data()

    def to_payload(self, write_diff: bool = False) -> Dict[str, Any]:
        """Serialize every layer's parameters (and gradients if asked)."""
        layers = []
        for layer in self._layers:
            params = []
            for p in layer.params:
                entry: Dict[str, Any] = {"data": ndarray_to_payload(p.cpu_data())}
                if write_diff:
                    entry["diff"] = ndarray_to_payload(p.cpu_diff())
                params.append(entry)
            layers.append({"name": layer.name, "type": layer.TYPE, "params": params})
        return {"format": MODEL_FORMAT, "name": self._name, "layers": layers}

    def copy_trained_layers_from(self, payload: Mapping[str, Any]) -> None:
        """
        Load parameter values from a model payload by layer name.

        Source layers absent from this network are ignored.

        Every referenced layer is decoded and checked before any parameter
        is written, so a failed load leaves the network unchanged.

        Raises
        ------
        SolverStateError
            On an unknown format tag or a parameter count/shape mismatch.
        """
        if payload.get("format") != MODEL_FORMAT:
            raise SolverStateError(
                f"Unsupported model format {payload.get('format')!r}, expected {MODEL_FORMAT!r}"
            )
        targets = {layer.name: layer for layer in self._layers}
        staged: List[Tuple[Parameter, np.ndarray]] = []
        for entry in payload.get("layers", []):
            lname = str(entry.get("name"))
            target = targets.get(lname)
            if target is None:
                logger.info("Ignoring source layer %s", lname)
                continue
            params = entry.get("params", [])
            if len(params) != len(target.params):
                raise SolverStateError(
                    f"Layer '{lname}' expects {len(target.params)} params, model has {len(params)}"
                )
            for p, pe in zip(target.params, params):
                try:
                    arr = payload_to_ndarray(pe["data"])
                except (KeyError, TypeError, ValueError) as e:
                    raise SolverStateError(f"Layer '{lname}': corrupt param payload: {e}") from e
                if tuple(arr.shape) != p.shape:
                    raise SolverStateError(
                        f"Layer '{lname}' param {p.index}: model shape {tuple(arr.shape)} "
                        f"does not match {p.shape}"
                    )
                staged.append((p, arr))

        for p, arr in staged:
            p.mutable_cpu_data()[...] = arr
