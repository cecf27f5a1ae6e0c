"""
Layer base class and registry.

Layers are the building blocks of a `Net`. Each concrete layer is registered
by its definition type name (``InnerProduct``, ``ReLU``, ...) with
`register_layer`, constructed from its layer definition mapping, and driven
by the network through three calls:

- `setup(bottoms, tops)`: validate wiring, allocate parameters, shape tops
- `forward(bottoms, tops, phase) -> loss`
- `backward(tops, bottoms, need_backward)`

Gradient conventions
--------------------
- Parameter gradients are added into ``param.diff`` so that several
  backward passes accumulate until the network clears them.
- Bottom gradients are added into ``bottom.diff``; the network zeroes these
  before each backward pass, which makes blobs consumed by several layers
  sum their gradients. An in-place layer (top and bottom are the same blob)
  overwrites the diff instead.
- A top with a non-zero loss weight keeps that weight in its ``diff``, so
  the layer's contribution to the objective is ``sum(top.data * top.diff)``
  and its backward pass starts from the weight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Sequence, Type

import numpy as np

from .._parameter import Parameter
from ..blob._blob import Blob
from ...domain._errors import SolverConfigError
from ...domain._phase import Phase

_LAYER_REGISTRY: Dict[str, Type["Layer"]] = {}

LAYER_COMMON_KEYS = frozenset(
    {"name", "type", "bottom", "top", "include", "exclude", "param", "loss_weight"}
)


def register_layer(name: Optional[str] = None) -> Callable[[Type["Layer"]], Type["Layer"]]:
    """
    Decorator to register a Layer class under its definition type name.
    """

    def deco(cls: Type["Layer"]) -> Type["Layer"]:
        key = name or cls.__name__
        _LAYER_REGISTRY[key] = cls
        cls.TYPE = key
        return cls

    return deco


def layer_class(type_name: str) -> Type["Layer"]:
    """
    Look up a registered layer class.

    Raises
    ------
    SolverConfigError
        If no layer is registered under `type_name`.
    """
    try:
        return _LAYER_REGISTRY[type_name]
    except KeyError as e:
        available = ", ".join(sorted(_LAYER_REGISTRY)) or "<none>"
        raise SolverConfigError(
            f"Unknown layer type '{type_name}'. Available: {available}"
        ) from e


@dataclass
class LayerContext:
    """
    Resources shared by all layers of one network.

    Attributes
    ----------
    blob_kwargs : dict
        Keyword arguments for new blobs (dtype, runtime, device index).
    rng : numpy.random.Generator
        Randomness for fillers and stochastic layers.
    base_dir : Path
        Directory against which relative data paths are resolved.
    """

    blob_kwargs: Dict[str, Any] = field(default_factory=dict)
    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    base_dir: Path = field(default_factory=Path.cwd)

    def new_blob(self, shape=()) -> Blob:
        return Blob(shape, **self.blob_kwargs)


class Layer:
    """
    Base class of every layer.

    Subclasses set the class attributes below and implement
    `layer_setup`, `reshape`, `_forward` and (when they propagate
    gradients) `_backward`.

    Class attributes
    ----------------
    TYPE : str
        Registered type name (set by `register_layer`).
    PARAM_KEY : str or None
        Name of the type-specific options mapping in the definition.
    EXACT_BOTTOMS, MIN_TOPS, MAX_TOPS : int or None
        Wiring constraints checked by `setup`.
    DEFAULT_LOSS_WEIGHT : float
        Loss weight of the first top when the definition sets none.
    """

    TYPE: ClassVar[str] = ""
    PARAM_KEY: ClassVar[Optional[str]] = None
    EXACT_BOTTOMS: ClassVar[Optional[int]] = None
    MIN_TOPS: ClassVar[int] = 1
    MAX_TOPS: ClassVar[Optional[int]] = 1
    DEFAULT_LOSS_WEIGHT: ClassVar[float] = 0.0

    def __init__(self, layer_param: Mapping[str, Any], context: LayerContext) -> None:
        self.name: str = str(layer_param["name"])
        self.context = context
        self.layer_param = layer_param
        self.options: Dict[str, Any] = dict(layer_param.get(self.PARAM_KEY) or {}) if self.PARAM_KEY else {}
        self.params: List[Parameter] = []
        self.loss_weights: List[float] = []
        self._param_specs: List[Mapping[str, Any]] = list(layer_param.get("param") or [])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    def _config_error(self, message: str) -> SolverConfigError:
        return SolverConfigError(f"Layer '{self.name}' ({self.TYPE}): {message}")

    # ---- parameters ----
    def add_param(self, shape: Sequence[int]) -> Parameter:
        """Create the next learnable parameter, applying its ``param`` spec."""
        index = len(self.params)
        spec = self._param_specs[index] if index < len(self._param_specs) else {}
        unknown = set(spec) - {"lr_mult", "decay_mult"}
        if unknown:
            raise self._config_error(f"unknown param fields {sorted(unknown)}")
        p = Parameter(
            tuple(shape),
            owner=self.name,
            index=index,
            lr_mult=float(spec.get("lr_mult", 1.0)),
            decay_mult=float(spec.get("decay_mult", 1.0)),
            **self.context.blob_kwargs,
        )
        self.params.append(p)
        return p

    @property
    def has_learnable_params(self) -> bool:
        return any(p.lr_mult != 0 for p in self.params)

    # ---- lifecycle ----
    def setup(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        """Check wiring, create parameters, shape tops and seed loss weights."""
        if self.EXACT_BOTTOMS is not None and len(bottoms) != self.EXACT_BOTTOMS:
            raise self._config_error(
                f"expects {self.EXACT_BOTTOMS} bottom blob(s), got {len(bottoms)}"
            )
        if len(tops) < self.MIN_TOPS or (self.MAX_TOPS is not None and len(tops) > self.MAX_TOPS):
            raise self._config_error(f"unsupported number of top blobs: {len(tops)}")

        self.layer_setup(bottoms, tops)
        if len(self._param_specs) > len(self.params):
            raise self._config_error(
                f"{len(self._param_specs)} param specs given for {len(self.params)} parameters"
            )
        self.reshape(bottoms, tops)
        self._setup_loss_weights(tops)

    def _setup_loss_weights(self, tops: Sequence[Blob]) -> None:
        raw = self.layer_param.get("loss_weight")
        if raw is None:
            weights = [self.DEFAULT_LOSS_WEIGHT] + [0.0] * (len(tops) - 1)
        else:
            weights = [float(w) for w in (raw if isinstance(raw, (list, tuple)) else [raw])]
            if len(weights) != len(tops):
                raise self._config_error(
                    f"loss_weight must have one entry per top ({len(tops)}), got {len(weights)}"
                )
        self.loss_weights = weights
        for top, w in zip(tops, weights):
            if w != 0:
                top.mutable_cpu_diff()[...] = w

    def layer_setup(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        """Read options and create parameters. Default: nothing to do."""

    def reshape(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        """Shape tops from bottoms. Default: every top shaped like bottom 0."""
        for top in tops:
            top.reshape(bottoms[0].shape)

    def forward(self, bottoms: Sequence[Blob], tops: Sequence[Blob], phase: Phase) -> float:
        """Run the layer and return its weighted loss contribution."""
        self.reshape(bottoms, tops)
        self._forward(bottoms, tops, phase)
        loss = 0.0
        for top, w in zip(tops, self.loss_weights):
            if w != 0:
                loss += float(np.sum(top.cpu_data() * top.cpu_diff(), dtype=np.float64))
        return loss

    def backward(self, tops: Sequence[Blob], bottoms: Sequence[Blob], need_backward: Sequence[bool]) -> None:
        """Accumulate parameter gradients and propagate into bottoms that need it."""
        grads = self._backward(tops, bottoms, need_backward)
        for bottom, need, g in zip(bottoms, need_backward, grads):
            if not need or g is None:
                continue
            g = np.asarray(g, dtype=bottom.dtype).reshape(bottom.shape)
            if any(bottom is top for top in tops):
                bottom.mutable_cpu_diff()[...] = g
            else:
                bottom.mutable_cpu_diff()[...] += g

    def _forward(self, bottoms: Sequence[Blob], tops: Sequence[Blob], phase: Phase) -> None:
        raise NotImplementedError

    def _backward(
        self, tops: Sequence[Blob], bottoms: Sequence[Blob], need_backward: Sequence[bool]
    ) -> List[Optional[np.ndarray]]:
        """Return one gradient (or None) per bottom. Default: no gradients."""
        return [None] * len(bottoms)
