"""
Elementwise (neuron) layers: ReLU, Sigmoid and Dropout.

All three may run in place (``top`` equal to ``bottom``); their backward
passes only read the top data, the top diff or a stored mask.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from ._layer import Layer, register_layer
from ..blob._blob import Blob
from ...domain._phase import Phase


@register_layer("ReLU")
class ReLU(Layer):
    """``y = max(x, 0) + negative_slope * min(x, 0)`` (``relu_param``)."""

    PARAM_KEY = "relu_param"
    EXACT_BOTTOMS = 1

    def layer_setup(self, bottoms, tops) -> None:
        unknown = set(self.options) - {"negative_slope"}
        if unknown:
            raise self._config_error(f"unknown options {sorted(unknown)}")
        self.negative_slope = float(self.options.get("negative_slope", 0.0))

    def _forward(self, bottoms, tops, phase: Phase) -> None:
        x = bottoms[0].cpu_data()
        tops[0].mutable_cpu_data()[...] = np.where(x > 0, x, x * self.negative_slope)

    def _backward(self, tops, bottoms, need_backward) -> List[Optional[np.ndarray]]:
        if not need_backward[0]:
            return [None]
        # In place the bottom already holds the output; the sign is unchanged
        # for any non-negative slope.
        x = bottoms[0].cpu_data()
        dy = tops[0].cpu_diff()
        return [np.where(x > 0, dy, dy * self.negative_slope)]


@register_layer("Sigmoid")
class Sigmoid(Layer):
    """``y = 1 / (1 + exp(-x))``."""

    EXACT_BOTTOMS = 1

    def _forward(self, bottoms, tops, phase: Phase) -> None:
        x = bottoms[0].cpu_data()
        tops[0].mutable_cpu_data()[...] = 0.5 * np.tanh(0.5 * x) + 0.5

    def _backward(self, tops, bottoms, need_backward) -> List[Optional[np.ndarray]]:
        if not need_backward[0]:
            return [None]
        y = tops[0].cpu_data()
        return [tops[0].cpu_diff() * y * (1.0 - y)]


@register_layer("Dropout")
class Dropout(Layer):
    """
    Inverted dropout (``dropout_param``).

    In the TRAIN phase elements are zeroed with probability
    ``dropout_ratio`` and survivors scaled by ``1 / (1 - dropout_ratio)``.
    In the TEST phase the layer is the identity. The phase is the one passed
    to the forward call, not the phase the network was built for.
    """

    PARAM_KEY = "dropout_param"
    EXACT_BOTTOMS = 1

    def layer_setup(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        unknown = set(self.options) - {"dropout_ratio"}
        if unknown:
            raise self._config_error(f"unknown options {sorted(unknown)}")
        self.ratio = float(self.options.get("dropout_ratio", 0.5))
        if not 0.0 <= self.ratio < 1.0:
            raise self._config_error("dropout_ratio must be in [0, 1)")
        self.scale = 1.0 / (1.0 - self.ratio)
        self._mask: Optional[np.ndarray] = None

    def _forward(self, bottoms, tops, phase: Phase) -> None:
        x = bottoms[0].cpu_data()
        if phase is Phase.TRAIN:
            self._mask = self.context.rng.random(x.shape) >= self.ratio
            tops[0].mutable_cpu_data()[...] = x * self._mask * self.scale
        else:
            self._mask = None
            tops[0].mutable_cpu_data()[...] = x

    def _backward(self, tops, bottoms, need_backward) -> List[Optional[np.ndarray]]:
        if not need_backward[0]:
            return [None]
        dy = tops[0].cpu_diff()
        if self._mask is None:
            return [dy.copy()]
        return [dy * self._mask * self.scale]
