"""
Fully connected layer.

`InnerProduct` flattens its bottom from ``axis`` onward into ``K`` features
and computes ``top = bottom @ W.T + b`` with ``W`` of shape
``(num_output, K)`` and ``b`` of shape ``(num_output,)``.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from ._layer import Layer, register_layer
from ..blob._blob import Blob
from ..fillers import Filler
from ...domain._phase import Phase


@register_layer("InnerProduct")
class InnerProduct(Layer):
    """
    Options (``inner_product_param``)
    ---------------------------------
    num_output : int
        Number of output features (required).
    bias_term : bool, optional
        Whether to learn a bias. Defaults to True.
    weight_filler, bias_filler : mapping, optional
        Filler definitions. Default: ``xavier`` weights, zero bias.
    axis : int, optional
        First axis folded into the feature dimension. Defaults to 1.
    """

    PARAM_KEY = "inner_product_param"
    EXACT_BOTTOMS = 1

    def layer_setup(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        unknown = set(self.options) - {"num_output", "bias_term", "weight_filler", "bias_filler", "axis"}
        if unknown:
            raise self._config_error(f"unknown options {sorted(unknown)}")
        self.num_output = int(self.options.get("num_output", 0))
        if self.num_output <= 0:
            raise self._config_error("num_output must be > 0")
        self.bias_term = bool(self.options.get("bias_term", True))
        self.axis = int(self.options.get("axis", 1))

        shape = bottoms[0].shape
        if not 0 < self.axis <= len(shape):
            raise self._config_error(f"axis {self.axis} out of range for bottom shape {shape}")
        k = int(np.prod(shape[self.axis:], dtype=np.int64))

        rng = self.context.rng
        self.weight = self.add_param((self.num_output, k))
        Filler(self.options.get("weight_filler", {"type": "xavier"}))(self.weight, rng)
        if self.bias_term:
            self.bias = self.add_param((self.num_output,))
            Filler(self.options.get("bias_filler", {"type": "constant", "value": 0.0}))(self.bias, rng)

    def _flat_bottom(self, bottom: Blob) -> np.ndarray:
        m = int(np.prod(bottom.shape[: self.axis], dtype=np.int64))
        return bottom.cpu_data().reshape(m, -1)

    def reshape(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        k = int(np.prod(bottoms[0].shape[self.axis:], dtype=np.int64))
        if k != self.weight.shape[1]:
            raise self._config_error(
                f"bottom provides {k} features, weights expect {self.weight.shape[1]}"
            )
        tops[0].reshape(bottoms[0].shape[: self.axis] + (self.num_output,))

    def _forward(self, bottoms: Sequence[Blob], tops: Sequence[Blob], phase: Phase) -> None:
        x = self._flat_bottom(bottoms[0])
        y = x @ self.weight.cpu_data().T
        if self.bias_term:
            y = y + self.bias.cpu_data()
        tops[0].mutable_cpu_data()[...] = y.reshape(tops[0].shape)

    def _backward(self, tops, bottoms, need_backward) -> List[Optional[np.ndarray]]:
        x = self._flat_bottom(bottoms[0])
        dy = tops[0].cpu_diff().reshape(x.shape[0], self.num_output)
        if self.weight.lr_mult != 0:
            self.weight.mutable_cpu_diff()[...] += dy.T @ x
        if self.bias_term and self.bias.lr_mult != 0:
            self.bias.mutable_cpu_diff()[...] += dy.sum(axis=0)
        if need_backward[0]:
            return [dy @ self.weight.cpu_data()]
        return [None]
