"""
Loss and metric layers.

Loss layers produce a scalar top whose default loss weight is 1; their
backward pass scales the gradient by the weight stored in the top's diff.
`Accuracy` produces a scalar top with weight 0 and no gradients.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from ._layer import Layer, register_layer
from ..blob._blob import Blob
from ...domain._phase import Phase

_FLT_MIN = np.finfo(np.float32).tiny


class _LossLayer(Layer):
    EXACT_BOTTOMS = 2
    DEFAULT_LOSS_WEIGHT = 1.0

    def reshape(self, bottoms: Sequence[Blob], tops: Sequence[Blob]) -> None:
        tops[0].reshape(())

    def _loss_weight(self, tops: Sequence[Blob]) -> float:
        return float(tops[0].cpu_diff().reshape(-1)[0])


@register_layer("EuclideanLoss")
class EuclideanLoss(_LossLayer):
    """``loss = sum((a - b) ** 2) / (2 * N)`` with ``N`` the batch size."""

    def layer_setup(self, bottoms, tops) -> None:
        if bottoms[0].count != bottoms[1].count:
            raise self._config_error(
                f"inputs must have the same count, got {bottoms[0].shape} and {bottoms[1].shape}"
            )

    def _forward(self, bottoms, tops, phase: Phase) -> None:
        self._diff = bottoms[0].cpu_data().reshape(-1) - bottoms[1].cpu_data().reshape(-1)
        n = bottoms[0].shape[0] if bottoms[0].shape else 1
        tops[0].mutable_cpu_data()[...] = float(np.dot(self._diff, self._diff)) / n / 2.0

    def _backward(self, tops, bottoms, need_backward) -> List[Optional[np.ndarray]]:
        n = bottoms[0].shape[0] if bottoms[0].shape else 1
        alpha = self._loss_weight(tops) / n
        grads: List[Optional[np.ndarray]] = []
        for sign, need in zip((1.0, -1.0), need_backward):
            grads.append(sign * alpha * self._diff if need else None)
        return grads


@register_layer("SoftmaxWithLoss")
class SoftmaxWithLoss(_LossLayer):
    """
    Softmax followed by multinomial logistic loss (``loss_param``).

    Bottom 0 holds scores of shape ``(N, C)``; bottom 1 holds ``N`` integer
    labels. The loss is averaged over labels that are not ``ignore_label``
    when ``normalize`` is true (default) and over ``N`` otherwise.
    """

    PARAM_KEY = "loss_param"

    def layer_setup(self, bottoms, tops) -> None:
        unknown = set(self.options) - {"ignore_label", "normalize"}
        if unknown:
            raise self._config_error(f"unknown options {sorted(unknown)}")
        ignore = self.options.get("ignore_label")
        self.ignore_label = None if ignore is None else int(ignore)
        self.normalize = bool(self.options.get("normalize", True))
        if bottoms[1].count != bottoms[0].shape[0]:
            raise self._config_error("label count must equal the number of score rows")

    def _forward(self, bottoms, tops, phase: Phase) -> None:
        scores = bottoms[0].cpu_data().reshape(bottoms[0].shape[0], -1).astype(np.float64)
        labels = bottoms[1].cpu_data().reshape(-1).astype(np.int64)
        shifted = scores - scores.max(axis=1, keepdims=True)
        e = np.exp(shifted)
        self._prob = e / e.sum(axis=1, keepdims=True)
        self._labels = labels
        self._valid = np.ones_like(labels, dtype=bool)
        if self.ignore_label is not None:
            self._valid = labels != self.ignore_label
        rows = np.nonzero(self._valid)[0]
        picked = self._prob[rows, labels[rows]]
        loss = -np.log(np.maximum(picked, _FLT_MIN)).sum()
        tops[0].mutable_cpu_data()[...] = loss / self._normalizer()

    def _normalizer(self) -> float:
        if self.normalize:
            return float(max(1, int(self._valid.sum())))
        return float(max(1, self._labels.shape[0]))

    def _backward(self, tops, bottoms, need_backward) -> List[Optional[np.ndarray]]:
        if not need_backward[0]:
            return [None, None]
        grad = self._prob.copy()
        rows = np.nonzero(self._valid)[0]
        grad[rows, self._labels[rows]] -= 1.0
        grad[~self._valid] = 0.0
        grad *= self._loss_weight(tops) / self._normalizer()
        return [grad, None]


@register_layer("Accuracy")
class Accuracy(Layer):
    """
    Top-k classification accuracy (``accuracy_param``).

    The fraction of rows whose label is among the ``top_k`` highest scores,
    ignoring rows labeled ``ignore_label``.
    """

    PARAM_KEY = "accuracy_param"
    EXACT_BOTTOMS = 2

    def layer_setup(self, bottoms, tops) -> None:
        unknown = set(self.options) - {"top_k", "ignore_label"}
        if unknown:
            raise self._config_error(f"unknown options {sorted(unknown)}")
        self.top_k = int(self.options.get("top_k", 1))
        ignore = self.options.get("ignore_label")
        self.ignore_label = None if ignore is None else int(ignore)
        classes = int(np.prod(bottoms[0].shape[1:], dtype=np.int64))
        if not 0 < self.top_k <= classes:
            raise self._config_error(f"top_k must be in [1, {classes}]")

    def reshape(self, bottoms, tops) -> None:
        tops[0].reshape(())

    def _forward(self, bottoms, tops, phase: Phase) -> None:
        scores = bottoms[0].cpu_data().reshape(bottoms[0].shape[0], -1)
        labels = bottoms[1].cpu_data().reshape(-1).astype(np.int64)
        valid = np.ones_like(labels, dtype=bool)
        if self.ignore_label is not None:
            valid = labels != self.ignore_label
        if not valid.any():
            tops[0].mutable_cpu_data()[...] = 0.0
            return
        s, y = scores[valid], labels[valid]
        label_score = s[np.arange(s.shape[0]), y][:, None]
        # Rank = number of classes scoring strictly higher than the label.
        rank = (s > label_score).sum(axis=1)
        tops[0].mutable_cpu_data()[...] = float(np.mean(rank < self.top_k))
