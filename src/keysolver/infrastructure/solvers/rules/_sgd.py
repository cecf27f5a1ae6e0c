"""
Stochastic gradient descent with momentum, and its Nesterov variant.
"""

from __future__ import annotations

from ._base import UpdateRule, register_update_rule


@register_update_rule("SGD")
class SGDRule(UpdateRule):
    """
    Momentum SGD.

    Update rule
    -----------
    ``h = rate * g + momentum * h``; the update value is ``h``.
    """

    HISTORY_ROLES = ("history",)

    def compute_update(self, ops, param_id, param, rate) -> None:
        n = param.count
        h = self.buffers("history")[param_id]
        ops.axpby(n, rate, ops.diff(param), self.config.momentum, ops.mutable_data(h))
        ops.copy(n, ops.data(h), ops.mutable_diff(param))


@register_update_rule("NESTEROV")
class NesterovRule(UpdateRule):
    """
    Nesterov accelerated gradient.

    Update rule
    -----------
    ``h_old = h``; ``h = rate * g + momentum * h``; the update value is
    ``(1 + momentum) * h - momentum * h_old``.
    """

    HISTORY_ROLES = ("history",)
    SCRATCH_ROLES = ("scratch",)

    def compute_update(self, ops, param_id, param, rate) -> None:
        n = param.count
        m = self.config.momentum
        h = self.buffers("history")[param_id]
        tmp = self.buffers("scratch")[param_id]

        ops.copy(n, ops.data(h), ops.mutable_data(tmp))
        ops.axpby(n, rate, ops.diff(param), m, ops.mutable_data(h))
        ops.axpby(n, 1.0 + m, ops.data(h), -m, ops.mutable_data(tmp))
        ops.copy(n, ops.data(tmp), ops.mutable_diff(param))
