"""
Adaptive per-element learning-rate rules: AdaGrad, RMSProp and AdaDelta.

Every transform is expressed in kernel primitives against `IBufferOps`, so
the host and CUDA paths execute the same sequence of operations.
"""

from __future__ import annotations

from ._base import UpdateRule, register_update_rule


@register_update_rule("ADAGRAD")
class AdaGradRule(UpdateRule):
    """
    Update rule
    -----------
    ``h = h + g ** 2``; the update value is ``rate * g / (sqrt(h) + delta)``.
    """

    HISTORY_ROLES = ("history",)
    SCRATCH_ROLES = ("scratch",)

    def compute_update(self, ops, param_id, param, rate) -> None:
        n = param.count
        h = self.buffers("history")[param_id]
        tmp = self.buffers("scratch")[param_id]

        ops.powx(n, ops.diff(param), 2.0, ops.mutable_data(tmp))
        ops.add(n, ops.data(tmp), ops.data(h), ops.mutable_data(h))
        ops.powx(n, ops.data(h), 0.5, ops.mutable_data(tmp))
        ops.add_scalar(n, self.config.delta, ops.mutable_data(tmp))
        ops.div(n, ops.diff(param), ops.data(tmp), ops.mutable_data(tmp))
        ops.axpby(n, rate, ops.data(tmp), 0.0, ops.mutable_diff(param))


@register_update_rule("RMSPROP")
class RMSPropRule(UpdateRule):
    """
    Update rule
    -----------
    ``h = (1 - rms_decay) * g ** 2 + rms_decay * h``; the update value is
    ``rate * g / (sqrt(h) + delta)``.
    """

    HISTORY_ROLES = ("history",)
    SCRATCH_ROLES = ("scratch",)

    def compute_update(self, ops, param_id, param, rate) -> None:
        n = param.count
        decay = self.config.rms_decay
        h = self.buffers("history")[param_id]
        tmp = self.buffers("scratch")[param_id]

        ops.powx(n, ops.diff(param), 2.0, ops.mutable_data(tmp))
        ops.axpby(n, 1.0 - decay, ops.data(tmp), decay, ops.mutable_data(h))
        ops.powx(n, ops.data(h), 0.5, ops.mutable_data(tmp))
        ops.add_scalar(n, self.config.delta, ops.mutable_data(tmp))
        ops.div(n, ops.diff(param), ops.data(tmp), ops.mutable_data(tmp))
        ops.axpby(n, rate, ops.data(tmp), 0.0, ops.mutable_diff(param))


@register_update_rule("ADADELTA")
class AdaDeltaRule(UpdateRule):
    """
    AdaDelta with separate gradient and update histories.

    Update rule (``m`` is `momentum`)
    ---------------------------------
    ``gh = (1 - m) * g ** 2 + m * gh``;
    ``D = sqrt((uh + delta) / (gh + delta)) * g``;
    ``uh = (1 - m) * D ** 2 + m * uh``; the update value is ``rate * D``.
    """

    HISTORY_ROLES = ("grad_history", "update_history")
    SCRATCH_ROLES = ("scratch", "fill")

    def compute_update(self, ops, param_id, param, rate) -> None:
        n = param.count
        m = self.config.momentum
        gh = self.buffers("grad_history")[param_id]
        uh = self.buffers("update_history")[param_id]
        tmp = self.buffers("scratch")[param_id]
        fill = self.buffers("fill")[param_id]

        ops.powx(n, ops.diff(param), 2.0, ops.mutable_data(tmp))
        ops.axpby(n, 1.0 - m, ops.data(tmp), m, ops.mutable_data(gh))

        ops.set(n, self.config.delta, ops.mutable_data(fill))
        ops.add(n, ops.data(fill), ops.data(uh), ops.mutable_data(tmp))
        ops.add(n, ops.data(fill), ops.data(gh), ops.mutable_data(fill))
        ops.div(n, ops.data(tmp), ops.data(fill), ops.mutable_data(tmp))
        ops.powx(n, ops.data(tmp), 0.5, ops.mutable_data(tmp))
        ops.mul(n, ops.diff(param), ops.data(tmp), ops.mutable_diff(param))

        ops.powx(n, ops.diff(param), 2.0, ops.mutable_data(tmp))
        ops.axpby(n, 1.0 - m, ops.data(tmp), m, ops.mutable_data(uh))

        ops.axpby(n, rate, ops.diff(param), 0.0, ops.mutable_diff(param))
