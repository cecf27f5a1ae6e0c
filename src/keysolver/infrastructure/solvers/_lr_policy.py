"""
Learning-rate schedules.

Each policy maps the iteration counter ``t`` to a rate:

- ``fixed``: ``base_lr``
- ``step``: ``base_lr * gamma ** floor(t / stepsize)``
- ``exp``: ``base_lr * gamma ** t``
- ``inv``: ``base_lr * (1 + gamma * t) ** (-power)``

Unknown names raise `UnknownPolicyError` on first use.
"""

from __future__ import annotations

import math
from typing import Callable, Dict

from ...domain._errors import SolverConfigError, UnknownPolicyError
from ..config._solver_config import SolverConfig

_POLICIES: Dict[str, Callable[[SolverConfig, int], float]] = {}


def register_lr_policy(name: str):
    def deco(fn: Callable[[SolverConfig, int], float]) -> Callable[[SolverConfig, int], float]:
        _POLICIES[name] = fn
        return fn

    return deco


@register_lr_policy("fixed")
def _fixed(cfg: SolverConfig, t: int) -> float:
    return cfg.base_lr


@register_lr_policy("step")
def _step(cfg: SolverConfig, t: int) -> float:
    if cfg.stepsize <= 0:
        raise SolverConfigError(f"lr_policy 'step' requires stepsize > 0, got {cfg.stepsize}")
    return cfg.base_lr * math.pow(cfg.gamma, t // cfg.stepsize)


@register_lr_policy("exp")
def _exp(cfg: SolverConfig, t: int) -> float:
    return cfg.base_lr * math.pow(cfg.gamma, t)


@register_lr_policy("inv")
def _inv(cfg: SolverConfig, t: int) -> float:
    return cfg.base_lr * math.pow(1.0 + cfg.gamma * t, -cfg.power)


def learning_rate(cfg: SolverConfig, t: int) -> float:
    """
    Return the scheduled learning rate at iteration `t`.

    Raises
    ------
    UnknownPolicyError
        If ``cfg.lr_policy`` is not a known policy.
    SolverConfigError
        If the policy's parameters are invalid.
    """
    try:
        policy = _POLICIES[cfg.lr_policy]
    except KeyError as e:
        raise UnknownPolicyError("learning rate policy", cfg.lr_policy) from e
    return float(policy(cfg, int(t)))
