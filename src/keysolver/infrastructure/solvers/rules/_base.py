"""
Update-rule base class and registry.

Concrete rules subclass `UpdateRule`, declare their buffer roles and are
registered by solver type name with `register_update_rule`:

    @register_update_rule("SGD")
    class SGDRule(UpdateRule):
        HISTORY_ROLES = ("history",)
        ...

Buffer roles
------------
- `HISTORY_ROLES` are persisted in solver-state checkpoints, role-major:
  every parameter's buffer of the first role, then the second role, ...
- `SCRATCH_ROLES` are temporaries recomputed every iteration and never
  persisted.

Every buffer is a blob shaped like its parameter, allocated zero-filled once
and never resized.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, ClassVar, Dict, List, Sequence, Tuple, Type

from ...config._solver_config import SolverConfig
from ....domain._blob import IBlob
from ....domain._buffer_ops import IBufferOps
from ....domain._errors import SolverConfigError, SolverStateError
from ....domain._parameter import IParameter
from ....domain._update_rule import IUpdateRule

_RULE_REGISTRY: Dict[str, Type["UpdateRule"]] = {}


def register_update_rule(name: str) -> Callable[[Type["UpdateRule"]], Type["UpdateRule"]]:
    """Decorator to register an update rule under a solver type name."""

    def deco(cls: Type["UpdateRule"]) -> Type["UpdateRule"]:
        if name in _RULE_REGISTRY:
            raise ValueError(f"Update rule already registered: {name!r}")
        _RULE_REGISTRY[name] = cls
        cls.NAME = name
        return cls

    return deco


def update_rule_class(name: str) -> Type["UpdateRule"]:
    """
    Look up a registered rule by solver type (case-insensitive).

    Raises
    ------
    SolverConfigError
        If no rule is registered under `name`.
    """
    key = str(name).upper()
    try:
        return _RULE_REGISTRY[key]
    except KeyError as e:
        available = ", ".join(available_update_rules()) or "<none>"
        raise SolverConfigError(f"Unknown solver_type {name!r}. Available: {available}") from e


def available_update_rules() -> Tuple[str, ...]:
    return tuple(sorted(_RULE_REGISTRY))


class UpdateRule(IUpdateRule, ABC):
    """
    Base class holding named per-parameter buffer collections.

    Parameters
    ----------
    config : SolverConfig
        Source of the rule scalars (`momentum`, `delta`, `rms_decay`).
    """

    NAME: ClassVar[str] = ""
    HISTORY_ROLES: ClassVar[Tuple[str, ...]] = ("history",)
    SCRATCH_ROLES: ClassVar[Tuple[str, ...]] = ()

    def __init__(self, config: SolverConfig) -> None:
        self.config = config
        self._buffers: Dict[str, List[IBlob]] = {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(roles={self.history_roles})"

    @property
    def history_roles(self) -> Tuple[str, ...]:
        return tuple(self.HISTORY_ROLES)

    def allocate(self, params: Sequence[IParameter], ops: IBufferOps) -> None:
        for role in self.HISTORY_ROLES + self.SCRATCH_ROLES:
            self._buffers[role] = [ops.new_blob(p.shape) for p in params]

    def buffers(self, role: str) -> List[IBlob]:
        """Return the per-parameter buffers of one role."""
        return self._buffers[role]

    def history_buffers(self) -> List[IBlob]:
        return [b for role in self.HISTORY_ROLES for b in self._buffers[role]]

    def check_restorable(self, count: int) -> None:
        """
        Validate the number of buffers found in a checkpoint.

        Raises
        ------
        SolverStateError
            If `count` differs from ``len(roles) * len(params)``.
        """
        expected = len(self.history_buffers())
        if count != expected:
            raise SolverStateError(
                f"Incorrect length of history blobs: checkpoint has {count}, "
                f"{self.NAME} expects {expected} ({len(self.HISTORY_ROLES)} role(s) per parameter)"
            )

    @abstractmethod
    def compute_update(self, ops: IBufferOps, param_id: int, param: IParameter, rate: float) -> None:
        """Turn ``param``'s gradient into its update value, in place."""
