"""
Network execution phase and state.

A network instance is built for a `NetState`: a phase (TRAIN or TEST), a
numeric level and a set of stage tags. Layers may carry include/exclude
rules (`NetStateRule`) that decide whether they belong to a network built
for a given state, which is how one definition yields both a training graph
and an evaluation graph.

States are merged with override semantics: scalar fields present on the
right-hand side replace those on the left, stage lists are concatenated.
The solver merges, from lowest to highest precedence, the phase default,
the `state` of the network definition and the per-net override of the
solver configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from typing_extensions import Self


class Phase(Enum):
    """Execution phase of a network."""

    TRAIN = "TRAIN"
    TEST = "TEST"

    @classmethod
    def parse(cls, value: Any) -> "Phase":
        """
        Convert a phase name (or a `Phase`) into a `Phase`.

        Raises
        ------
        ValueError
            If the name is not TRAIN or TEST.
        """
        if isinstance(value, Phase):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as e:
            raise ValueError(f"Unknown phase {value!r}. Expected TRAIN or TEST.") from e


@dataclass(frozen=True)
class NetState:
    """
    State a network is built for.

    Attributes
    ----------
    phase : Optional[Phase]
        Execution phase; None means "unset" and is only meaningful before the
        solver merges in its phase default.
    level : Optional[int]
        Numeric level compared against `min_level` / `max_level` rules.
    stage : Tuple[str, ...]
        Stage tags compared against `stage` / `not_stage` rules.
    """

    phase: Optional[Phase] = None
    level: Optional[int] = None
    stage: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> Self:
        if not data:
            return cls()
        unknown = set(data) - {"phase", "level", "stage"}
        if unknown:
            raise ValueError(f"Unknown NetState fields: {sorted(unknown)}")
        phase = data.get("phase")
        level = data.get("level")
        stage = data.get("stage") or ()
        if isinstance(stage, str):
            stage = (stage,)
        return cls(
            phase=Phase.parse(phase) if phase is not None else None,
            level=int(level) if level is not None else None,
            stage=tuple(str(s) for s in stage),
        )

    def merged(self, other: "NetState") -> Self:
        """Return a copy of this state with `other` merged on top."""
        return type(self)(
            phase=other.phase if other.phase is not None else self.phase,
            level=other.level if other.level is not None else self.level,
            stage=self.stage + other.stage,
        )

    @property
    def effective_level(self) -> int:
        return 0 if self.level is None else int(self.level)

    def to_mapping(self) -> dict:
        out: dict = {}
        if self.phase is not None:
            out["phase"] = self.phase.value
        if self.level is not None:
            out["level"] = int(self.level)
        if self.stage:
            out["stage"] = list(self.stage)
        return out


@dataclass(frozen=True)
class NetStateRule:
    """
    Include/exclude rule attached to a layer definition.

    A state meets a rule when every field the rule sets is satisfied.
    """

    phase: Optional[Phase] = None
    min_level: Optional[int] = None
    max_level: Optional[int] = None
    stage: Tuple[str, ...] = ()
    not_stage: Tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Self:
        unknown = set(data) - {"phase", "min_level", "max_level", "stage", "not_stage"}
        if unknown:
            raise ValueError(f"Unknown NetStateRule fields: {sorted(unknown)}")

        def _tags(v: Any) -> Tuple[str, ...]:
            if v is None:
                return ()
            if isinstance(v, str):
                return (v,)
            return tuple(str(s) for s in v)

        phase = data.get("phase")
        return cls(
            phase=Phase.parse(phase) if phase is not None else None,
            min_level=int(data["min_level"]) if data.get("min_level") is not None else None,
            max_level=int(data["max_level"]) if data.get("max_level") is not None else None,
            stage=_tags(data.get("stage")),
            not_stage=_tags(data.get("not_stage")),
        )

    def is_met_by(self, state: NetState) -> bool:
        if self.phase is not None and self.phase is not state.phase:
            return False
        level = state.effective_level
        if self.min_level is not None and level < self.min_level:
            return False
        if self.max_level is not None and level > self.max_level:
            return False
        if any(s not in state.stage for s in self.stage):
            return False
        if any(s in state.stage for s in self.not_stage):
            return False
        return True


def layer_included(
    state: NetState,
    include: Tuple[NetStateRule, ...],
    exclude: Tuple[NetStateRule, ...],
) -> bool:
    """
    Decide whether a layer belongs to a network built for `state`.

    A layer with include rules is kept only if at least one of them is met;
    otherwise it is kept unless one of its exclude rules is met. Setting both
    kinds on one layer is rejected when the definition is parsed.
    """
    if include:
        return any(r.is_met_by(state) for r in include)
    return not any(r.is_met_by(state) for r in exclude)
