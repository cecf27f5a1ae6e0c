"""
Solver configuration.

`SolverConfig` is the frozen, validated form of a solver definition. It is
built from a mapping with `SolverConfig.from_mapping` or read from a YAML /
JSON file with `load_solver_config`, which also resolves relative network
paths against the solver file's directory.

Validation performed here is per field (types, ranges, unknown keys, the
exclusivity of the train-net sources). Cross-checks that need the built
networks (evaluation counts, ``test_interval``) happen when the solver is
constructed.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from ._io import PathLike, read_definition_file
from ...domain._errors import SolverConfigError
from ...domain._phase import NetState

_NET_SOURCES = ("net", "net_param", "train_net", "train_net_param")


def _as_tuple(value: Any) -> Tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise SolverConfigError(f"'{key}' must be an integer, got {value!r}")
    return int(value)


@dataclass(frozen=True)
class SolverConfig:
    """
    Validated solver definition.

    Network sources
    ---------------
    Exactly one of `net` (file), `net_param` (inline), `train_net` (file) or
    `train_net_param` (inline) gives the training network. Evaluation
    networks come from `test_net_param` and `test_net`, plus one generic
    instance of `net` / `net_param` for every remaining `test_iter` entry.

    Notes
    -----
    `base_dir` is not a definition field: it records where relative paths
    are resolved from (the solver file's directory when loaded from disk).
    """

    # networks
    net: Optional[str] = None
    net_param: Optional[Dict[str, Any]] = None
    train_net: Optional[str] = None
    train_net_param: Optional[Dict[str, Any]] = None
    test_net: Tuple[str, ...] = ()
    test_net_param: Tuple[Dict[str, Any], ...] = ()
    train_state: NetState = field(default_factory=NetState)
    test_state: Tuple[NetState, ...] = ()

    # evaluation
    test_iter: Tuple[int, ...] = ()
    test_interval: int = 0
    test_compute_loss: bool = False
    test_initialization: bool = True

    # loop and reporting
    max_iter: int = 0
    display: int = 0
    average_loss: int = 1
    debug_info: bool = False
    update_interval: int = 1

    # checkpoints
    snapshot: int = 0
    snapshot_prefix: str = ""
    snapshot_diff: bool = False
    snapshot_after_train: bool = True

    # execution
    solver_mode: str = "CPU"
    device_id: int = 0
    random_seed: int = -1

    # optimization
    solver_type: str = "SGD"
    lr_policy: str = "fixed"
    base_lr: float = 0.01
    gamma: float = 0.0
    stepsize: int = 0
    power: float = 0.0
    momentum: float = 0.0
    weight_decay: float = 0.0
    regularization_type: str = "L2"
    delta: float = 1e-8
    rms_decay: float = 0.99

    base_dir: Optional[str] = None

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        """Definition keys accepted by `from_mapping`."""
        return tuple(f.name for f in dataclasses.fields(cls) if f.name != "base_dir")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base_dir: Optional[PathLike] = None) -> "SolverConfig":
        """
        Validate a definition mapping.

        Parameters
        ----------
        data : Mapping[str, Any]
            Solver definition.
        base_dir : str or Path, optional
            Directory for resolving relative network file paths.

        Raises
        ------
        SolverConfigError
            On unknown keys, wrongly typed or out-of-range values, or a
            number of train-net sources other than one.
        """
        if not isinstance(data, Mapping):
            raise SolverConfigError("Solver definition must be a mapping")
        unknown = set(data) - set(cls.field_names())
        if unknown:
            raise SolverConfigError(f"Unknown solver fields: {sorted(unknown)}")

        given = [k for k in _NET_SOURCES if data.get(k) is not None]
        if len(given) != 1:
            raise SolverConfigError(
                "Solver definition must specify exactly one of "
                f"{', '.join(_NET_SOURCES)}; got {given or 'none'}"
            )

        root = Path(base_dir) if base_dir is not None else None

        def _path(v: Any) -> str:
            p = Path(str(v))
            if root is not None and not p.is_absolute():
                p = root / p
            return str(p)

        def _mapping(key: str, v: Any) -> Dict[str, Any]:
            if not isinstance(v, Mapping):
                raise SolverConfigError(f"'{key}' must be a network definition mapping")
            return dict(v)

        kwargs: Dict[str, Any] = {}
        try:
            for key in ("net", "train_net"):
                if data.get(key) is not None:
                    kwargs[key] = _path(data[key])
            for key in ("net_param", "train_net_param"):
                if data.get(key) is not None:
                    kwargs[key] = _mapping(key, data[key])
            kwargs["test_net"] = tuple(_path(v) for v in _as_tuple(data.get("test_net")))
            kwargs["test_net_param"] = tuple(
                _mapping("test_net_param", v) for v in _as_tuple(data.get("test_net_param"))
            )
            kwargs["train_state"] = NetState.from_mapping(data.get("train_state"))
            kwargs["test_state"] = tuple(
                NetState.from_mapping(v) for v in _as_tuple(data.get("test_state"))
            )
            kwargs["test_iter"] = tuple(
                _as_int("test_iter", v) for v in _as_tuple(data.get("test_iter"))
            )

            for key in ("test_interval", "max_iter", "display", "average_loss", "update_interval",
                        "snapshot", "device_id", "random_seed", "stepsize"):
                if key in data:
                    kwargs[key] = _as_int(key, data[key])
            for key in ("base_lr", "gamma", "power", "momentum", "weight_decay", "delta", "rms_decay"):
                if key in data:
                    kwargs[key] = float(data[key])
            for key in ("test_compute_loss", "test_initialization", "debug_info",
                        "snapshot_diff", "snapshot_after_train"):
                if key in data:
                    if not isinstance(data[key], bool):
                        raise SolverConfigError(f"'{key}' must be a boolean, got {data[key]!r}")
                    kwargs[key] = data[key]
            for key in ("snapshot_prefix", "solver_mode", "solver_type", "lr_policy",
                        "regularization_type"):
                if key in data:
                    kwargs[key] = str(data[key])
        except (TypeError, ValueError) as e:
            if isinstance(e, SolverConfigError):
                raise
            raise SolverConfigError(f"Invalid solver definition: {e}") from e

        if "snapshot_prefix" in kwargs and kwargs["snapshot_prefix"]:
            kwargs["snapshot_prefix"] = _path(kwargs["snapshot_prefix"])

        cfg = cls(base_dir=str(root) if root is not None else None, **kwargs)
        cfg._check_ranges()
        return cfg

    def _check_ranges(self) -> None:
        if any(n < 0 for n in self.test_iter):
            raise SolverConfigError(f"test_iter entries must be >= 0, got {list(self.test_iter)}")
        for key in ("test_interval", "max_iter", "display", "snapshot"):
            if getattr(self, key) < 0:
                raise SolverConfigError(f"'{key}' must be >= 0, got {getattr(self, key)}")
        if self.update_interval < 1:
            raise SolverConfigError(f"'update_interval' must be >= 1, got {self.update_interval}")
        if self.device_id < 0:
            raise SolverConfigError(f"'device_id' must be >= 0, got {self.device_id}")
        if self.solver_mode.upper() not in ("CPU", "GPU"):
            raise SolverConfigError(f"'solver_mode' must be CPU or GPU, got {self.solver_mode!r}")

    @property
    def resolved_base_dir(self) -> Path:
        return Path(self.base_dir) if self.base_dir is not None else Path.cwd()

    def replace(self, **changes: Any) -> "SolverConfig":
        """Return a copy with fields replaced (no re-validation)."""
        return dataclasses.replace(self, **changes)


def load_solver_config(path: PathLike) -> SolverConfig:
    """
    Read and validate a solver definition file (YAML or JSON).

    Relative network paths and the snapshot prefix resolve against the
    file's directory.
    """
    p = Path(path)
    data = read_definition_file(p)
    return SolverConfig.from_mapping(data, base_dir=p.resolve().parent)
