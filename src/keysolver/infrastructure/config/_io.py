"""
Definition file reading.

Solver and network definitions are YAML (``.yaml`` / ``.yml``) or JSON
(``.json``) documents decoding to a mapping. Any other suffix is tried as
YAML, which also accepts JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from ...domain._errors import SolverConfigError

PathLike = Union[str, Path]


def read_definition_file(path: PathLike) -> Dict[str, Any]:
    """
    Read a YAML or JSON definition file into a dict.

    Raises
    ------
    SolverConfigError
        If the file cannot be read, does not parse, or is not a mapping.
    """
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise SolverConfigError(f"Failed to read definition file {p}: {e}") from e

    try:
        if p.suffix.lower() == ".json":
            data = json.loads(text or "{}")
        else:
            data = yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SolverConfigError(f"Failed to parse definition file {p}: {e}") from e

    if not isinstance(data, dict):
        raise SolverConfigError(f"Definition file {p} must decode to a mapping")
    return data


def read_net_param_file(path: PathLike) -> Dict[str, Any]:
    """Read a network definition file."""
    data = read_definition_file(path)
    if "layers" not in data:
        raise SolverConfigError(f"Network definition {path} has no 'layers' list")
    return data
