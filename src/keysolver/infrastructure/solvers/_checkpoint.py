"""
Checkpoint files.

A checkpoint is a pair of JSON documents:

- model file ``<prefix>_iter_<N>.keymodel`` (format
  ``keysolver.model.v1``): the training network's parameter payload, see
  `Net.to_payload`.
- state file ``<model file>.solverstate`` (format
  ``keysolver.solverstate.v1``)::

      {
        "format": "keysolver.solverstate.v1",
        "iter": N,
        "solver_type": "SGD",
        "history_roles": ["history"],
        "history": [<array payload>, ...],   # role-major, parameter order
        "learned_net": "<model file name>"
      }

Arrays are base64 payloads with dtype and shape, so values round-trip
bit-exactly.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..encoding._b64 import ndarray_to_payload, payload_to_ndarray
from ...domain._errors import SolverStateError

logger = logging.getLogger(__name__)

STATE_FORMAT = "keysolver.solverstate.v1"
MODEL_SUFFIX = ".keymodel"
STATE_SUFFIX = ".solverstate"


def model_filename(prefix: str, iteration: int) -> str:
    return f"{prefix}_iter_{int(iteration)}{MODEL_SUFFIX}"


def state_filename(model_file: str) -> str:
    return f"{model_file}{STATE_SUFFIX}"


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f)


def read_json(path: Path) -> Dict[str, Any]:
    """
    Raises
    ------
    SolverStateError
        If the file is missing or is not a JSON object.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise SolverStateError(f"Checkpoint file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise SolverStateError(f"Failed to read checkpoint file {path}: {e}") from e
    if not isinstance(data, dict):
        raise SolverStateError(f"Checkpoint file {path} is not a JSON object")
    return data


def build_state_payload(
    iteration: int,
    solver_type: str,
    roles: Sequence[str],
    history: Sequence[np.ndarray],
    learned_net: str,
) -> Dict[str, Any]:
    return {
        "format": STATE_FORMAT,
        "iter": int(iteration),
        "solver_type": solver_type,
        "history_roles": list(roles),
        "history": [ndarray_to_payload(h) for h in history],
        "learned_net": learned_net,
    }


def parse_state_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a solver-state document and decode its arrays.

    Returns
    -------
    dict
        ``iter`` (int), ``history_roles`` (list), ``history`` (list of
        arrays), ``learned_net`` (str, possibly empty) and ``solver_type``.
    """
    if data.get("format") != STATE_FORMAT:
        raise SolverStateError(
            f"Unsupported solver state format {data.get('format')!r}, expected {STATE_FORMAT!r}"
        )
    try:
        history: List[np.ndarray] = [payload_to_ndarray(h) for h in data.get("history", [])]
        iteration = int(data["iter"])
    except (KeyError, TypeError, ValueError) as e:
        raise SolverStateError(f"Corrupt solver state: {e}") from e
    return {
        "iter": iteration,
        "history_roles": list(data.get("history_roles", [])),
        "history": history,
        "learned_net": str(data.get("learned_net") or ""),
        "solver_type": str(data.get("solver_type", "")),
    }


def resolve_model_path(learned_net: str, state_path: Path) -> Optional[Path]:
    """
    Locate the model file referenced by a state file.

    The reference is tried as given first, then relative to the state
    file's directory.
    """
    if not learned_net:
        return None
    p = Path(learned_net)
    if p.exists():
        return p
    candidate = state_path.parent / p.name if p.is_absolute() else state_path.parent / p
    if candidate.exists():
        return candidate
    raise SolverStateError(f"Model file referenced by {state_path} not found: {learned_net}")
