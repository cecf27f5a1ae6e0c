"""
JSON-safe array payloads.

Checkpoints are JSON documents; arrays travel inside them as base64-encoded
raw bytes together with dtype and shape, so a save/load round trip is
bit-exact (including NaN payloads and signed zeros).
"""

from __future__ import annotations

import base64
from typing import Any, Dict, Mapping

import numpy as np


def bytes_to_b64_str(b: bytes) -> str:
    """Encode raw bytes into a base64 ASCII string."""
    return base64.b64encode(b).decode("ascii")


def b64_str_to_bytes(s: str) -> bytes:
    """Decode a base64 ASCII string back into raw bytes."""
    return base64.b64decode(s.encode("ascii"))


def ndarray_to_payload(arr: np.ndarray) -> Dict[str, Any]:
    """
    Serialize a NumPy array into a JSON-safe payload.

    Returns
    -------
    dict
        ``{"b64": ..., "dtype": "<f4", "shape": [...], "order": "C"}``
    """
    a = np.asarray(arr, order="C")
    return {
        "b64": bytes_to_b64_str(a.tobytes(order="C")),
        "dtype": a.dtype.str,
        "shape": list(a.shape),
        "order": "C",
    }


def payload_to_ndarray(payload: Mapping[str, Any]) -> np.ndarray:
    """
    Deserialize a payload produced by `ndarray_to_payload`.

    Raises
    ------
    ValueError
        If the payload is missing a field or its byte length does not match
        dtype and shape.
    """
    try:
        b = b64_str_to_bytes(str(payload["b64"]))
        dtype = np.dtype(str(payload["dtype"]))
        shape = tuple(int(x) for x in payload["shape"])
    except KeyError as e:
        raise ValueError(f"array payload missing field {e}") from e

    arr = np.frombuffer(b, dtype=dtype)
    expected = int(np.prod(shape, dtype=np.int64))
    if arr.size != expected:
        raise ValueError(
            f"array payload holds {arr.size} elements, shape {shape} needs {expected}"
        )
    return np.array(arr.reshape(shape), copy=True, order="C")
