"""
Built-in parameter fillers.

Implemented types
-----------------
- ``constant``: every element set to ``value``.
- ``gaussian``: normal with ``mean`` and ``std``.
- ``uniform``: uniform on ``[min, max)``.
- ``xavier``: uniform on ``[-s, s)`` with ``s = sqrt(3 / n)`` where ``n`` is
  the fan-in, the fan-out or their average (``variance_norm``).

All randomness is drawn from the `numpy.random.Generator` handed in by the
network so that seeded runs are reproducible.
"""

import math

import numpy as np

from ._base import Filler
from ...domain._errors import SolverConfigError
from ...domain.utils._weight_initialization import _calculate_fan_in_and_fan_out


@Filler.register_filler("constant")
def constant(blob, rng, value: float = 0.0):
    blob.mutable_cpu_data()[...] = value
    return blob


@Filler.register_filler("gaussian")
def gaussian(blob, rng, mean: float = 0.0, std: float = 1.0):
    if std < 0:
        raise SolverConfigError(f"gaussian filler requires std >= 0, got {std}")
    w = rng.normal(loc=mean, scale=std, size=blob.shape)
    blob.mutable_cpu_data()[...] = w.astype(blob.dtype, copy=False)
    return blob


@Filler.register_filler("uniform")
def uniform(blob, rng, min: float = 0.0, max: float = 1.0):
    if max < min:
        raise SolverConfigError(f"uniform filler requires min <= max, got [{min}, {max}]")
    w = rng.uniform(low=min, high=max, size=blob.shape)
    blob.mutable_cpu_data()[...] = w.astype(blob.dtype, copy=False)
    return blob


@Filler.register_filler("xavier")
def xavier(blob, rng, variance_norm: str = "FAN_IN"):
    """
    Xavier (Glorot) uniform initialization.

    ``variance_norm`` selects the normalizer: ``FAN_IN`` (default),
    ``FAN_OUT`` or ``AVERAGE``.
    """
    fan_in, fan_out = _calculate_fan_in_and_fan_out(tuple(blob.shape))
    norm = str(variance_norm).upper()
    if norm == "FAN_IN":
        n = fan_in
    elif norm == "FAN_OUT":
        n = fan_out
    elif norm == "AVERAGE":
        n = (fan_in + fan_out) / 2.0
    else:
        raise SolverConfigError(f"Unknown xavier variance_norm: {variance_norm!r}")

    scale = math.sqrt(3.0 / max(1.0, float(n)))
    w = rng.uniform(low=-scale, high=scale, size=blob.shape)
    blob.mutable_cpu_data()[...] = w.astype(np.dtype(blob.dtype), copy=False)
    return blob
