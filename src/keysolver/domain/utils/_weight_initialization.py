"""
Abstract interfaces and utilities for parameter fillers.

This module defines the abstract base class for filler dispatchers used when
a network allocates its parameters, along with shared helper functions for
computing fan-in and fan-out from a parameter shape.

The concrete registry and the filler implementations live in the
infrastructure layer; this module only fixes the contract and the shared
arithmetic.
"""

from typing import Any, Callable, Dict, Mapping, TypeVar
from abc import ABC

from .._blob import IBlob


T = TypeVar("T", bound=Callable[..., IBlob])


class _Filler(ABC):
    """
    Abstract base class for filler dispatchers.

    Design notes
    ------------
    - Fillers are identified by the `type` key of a filler definition
      (e.g. ``{"type": "gaussian", "std": 0.01}``).
    - Each filler is a callable that writes into a blob's data in place and
      returns it. Randomness comes from an explicit NumPy `Generator` so that
      seeded runs are reproducible.
    """

    FILLERS: Dict[str, Callable] = {}

    def __init__(self, filler_param: Mapping[str, Any]) -> None:
        """
        Construct a filler dispatcher from a filler definition.

        Parameters
        ----------
        filler_param:
            Mapping with a ``type`` key and type-specific options.
        """
        ...

    @classmethod
    def register_filler(cls, name: str, *, overwrite: bool = False) -> Callable[[T], T]:
        """
        Register a filler under a given type name.

        Returns
        -------
        Callable
            A decorator that registers the filler function.
        """
        ...

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return the names of all registered fillers (sorted)."""
        ...

    def __call__(self, blob: IBlob, rng: Any) -> IBlob:
        """Fill `blob` in place using `rng` and return it."""
        ...


def _calculate_fan_in_and_fan_out(shape: tuple[int, ...]) -> tuple[int, int]:
    """
    Compute both fan-in and fan-out values for a parameter shape.

    Parameters
    ----------
    shape:
        Shape of the parameter blob.

    Returns
    -------
    tuple[int, int]
        A tuple of (fan_in, fan_out).
    """
    if len(shape) == 0:
        return 1, 1
    if len(shape) == 1:
        return shape[0], shape[0]
    if len(shape) == 2:
        # InnerProduct: (num_output, input_dim)
        fan_out, fan_in = shape
        return fan_in, fan_out

    receptive_field = 1
    for d in shape[2:]:
        receptive_field *= int(d)

    fan_in = int(shape[1]) * receptive_field
    fan_out = int(shape[0]) * receptive_field
    return fan_in, fan_out
