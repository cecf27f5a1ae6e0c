"""
Filler registry and dispatch utilities.

This module defines the concrete `Filler` used by layers to initialize their
parameter blobs from a filler definition such as
``{"type": "gaussian", "std": 0.01}``.

Design
------
- Fillers are registered by type name via a decorator-based registry.
- Each filler is a function ``(blob, rng, **options) -> blob`` that writes
  into ``blob.data`` in place.
- The dispatcher resolves the filler and validates its options at
  construction time, so a misspelled type fails when the network is built,
  not halfway through initialization.

Usage example
-------------
Registering a filler:

    @Filler.register_filler("constant")
    def constant(blob, rng, value=0.0):
        ...

Applying a filler:

    Filler({"type": "constant", "value": 0.1})(bias_blob, rng)
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, ClassVar, Dict, Mapping, TypeVar

import numpy as np

from ...domain._blob import IBlob
from ...domain._errors import SolverConfigError
from ...domain.utils._weight_initialization import _Filler

T = TypeVar("T", bound=Callable[..., IBlob])


class Filler(_Filler):
    """
    Registry-backed filler dispatcher.

    Parameters
    ----------
    filler_param : Mapping[str, Any] or None
        Filler definition. A missing definition or a missing ``type`` means
        ``constant`` with value 0.

    Raises
    ------
    SolverConfigError
        If the type is not registered or an option is not accepted by it.
    """

    FILLERS: ClassVar[Dict[str, Callable[..., IBlob]]] = {}

    def __init__(self, filler_param: Mapping[str, Any] = None) -> None:
        options = dict(filler_param or {})
        name = str(options.pop("type", "constant"))
        try:
            self._filler = self.FILLERS[name]
        except KeyError as e:
            available = ", ".join(self.available()) or "<none>"
            raise SolverConfigError(
                f"Unsupported filler type: {name!r}. Available: {available}"
            ) from e

        accepted = set(inspect.signature(self._filler).parameters) - {"blob", "rng"}
        unknown = set(options) - accepted
        if unknown:
            raise SolverConfigError(
                f"Filler {name!r} does not accept options {sorted(unknown)}"
            )
        self.name = name
        self._options = options

    @classmethod
    def register_filler(cls, name: str, *, overwrite: bool = False) -> Callable[[T], T]:
        """
        Decorator to register a filler under `name`.

        Parameters
        ----------
        name:
            Registry key used in filler definitions.
        overwrite:
            If False (default), raises if `name` is already registered.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Filler name must be a non-empty string")

        def decorator(func: T) -> T:
            if not overwrite and name in cls.FILLERS:
                raise ValueError(f"Filler already registered: {name!r}")
            cls.FILLERS[name] = func
            return func

        return decorator

    @classmethod
    def available(cls) -> tuple[str, ...]:
        """Return registered filler names (sorted)."""
        return tuple(sorted(cls.FILLERS))

    def __call__(self, blob: IBlob, rng: np.random.Generator) -> IBlob:
        return self._filler(blob, rng, **self._options)
