"""
Domain-level kernel primitive contract.

The solver's update rules are written once against `IBufferOps`. A concrete
backend decides what a "buffer handle" is (a flat NumPy view on the host, a
device pointer on CUDA) and how each primitive executes; the host and the
accelerator backends share identical numerical semantics.

Handle accessors
----------------
Rules never touch blob storage directly. They ask the backend for a handle:

- `data(blob)` / `diff(blob)` for read-only access
- `mutable_data(blob)` / `mutable_diff(blob)` for write access

so the backend can keep host/device copies coherent.

Primitives
----------
All primitives take the element count `n` first and write into their last
buffer argument:

- ``axpy(n, alpha, x, y)``: y = alpha * x + y
- ``axpby(n, alpha, x, beta, y)``: y = alpha * x + beta * y
- ``copy(n, x, y)``: y = x
- ``set(n, alpha, y)``: y = alpha
- ``add_scalar(n, alpha, y)``: y = y + alpha
- ``sign(n, x, y)``: y = sign(x)
- ``powx(n, x, p, y)``: y = x ** p
- ``add(n, a, b, y)`` / ``mul(n, a, b, y)`` / ``div(n, a, b, y)``
"""

from __future__ import annotations

from typing import Any, Protocol, Tuple, runtime_checkable

from ._blob import IBlob
from ._device import Device


@runtime_checkable
class IBufferOps(Protocol):
    """Kernel primitives over flat buffers of one execution mode."""

    @property
    def device(self) -> Device: ...

    def new_blob(self, shape: Tuple[int, ...]) -> IBlob:
        """Allocate a zero-filled blob usable by this backend."""
        ...

    def data(self, blob: IBlob) -> Any: ...

    def mutable_data(self, blob: IBlob) -> Any: ...

    def diff(self, blob: IBlob) -> Any: ...

    def mutable_diff(self, blob: IBlob) -> Any: ...

    def axpy(self, n: int, alpha: float, x: Any, y: Any) -> None: ...

    def axpby(self, n: int, alpha: float, x: Any, beta: float, y: Any) -> None: ...

    def copy(self, n: int, x: Any, y: Any) -> None: ...

    def set(self, n: int, alpha: float, y: Any) -> None: ...

    def add_scalar(self, n: int, alpha: float, y: Any) -> None: ...

    def sign(self, n: int, x: Any, y: Any) -> None: ...

    def powx(self, n: int, x: Any, p: float, y: Any) -> None: ...

    def add(self, n: int, a: Any, b: Any, y: Any) -> None: ...

    def mul(self, n: int, a: Any, b: Any, y: Any) -> None: ...

    def div(self, n: int, a: Any, b: Any, y: Any) -> None: ...
