"""
Domain-level blob contract.

A blob is a fixed-shape numeric buffer pair: `data` (values) and `diff`
(gradients, later overwritten with the update value). Each half can be read
or written from the host (as a NumPy-compatible array) or from the CUDA
accelerator (as a device pointer). Implementations keep the two copies
coherent; callers only declare read-only or mutable intent.

Notes
-----
The protocol is structural and backend-agnostic: the domain layer never
imports NumPy or ctypes.
"""

from __future__ import annotations

from typing import Any, Protocol, Tuple, runtime_checkable


@runtime_checkable
class IBlob(Protocol):
    """
    Structural contract for data/diff buffer pairs.

    Required members
    ----------------
    - `shape`, `count`, `dtype`
    - host accessors: `cpu_data`, `mutable_cpu_data`, `cpu_diff`,
      `mutable_cpu_diff`
    - device accessors: `gpu_data`, `mutable_gpu_data`, `gpu_diff`,
      `mutable_gpu_diff`
    """

    @property
    def shape(self) -> Tuple[int, ...]: ...

    @property
    def count(self) -> int: ...

    @property
    def dtype(self) -> Any: ...

    def cpu_data(self) -> Any: ...

    def mutable_cpu_data(self) -> Any: ...

    def cpu_diff(self) -> Any: ...

    def mutable_cpu_diff(self) -> Any: ...

    def gpu_data(self) -> int: ...

    def mutable_gpu_data(self) -> int: ...

    def gpu_diff(self) -> int: ...

    def mutable_gpu_diff(self) -> int: ...
