"""
Execution device abstraction.

This module defines the lightweight descriptors used to select where the
solver runs its kernel primitives:

- `DeviceType`: the category of execution (host CPU or CUDA accelerator)
- `Device`: a concrete, validated device descriptor such as "cpu" or "cuda:0"

Solver configurations express the execution mode as a `solver_mode` string
("CPU" / "GPU") plus a `device_id`; `Device.from_solver_mode` normalizes that
pair into a descriptor. The descriptor carries no backend resources; loading
the native kernel library is an infrastructure concern.
"""

from __future__ import annotations

from enum import Enum
import re


class DeviceType(Enum):
    """
    Enumeration of supported execution categories.

    Attributes
    ----------
    CPU : DeviceType
        Host execution; buffers live in host memory.
    CUDA : DeviceType
        Accelerator execution; buffers are mirrored to CUDA device memory.
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Concrete execution device descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be either:
        - "cpu"
        - "cuda:<index>", where <index> is a non-negative integer

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.

    Notes
    -----
    `__slots__` keeps the descriptor immutable in practice and cheap to copy
    around between the solver, its networks and its buffer operations.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda:(\d+)$")

    _SOLVER_MODES = {"CPU": DeviceType.CPU, "GPU": DeviceType.CUDA}

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
        else:
            m = self._CUDA_PATTERN.match(device)
            if not m:
                raise ValueError(
                    f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
                )
            self.type = DeviceType.CUDA
            self.index = int(m.group(1))

    @classmethod
    def from_solver_mode(cls, solver_mode: str, device_id: int = 0) -> "Device":
        """
        Build a device from a solver-mode string and a device index.

        Parameters
        ----------
        solver_mode : str
            "CPU" or "GPU" (case-insensitive).
        device_id : int, optional
            CUDA device ordinal. Ignored for CPU. Defaults to 0.

        Returns
        -------
        Device
            "cpu" or "cuda:<device_id>".

        Raises
        ------
        ValueError
            If `solver_mode` is unknown or `device_id` is negative.
        """
        kind = cls._SOLVER_MODES.get(str(solver_mode).upper())
        if kind is None:
            raise ValueError(
                f"Unknown solver_mode {solver_mode!r}. Expected 'CPU' or 'GPU'."
            )
        if kind is DeviceType.CPU:
            return cls("cpu")
        if int(device_id) < 0:
            raise ValueError(f"device_id must be >= 0, got {device_id}")
        return cls(f"cuda:{int(device_id)}")

    def __str__(self):
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self):
        return f"Device({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return self.type is other.type and self.index == other.index

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        """Return True if this descriptor selects host execution."""
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        """Return True if this descriptor selects CUDA execution."""
        return self.type is DeviceType.CUDA
