"""
Execution context selection.

`ExecutionContext` bundles the device a solver runs on with the native
runtime serving it (None on the host). It is created once, before any
network is built, and hands out the matching `IBufferOps` backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from ._cuda_ops import CudaBufferOps
from ._host_ops import HostBufferOps
from ..native_cuda._kernels_ctypes import CudaKernels
from ..native_cuda._native_loader import load_keysolver_cuda_native
from ...domain._buffer_ops import IBufferOps
from ...domain._device import Device
from ...domain._errors import DeviceNotSupportedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionContext:
    """
    Device plus the runtime that backs it.

    Attributes
    ----------
    device : Device
        Where kernel primitives execute.
    runtime : object or None
        `CudaKernels` (or a compatible object) for CUDA devices; None for
        the host.
    dtype : numpy.dtype
        Element dtype of every blob created in this context.
    """

    device: Device
    runtime: Optional[Any] = None
    dtype: Any = np.float32

    @classmethod
    def create(cls, solver_mode: str = "CPU", device_id: int = 0) -> "ExecutionContext":
        """
        Build the context for a solver-mode string and device index.

        Raises
        ------
        DeviceNotSupportedError
            If "GPU" is requested and the native kernel library cannot be
            loaded or the device cannot be selected.
        ValueError
            If `solver_mode` is unknown.
        """
        device = Device.from_solver_mode(solver_mode, device_id)
        if device.is_cpu():
            logger.info("Using CPU.")
            return cls(device=device)

        try:
            lib = load_keysolver_cuda_native()
        except (FileNotFoundError, OSError) as e:
            raise DeviceNotSupportedError("solver_mode=GPU", str(device), str(e)) from e
        kernels = CudaKernels(lib)
        try:
            kernels.set_device(device.index)
        except RuntimeError as e:
            raise DeviceNotSupportedError("solver_mode=GPU", str(device), str(e)) from e
        logger.info("Using GPU %d.", device.index)
        return cls(device=device, runtime=kernels)

    @property
    def blob_kwargs(self) -> dict:
        """Keyword arguments for constructing blobs that live in this context."""
        return {
            "dtype": np.dtype(self.dtype),
            "runtime": self.runtime,
            "device_index": self.device.index or 0,
        }

    def buffer_ops(self) -> IBufferOps:
        """Return the primitive backend matching the device."""
        if self.device.is_cpu():
            return HostBufferOps(self.dtype)
        if self.runtime is None:
            raise DeviceNotSupportedError("buffer ops", str(self.device), "no runtime attached")
        return CudaBufferOps(self.device, self.runtime, self.dtype)
