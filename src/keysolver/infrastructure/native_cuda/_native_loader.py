"""
Loader for the keysolver CUDA native kernel library.

This module resolves the compiled kernel library that backs the accelerator
execution mode, makes its CUDA runtime dependencies discoverable for the
current process, and returns a cached `ctypes.CDLL` handle.

Key behaviors
-------------
- Cached singleton: `load_keysolver_cuda_native()` is decorated with
  `lru_cache` so the library is loaded at most once per process. Failed loads
  are not cached, so a later call can succeed once the library is installed.
- Location: `KEYSOLVER_CUDA_NATIVE` overrides the default path
  ``<package>/infrastructure/native_cuda/lib/<platform library name>``.
- Dependency resolution (Windows): `CUDA_PATH/bin` and the library folder are
  registered via `os.add_dll_directory`, falling back to prepending `PATH`
  when Windows rejects an over-long directory (WinError 206).
- Explicit failure: raises `FileNotFoundError` if the library does not exist.
"""

from __future__ import annotations

import ctypes
import logging
import os
import sys
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_VAR = "KEYSOLVER_CUDA_NATIVE"


def _default_library_path() -> Path:
    if sys.platform.startswith("win"):
        name = "keysolver_cuda_native.dll"
    elif sys.platform == "darwin":
        name = "libkeysolver_cuda_native.dylib"
    else:
        name = "libkeysolver_cuda_native.so"
    return Path(__file__).resolve().parent / "lib" / name


def native_library_path() -> Path:
    """Return the path the loader will try, honoring `KEYSOLVER_CUDA_NATIVE`."""
    override = os.environ.get(ENV_VAR, "")
    if override:
        return Path(override).expanduser().resolve()
    return _default_library_path()


def _add_dll_dir_or_path(dir_path: str) -> None:
    """
    Add a directory for DLL dependency resolution (Windows only).

    Non-existent or empty paths are ignored. WinError 206 falls back to a
    process-local PATH update; any other failure is re-raised.
    """
    if not dir_path or not os.path.isdir(dir_path):
        return
    try:
        os.add_dll_directory(dir_path)
    except OSError as e:
        if getattr(e, "winerror", None) == 206:
            cur = os.environ.get("PATH", "")
            parts = cur.split(os.pathsep) if cur else []
            if dir_path not in parts:
                os.environ["PATH"] = dir_path + os.pathsep + cur if cur else dir_path
        else:
            raise


@lru_cache(maxsize=1)
def load_keysolver_cuda_native() -> ctypes.CDLL:
    """
    Load and cache the keysolver CUDA kernel library.

    Returns
    -------
    ctypes.CDLL
        Loaded library handle.

    Raises
    ------
    FileNotFoundError
        If the library does not exist at the resolved path.
    OSError
        If the library (or one of its dependencies) fails to load.
    """
    p = native_library_path()
    if not p.exists():
        raise FileNotFoundError(f"keysolver CUDA native library not found at: {p}")

    if sys.platform.startswith("win"):
        cuda_path = os.environ.get("CUDA_PATH", "")
        if cuda_path:
            _add_dll_dir_or_path(os.path.join(cuda_path, "bin"))
        _add_dll_dir_or_path(str(p.parent))

    logger.info("Loading CUDA native library from %s", p)
    return ctypes.CDLL(str(p))


def cuda_native_available() -> bool:
    """Return True if the CUDA kernel library can be loaded in this process."""
    try:
        load_keysolver_cuda_native()
    except (FileNotFoundError, OSError):
        return False
    return True
