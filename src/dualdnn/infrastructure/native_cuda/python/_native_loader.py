"""
Cached loader for the dualdnn CUDA native shared library.

The native library (built from `native_cuda/dualdnn_cuda_native/`) exports a
small C ABI for device memory management and the cost kernels. This module
resolves its location, makes CUDA runtime dependencies discoverable, and
returns a `ctypes.CDLL` handle that is shared by the whole process.

Resolution order
----------------
1. `DUALDNN_CUDA_NATIVE` environment variable (explicit file path).
2. The default build output inside the package:
   - Linux/macOS: `dualdnn_cuda_native/build/libdualdnn_cuda_native.so`
   - Windows:     `dualdnn_cuda_native/x64/Release/DualDNNCudaNative.dll`

Building
--------
    nvcc -O2 -shared -Xcompiler -fPIC \\
        -o build/libdualdnn_cuda_native.so dualdnn_cuda_native.cu

Platform notes
--------------
On Windows, `<CUDA_PATH>/bin` and the library's own folder are registered via
`os.add_dll_directory`; a WinError 206 (path too long) falls back to
prepending the directory onto `PATH` for the current process.
"""

from __future__ import annotations

import ctypes
import os
import sys
from functools import lru_cache
from pathlib import Path

ENV_NATIVE_PATH = "DUALDNN_CUDA_NATIVE"

_NATIVE_ROOT = Path(__file__).resolve().parents[1] / "dualdnn_cuda_native"


def default_native_path() -> Path:
    """Return the platform-specific default build output of the native library."""
    if sys.platform.startswith("win"):
        return _NATIVE_ROOT / "x64" / "Release" / "DualDNNCudaNative.dll"
    return _NATIVE_ROOT / "build" / "libdualdnn_cuda_native.so"


def resolve_native_path() -> Path:
    """
    Resolve the native library path, honouring `DUALDNN_CUDA_NATIVE`.

    Returns
    -------
    Path
        Absolute path to the shared library (not checked for existence).
    """
    override = os.environ.get(ENV_NATIVE_PATH, "")
    p = Path(override) if override else default_native_path()
    return p.resolve()


def _add_dll_dir_or_path(dir_path: str) -> None:
    """
    Register a directory for Windows DLL dependency resolution.

    Non-existent or empty paths are ignored. WinError 206 falls back to a
    process-local PATH update; any other OSError is re-raised.
    """
    if not dir_path or not os.path.isdir(dir_path):
        return

    try:
        os.add_dll_directory(dir_path)
    except OSError as e:
        if getattr(e, "winerror", None) != 206:
            raise
        cur = os.environ.get("PATH", "")
        parts = cur.split(os.pathsep) if cur else []
        if dir_path not in parts:
            os.environ["PATH"] = dir_path + os.pathsep + cur if cur else dir_path


@lru_cache(maxsize=1)
def load_dualdnn_cuda_native() -> ctypes.CDLL:
    """
    Load and cache the dualdnn CUDA native library.

    Returns
    -------
    ctypes.CDLL
        Loaded library handle.

    Raises
    ------
    FileNotFoundError
        If the resolved library path does not exist.
    OSError
        If the library (or one of its CUDA dependencies) fails to load.
    """
    p = resolve_native_path()
    if not p.exists():
        raise FileNotFoundError(f"dualdnn CUDA native library not found at: {p}")

    if sys.platform.startswith("win"):
        cuda_path = os.environ.get("CUDA_PATH", "")
        if cuda_path:
            _add_dll_dir_or_path(os.path.join(cuda_path, "bin"))
        _add_dll_dir_or_path(str(p.parent))

    return ctypes.CDLL(str(p))


def cuda_available() -> bool:
    """Return True if the native library can be loaded in this process."""
    try:
        load_dualdnn_cuda_native()
    except OSError:
        return False
    return True
