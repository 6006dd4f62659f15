"""
ctypes bindings for dualdnn CUDA memory management.

Exports expected in the native library:
- dualdnn_cuda_set_device
- dualdnn_cuda_malloc / dualdnn_cuda_free
- dualdnn_cuda_memcpy_h2d / dualdnn_cuda_memcpy_d2h
- dualdnn_cuda_memset
- dualdnn_cuda_synchronize
- dualdnn_cuda_last_error_string

Every export returns an int status (0 on success). Non-zero statuses are
turned into `AcceleratorRuntimeError` carrying the CUDA runtime's message.

Assumptions
-----------
- Device pointers are uintptr_t handles (Python int).
- Host arrays are C-contiguous NumPy arrays; copies move `arr.nbytes` bytes.
- All calls block until the device has finished the transfer.
"""

from __future__ import annotations

import ctypes
from ctypes import c_char_p, c_int, c_size_t, c_uint64, c_void_p
from typing import Optional

import numpy as np

from ....domain._errors import AcceleratorRuntimeError

DevPtr = int


class CudaMemoryLib:
    """
    Thin binding layer around the memory exports of the native library.

    Binding of `argtypes`/`restype` happens once per wrapper and is
    idempotent. The wrapper never owns device pointers; callers free what
    they allocate.
    """

    def __init__(self, lib: ctypes.CDLL) -> None:
        self.lib = lib
        self._bound = False

    def _bind(self) -> None:
        if self._bound:
            return

        lib = self.lib
        lib.dualdnn_cuda_set_device.argtypes = [c_int]
        lib.dualdnn_cuda_set_device.restype = c_int

        lib.dualdnn_cuda_malloc.argtypes = [ctypes.POINTER(c_uint64), c_size_t]
        lib.dualdnn_cuda_malloc.restype = c_int

        lib.dualdnn_cuda_free.argtypes = [c_uint64]
        lib.dualdnn_cuda_free.restype = c_int

        lib.dualdnn_cuda_memcpy_h2d.argtypes = [c_uint64, c_void_p, c_size_t]
        lib.dualdnn_cuda_memcpy_h2d.restype = c_int

        lib.dualdnn_cuda_memcpy_d2h.argtypes = [c_void_p, c_uint64, c_size_t]
        lib.dualdnn_cuda_memcpy_d2h.restype = c_int

        lib.dualdnn_cuda_memset.argtypes = [c_uint64, c_int, c_size_t]
        lib.dualdnn_cuda_memset.restype = c_int

        lib.dualdnn_cuda_synchronize.argtypes = []
        lib.dualdnn_cuda_synchronize.restype = c_int

        lib.dualdnn_cuda_last_error_string.argtypes = []
        lib.dualdnn_cuda_last_error_string.restype = c_char_p

        self._bound = True

    def last_error(self) -> Optional[str]:
        """Return the native library's last CUDA error string, if any."""
        self._bind()
        raw = self.lib.dualdnn_cuda_last_error_string()
        return raw.decode("utf-8", errors="replace") if raw else None

    def check(self, op: str, status: int) -> None:
        """Raise `AcceleratorRuntimeError` for a non-zero native status."""
        if status != 0:
            raise AcceleratorRuntimeError(op, status, self.last_error())

    def set_device(self, device: int = 0) -> None:
        self._bind()
        st = self.lib.dualdnn_cuda_set_device(int(device))
        self.check("dualdnn_cuda_set_device", st)

    def malloc(self, nbytes: int) -> DevPtr:
        """
        Allocate `nbytes` of device memory.

        Raises
        ------
        AcceleratorRuntimeError
            If the allocation fails or returns a null pointer.
        """
        self._bind()
        out = c_uint64(0)
        st = self.lib.dualdnn_cuda_malloc(ctypes.byref(out), c_size_t(int(nbytes)))
        self.check("dualdnn_cuda_malloc", st)
        if out.value == 0 and int(nbytes) > 0:
            raise AcceleratorRuntimeError(
                "dualdnn_cuda_malloc", -1, "allocation returned a null device pointer"
            )
        return int(out.value)

    def free(self, dev_ptr: DevPtr) -> None:
        self._bind()
        st = self.lib.dualdnn_cuda_free(c_uint64(int(dev_ptr)))
        self.check("dualdnn_cuda_free", st)

    def memcpy_h2d(self, dst_dev: DevPtr, src_host: np.ndarray) -> None:
        self._bind()
        if not src_host.flags["C_CONTIGUOUS"]:
            src_host = np.ascontiguousarray(src_host)
        st = self.lib.dualdnn_cuda_memcpy_h2d(
            c_uint64(int(dst_dev)),
            c_void_p(int(src_host.ctypes.data)),
            c_size_t(int(src_host.nbytes)),
        )
        self.check("dualdnn_cuda_memcpy_h2d", st)

    def memcpy_d2h(self, dst_host: np.ndarray, src_dev: DevPtr) -> None:
        self._bind()
        if not dst_host.flags["C_CONTIGUOUS"]:
            raise ValueError("dst_host must be C-contiguous")
        st = self.lib.dualdnn_cuda_memcpy_d2h(
            c_void_p(int(dst_host.ctypes.data)),
            c_uint64(int(src_dev)),
            c_size_t(int(dst_host.nbytes)),
        )
        self.check("dualdnn_cuda_memcpy_d2h", st)

    def memset(self, dev_ptr: DevPtr, value: int, nbytes: int) -> None:
        self._bind()
        st = self.lib.dualdnn_cuda_memset(
            c_uint64(int(dev_ptr)), c_int(int(value)), c_size_t(int(nbytes))
        )
        self.check("dualdnn_cuda_memset", st)

    def synchronize(self) -> None:
        self._bind()
        self.check("dualdnn_cuda_synchronize", self.lib.dualdnn_cuda_synchronize())


# ---------------------------------------------------------------------
# Functional API
# ---------------------------------------------------------------------

_memory_singleton: CudaMemoryLib | None = None


def get_memory_lib(lib: ctypes.CDLL) -> CudaMemoryLib:
    """
    Return a cached `CudaMemoryLib` wrapper for a given `ctypes.CDLL`.

    This avoids repeating argtype binding on every call.
    """
    global _memory_singleton
    if _memory_singleton is None or _memory_singleton.lib is not lib:
        _memory_singleton = CudaMemoryLib(lib)
    return _memory_singleton


def cuda_set_device(lib: ctypes.CDLL, device: int = 0) -> None:
    get_memory_lib(lib).set_device(device)


def cuda_malloc(lib: ctypes.CDLL, nbytes: int) -> DevPtr:
    return get_memory_lib(lib).malloc(nbytes)


def cuda_free(lib: ctypes.CDLL, dev_ptr: DevPtr) -> None:
    get_memory_lib(lib).free(dev_ptr)


def cuda_memcpy_h2d(lib: ctypes.CDLL, dst_dev: DevPtr, src_host: np.ndarray) -> None:
    get_memory_lib(lib).memcpy_h2d(dst_dev, src_host)


def cuda_memcpy_d2h(lib: ctypes.CDLL, dst_host: np.ndarray, src_dev: DevPtr) -> None:
    get_memory_lib(lib).memcpy_d2h(dst_host, src_dev)


def cuda_memset(lib: ctypes.CDLL, dev_ptr: DevPtr, value: int, nbytes: int) -> None:
    get_memory_lib(lib).memset(dev_ptr, value, nbytes)


def cuda_synchronize(lib: ctypes.CDLL) -> None:
    get_memory_lib(lib).synchronize()
