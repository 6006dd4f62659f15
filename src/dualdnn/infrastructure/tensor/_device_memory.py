"""
CUDA-backed accelerator memory space.

`CudaDeviceMemory` implements the domain `IDeviceMemory` contract on top of
the native library's memory exports. It pins every call to its device index,
so buffers for `cuda:1` never get allocated on `cuda:0` by accident.

`resolve_device_memory` is the single place that maps a `Device` to the
memory space its tensors mirror into; tensors call it lazily the first time
they allocate, so CPU-only programs never load the native library.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np

from ...domain._device import Device
from ...domain._device_memory import DevPtr, IDeviceMemory
from ...domain._errors import DeviceNotSupportedError
from ..native_cuda.python._native_loader import load_dualdnn_cuda_native
from ..native_cuda.python.memory_ctypes import get_memory_lib


class CudaDeviceMemory:
    """
    Memory space of a single CUDA device.

    Parameters
    ----------
    lib : ctypes.CDLL
        Loaded dualdnn CUDA native library.
    device_index : int
        CUDA ordinal all calls are issued against.
    """

    def __init__(self, lib, device_index: int = 0) -> None:
        self.lib = lib
        self.device_index = int(device_index)

    def _select(self):
        m = get_memory_lib(self.lib)
        m.set_device(self.device_index)
        return m

    def malloc(self, nbytes: int) -> DevPtr:
        return self._select().malloc(nbytes)

    def free(self, dev_ptr: DevPtr) -> None:
        if int(dev_ptr) == 0:
            return
        self._select().free(dev_ptr)

    def memcpy_htod(self, dst_dev: DevPtr, src_host: np.ndarray) -> None:
        self._select().memcpy_h2d(dst_dev, src_host)

    def memcpy_dtoh(self, dst_host: np.ndarray, src_dev: DevPtr) -> None:
        self._select().memcpy_d2h(dst_host, src_dev)

    def memset(self, dev_ptr: DevPtr, value: int, nbytes: int) -> None:
        self._select().memset(dev_ptr, value, nbytes)

    def synchronize(self) -> None:
        self._select().synchronize()

    def __repr__(self) -> str:
        return f"CudaDeviceMemory(device_index={self.device_index})"


_memory_by_index: Dict[int, CudaDeviceMemory] = {}


def resolve_device_memory(device: Device) -> Optional[IDeviceMemory]:
    """
    Return the accelerator memory space tensors on `device` mirror into.

    Parameters
    ----------
    device : Device
        Tensor device target.

    Returns
    -------
    Optional[IDeviceMemory]
        None for host-only devices, a cached `CudaDeviceMemory` otherwise.

    Raises
    ------
    DeviceNotSupportedError
        If the device needs an accelerator but the native CUDA library cannot
        be loaded.
    """
    if not device.requires_accelerator():
        return None

    index = int(device.index or 0)
    mem = _memory_by_index.get(index)
    if mem is None:
        try:
            lib = load_dualdnn_cuda_native()
        except OSError as e:
            raise DeviceNotSupportedError("allocate", str(device)) from e
        mem = CudaDeviceMemory(lib, index)
        _memory_by_index[index] = mem
    return mem
