"""
Accelerator memory capability contract.

`IDeviceMemory` is the duck-typed interface a `SharedBuffer` uses to manage
its accelerator-side mirror. The concrete CUDA implementation lives in the
infrastructure layer; anything that provides these members (including test
doubles) can back a dual-resident buffer.

Design notes
------------
- Device pointers are plain ints (uintptr_t handles), 0 meaning "none".
- All calls are synchronous: a copy returns only after the transfer is done.
- Failures raise `AcceleratorRuntimeError`; `malloc` is the only call whose
  failure the buffer converts into a boolean result.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

DevPtr = int


@runtime_checkable
class IDeviceMemory(Protocol):
    """
    Structural contract for an accelerator memory space.

    Notes
    -----
    `lib` exposes the native library handle when kernels can be launched on
    this memory space; implementations that only manage memory may set it to
    None.
    """

    lib: object

    def malloc(self, nbytes: int) -> DevPtr: ...
    def free(self, dev_ptr: DevPtr) -> None: ...
    def memcpy_htod(self, dst_dev: DevPtr, src_host: np.ndarray) -> None: ...
    def memcpy_dtoh(self, dst_host: np.ndarray, src_dev: DevPtr) -> None: ...
    def memset(self, dev_ptr: DevPtr, value: int, nbytes: int) -> None: ...
    def synchronize(self) -> None: ...
