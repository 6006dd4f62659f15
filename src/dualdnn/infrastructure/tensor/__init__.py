from ._device_memory import CudaDeviceMemory, resolve_device_memory
from ._random import RandomNumberGenerator
from ._shared_buffer import BufferState, SharedBuffer
from ._tensor import Tensor

__all__ = [
    BufferState.__name__,
    CudaDeviceMemory.__name__,
    RandomNumberGenerator.__name__,
    SharedBuffer.__name__,
    Tensor.__name__,
    resolve_device_memory.__name__,
]
