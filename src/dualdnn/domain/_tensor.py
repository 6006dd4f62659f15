"""
Tensor interface definitions.

This module defines the domain-level interface for dual-resident tensors using
structural typing, so kernels and loss entry points can be typed against the
tensor surface without importing the concrete NumPy/CUDA implementation.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, Union, runtime_checkable

import numpy as np

from ._descriptor import TensorDescriptor
from ._device import Device
from ._shape import Shape, ShapeLike

Number = Union[int, float]


@runtime_checkable
class ITensor(Protocol):
    """
    Dual-resident tensor interface.

    A tensor couples a logical `Shape`, a display name, a device target and a
    shared storage buffer. Element access works on host storage; accelerator
    kernels read the device mirror through raw handles and a layout
    descriptor.
    """

    @property
    def shape(self) -> Shape: ...

    @property
    def name(self) -> str: ...

    @property
    def device(self) -> Device: ...

    @property
    def dtype(self) -> np.dtype: ...

    @property
    def gpu_descriptor(self) -> Optional[TensorDescriptor]: ...

    def init(self, values: Optional[Sequence[Number]] = None) -> bool: ...
    def reshape(self, new_shape: ShapeLike) -> bool: ...
    def randomize(self, rng=None) -> None: ...
    def clear(self) -> None: ...
    def size_in_byte(self) -> int: ...
    def numel(self) -> int: ...
    def copy_from_host_to_device(self) -> None: ...
    def copy_from_device_to_host(self) -> None: ...
    def cpu_data_handle(self) -> np.ndarray: ...
    def gpu_data_handle(self) -> int: ...
    def mark_host_dirty(self) -> None: ...
    def mark_device_dirty(self) -> None: ...
    def __getitem__(self, index: int) -> Number: ...
    def __setitem__(self, index: int, value: Number) -> None: ...
