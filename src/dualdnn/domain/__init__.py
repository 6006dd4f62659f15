from ._descriptor import MIN_DESCRIPTOR_DIMS, TensorDescriptor, compute_descriptor
from ._device import Device, DeviceType
from ._device_memory import DevPtr, IDeviceMemory
from ._errors import (
    AcceleratorRuntimeError,
    DeviceMismatchError,
    DeviceNotSupportedError,
)
from ._shape import Shape, ShapeLike
from ._tensor import ITensor

__all__ = [
    "AcceleratorRuntimeError",
    "DevPtr",
    "Device",
    "DeviceMismatchError",
    "DeviceNotSupportedError",
    "DeviceType",
    "IDeviceMemory",
    "ITensor",
    "MIN_DESCRIPTOR_DIMS",
    "Shape",
    "ShapeLike",
    "TensorDescriptor",
    "compute_descriptor",
]
