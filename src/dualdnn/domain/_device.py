"""
Device abstraction utilities.

This module defines lightweight descriptors for the device a tensor targets:

- `DeviceType`: the category of device (host CPU or CUDA accelerator)
- `Device`: a validated, normalized device descriptor parsed from strings
  such as "cpu" or "cuda:0"

The device target decides which memory spaces a tensor's storage spans. CPU
tensors live in host memory only; CUDA tensors are dual-resident, mirrored in
host memory and in accelerator memory, and additionally carry a layout
descriptor.
"""

from __future__ import annotations

from enum import Enum
import re
from typing import Union


class DeviceType(Enum):
    """
    Enumeration of supported device categories.

    Attributes
    ----------
    CPU : DeviceType
        Host processor; storage lives in host memory only.
    CUDA : DeviceType
        NVIDIA CUDA accelerator; storage is mirrored host + device.
    """

    CPU = "cpu"
    CUDA = "cuda"


class Device:
    """
    Concrete computation device descriptor.

    Parameters
    ----------
    device : str
        Device identifier string. Must be either:
        - "cpu"
        - "cuda" (shorthand for "cuda:0")
        - "cuda:<index>", where <index> is a non-negative integer

    Raises
    ------
    ValueError
        If the provided device string does not match the supported formats.

    Notes
    -----
    `__slots__` keeps the descriptor small and prevents dynamic attributes;
    the descriptor never allocates backend resources.
    """

    __slots__ = ("type", "index")

    _CUDA_PATTERN = re.compile(r"^cuda(?::(\d+))?$")

    def __init__(self, device: str):
        if device == "cpu":
            self.type = DeviceType.CPU
            self.index = None
            return

        m = self._CUDA_PATTERN.match(device)
        if not m:
            raise ValueError(
                f"Invalid device '{device}'. Expected 'cpu' or 'cuda:<index>'"
            )
        self.type = DeviceType.CUDA
        self.index = int(m.group(1) or 0)

    @classmethod
    def coerce(cls, device: Union["Device", str]) -> "Device":
        """Return `device` unchanged if it already is a Device, else parse it."""
        if isinstance(device, Device):
            return device
        return cls(str(device))

    def __str__(self) -> str:
        return "cpu" if self.type is DeviceType.CPU else f"cuda:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, str):
            try:
                other = Device(other)
            except ValueError:
                return False
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_cpu(self) -> bool:
        return self.type is DeviceType.CPU

    def is_cuda(self) -> bool:
        return self.type is DeviceType.CUDA

    def requires_accelerator(self) -> bool:
        """
        Whether tensors on this device need an accelerator-side mirror and a
        layout descriptor.

        Returns
        -------
        bool
            True for CUDA devices, False for the host CPU.
        """
        return self.is_cuda()
