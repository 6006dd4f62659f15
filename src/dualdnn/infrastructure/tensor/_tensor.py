"""
Concrete dual-resident Tensor implementation.

This module provides `Tensor`, which couples

- a logical `Shape` (fastest-varying extent first) and a display name,
- a `Device` target deciding which memory spaces storage spans,
- a `SharedBuffer` that may be aliased by other tensors, and
- for accelerator devices, a layout descriptor slot tied 1:1 to the tensor.

Design notes
------------
- Construction never allocates; `init()` does (release-then-allocate).
- Element access is bounds-checked and always targets the host mirror.
  Writes mark the host mirror dirty; callers push explicitly with
  `copy_from_host_to_device()` before a kernel reads the device mirror.
- The accelerator memory strategy is chosen at construction (`memory=`) or
  resolved from the device on first allocation.
- Every shape mutation invalidates the layout descriptor. It is recomputed
  lazily the next time `gpu_descriptor` is read, so kernels dispatched after
  a reshape never see a stale layout.
- NumPy interop (`to_numpy`, `copy_from_numpy`) uses the reversed extents,
  since NumPy lists the slowest-varying dimension first.
"""

from __future__ import annotations

import operator
from typing import Optional, Sequence, Union
import warnings

import numpy as np

from ...domain._descriptor import TensorDescriptor
from ...domain._device import Device
from ...domain._device_memory import DevPtr, IDeviceMemory
from ...domain._errors import DeviceMismatchError
from ...domain._shape import Shape, ShapeLike
from ._device_memory import resolve_device_memory
from ._random import RandomNumberGenerator
from ._shared_buffer import BufferState, SharedBuffer

Number = Union[int, float]


class _LayoutDescriptor:
    """
    Accelerator layout descriptor owned by exactly one tensor.

    The descriptor is created with its tensor and invalidated on every shape
    mutation; `get()` recomputes it on demand.
    """

    __slots__ = ("_cached",)

    def __init__(self) -> None:
        self._cached: Optional[TensorDescriptor] = None

    def invalidate(self) -> None:
        self._cached = None

    @property
    def is_stale(self) -> bool:
        return self._cached is None

    def get(self, shape: Shape, dtype: np.dtype) -> TensorDescriptor:
        if self._cached is None:
            self._cached = TensorDescriptor.from_shape(shape, dtype)
        return self._cached


class Tensor:
    """
    Device-abstracted tensor backed by a shared, dual-resident buffer.

    Parameters
    ----------
    shape : ShapeLike, optional
        Logical shape, fastest-varying extent first. Defaults to an empty
        shape.
    name : str, optional
        Display name. Defaults to "no_name".
    device : Device or str, optional
        Target device ("cpu" or "cuda:<index>"). Defaults to CPU.
    dtype : np.dtype, optional
        Element dtype. Defaults to np.float32.
    memory : Optional[IDeviceMemory], optional
        Accelerator memory space for accelerator devices. Resolved from
        `device` on first allocation when omitted. Ignored for CPU tensors.

    Notes
    -----
    Copy construction (`Tensor.from_tensor`, `copy.copy`) and `assign`
    alias storage: they never duplicate bytes.
    """

    def __init__(
        self,
        shape: ShapeLike = (),
        name: str = "no_name",
        *,
        device: Union[Device, str] = "cpu",
        dtype=np.float32,
        memory: Optional[IDeviceMemory] = None,
    ) -> None:
        self._shape = Shape(shape)
        self._name = str(name)
        self._device = Device.coerce(device)
        self._dtype = np.dtype(dtype)
        self._memory = memory if self._device.requires_accelerator() else None
        self._buffer = SharedBuffer(self._memory)
        self._descriptor = (
            _LayoutDescriptor() if self._device.requires_accelerator() else None
        )

    @classmethod
    def from_tensor(cls, other: "Tensor") -> "Tensor":
        """
        Copy-construct a tensor that aliases `other`'s storage.

        Shape, name, device and dtype are copied; the buffer is shared.
        """
        t = cls(
            other._shape,
            other._name,
            device=other._device,
            dtype=other._dtype,
            memory=other._memory,
        )
        t._buffer = other._buffer.share()
        return t

    def __copy__(self) -> "Tensor":
        return Tensor.from_tensor(self)

    def assign(self, other: "Tensor") -> None:
        """
        Make this tensor alias `other`: copy shape and name, share storage.

        Raises
        ------
        DeviceMismatchError
            If the tensors target different devices.
        TypeError
            If the tensors have different dtypes.
        """
        if other is self:
            return
        if other._device != self._device:
            raise DeviceMismatchError(str(self._device), str(other._device))
        if other._dtype != self._dtype:
            raise TypeError(
                f"cannot assign a {other._dtype} tensor to a {self._dtype} tensor"
            )
        self._shape = other._shape
        self._name = other._name
        self._memory = other._memory
        self._buffer.assign(other._buffer)
        self._invalidate_descriptor()

    # ------------------------------------------------------------------
    # metadata
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def name(self) -> str:
        return self._name

    @property
    def device(self) -> Device:
        return self._device

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def memory(self) -> Optional[IDeviceMemory]:
        """Accelerator memory space, or None for host-only tensors."""
        return self._memory

    @property
    def buffer(self) -> SharedBuffer:
        return self._buffer

    @property
    def state(self) -> BufferState:
        return self._buffer.state

    @property
    def is_initialized(self) -> bool:
        return self._buffer.is_allocated

    def numel(self) -> int:
        return self._shape.size()

    def size_in_byte(self) -> int:
        return self._buffer.size_in_byte()

    @property
    def gpu_descriptor(self) -> Optional[TensorDescriptor]:
        """
        Layout descriptor for the current shape (accelerator devices only).

        Returns
        -------
        Optional[TensorDescriptor]
            The descriptor, recomputed if the shape changed since it was last
            read; None on host-only devices.
        """
        if self._descriptor is None:
            return None
        return self._descriptor.get(self._shape, self._dtype)

    def _invalidate_descriptor(self) -> None:
        if self._descriptor is not None:
            self._descriptor.invalidate()

    # ------------------------------------------------------------------
    # allocation
    # ------------------------------------------------------------------

    def _resolve_memory(self) -> Optional[IDeviceMemory]:
        if self._device.requires_accelerator() and self._memory is None:
            self._memory = resolve_device_memory(self._device)
        return self._memory

    def init(self, values: Optional[Sequence[Number]] = None) -> bool:
        """
        Allocate storage, optionally filling it from `values`.

        Any previously held storage is released first (other tensors sharing
        it keep it alive).

        Parameters
        ----------
        values : Optional[Sequence[Number]]
            Initial values in flat order. The first `min(len(values), numel)`
            elements are copied; extra values are discarded and missing ones
            stay zero. A length mismatch emits a RuntimeWarning.

        Returns
        -------
        bool
            False if the shape holds no elements or allocation failed.

        Raises
        ------
        ValueError
            If `values` cannot be converted to the tensor dtype. The tensor
            keeps its previous storage.
        """
        flat = None
        if values is not None:
            flat = np.asarray(values, dtype=self._dtype).reshape(-1)

        size = self._shape.size()
        self._buffer.clear()
        self._invalidate_descriptor()
        if size == 0:
            return False

        self._buffer = SharedBuffer(self._resolve_memory())
        if not self._buffer.alloc(size * self._dtype.itemsize):
            return False

        if flat is None:
            return True

        if flat.size != size:
            outcome = "extra values were discarded"
            if flat.size < size:
                outcome = "the remaining elements stay zero"
            warnings.warn(
                f"Tensor '{self._name}': init() got {flat.size} values for "
                f"{size} elements; {outcome}",
                RuntimeWarning,
                stacklevel=2,
            )
        n = min(flat.size, size)
        self.cpu_data_handle()[:n] = flat[:n]
        self._buffer.mark_host_dirty()
        self.copy_from_host_to_device()
        return True

    def clear(self) -> None:
        """Release shared storage. The tensor keeps its shape."""
        self._buffer.clear()

    def randomize(self, rng=None) -> None:
        """
        Overwrite every element from a per-dtype random source, then push.

        Parameters
        ----------
        rng : optional
            Random source. Objects with a `fill(array)` method fill in bulk;
            otherwise `get_random(dtype)` is called once per element.
            Defaults to the process-wide `RandomNumberGenerator`.
        """
        if rng is None:
            rng = RandomNumberGenerator.get_singleton()

        host = self.cpu_data_handle()
        fill = getattr(rng, "fill", None)
        if callable(fill):
            fill(host)
        else:
            for i in range(host.size):
                host[i] = rng.get_random(self._dtype)

        self._buffer.mark_host_dirty()
        self.copy_from_host_to_device()

    def reshape(self, new_shape: ShapeLike) -> bool:
        """
        Change the logical shape without touching storage.

        Returns
        -------
        bool
            True if the element count is preserved; otherwise False and the
            tensor is left unchanged.
        """
        new_shape = Shape(new_shape)
        if new_shape.size() != self._shape.size():
            return False
        self._shape = new_shape
        self._invalidate_descriptor()
        return True

    # ------------------------------------------------------------------
    # host / device synchronization
    # ------------------------------------------------------------------

    def copy_from_host_to_device(self) -> None:
        self._buffer.copy_from_host_to_device()

    def copy_from_device_to_host(self) -> None:
        self._buffer.copy_from_device_to_host()

    def mark_host_dirty(self) -> None:
        self._buffer.mark_host_dirty()

    def mark_device_dirty(self) -> None:
        self._buffer.mark_device_dirty()

    def cpu_data_handle(self) -> np.ndarray:
        """
        Flat, writable view of the host mirror.

        Raises
        ------
        RuntimeError
            If the tensor has not been initialized.
        """
        if not self._buffer.is_allocated:
            raise RuntimeError(f"Tensor '{self._name}' is not initialized")
        return self._buffer.host_view(self._dtype)[: self._shape.size()]

    def gpu_data_handle(self) -> DevPtr:
        """Device pointer of the accelerator mirror (0 if there is none)."""
        return self._buffer.device_ptr

    # ------------------------------------------------------------------
    # element access
    # ------------------------------------------------------------------

    def _check_index(self, index) -> int:
        i = operator.index(index)
        size = self._shape.size()
        if i < 0 or i >= size:
            raise IndexError(
                f"index {i} out of range for tensor '{self._name}' of size {size}"
            )
        return i

    def __getitem__(self, index: int) -> Number:
        i = self._check_index(index)
        return self.cpu_data_handle()[i].item()

    def __setitem__(self, index: int, value: Number) -> None:
        i = self._check_index(index)
        self.cpu_data_handle()[i] = value
        self._buffer.mark_host_dirty()

    def __len__(self) -> int:
        return self._shape.size()

    # ------------------------------------------------------------------
    # NumPy interop
    # ------------------------------------------------------------------

    def to_numpy(self) -> np.ndarray:
        """Copy of the host mirror shaped slowest-dimension first."""
        return self.cpu_data_handle().copy().reshape(self._shape.as_tuple()[::-1])

    def copy_from_numpy(self, arr) -> None:
        """
        Overwrite host storage with `arr` (C order) and push to the device.

        Raises
        ------
        ValueError
            If `arr` does not hold exactly `numel()` elements.
        """
        src = np.asarray(arr, dtype=self._dtype).reshape(-1)
        if src.size != self._shape.size():
            raise ValueError(
                f"copy_from_numpy expects {self._shape.size()} elements, got {src.size}"
            )
        self.cpu_data_handle()[:] = src
        self._buffer.mark_host_dirty()
        self.copy_from_host_to_device()

    def __str__(self) -> str:
        size = self._shape.size()
        if not self._buffer.is_allocated or size == 0:
            return f"{size} {{}}"
        values = ", ".join(str(v) for v in self.cpu_data_handle().tolist())
        return f"{size} {{{values}}}"

    def __repr__(self) -> str:
        return (
            f"Tensor(name={self._name!r}, shape={self._shape!r}, device={self._device}, "
            f"dtype={self._dtype}, state={self._buffer.state.value})"
        )
