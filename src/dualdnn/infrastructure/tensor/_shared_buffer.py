"""
Reference-counted, dual-resident storage.

This module defines `SharedBuffer`, the storage primitive behind every
`Tensor`. A buffer is a handle onto a `_Storage` object that owns

- a host allocation (a zero-initialized `uint8` NumPy array), and
- optionally, an accelerator allocation obtained from an `IDeviceMemory`.

Core concepts
-------------
- **Sharing**:
    Copying a handle (`share()`, `copy.copy`, `assign()`) aliases the same
    storage and increments its reference count. Bytes are never duplicated;
    a write through one alias is visible through all of them.

- **Lifetime**:
    Each handle releases its reference exactly once, either explicitly via
    `clear()` or when the handle is garbage-collected. Device memory is freed
    when the count reaches zero; a `weakref.finalize` on the storage is the
    safety net for storage that is dropped without reaching zero.

- **Residency**:
    Host and device mirrors are never kept consistent automatically. Every
    buffer carries a `BufferState` so stale mirrors are visible:

        UNALLOCATED ──alloc──> HOST_ONLY            (host-only buffers)
        UNALLOCATED ──alloc──> BOTH_DIVERGED        (mirrored buffers)
        host write   : BOTH_SYNCED/HOST_ONLY -> HOST_ONLY,
                       ACCELERATOR_ONLY/BOTH_DIVERGED -> BOTH_DIVERGED
        device write : BOTH_SYNCED/ACCELERATOR_ONLY -> ACCELERATOR_ONLY,
                       HOST_ONLY/BOTH_DIVERGED -> BOTH_DIVERGED
        copy_from_host_to_device / copy_from_device_to_host -> BOTH_SYNCED

  The state lives on the shared storage, so all aliases observe the same
  value.

Thread safety
-------------
Reference count updates are protected by a lock. Reads and writes of the
bytes themselves are not synchronized.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import threading
from typing import Optional
import weakref

import numpy as np

from ...domain._device_memory import DevPtr, IDeviceMemory
from ...domain._errors import AcceleratorRuntimeError


class BufferState(Enum):
    """Residency of a buffer's contents across host and accelerator."""

    UNALLOCATED = "unallocated"
    HOST_ONLY = "host_only"
    ACCELERATOR_ONLY = "accelerator_only"
    BOTH_SYNCED = "both_synced"
    BOTH_DIVERGED = "both_diverged"


_AFTER_HOST_WRITE = {
    BufferState.BOTH_SYNCED: BufferState.HOST_ONLY,
    BufferState.HOST_ONLY: BufferState.HOST_ONLY,
    BufferState.ACCELERATOR_ONLY: BufferState.BOTH_DIVERGED,
    BufferState.BOTH_DIVERGED: BufferState.BOTH_DIVERGED,
}

_AFTER_DEVICE_WRITE = {
    BufferState.BOTH_SYNCED: BufferState.ACCELERATOR_ONLY,
    BufferState.ACCELERATOR_ONLY: BufferState.ACCELERATOR_ONLY,
    BufferState.HOST_ONLY: BufferState.BOTH_DIVERGED,
    BufferState.BOTH_DIVERGED: BufferState.BOTH_DIVERGED,
}


@dataclass
class _Storage:
    """
    One allocation, mirrored in host memory and optionally on the accelerator.

    The storage frees its device pointer exactly once: deterministically when
    `_refcnt` reaches zero, or through the GC-time finalizer otherwise.
    """

    host: np.ndarray
    nbytes: int
    memory: Optional[IDeviceMemory] = None
    dev_ptr: DevPtr = 0
    state: BufferState = BufferState.HOST_ONLY

    _refcnt: int = 1
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _finalizer: Optional[weakref.finalize] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        memory = self.memory
        dev_ptr = int(self.dev_ptr)

        def _free_ptr() -> None:
            # Never raise in finalizers
            try:
                memory.free(dev_ptr)
            except Exception:
                pass

        if memory is not None and dev_ptr != 0:
            self._finalizer = weakref.finalize(self, _free_ptr)

    @property
    def ref_count(self) -> int:
        return self._refcnt

    def incref(self) -> None:
        with self._lock:
            self._refcnt += 1

    def decref(self) -> None:
        """
        Drop one reference; free the device allocation when none remain.

        After the last reference is gone the storage is logically invalid:
        the device pointer is zeroed and the host array is dropped.
        """
        with self._lock:
            self._refcnt -= 1
            if self._refcnt == 0:
                if self._finalizer is not None and self._finalizer.alive:
                    self._finalizer()
                self.dev_ptr = 0
                self.nbytes = 0
                self.host = np.empty(0, dtype=np.uint8)
                self.state = BufferState.UNALLOCATED


class SharedBuffer:
    """
    Handle onto reference-counted, optionally dual-resident storage.

    Parameters
    ----------
    memory : Optional[IDeviceMemory]
        Accelerator memory space to mirror into. None makes a host-only
        buffer.

    Notes
    -----
    - `alloc` is all-or-nothing: if the device allocation fails the host
      allocation is dropped too and the handle stays unallocated.
    - Allocation failures are reported as `False`; failing copies raise
      `AcceleratorRuntimeError`.
    """

    def __init__(self, memory: Optional[IDeviceMemory] = None) -> None:
        self._memory = memory
        self._storage: Optional[_Storage] = None
        self._release: Optional[weakref.finalize] = None

    # ------------------------------------------------------------------
    # ownership
    # ------------------------------------------------------------------

    def _attach(self, storage: Optional[_Storage]) -> None:
        self._storage = storage
        self._release = (
            weakref.finalize(self, storage.decref) if storage is not None else None
        )

    def share(self) -> "SharedBuffer":
        """Return a new handle aliasing this buffer's storage."""
        other = SharedBuffer(self._memory)
        if self._storage is not None:
            self._storage.incref()
            other._attach(self._storage)
        return other

    def __copy__(self) -> "SharedBuffer":
        return self.share()

    def assign(self, other: "SharedBuffer") -> None:
        """Release this handle's storage and alias `other`'s instead."""
        if other is self or other._storage is self._storage:
            return
        if other._storage is not None:
            other._storage.incref()
        self.clear()
        self._memory = other._memory
        self._attach(other._storage)

    def clear(self) -> None:
        """
        Release this handle's reference. Idempotent.

        Storage shared with other handles stays alive until the last of them
        is cleared.
        """
        if self._release is not None:
            self._release()
        self._storage = None
        self._release = None

    # ------------------------------------------------------------------
    # allocation
    # ------------------------------------------------------------------

    def alloc(self, nbytes: int) -> bool:
        """
        Allocate `nbytes` in every memory space this buffer spans.

        Prior storage is released first.

        Returns
        -------
        bool
            True on success; False for `nbytes <= 0` or when either
            allocation fails.
        """
        nbytes = int(nbytes)
        if nbytes <= 0:
            return False

        self.clear()

        try:
            host = np.zeros(nbytes, dtype=np.uint8)
        except MemoryError:
            return False

        if self._memory is None:
            self._attach(_Storage(host=host, nbytes=nbytes))
            return True

        try:
            dev_ptr = int(self._memory.malloc(nbytes))
        except (AcceleratorRuntimeError, MemoryError):
            return False

        self._attach(
            _Storage(
                host=host,
                nbytes=nbytes,
                memory=self._memory,
                dev_ptr=dev_ptr,
                state=BufferState.BOTH_DIVERGED,
            )
        )
        return True

    # ------------------------------------------------------------------
    # properties
    # ------------------------------------------------------------------

    @property
    def memory(self) -> Optional[IDeviceMemory]:
        return self._memory

    @property
    def has_accelerator_mirror(self) -> bool:
        return self._memory is not None

    @property
    def is_allocated(self) -> bool:
        return self._storage is not None and self._storage.nbytes > 0

    @property
    def state(self) -> BufferState:
        if self._storage is None:
            return BufferState.UNALLOCATED
        return self._storage.state

    @property
    def ref_count(self) -> int:
        return 0 if self._storage is None else self._storage.ref_count

    @property
    def device_ptr(self) -> DevPtr:
        return 0 if self._storage is None else int(self._storage.dev_ptr)

    def size_in_byte(self) -> int:
        return 0 if self._storage is None else int(self._storage.nbytes)

    def shares_storage_with(self, other: "SharedBuffer") -> bool:
        return self._storage is not None and self._storage is other._storage

    def host_view(self, dtype=np.uint8) -> np.ndarray:
        """
        Typed, writable view over the host mirror.

        Raises
        ------
        RuntimeError
            If the buffer is not allocated.
        """
        storage = self._require_storage("host_view")
        return storage.host.view(np.dtype(dtype))

    # ------------------------------------------------------------------
    # residency
    # ------------------------------------------------------------------

    def _require_storage(self, op: str) -> _Storage:
        if not self.is_allocated:
            raise RuntimeError(f"SharedBuffer.{op}() called before alloc()")
        return self._storage

    def mark_host_dirty(self) -> None:
        """Record that host bytes were written since the last sync."""
        storage = self._require_storage("mark_host_dirty")
        if self._memory is None:
            storage.state = BufferState.HOST_ONLY
        else:
            storage.state = _AFTER_HOST_WRITE.get(storage.state, storage.state)

    def mark_device_dirty(self) -> None:
        """Record that device bytes were written since the last sync."""
        storage = self._require_storage("mark_device_dirty")
        if self._memory is not None:
            storage.state = _AFTER_DEVICE_WRITE.get(storage.state, storage.state)

    def copy_from_host_to_device(self) -> None:
        """
        Push the host mirror to the accelerator (blocking).

        No-op on host-only buffers.
        """
        storage = self._require_storage("copy_from_host_to_device")
        if self._memory is None:
            return
        self._memory.memcpy_htod(storage.dev_ptr, storage.host)
        storage.state = BufferState.BOTH_SYNCED

    def copy_from_device_to_host(self) -> None:
        """
        Pull the accelerator mirror into host memory (blocking).

        No-op on host-only buffers.
        """
        storage = self._require_storage("copy_from_device_to_host")
        if self._memory is None:
            return
        self._memory.memcpy_dtoh(storage.host, storage.dev_ptr)
        storage.state = BufferState.BOTH_SYNCED

    def __repr__(self) -> str:
        return (
            f"SharedBuffer(nbytes={self.size_in_byte()}, state={self.state.value}, "
            f"ref_count={self.ref_count}, dev_ptr={self.device_ptr})"
        )
