"""
Device- and execution-related exceptions for dualdnn.

This module defines the runtime errors raised by tensor storage and kernel
dispatch. Recoverable conditions (allocation failure, incompatible reshape)
are reported as boolean results by the tensor API and therefore have no
exception type here; everything in this module is meant to propagate.
"""

from __future__ import annotations

from typing import Optional


class DeviceNotSupportedError(RuntimeError):
    """
    Raised when an operation is requested on a device backend that does not
    implement it.

    Attributes
    ----------
    op : str
        The name of the operation that was attempted (e.g., "softmax_log_loss").
    device : str
        String representation of the device on which the operation
        was attempted.
    """

    def __init__(self, op: str, device: str) -> None:
        super().__init__(f"{op} is not implemented for device '{device}'.")
        self.op = op
        self.device = device


class DeviceMismatchError(RuntimeError):
    """
    Raised when an operation is attempted between tensors on different devices.

    Kernels read raw storage of every operand from one memory space, so mixing
    a CPU tensor with a CUDA tensor without an explicit transfer is rejected.
    """

    def __init__(self, device_a: str, device_b: str) -> None:
        super().__init__(f"Device mismatch: '{device_a}' vs '{device_b}'.")
        self.device_a = device_a
        self.device_b = device_b


class AcceleratorRuntimeError(RuntimeError):
    """
    Raised when a native accelerator call reports a failure.

    The error is fatal for the operation that triggered it and carries the
    originating status code and, when the native library provides one, the
    runtime's error message.

    Attributes
    ----------
    op : str
        Native entry point that failed (e.g., "dualdnn_cuda_memcpy_h2d").
    status : int
        Non-zero status returned by the native call.
    detail : Optional[str]
        Native error string, if available.
    """

    def __init__(self, op: str, status: int, detail: Optional[str] = None) -> None:
        msg = f"{op} failed with status={status}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.op = op
        self.status = int(status)
        self.detail = detail
