"""
Tensor-level cost entry points with device dispatch.

This module exposes the two cost kernel pairs on `Tensor` operands:

- sigmoid cross entropy (per-element binary targets), and
- softmax log loss (one integer class index per sample).

Every entry point validates devices, dtypes and layouts, then dispatches:

- CPU tensors run the NumPy reference kernels on host storage and mark the
  output host-dirty.
- CUDA tensors run the native kernels on device pointers and mark the output
  device-dirty. Inputs must already be pushed to the device, and the caller
  pulls the output with `copy_from_device_to_host()` before reading it.

Layout: the fastest-varying extent of the prediction tensor is the vector
size; the remaining extents make up the batch.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from ..domain._errors import DeviceMismatchError, DeviceNotSupportedError
from .native_cuda.python.memory_ctypes import cuda_set_device
from .ops import cross_entropy_cpu as _cpu
from .tensor._tensor import Tensor


def _check_devices(op: str, first: Tensor, *others: Tensor) -> None:
    for t in others:
        if t.device != first.device:
            raise DeviceMismatchError(str(first.device), str(t.device))
    for t in (first, *others):
        if not t.is_initialized:
            raise RuntimeError(f"{op}: tensor '{t.name}' is not initialized")


def _check_same_layout(op: str, a: Tensor, b: Tensor) -> None:
    if a.shape != b.shape:
        raise ValueError(
            f"{op}: '{a.name}' has shape {a.shape!r} but '{b.name}' has {b.shape!r}"
        )


def _check_float(op: str, *tensors: Tensor) -> None:
    dtype = tensors[0].dtype
    if dtype not in (np.float32, np.float64):
        raise TypeError(f"{op} supports float32/float64 only, got {dtype}")
    for t in tensors[1:]:
        if t.dtype != dtype:
            raise TypeError(f"{op}: dtype mismatch {dtype} vs {t.dtype}")


def _layout(
    op: str,
    pred: Tensor,
    vector_size: Optional[int],
    batch_size: Optional[int],
) -> Tuple[int, int]:
    numel = pred.numel()
    if vector_size is None:
        vector_size = pred.shape[0] if pred.shape.dimension() else 0
    if batch_size is None:
        batch_size = numel // vector_size if vector_size else 0
    if int(vector_size) * int(batch_size) != numel:
        raise ValueError(
            f"{op}: vector_size={vector_size} x batch_size={batch_size} does not "
            f"match the {numel} elements of '{pred.name}'"
        )
    return int(vector_size), int(batch_size)


def _check_numel(op: str, t: Tensor, expected: int) -> None:
    if t.numel() != expected:
        raise ValueError(
            f"{op}: '{t.name}' must hold {expected} elements, got {t.numel()}"
        )


def _cuda_lib(op: str, t: Tensor):
    """
    Native library for `t`'s memory space, with `t`'s device made current.

    Kernel launches and the trailing synchronize run on the current device,
    so it is selected here before any launch.
    """
    lib = getattr(t.memory, "lib", None)
    if lib is None:
        raise DeviceNotSupportedError(op, str(t.device))
    cuda_set_device(lib, int(t.device.index or 0))
    return lib


def compute_sigmoid_cross_entropy_cost(
    input: Tensor,
    label: Tensor,
    cost: Tensor,
    *,
    label_vector_size: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> None:
    """
    Per-sample binary cross-entropy of `input` against `label`, into `cost`.

    Parameters
    ----------
    input : Tensor
        Predictions in (0, 1). Not checked.
    label : Tensor
        Binary targets, same shape as `input`.
    cost : Tensor
        Receives one value per batch element.
    label_vector_size, batch_size : Optional[int]
        Flat layout; inferred from `input.shape` when omitted.

    Raises
    ------
    DeviceMismatchError
        If the tensors are on different devices.
    ValueError
        If shapes are inconsistent.
    TypeError
        If dtypes are not a common float32/float64.
    """
    op = "sigmoid_cross_entropy"
    _check_devices(op, input, label, cost)
    _check_float(op, input, label, cost)
    _check_same_layout(op, input, label)
    n, b = _layout(op, input, label_vector_size, batch_size)
    _check_numel(op, cost, b)

    if input.device.is_cpu():
        _cpu.sigmoid_cross_entropy_cpu(
            input.cpu_data_handle(),
            label.cpu_data_handle(),
            cost.cpu_data_handle(),
            n,
            b,
        )
        cost.mark_host_dirty()
        return

    from .ops.cross_entropy_cuda import sigmoid_cross_entropy_cuda

    sigmoid_cross_entropy_cuda(
        _cuda_lib(op, input),
        input_dev=input.gpu_data_handle(),
        label_dev=label.gpu_data_handle(),
        cost_dev=cost.gpu_data_handle(),
        label_vector_size=n,
        batch_size=b,
        dtype=input.dtype,
    )
    cost.mark_device_dirty()


def compute_sigmoid_cross_entropy_derivative(
    input: Tensor,
    label: Tensor,
    input_grad: Tensor,
    *,
    label_vector_size: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> None:
    """Write `input - label` into `input_grad` (gradient w.r.t. the logits)."""
    op = "sigmoid_cross_entropy_derivative"
    _check_devices(op, input, label, input_grad)
    _check_float(op, input, label, input_grad)
    _check_same_layout(op, input, label)
    _check_same_layout(op, input, input_grad)
    n, b = _layout(op, input, label_vector_size, batch_size)

    if input.device.is_cpu():
        _cpu.sigmoid_cross_entropy_derivative_cpu(
            input.cpu_data_handle(),
            label.cpu_data_handle(),
            input_grad.cpu_data_handle(),
            n,
            b,
        )
        input_grad.mark_host_dirty()
        return

    from .ops.cross_entropy_cuda import sigmoid_cross_entropy_derivative_cuda

    sigmoid_cross_entropy_derivative_cuda(
        _cuda_lib(op, input),
        input_dev=input.gpu_data_handle(),
        label_dev=label.gpu_data_handle(),
        input_grad_dev=input_grad.gpu_data_handle(),
        label_vector_size=n,
        batch_size=b,
        dtype=input.dtype,
    )
    input_grad.mark_device_dirty()


def _check_label_indices(op: str, label: Tensor, batch_size: int) -> None:
    if not np.issubdtype(label.dtype, np.integer):
        raise TypeError(f"{op}: labels must be integer class indices, got {label.dtype}")
    if label.device.requires_accelerator() and label.dtype != np.uint32:
        raise TypeError(f"{op}: CUDA labels must be uint32, got {label.dtype}")
    _check_numel(op, label, batch_size)


def compute_softmax_log_loss_cost(
    output: Tensor,
    label: Tensor,
    cost: Tensor,
    *,
    vector_size: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> None:
    """
    Per-sample `-log(output[b, label[b]])` into `cost`.

    Parameters
    ----------
    output : Tensor
        Softmax probabilities, `vector_size` classes per sample.
    label : Tensor
        One integer class index per sample (uint32 on CUDA).
    cost : Tensor
        Receives one value per sample.
    """
    op = "softmax_log_loss"
    _check_devices(op, output, label, cost)
    _check_float(op, output, cost)
    n, b = _layout(op, output, vector_size, batch_size)
    _check_label_indices(op, label, b)
    _check_numel(op, cost, b)

    if output.device.is_cpu():
        _cpu.softmax_log_loss_cpu(
            output.cpu_data_handle(),
            label.cpu_data_handle(),
            cost.cpu_data_handle(),
            n,
            b,
        )
        cost.mark_host_dirty()
        return

    from .ops.cross_entropy_cuda import softmax_log_loss_cuda

    softmax_log_loss_cuda(
        _cuda_lib(op, output),
        output_dev=output.gpu_data_handle(),
        label_dev=label.gpu_data_handle(),
        cost_dev=cost.gpu_data_handle(),
        vector_size=n,
        batch_size=b,
        dtype=output.dtype,
    )
    cost.mark_device_dirty()


def compute_softmax_log_loss_derivative(
    output: Tensor,
    label: Tensor,
    input_grad: Tensor,
    *,
    vector_size: Optional[int] = None,
    batch_size: Optional[int] = None,
) -> None:
    """Write `output - onehot(label)` into `input_grad`."""
    op = "softmax_log_loss_derivative"
    _check_devices(op, output, label, input_grad)
    _check_float(op, output, input_grad)
    _check_same_layout(op, output, input_grad)
    n, b = _layout(op, output, vector_size, batch_size)
    _check_label_indices(op, label, b)

    if output.device.is_cpu():
        _cpu.softmax_log_loss_derivative_cpu(
            output.cpu_data_handle(),
            label.cpu_data_handle(),
            input_grad.cpu_data_handle(),
            n,
            b,
        )
        input_grad.mark_host_dirty()
        return

    from .ops.cross_entropy_cuda import softmax_log_loss_derivative_cuda

    softmax_log_loss_derivative_cuda(
        _cuda_lib(op, output),
        output_dev=output.gpu_data_handle(),
        label_dev=label.gpu_data_handle(),
        input_grad_dev=input_grad.gpu_data_handle(),
        vector_size=n,
        batch_size=b,
        dtype=output.dtype,
    )
    input_grad.mark_device_dirty()
