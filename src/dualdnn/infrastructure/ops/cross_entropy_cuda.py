"""
CUDA cost-kernel wrappers for dualdnn (infrastructure layer).

Each wrapper:

- validates arguments (dtype, sizes) at the Python boundary,
- normalizes pointer/size inputs to plain `int` for ctypes calls,
- optionally performs post-call synchronization via `cuda_synchronize(lib)`.

All buffers must already be resident on the device: callers push inputs with
`copy_from_host_to_device()` before calling and pull outputs with
`copy_from_device_to_host()` afterwards.
"""

from __future__ import annotations

import numpy as np

from ..native_cuda.python.memory_ctypes import cuda_synchronize

_FLOAT_DTYPES = (np.dtype(np.float32), np.dtype(np.float64))

# Kernels index work-items with 32-bit unsigned ints; the last partial block of
# 1024 threads must not wrap.
MAX_KERNEL_ELEMENTS = (1 << 32) - 1024


def _check_dtype(op: str, dtype) -> np.dtype:
    dtype = np.dtype(dtype)
    if dtype not in _FLOAT_DTYPES:
        raise TypeError(f"{op} supports float32/float64 only, got {dtype}")
    return dtype


def _check_sizes(op: str, vector_size: int, batch_size: int) -> None:
    if int(vector_size) < 0 or int(batch_size) < 0:
        raise ValueError(
            f"{op}: sizes must be non-negative, got "
            f"vector_size={vector_size}, batch_size={batch_size}"
        )
    v, b = int(vector_size), int(batch_size)
    if v * b > MAX_KERNEL_ELEMENTS or max(v, b) > MAX_KERNEL_ELEMENTS:
        raise ValueError(
            f"{op}: vector_size={vector_size}, batch_size={batch_size} exceed the "
            f"kernel limit of {MAX_KERNEL_ELEMENTS} elements"
        )


def sigmoid_cross_entropy_cuda(
    lib,
    *,
    input_dev: int,
    label_dev: int,
    cost_dev: int,
    label_vector_size: int,
    batch_size: int,
    dtype: np.dtype,
    sync: bool = True,
) -> None:
    """
    Per-sample binary cross-entropy on device buffers.

    Parameters
    ----------
    lib : object
        Loaded native CUDA library handle.
    input_dev, label_dev : int
        Device pointers to `label_vector_size * batch_size` elements each.
        Inputs must lie in (0, 1); this is not checked.
    cost_dev : int
        Device pointer to `batch_size` elements; zeroed by the launcher, then
        accumulated with atomic adds.
    dtype : np.dtype
        float32 or float64.
    sync : bool, optional
        Synchronize the device after the launch. Defaults to True.

    Notes
    -----
    Atomic accumulation makes the summation order scheduling-dependent, so
    results can differ in the last bits between runs.
    """
    from ..native_cuda.python.loss_ctypes import sigmoid_cross_entropy_cuda as _k

    dtype = _check_dtype("sigmoid_cross_entropy_cuda", dtype)
    _check_sizes("sigmoid_cross_entropy_cuda", label_vector_size, batch_size)

    _k(
        lib,
        input_dev=int(input_dev),
        label_dev=int(label_dev),
        cost_dev=int(cost_dev),
        label_vector_size=int(label_vector_size),
        batch_size=int(batch_size),
        dtype=dtype,
    )
    if sync:
        cuda_synchronize(lib)


def sigmoid_cross_entropy_derivative_cuda(
    lib,
    *,
    input_dev: int,
    label_dev: int,
    input_grad_dev: int,
    label_vector_size: int,
    batch_size: int,
    dtype: np.dtype,
    sync: bool = True,
) -> None:
    """Elementwise `input_grad = input - label` on device buffers."""
    from ..native_cuda.python.loss_ctypes import (
        sigmoid_cross_entropy_derivative_cuda as _k,
    )

    dtype = _check_dtype("sigmoid_cross_entropy_derivative_cuda", dtype)
    _check_sizes("sigmoid_cross_entropy_derivative_cuda", label_vector_size, batch_size)

    _k(
        lib,
        input_dev=int(input_dev),
        label_dev=int(label_dev),
        input_grad_dev=int(input_grad_dev),
        label_vector_size=int(label_vector_size),
        batch_size=int(batch_size),
        dtype=dtype,
    )
    if sync:
        cuda_synchronize(lib)


def softmax_log_loss_cuda(
    lib,
    *,
    output_dev: int,
    label_dev: int,
    cost_dev: int,
    vector_size: int,
    batch_size: int,
    dtype: np.dtype,
    sync: bool = True,
) -> None:
    """
    Per-sample softmax log loss on device buffers.

    `label_dev` points to `batch_size` uint32 class indices. Indices are not
    range-checked on the device.
    """
    from ..native_cuda.python.loss_ctypes import softmax_log_loss_cuda as _k

    dtype = _check_dtype("softmax_log_loss_cuda", dtype)
    _check_sizes("softmax_log_loss_cuda", vector_size, batch_size)

    _k(
        lib,
        output_dev=int(output_dev),
        label_dev=int(label_dev),
        cost_dev=int(cost_dev),
        vector_size=int(vector_size),
        batch_size=int(batch_size),
        dtype=dtype,
    )
    if sync:
        cuda_synchronize(lib)


def softmax_log_loss_derivative_cuda(
    lib,
    *,
    output_dev: int,
    label_dev: int,
    input_grad_dev: int,
    vector_size: int,
    batch_size: int,
    dtype: np.dtype,
    sync: bool = True,
) -> None:
    from ..native_cuda.python.loss_ctypes import softmax_log_loss_derivative_cuda as _k

    dtype = _check_dtype("softmax_log_loss_derivative_cuda", dtype)
    _check_sizes("softmax_log_loss_derivative_cuda", vector_size, batch_size)

    _k(
        lib,
        output_dev=int(output_dev),
        label_dev=int(label_dev),
        input_grad_dev=int(input_grad_dev),
        vector_size=int(vector_size),
        batch_size=int(batch_size),
        dtype=dtype,
    )
    if sync:
        cuda_synchronize(lib)
