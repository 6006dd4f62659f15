"""
ctypes bindings for dualdnn CUDA cost kernels.

Exports expected in the native library:
- dualdnn_cuda_sigmoid_cross_entropy_f32 / _f64
- dualdnn_cuda_sigmoid_cross_entropy_derivative_f32 / _f64
- dualdnn_cuda_softmax_log_loss_f32 / _f64
- dualdnn_cuda_softmax_log_loss_derivative_f32 / _f64

Kernel conventions
------------------
- Inputs are flat, contiguous device buffers of length
  `vector_size * batch_size` with the batch index varying slowest.
- Cost outputs hold one value per batch element and are zeroed by the
  kernel launcher before accumulation.
- Softmax labels are uint32 class indices, one per batch element.
- Launch configuration: 1024 threads per block, enough blocks to cover
  every element; the last block is partial.
"""

from __future__ import annotations

import ctypes
from ctypes import c_int, c_uint, c_void_p

import numpy as np

from .memory_ctypes import get_memory_lib

DevPtr = int

_SUFFIX = {np.dtype(np.float32): "f32", np.dtype(np.float64): "f64"}

_KERNELS = (
    "dualdnn_cuda_sigmoid_cross_entropy",
    "dualdnn_cuda_sigmoid_cross_entropy_derivative",
    "dualdnn_cuda_softmax_log_loss",
    "dualdnn_cuda_softmax_log_loss_derivative",
)


def _bind_loss(lib: ctypes.CDLL) -> None:
    if getattr(lib, "_dualdnn_loss_bound", False):
        return
    for name in _KERNELS:
        for suffix in _SUFFIX.values():
            fn = getattr(lib, f"{name}_{suffix}")
            fn.argtypes = [c_void_p, c_void_p, c_void_p, c_uint, c_uint]
            fn.restype = c_int
    lib._dualdnn_loss_bound = True


def _kernel(lib: ctypes.CDLL, name: str, dtype: np.dtype):
    dtype = np.dtype(dtype)
    if dtype not in _SUFFIX:
        raise TypeError(f"{name} supports float32/float64 only, got {dtype}")
    _bind_loss(lib)
    return f"{name}_{_SUFFIX[dtype]}", getattr(lib, f"{name}_{_SUFFIX[dtype]}")


def _launch(lib, name: str, dtype, a: DevPtr, b: DevPtr, c: DevPtr, n: int, m: int):
    symbol, fn = _kernel(lib, name, dtype)
    st = fn(
        c_void_p(int(a)),
        c_void_p(int(b)),
        c_void_p(int(c)),
        c_uint(int(n)),
        c_uint(int(m)),
    )
    get_memory_lib(lib).check(symbol, int(st))


def sigmoid_cross_entropy_cuda(
    lib: ctypes.CDLL,
    *,
    input_dev: DevPtr,
    label_dev: DevPtr,
    cost_dev: DevPtr,
    label_vector_size: int,
    batch_size: int,
    dtype: np.dtype,
) -> None:
    _launch(
        lib,
        "dualdnn_cuda_sigmoid_cross_entropy",
        dtype,
        input_dev,
        label_dev,
        cost_dev,
        label_vector_size,
        batch_size,
    )


def sigmoid_cross_entropy_derivative_cuda(
    lib: ctypes.CDLL,
    *,
    input_dev: DevPtr,
    label_dev: DevPtr,
    input_grad_dev: DevPtr,
    label_vector_size: int,
    batch_size: int,
    dtype: np.dtype,
) -> None:
    _launch(
        lib,
        "dualdnn_cuda_sigmoid_cross_entropy_derivative",
        dtype,
        input_dev,
        label_dev,
        input_grad_dev,
        label_vector_size,
        batch_size,
    )


def softmax_log_loss_cuda(
    lib: ctypes.CDLL,
    *,
    output_dev: DevPtr,
    label_dev: DevPtr,  # uint32 class indices
    cost_dev: DevPtr,
    vector_size: int,
    batch_size: int,
    dtype: np.dtype,
) -> None:
    _launch(
        lib,
        "dualdnn_cuda_softmax_log_loss",
        dtype,
        output_dev,
        label_dev,
        cost_dev,
        vector_size,
        batch_size,
    )


def softmax_log_loss_derivative_cuda(
    lib: ctypes.CDLL,
    *,
    output_dev: DevPtr,
    label_dev: DevPtr,
    input_grad_dev: DevPtr,
    vector_size: int,
    batch_size: int,
    dtype: np.dtype,
) -> None:
    _launch(
        lib,
        "dualdnn_cuda_softmax_log_loss_derivative",
        dtype,
        output_dev,
        label_dev,
        input_grad_dev,
        vector_size,
        batch_size,
    )
