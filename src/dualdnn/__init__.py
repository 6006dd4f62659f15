"""
dualdnn: dual-resident tensors and cost kernels.

Public surface
--------------
- Shape, Device, TensorDescriptor, compute_descriptor (pure domain types)
- SharedBuffer, Tensor, RandomNumberGenerator (host/accelerator storage)
- compute_* cost entry points (sigmoid cross entropy, softmax log loss)
- gradient_check (central-difference oracle)
"""

from .domain import (
    AcceleratorRuntimeError,
    Device,
    DeviceMismatchError,
    DeviceNotSupportedError,
    Shape,
    TensorDescriptor,
    compute_descriptor,
)
from .infrastructure._losses import (
    compute_sigmoid_cross_entropy_cost,
    compute_sigmoid_cross_entropy_derivative,
    compute_softmax_log_loss_cost,
    compute_softmax_log_loss_derivative,
)
from .infrastructure.tensor import (
    BufferState,
    RandomNumberGenerator,
    SharedBuffer,
    Tensor,
)
from .infrastructure.utils import GradientCheckResult, GradientMismatch, gradient_check

__version__ = "0.1.0"

__all__ = [
    "AcceleratorRuntimeError",
    "BufferState",
    "Device",
    "DeviceMismatchError",
    "DeviceNotSupportedError",
    "GradientCheckResult",
    "GradientMismatch",
    "RandomNumberGenerator",
    "Shape",
    "SharedBuffer",
    "Tensor",
    "TensorDescriptor",
    "compute_descriptor",
    "compute_sigmoid_cross_entropy_cost",
    "compute_sigmoid_cross_entropy_derivative",
    "compute_softmax_log_loss_cost",
    "compute_softmax_log_loss_derivative",
    "gradient_check",
]
