"""
Accelerator layout descriptors.

Accelerator kernels interpret raw storage through a layout descriptor: a
dimension count plus per-dimension extents and strides. The descriptor API
the kernels target expects

- at least 4 dimensions, and
- extents/strides listed slowest-varying first.

Logical shapes in dualdnn are stored fastest-varying first and may have any
rank, so `compute_descriptor` pads and reverses them. It is a pure function
so the padding rules can be tested without any accelerator present.

Padding rules
-------------
For a shape with `n` extents `d0..d(n-1)` (d0 fastest) and `m = max(n, 4)`:

- slot `m - 1 - i` holds `d_i` for `i < n`, and 1 for padding slots;
- the stride of `d0` is 1, the stride of `d_i` is `d_(i-1) * stride(d_(i-1))`;
- a padding slot repeats the stride of the slot before it, so padding
  dimensions are degenerate and add no striding.

Example: Shape(3, 5) -> dims (1, 1, 5, 3), strides (3, 3, 3, 1).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ._shape import Shape, ShapeLike

MIN_DESCRIPTOR_DIMS = 4


def compute_descriptor(shape: ShapeLike) -> Tuple[Tuple[int, ...], Tuple[int, ...]]:
    """
    Translate a logical shape into padded, reversed (extents, strides).

    Parameters
    ----------
    shape : ShapeLike
        Logical shape, fastest-varying extent first.

    Returns
    -------
    tuple[tuple[int, ...], tuple[int, ...]]
        `(dims, strides)`, each of length `max(shape.dimension(), 4)`,
        ordered slowest-varying first.
    """
    shape = Shape(shape)
    n = shape.dimension()
    m = max(n, MIN_DESCRIPTOR_DIMS)

    dims = [1] * m
    strides = [1] * m

    for i in range(m):
        slot = m - 1 - i
        if i < n:
            dims[slot] = shape[i]
            if i > 0:
                strides[slot] = shape[i - 1] * strides[slot + 1]
        elif i > 0:
            strides[slot] = strides[slot + 1]

    return tuple(dims), tuple(strides)


@dataclass(frozen=True)
class TensorDescriptor:
    """
    Layout descriptor handed to accelerator kernels.

    Attributes
    ----------
    nb_dims : int
        Padded dimension count (always >= 4).
    dims : tuple[int, ...]
        Extents, slowest-varying first.
    strides : tuple[int, ...]
        Element strides matching `dims`.
    dtype : np.dtype
        Element type described by the descriptor.
    """

    nb_dims: int
    dims: Tuple[int, ...]
    strides: Tuple[int, ...]
    dtype: np.dtype

    @classmethod
    def from_shape(cls, shape: ShapeLike, dtype=np.float32) -> "TensorDescriptor":
        dims, strides = compute_descriptor(shape)
        return cls(
            nb_dims=len(dims), dims=dims, strides=strides, dtype=np.dtype(dtype)
        )

    def numel(self) -> int:
        n = 1
        for d in self.dims:
            n *= d
        return n
