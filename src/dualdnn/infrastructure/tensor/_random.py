"""
Per-dtype random source used by `Tensor.randomize`.

Floating types draw uniformly from [-1, 1); integer types draw uniformly
from [0, 2**15). The process-wide instance returned by `get_singleton()` is
what tensors use unless another source is injected, and it can be reseeded
for reproducible tests.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


class RandomNumberGenerator:
    """
    NumPy-backed random source with a per-dtype scalar API.

    Parameters
    ----------
    seed : Optional[int]
        Seed for the underlying `numpy.random.Generator`. None draws fresh
        entropy from the OS.
    """

    _singleton: Optional["RandomNumberGenerator"] = None

    _INT_HIGH = 1 << 15

    def __init__(self, seed: Optional[int] = None) -> None:
        self._gen = np.random.default_rng(seed)

    @classmethod
    def get_singleton(cls) -> "RandomNumberGenerator":
        if cls._singleton is None:
            cls._singleton = cls()
        return cls._singleton

    def seed(self, seed: Optional[int]) -> None:
        """Reset the underlying generator."""
        self._gen = np.random.default_rng(seed)

    def get_random(self, dtype=np.float32):
        """
        Draw one scalar of the requested dtype.

        Raises
        ------
        TypeError
            If `dtype` is neither floating point nor integer.
        """
        dtype = np.dtype(dtype)
        if np.issubdtype(dtype, np.floating):
            return dtype.type(self._gen.uniform(-1.0, 1.0))
        if np.issubdtype(dtype, np.integer):
            return dtype.type(self._gen.integers(0, self._INT_HIGH))
        raise TypeError(f"no random source for dtype {dtype}")

    def fill(self, out: np.ndarray) -> None:
        """Overwrite every element of `out` in place."""
        dtype = out.dtype
        if np.issubdtype(dtype, np.floating):
            out[...] = self._gen.uniform(-1.0, 1.0, size=out.shape)
        elif np.issubdtype(dtype, np.integer):
            out[...] = self._gen.integers(0, self._INT_HIGH, size=out.shape)
        else:
            raise TypeError(f"no random source for dtype {dtype}")
