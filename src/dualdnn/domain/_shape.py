"""
Tensor shape value type.

`Shape` is an immutable, ordered list of non-negative dimension extents. The
first extent is the fastest-varying one in memory; the last is the slowest.
Shapes are replaced rather than mutated, so copying a shape never aliases
anything but its extents.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Tuple, Union

ShapeLike = Union["Shape", Iterable[int]]


class Shape:
    """
    Ordered sequence of non-negative integer extents.

    Parameters
    ----------
    extents : Iterable[int] or Shape, optional
        Dimension extents, fastest-varying first. Defaults to an empty shape.

    Raises
    ------
    ValueError
        If any extent is negative.
    TypeError
        If an extent is not an integer.

    Notes
    -----
    - `size()` of an empty shape is 0, not 1: an empty shape describes no
      storage at all.
    - Equality works against other shapes and plain tuples/lists of ints.
    """

    __slots__ = ("_extents",)

    def __init__(self, extents: ShapeLike = ()) -> None:
        if isinstance(extents, Shape):
            self._extents: Tuple[int, ...] = extents._extents
            return

        dims = []
        for d in extents:
            if isinstance(d, bool) or not hasattr(d, "__index__"):
                raise TypeError(f"Shape extents must be integers, got {d!r}")
            d = int(d)
            if d < 0:
                raise ValueError(f"Shape extents must be non-negative, got {d}")
            dims.append(d)
        self._extents = tuple(dims)

    def dimension(self) -> int:
        """Number of dimensions."""
        return len(self._extents)

    def size(self) -> int:
        """
        Total element count described by this shape.

        Returns
        -------
        int
            Product of all extents, or 0 if the shape is empty or any extent
            is 0.
        """
        if not self._extents:
            return 0
        n = 1
        for d in self._extents:
            n *= d
        return n

    def is_compatible(self, other: ShapeLike) -> bool:
        """Whether `other` describes the same number of elements."""
        return self.size() == Shape(other).size()

    def as_tuple(self) -> Tuple[int, ...]:
        return self._extents

    def __len__(self) -> int:
        return len(self._extents)

    def __getitem__(self, i: int) -> int:
        return self._extents[i]

    def __iter__(self) -> Iterator[int]:
        return iter(self._extents)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Shape):
            return self._extents == other._extents
        if isinstance(other, (tuple, list)):
            return self._extents == tuple(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._extents)

    def __repr__(self) -> str:
        return f"Shape({', '.join(str(d) for d in self._extents)})"
