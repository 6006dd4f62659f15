import unittest

import numpy as np

from dualdnn.domain._descriptor import (
    MIN_DESCRIPTOR_DIMS,
    TensorDescriptor,
    compute_descriptor,
)
from dualdnn.domain._shape import Shape


class TestComputeDescriptor(unittest.TestCase):
    def test_two_dims_are_padded_and_reversed(self):
        dims, strides = compute_descriptor(Shape((3, 5)))
        self.assertEqual(dims, (1, 1, 5, 3))
        self.assertEqual(strides, (3, 3, 3, 1))

    def test_one_dim_padding_repeats_unit_stride(self):
        dims, strides = compute_descriptor((7,))
        self.assertEqual(dims, (1, 1, 1, 7))
        self.assertEqual(strides, (1, 1, 1, 1))

    def test_three_dims(self):
        dims, strides = compute_descriptor((2, 3, 4))
        self.assertEqual(dims, (1, 4, 3, 2))
        self.assertEqual(strides, (6, 6, 2, 1))

    def test_four_dims_need_no_padding(self):
        dims, strides = compute_descriptor((2, 3, 4, 5))
        self.assertEqual(dims, (5, 4, 3, 2))
        self.assertEqual(strides, (24, 6, 2, 1))

    def test_more_than_four_dims_keep_their_rank(self):
        dims, strides = compute_descriptor((2, 3, 4, 5, 6))
        self.assertEqual(len(dims), 5)
        self.assertEqual(dims, (6, 5, 4, 3, 2))
        self.assertEqual(strides, (120, 24, 6, 2, 1))

    def test_strides_match_numpy_c_order_of_reversed_shape(self):
        for extents in [(3, 5), (2, 3, 4), (2, 3, 4, 5), (4, 1, 3, 2, 2)]:
            dims, strides = compute_descriptor(extents)
            n = len(extents)
            arr = np.empty(extents[::-1], dtype=np.uint8)
            expected = tuple(s // arr.itemsize for s in arr.strides)
            self.assertEqual(strides[-n:], expected, extents)
            self.assertEqual(dims[-n:], extents[::-1])

    def test_empty_shape(self):
        dims, strides = compute_descriptor(Shape())
        self.assertEqual(dims, (1, 1, 1, 1))
        self.assertEqual(strides, (1, 1, 1, 1))

    def test_minimum_rank(self):
        for extents in [(), (1,), (1, 2), (1, 2, 3)]:
            dims, strides = compute_descriptor(extents)
            self.assertEqual(len(dims), MIN_DESCRIPTOR_DIMS)
            self.assertEqual(len(strides), MIN_DESCRIPTOR_DIMS)


class TestTensorDescriptor(unittest.TestCase):
    def test_from_shape(self):
        d = TensorDescriptor.from_shape((3, 5), np.float64)
        self.assertEqual(d.nb_dims, 4)
        self.assertEqual(d.dims, (1, 1, 5, 3))
        self.assertEqual(d.strides, (3, 3, 3, 1))
        self.assertEqual(d.dtype, np.float64)
        self.assertEqual(d.numel(), 15)

    def test_is_immutable(self):
        d = TensorDescriptor.from_shape((3, 5))
        with self.assertRaises(Exception):
            d.nb_dims = 5


if __name__ == "__main__":
    unittest.main()
