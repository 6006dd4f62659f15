import copy
import unittest

import numpy as np

from dualdnn.domain._errors import DeviceMismatchError
from dualdnn.domain._shape import Shape
from dualdnn.infrastructure.tensor._random import RandomNumberGenerator
from dualdnn.infrastructure.tensor._shared_buffer import BufferState
from dualdnn.infrastructure.tensor._tensor import Tensor


class TestTensorConstruction(unittest.TestCase):
    def test_construction_does_not_allocate(self):
        t = Tensor((3, 5))
        self.assertEqual(t.name, "no_name")
        self.assertEqual(t.shape, Shape((3, 5)))
        self.assertFalse(t.is_initialized)
        self.assertEqual(t.size_in_byte(), 0)
        self.assertIs(t.state, BufferState.UNALLOCATED)
        self.assertIsNone(t.gpu_descriptor)
        self.assertEqual(str(t.device), "cpu")

    def test_init_allocates_zeroed_storage(self):
        t = Tensor((3, 5), "w")
        self.assertTrue(t.init())
        self.assertEqual(t.size_in_byte(), 15 * 4)
        self.assertEqual(t.numel(), 15)
        self.assertEqual(len(t), 15)
        for i in range(15):
            self.assertEqual(t[i], 0.0)

    def test_float64_storage(self):
        t = Tensor((4,), dtype=np.float64)
        t.init()
        self.assertEqual(t.size_in_byte(), 32)
        self.assertEqual(t.cpu_data_handle().dtype, np.float64)

    def test_init_fails_for_empty_shapes(self):
        self.assertFalse(Tensor(()).init())
        self.assertFalse(Tensor((3, 0)).init())

    def test_init_values_prefix_readback(self):
        values = [float(i) * 0.5 for i in range(15)]
        t = Tensor((3, 5))
        self.assertTrue(t.init(values))
        for i in range(15):
            self.assertAlmostEqual(t[i], values[i])

    def test_init_with_extra_values_truncates_and_warns(self):
        t = Tensor((2, 2))
        with self.assertWarns(RuntimeWarning):
            self.assertTrue(t.init([1, 2, 3, 4, 5, 6]))
        self.assertEqual([t[i] for i in range(4)], [1.0, 2.0, 3.0, 4.0])

    def test_init_with_too_few_values_zero_fills_and_warns(self):
        t = Tensor((2, 2))
        with self.assertWarns(RuntimeWarning):
            self.assertTrue(t.init([7, 8]))
        self.assertEqual([t[i] for i in range(4)], [7.0, 8.0, 0.0, 0.0])

    def test_reinit_releases_then_allocates(self):
        t = Tensor((2,))
        t.init([1, 2])
        t.init()
        self.assertEqual([t[0], t[1]], [0.0, 0.0])

    def test_failed_reinit_keeps_previous_values(self):
        t = Tensor((2,))
        t.init([1, 2])
        with self.assertRaises(ValueError):
            t.init(["a", "b"])
        self.assertTrue(t.is_initialized)
        self.assertEqual([t[0], t[1]], [1.0, 2.0])


class TestTensorReshape(unittest.TestCase):
    def test_compatible_reshape(self):
        t = Tensor((3, 5))
        t.init(list(range(15)))
        self.assertTrue(t.reshape((5, 3)))
        self.assertEqual(t.shape, (5, 3))
        self.assertTrue(t.reshape(Shape((15,))))
        self.assertEqual(t[14], 14.0)

    def test_incompatible_reshape_leaves_tensor_unchanged(self):
        t = Tensor((3, 5))
        t.init(list(range(15)))
        self.assertFalse(t.reshape((4, 4)))
        self.assertEqual(t.shape, (3, 5))
        self.assertTrue(t.reshape((5, 3)))
        self.assertTrue(t.reshape((3, 5)))
        t[3] = 99.0
        self.assertEqual(t[3], 99.0)
        self.assertEqual(t.to_numpy().shape, (5, 3))


class TestTensorElementAccess(unittest.TestCase):
    def test_out_of_range_raises(self):
        t = Tensor((3,))
        t.init()
        with self.assertRaises(IndexError):
            t[3]
        with self.assertRaises(IndexError):
            t[-1]
        with self.assertRaises(IndexError):
            t[3] = 1.0

    def test_non_integer_index_raises(self):
        t = Tensor((3,))
        t.init()
        with self.assertRaises(TypeError):
            t[1.5]

    def test_access_before_init_raises(self):
        t = Tensor((3,))
        with self.assertRaises(RuntimeError):
            t[0]

    def test_write_marks_host_dirty(self):
        t = Tensor((3,))
        t.init()
        t[1] = 4.0
        self.assertIs(t.state, BufferState.HOST_ONLY)
        self.assertEqual(t.cpu_data_handle()[1], 4.0)


class TestTensorAliasing(unittest.TestCase):
    def test_copy_construction_aliases_storage(self):
        a = Tensor((2, 2), "a")
        a.init([1, 2, 3, 4])
        b = Tensor.from_tensor(a)
        self.assertEqual(b.name, "a")
        self.assertEqual(b.shape, a.shape)
        a[0] = 10.0
        self.assertEqual(b[0], 10.0)
        self.assertEqual(a.buffer.ref_count, 2)

    def test_copy_copy_aliases_storage(self):
        a = Tensor((2,))
        a.init([1, 2])
        b = copy.copy(a)
        b[1] = 5.0
        self.assertEqual(a[1], 5.0)

    def test_clear_keeps_storage_alive_for_other_owners(self):
        a = Tensor((2, 2))
        a.init([1, 2, 3, 4])
        b = Tensor.from_tensor(a)
        a.clear()
        self.assertFalse(a.is_initialized)
        self.assertEqual(a.shape, (2, 2))
        self.assertEqual([b[i] for i in range(4)], [1.0, 2.0, 3.0, 4.0])

        a.init([9, 9, 9, 9])
        a[0] = -1.0
        self.assertEqual([b[i] for i in range(4)], [1.0, 2.0, 3.0, 4.0])

    def test_assign_aliases_and_copies_metadata(self):
        a = Tensor((2, 3), "source")
        a.init(list(range(6)))
        b = Tensor((4,), "target")
        b.init()
        b.assign(a)
        self.assertEqual(b.shape, (2, 3))
        self.assertEqual(b.name, "source")
        b[5] = 50.0
        self.assertEqual(a[5], 50.0)

    def test_assign_rejects_other_devices_and_dtypes(self):
        a = Tensor((2,))
        with self.assertRaises(DeviceMismatchError):
            a.assign(Tensor((2,), device="cuda:0"))
        with self.assertRaises(TypeError):
            a.assign(Tensor((2,), dtype=np.float64))


class TestTensorRandomize(unittest.TestCase):
    def test_values_come_from_injected_source(self):
        t = Tensor((4, 8))
        t.init()
        t.randomize(RandomNumberGenerator(seed=123))
        expected = np.empty(32, dtype=np.float32)
        RandomNumberGenerator(seed=123).fill(expected)
        np.testing.assert_array_equal(t.cpu_data_handle(), expected)

    def test_different_source_states_differ(self):
        a = Tensor((64,))
        b = Tensor((64,))
        a.init()
        b.init()
        a.randomize(RandomNumberGenerator(seed=1))
        b.randomize(RandomNumberGenerator(seed=2))
        self.assertFalse(np.array_equal(a.cpu_data_handle(), b.cpu_data_handle()))

    def test_scalar_only_source(self):
        class Counter:
            def __init__(self):
                self.n = 0

            def get_random(self, dtype):
                self.n += 1
                return np.dtype(dtype).type(self.n)

        t = Tensor((3,))
        t.init()
        t.randomize(Counter())
        self.assertEqual([t[0], t[1], t[2]], [1.0, 2.0, 3.0])

    def test_float_values_in_range(self):
        t = Tensor((256,))
        t.init()
        t.randomize(RandomNumberGenerator(seed=0))
        host = t.cpu_data_handle()
        self.assertTrue(np.all(host >= -1.0) and np.all(host < 1.0))


class TestTensorNumpyInterop(unittest.TestCase):
    def test_to_numpy_lists_slowest_dimension_first(self):
        t = Tensor((3, 2))
        t.init(list(range(6)))
        arr = t.to_numpy()
        self.assertEqual(arr.shape, (2, 3))
        np.testing.assert_array_equal(arr, [[0, 1, 2], [3, 4, 5]])

    def test_copy_from_numpy(self):
        t = Tensor((3, 2))
        t.init()
        t.copy_from_numpy(np.arange(6).reshape(2, 3))
        self.assertEqual(t[4], 4.0)
        with self.assertRaises(ValueError):
            t.copy_from_numpy(np.zeros(5))

    def test_str_format(self):
        t = Tensor((2,))
        self.assertEqual(str(t), "2 {}")
        t.init([1.5, -2])
        self.assertEqual(str(t), "2 {1.5, -2.0}")


class TestRandomNumberGenerator(unittest.TestCase):
    def test_per_dtype_scalars(self):
        rng = RandomNumberGenerator(seed=7)
        f = rng.get_random(np.float64)
        self.assertIsInstance(f, np.float64)
        self.assertTrue(-1.0 <= f < 1.0)
        i = rng.get_random(np.int32)
        self.assertIsInstance(i, np.int32)
        self.assertTrue(0 <= i < 1 << 15)
        with self.assertRaises(TypeError):
            rng.get_random(np.bool_)

    def test_reseed_reproduces(self):
        rng = RandomNumberGenerator()
        rng.seed(5)
        first = [rng.get_random() for _ in range(4)]
        rng.seed(5)
        self.assertEqual(first, [rng.get_random() for _ in range(4)])

    def test_singleton(self):
        self.assertIs(
            RandomNumberGenerator.get_singleton(), RandomNumberGenerator.get_singleton()
        )


if __name__ == "__main__":
    unittest.main()
