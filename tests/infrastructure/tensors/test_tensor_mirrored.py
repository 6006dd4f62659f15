"""
Dual-resident tensor behaviour against an in-memory accelerator stand-in.

These tests cover the host/device residency state machine and the layout
descriptor lifecycle without needing a GPU.
"""

import unittest

import numpy as np

from dualdnn.domain._descriptor import TensorDescriptor
from dualdnn.domain._device_memory import IDeviceMemory
from dualdnn.domain._errors import DeviceMismatchError
from dualdnn.domain._tensor import ITensor
from dualdnn.infrastructure.tensor._device_memory import CudaDeviceMemory
from dualdnn.infrastructure.tensor._random import RandomNumberGenerator
from dualdnn.infrastructure.tensor._shared_buffer import BufferState
from dualdnn.infrastructure.tensor._tensor import Tensor

from ._fake_device_memory import FakeDeviceMemory


class TestMirroredTensor(unittest.TestCase):
    def setUp(self):
        self.mem = FakeDeviceMemory()

    def _tensor(self, shape, name="no_name", **kw):
        return Tensor(shape, name, device="cuda:0", memory=self.mem, **kw)

    def test_init_allocates_device_mirror(self):
        t = self._tensor((3, 5))
        self.assertTrue(t.init())
        self.assertNotEqual(t.gpu_data_handle(), 0)
        self.assertIn(t.gpu_data_handle(), self.mem.blocks)
        self.assertIs(t.state, BufferState.BOTH_DIVERGED)

    def test_init_values_pushes_to_device(self):
        t = self._tensor((2, 2))
        t.init([1, 2, 3, 4])
        self.assertIs(t.state, BufferState.BOTH_SYNCED)
        np.testing.assert_array_equal(
            self.mem.device_view(t.gpu_data_handle(), np.float32), [1, 2, 3, 4]
        )

    def test_failed_reinit_keeps_device_mirror(self):
        t = self._tensor((2,))
        t.init([1, 2])
        ptr = t.gpu_data_handle()
        with self.assertRaises(ValueError):
            t.init(["a", "b"])
        self.assertEqual(self.mem.freed, [])
        self.assertEqual(t.gpu_data_handle(), ptr)
        np.testing.assert_array_equal(self.mem.device_view(ptr, np.float32), [1, 2])

    def test_element_write_is_not_pushed_automatically(self):
        t = self._tensor((2,))
        t.init([1, 2])
        t[0] = 5.0
        self.assertIs(t.state, BufferState.HOST_ONLY)
        dev = self.mem.device_view(t.gpu_data_handle(), np.float32)
        self.assertEqual(dev[0], 1.0)
        t.copy_from_host_to_device()
        self.assertEqual(dev[0], 5.0)
        self.assertIs(t.state, BufferState.BOTH_SYNCED)

    def test_device_write_then_pull(self):
        t = self._tensor((3,))
        t.init([0, 0, 0])
        self.mem.device_view(t.gpu_data_handle(), np.float32)[:] = [7, 8, 9]
        t.mark_device_dirty()
        self.assertIs(t.state, BufferState.ACCELERATOR_ONLY)
        self.assertEqual(t[2], 0.0)
        t.copy_from_device_to_host()
        self.assertEqual([t[0], t[1], t[2]], [7.0, 8.0, 9.0])

    def test_randomize_pushes(self):
        t = self._tensor((16,))
        t.init()
        t.randomize(RandomNumberGenerator(seed=3))
        self.assertIs(t.state, BufferState.BOTH_SYNCED)
        np.testing.assert_array_equal(
            self.mem.device_view(t.gpu_data_handle(), np.float32), t.cpu_data_handle()
        )

    def test_allocation_failure_reported_as_false(self):
        t = Tensor((4,), device="cuda:0", memory=FakeDeviceMemory(fail_malloc=True))
        self.assertFalse(t.init())
        self.assertFalse(t.is_initialized)

    def test_clear_frees_device_memory_once(self):
        a = self._tensor((4,))
        a.init()
        ptr = a.gpu_data_handle()
        b = Tensor.from_tensor(a)
        a.clear()
        self.assertEqual(self.mem.freed, [])
        self.assertEqual(b.gpu_data_handle(), ptr)
        b.clear()
        self.assertEqual(self.mem.freed, [ptr])

    def test_aliases_observe_one_state(self):
        a = self._tensor((2,))
        a.init([1, 2])
        b = Tensor.from_tensor(a)
        a[1] = 3.0
        self.assertIs(b.state, BufferState.HOST_ONLY)
        self.assertEqual(b[1], 3.0)
        self.assertIs(b.memory, self.mem)


class TestMirroredTensorDescriptor(unittest.TestCase):
    def setUp(self):
        self.mem = FakeDeviceMemory()

    def test_descriptor_matches_shape(self):
        t = Tensor((3, 5), device="cuda:0", memory=self.mem)
        d = t.gpu_descriptor
        self.assertEqual(d.nb_dims, 4)
        self.assertEqual(d.dims, (1, 1, 5, 3))
        self.assertEqual(d.strides, (3, 3, 3, 1))
        self.assertEqual(d.dtype, np.float32)

    def test_descriptor_is_cached_until_mutation(self):
        t = Tensor((3, 5), device="cuda:0", memory=self.mem)
        self.assertIs(t.gpu_descriptor, t.gpu_descriptor)

    def test_reshape_refreshes_descriptor(self):
        t = Tensor((3, 5), device="cuda:0", memory=self.mem)
        before = t.gpu_descriptor
        self.assertTrue(t.reshape((5, 3)))
        after = t.gpu_descriptor
        self.assertIsNot(before, after)
        self.assertEqual(after, TensorDescriptor.from_shape((5, 3)))

    def test_failed_reshape_keeps_descriptor(self):
        t = Tensor((3, 5), device="cuda:0", memory=self.mem)
        before = t.gpu_descriptor
        self.assertFalse(t.reshape((2, 2)))
        self.assertIs(t.gpu_descriptor, before)

    def test_assign_refreshes_descriptor(self):
        a = Tensor((2, 3, 4), device="cuda:0", memory=self.mem)
        a.init()
        b = Tensor((7,), device="cuda:0", memory=self.mem)
        b.gpu_descriptor
        b.assign(a)
        self.assertEqual(b.gpu_descriptor.dims, (1, 4, 3, 2))

    def test_copy_construction_has_its_own_descriptor(self):
        a = Tensor((3, 5), device="cuda:0", memory=self.mem)
        a.init()
        b = Tensor.from_tensor(a)
        b.reshape((15,))
        self.assertEqual(a.gpu_descriptor.dims, (1, 1, 5, 3))
        self.assertEqual(b.gpu_descriptor.dims, (1, 1, 1, 15))

    def test_float64_descriptor(self):
        t = Tensor((2,), device="cuda:0", dtype=np.float64, memory=self.mem)
        self.assertEqual(t.gpu_descriptor.dtype, np.float64)

    def test_cpu_and_cuda_tensors_do_not_mix(self):
        a = Tensor((2,), device="cuda:0", memory=self.mem)
        with self.assertRaises(DeviceMismatchError):
            a.assign(Tensor((2,)))


class TestInterfaces(unittest.TestCase):
    def test_tensor_satisfies_tensor_interface(self):
        self.assertIsInstance(Tensor((2,)), ITensor)
        self.assertIsInstance(
            Tensor((2,), device="cuda:0", memory=FakeDeviceMemory()), ITensor
        )

    def test_memory_spaces_satisfy_memory_interface(self):
        self.assertIsInstance(FakeDeviceMemory(), IDeviceMemory)
        self.assertIsInstance(CudaDeviceMemory(lib=None, device_index=0), IDeviceMemory)


if __name__ == "__main__":
    unittest.main()
