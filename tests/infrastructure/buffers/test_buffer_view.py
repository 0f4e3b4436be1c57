import dataclasses
import unittest

import numpy as np

from dagnet.infrastructure import BufferView
from dagnet.infrastructure._buffer import EMPTY


class TestBufferView(unittest.TestCase):
    def setUp(self):
        self.m = np.arange(6, dtype=np.float64).reshape(2, 3)

    def test_wrap_row_major(self):
        view = BufferView.wrap(self.m)
        self.assertFalse(view.transposed)
        self.assertEqual(view.shape, (2, 3))
        np.testing.assert_array_equal(view.base, self.m)
        np.testing.assert_array_equal(view.matrix, self.m)

    def test_wrap_transposed_stores_transpose(self):
        view = BufferView.wrap(self.m, transposed=True)
        self.assertTrue(view.transposed)
        self.assertEqual(view.base.shape, (3, 2))
        self.assertEqual(view.shape, (2, 3))
        self.assertTrue(view.base.flags["C_CONTIGUOUS"])
        np.testing.assert_array_equal(view.matrix, self.m)

    def test_oriented_returns_fresh_view(self):
        view = BufferView.wrap(self.m)
        flipped = view.oriented(True)
        self.assertIsNot(flipped, view)
        self.assertTrue(flipped.transposed)
        self.assertFalse(view.transposed)
        np.testing.assert_array_equal(flipped.matrix, view.matrix)
        self.assertFalse(np.shares_memory(flipped.base, view.base))

    def test_oriented_same_orientation_is_identity(self):
        view = BufferView.wrap(self.m, transposed=True)
        self.assertIs(view.oriented(True), view)

    def test_views_are_frozen(self):
        view = BufferView.wrap(self.m)
        with self.assertRaises(dataclasses.FrozenInstanceError):
            view.transposed = True  # type: ignore[misc]

    def test_wrap_rejects_non_matrix(self):
        with self.assertRaises(ValueError):
            BufferView.wrap(np.ones(3))

    def test_empty(self):
        self.assertTrue(EMPTY.is_empty)
        self.assertTrue(BufferView.empty().is_empty)
        self.assertIs(EMPTY.oriented(True), EMPTY)
        self.assertFalse(BufferView.wrap(self.m).is_empty)


if __name__ == "__main__":
    unittest.main()
