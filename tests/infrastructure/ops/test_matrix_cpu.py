import unittest

import numpy as np

from dagnet.infrastructure.ops.matrix_cpu import (
    add_product,
    add_row_vector,
    add_scaled,
    column_sums,
    row_max,
    row_sums,
)


class TestBlendingPrimitives(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(0)
        self.a = rng.standard_normal((3, 4))
        self.b = rng.standard_normal((4, 2))
        self.t = rng.standard_normal((3, 2))

    def test_add_product_overwrites_with_zero_scale(self):
        out = add_product(self.t, self.a, self.b, scale_target=0.0)
        np.testing.assert_allclose(out, self.a @ self.b)

    def test_add_product_accumulates_with_unit_scale(self):
        out = add_product(self.t, self.a, self.b, scale_target=1.0)
        np.testing.assert_allclose(out, self.t + self.a @ self.b)

    def test_add_product_general_scales(self):
        out = add_product(self.t, self.a, self.b, scale_target=0.5, scale_ab=-2.0)
        np.testing.assert_allclose(out, 0.5 * self.t - 2.0 * (self.a @ self.b))

    def test_overwrite_ignores_missing_or_stale_target(self):
        np.testing.assert_allclose(add_product(None, self.a, self.b), self.a @ self.b)
        stale = np.full((7, 7), np.nan)
        np.testing.assert_allclose(add_product(stale, self.a, self.b), self.a @ self.b)

    def test_overwrite_with_nan_target_has_no_nan(self):
        out = add_scaled(np.full((3, 2), np.nan), self.t, scale_target=0.0)
        self.assertFalse(np.isnan(out).any())

    def test_accumulate_requires_matching_target(self):
        with self.assertRaises(ValueError):
            add_scaled(None, self.t, scale_target=1.0)
        with self.assertRaises(ValueError):
            add_scaled(np.zeros((2, 2)), self.t, scale_target=1.0)

    def test_add_scaled_does_not_alias_inputs(self):
        out = add_scaled(None, self.t)
        out[0, 0] = 1e9
        self.assertNotEqual(self.t[0, 0], 1e9)

    def test_add_scaled_does_not_mutate_target(self):
        before = self.t.copy()
        add_scaled(self.t, np.ones_like(self.t), scale_target=1.0)
        np.testing.assert_array_equal(self.t, before)


class TestReductions(unittest.TestCase):
    def test_row_vector_broadcast(self):
        m = np.zeros((2, 3))
        out = add_row_vector(m, np.array([1.0, 2.0, 3.0]))
        np.testing.assert_array_equal(out, [[1, 2, 3], [1, 2, 3]])

    def test_row_vector_width_mismatch(self):
        with self.assertRaises(ValueError):
            add_row_vector(np.zeros((2, 3)), np.ones((1, 2)))

    def test_sums_and_max_keep_dims(self):
        m = np.array([[1.0, 5.0], [3.0, -2.0]])
        np.testing.assert_array_equal(column_sums(m), [[4.0, 3.0]])
        np.testing.assert_array_equal(row_sums(m), [[6.0], [1.0]])
        np.testing.assert_array_equal(row_max(m), [[5.0], [3.0]])


if __name__ == "__main__":
    unittest.main()
