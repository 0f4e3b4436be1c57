import unittest

import numpy as np

from dagnet.infrastructure.ops.pool_cpu import (
    avg_pool_backward,
    avg_pool_forward,
    max_pool_backward,
    max_pool_forward,
)


def _geom(img_size, size_x, start, stride, outputs_x, channels=1):
    return dict(
        channels=channels,
        img_size=img_size,
        size_x=size_x,
        start=start,
        stride=stride,
        outputs_x=outputs_x,
    )


class TestMaxPool(unittest.TestCase):
    def test_forward_picks_window_maxima(self):
        x = np.arange(16, dtype=np.float64).reshape(1, 16)
        y = max_pool_forward(x, **_geom(4, 2, 0, 2, 2))
        np.testing.assert_array_equal(y, [[5.0, 7.0, 13.0, 15.0]])

    def test_backward_routes_to_argmax(self):
        x = np.arange(16, dtype=np.float64).reshape(1, 16)
        g = np.array([[1.0, 2.0, 3.0, 4.0]])
        gx = max_pool_backward(x, g, None, **_geom(4, 2, 0, 2, 2))
        expected = np.zeros((1, 16))
        expected[0, [5, 7, 13, 15]] = [1.0, 2.0, 3.0, 4.0]
        np.testing.assert_array_equal(gx, expected)

    def test_ties_go_to_first_position(self):
        x = np.ones((1, 4))
        gx = max_pool_backward(x, np.array([[3.0]]), None, **_geom(2, 2, 0, 2, 1))
        np.testing.assert_array_equal(gx, [[3.0, 0.0, 0.0, 0.0]])

    def test_channels_are_independent(self):
        x = np.array([[1.0, 4.0, 2.0, 3.0, 9.0, 0.0, 0.0, 0.0]])
        y = max_pool_forward(x, **_geom(2, 2, 0, 2, 1, channels=2))
        np.testing.assert_array_equal(y, [[4.0, 9.0]])

    def test_backward_accumulates(self):
        x = np.arange(4, dtype=np.float64).reshape(1, 4)
        target = np.ones((1, 4))
        gx = max_pool_backward(
            x, np.array([[2.0]]), target, scale_target=1.0, **_geom(2, 2, 0, 2, 1)
        )
        np.testing.assert_array_equal(gx, [[1.0, 1.0, 1.0, 3.0]])


class TestAvgPool(unittest.TestCase):
    def test_forward_means(self):
        x = np.arange(16, dtype=np.float64).reshape(1, 16)
        y = avg_pool_forward(x, **_geom(4, 2, 0, 2, 2))
        np.testing.assert_array_equal(y, [[2.5, 4.5, 10.5, 12.5]])

    def test_overlapping_windows_accumulate_shares(self):
        g = np.ones((1, 4))
        gx = avg_pool_backward(g, None, **_geom(3, 2, 0, 1, 2))
        expected = np.array([[0.25, 0.5, 0.25], [0.5, 1.0, 0.5], [0.25, 0.5, 0.25]])
        np.testing.assert_allclose(gx, expected.reshape(1, 9))

    def test_clipped_window_divides_by_in_image_area(self):
        x = np.array([[1.0, 2.0, 3.0, 4.0]])
        y = avg_pool_forward(x, **_geom(2, 3, -1, 1, 2))
        np.testing.assert_allclose(y, np.full((1, 4), 2.5))

    def test_window_outside_image_rejected(self):
        with self.assertRaises(ValueError):
            avg_pool_forward(np.ones((1, 4)), **_geom(2, 1, 0, 3, 2))

    def test_wrong_width_rejected(self):
        with self.assertRaises(ValueError):
            avg_pool_forward(np.ones((1, 5)), **_geom(2, 2, 0, 2, 1))

    def test_backward_is_adjoint_of_forward(self):
        rng = np.random.default_rng(4)
        geom = _geom(5, 3, 0, 2, 2, channels=2)
        x = rng.standard_normal((3, 50))
        g = rng.standard_normal((3, 8))
        lhs = np.sum(avg_pool_forward(x, **geom) * g)
        rhs = np.sum(x * avg_pool_backward(g, None, **geom))
        self.assertAlmostEqual(lhs, rhs, places=10)


if __name__ == "__main__":
    unittest.main()
