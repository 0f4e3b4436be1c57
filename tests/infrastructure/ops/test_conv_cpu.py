import unittest

import numpy as np

from dagnet.infrastructure.ops.conv_cpu import (
    conv_backward_input,
    conv_backward_weights,
    conv_forward,
    conv_output_size,
)


def _naive_conv(images, filters, channels, img_size, filter_size, padding, stride, modules_x):
    n = images.shape[0]
    num_filters = filters.shape[1]
    x = images.reshape(n, channels, img_size, img_size)
    w = filters.reshape(channels, filter_size, filter_size, num_filters)
    out = np.zeros((n, num_filters, modules_x, modules_x))
    for i in range(modules_x):
        for j in range(modules_x):
            for c in range(channels):
                for dy in range(filter_size):
                    for dx in range(filter_size):
                        y = -padding + i * stride + dy
                        xx = -padding + j * stride + dx
                        if 0 <= y < img_size and 0 <= xx < img_size:
                            out[:, :, i, j] += np.outer(x[:, c, y, xx], w[c, dy, dx])
    return out.reshape(n, -1)


class TestConvGeometry(unittest.TestCase):
    def test_output_size(self):
        self.assertEqual(conv_output_size(3, 2, 0, 1), 2)
        self.assertEqual(conv_output_size(5, 3, 1, 2), 3)
        self.assertEqual(conv_output_size(8, 5, 2, 1), 8)


class TestConvForward(unittest.TestCase):
    def test_hand_computed_response(self):
        x = np.arange(9, dtype=np.float64).reshape(1, 9)
        w = np.ones((4, 1))
        y = conv_forward(
            x, w, channels=1, img_size=3, filter_size=2, padding=0, stride=1, modules_x=2
        )
        np.testing.assert_array_equal(y, [[8.0, 12.0, 20.0, 24.0]])

    def test_matches_naive_reference(self):
        rng = np.random.default_rng(0)
        geom = dict(channels=2, img_size=5, filter_size=3, padding=1, stride=2, modules_x=3)
        x = rng.standard_normal((3, 2 * 25))
        w = rng.standard_normal((2 * 9, 4))
        np.testing.assert_allclose(
            conv_forward(x, w, **geom), _naive_conv(x, w, **geom), rtol=1e-10, atol=1e-12
        )

    def test_rejects_wrong_widths(self):
        geom = dict(channels=1, img_size=3, filter_size=2, padding=0, stride=1, modules_x=2)
        with self.assertRaises(ValueError):
            conv_forward(np.ones((1, 8)), np.ones((4, 1)), **geom)
        with self.assertRaises(ValueError):
            conv_forward(np.ones((1, 9)), np.ones((5, 1)), **geom)


class TestConvBackward(unittest.TestCase):
    def setUp(self):
        rng = np.random.default_rng(1)
        self.geom = dict(channels=2, img_size=5, filter_size=3, padding=1, stride=2, modules_x=3)
        self.x = rng.standard_normal((2, 50))
        self.w = rng.standard_normal((18, 3))
        self.g = rng.standard_normal((2, 3 * 9))

    def test_input_gradient_is_adjoint(self):
        lhs = np.sum(conv_forward(self.x, self.w, **self.geom) * self.g)
        dx = conv_backward_input(self.g, self.w, None, **self.geom)
        self.assertEqual(dx.shape, self.x.shape)
        self.assertAlmostEqual(lhs, float(np.sum(self.x * dx)), places=9)

    def test_weight_gradient_is_adjoint(self):
        lhs = np.sum(conv_forward(self.x, self.w, **self.geom) * self.g)
        dw, partials = conv_backward_weights(self.x, self.g, num_filters=3, **self.geom)
        self.assertIsNone(partials)
        self.assertEqual(dw.shape, self.w.shape)
        self.assertAlmostEqual(lhs, float(np.sum(self.w * dw)), places=9)

    def test_input_gradient_accumulates(self):
        base = np.ones_like(self.x)
        dx = conv_backward_input(self.g, self.w, None, **self.geom)
        acc = conv_backward_input(self.g, self.w, base, scale_target=1.0, **self.geom)
        np.testing.assert_allclose(acc, base + dx)

    def test_partial_sums_match_untiled_gradient(self):
        rng = np.random.default_rng(2)
        geom = dict(channels=1, img_size=3, filter_size=2, padding=0, stride=1, modules_x=2)
        x = rng.standard_normal((4, 9))
        g = rng.standard_normal((4, 2 * 4))
        full, _ = conv_backward_weights(x, g, num_filters=2, **geom)
        tiled, partials = conv_backward_weights(x, g, num_filters=2, partial_sum=3, **geom)
        self.assertEqual(partials.shape, (2, 4, 2))
        np.testing.assert_allclose(tiled, full, rtol=1e-12, atol=1e-12)
        np.testing.assert_allclose(partials.sum(axis=0), full, rtol=1e-12, atol=1e-12)

    def test_partial_sum_covering_all_positions_is_untiled(self):
        geom = dict(channels=1, img_size=3, filter_size=2, padding=0, stride=1, modules_x=2)
        _, partials = conv_backward_weights(
            np.ones((1, 9)), np.ones((1, 4)), num_filters=1, partial_sum=4, **geom
        )
        self.assertIsNone(partials)


if __name__ == "__main__":
    unittest.main()
