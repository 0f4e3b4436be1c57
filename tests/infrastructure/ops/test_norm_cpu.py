import unittest

import numpy as np

from dagnet.infrastructure.ops.norm_cpu import (
    contrast_norm_backward,
    contrast_norm_forward,
    response_norm_backward,
    response_norm_forward,
)


def _numeric_grad(fn, x, g, eps=1e-6):
    out = np.zeros_like(x)
    for idx in np.ndindex(*x.shape):
        xp, xm = x.copy(), x.copy()
        xp[idx] += eps
        xm[idx] -= eps
        out[idx] = (np.sum(g * fn(xp)) - np.sum(g * fn(xm))) / (2 * eps)
    return out


class TestResponseNorm(unittest.TestCase):
    def test_hand_computed_values(self):
        x = np.array([[1.0, 2.0, 3.0]])
        y, denoms = response_norm_forward(x, channels=3, size=3, scale=1.0, pow=1.0)
        np.testing.assert_allclose(denoms, [[6.0, 15.0, 14.0]])
        np.testing.assert_allclose(y, [[1.0 / 6.0, 2.0 / 15.0, 3.0 / 14.0]])

    def test_backward_matches_finite_differences(self):
        rng = np.random.default_rng(0)
        for size in (3, 4):
            with self.subTest(size=size):
                kw = dict(channels=5, size=size, scale=0.3, pow=0.75)
                x = rng.standard_normal((2, 5 * 4))
                g = rng.standard_normal((2, 5 * 4))
                y, denoms = response_norm_forward(x, **kw)
                analytic = response_norm_backward(g, x, y, denoms, None, **kw)
                numeric = _numeric_grad(lambda v: response_norm_forward(v, **kw)[0], x, g)
                np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-8)

    def test_backward_accumulates(self):
        x = np.array([[1.0, 2.0, 3.0]])
        kw = dict(channels=3, size=3, scale=1.0, pow=1.0)
        y, denoms = response_norm_forward(x, **kw)
        g = np.ones_like(x)
        once = response_norm_backward(g, x, y, denoms, None, **kw)
        twice = response_norm_backward(g, x, y, denoms, once, scale_target=1.0, **kw)
        np.testing.assert_allclose(twice, 2.0 * once)


class TestContrastNorm(unittest.TestCase):
    def test_constant_image_has_zero_mean_differences(self):
        x = np.full((1, 2 * 9), 4.0)
        out, denoms, mean_diffs = contrast_norm_forward(
            x, channels=2, img_size=3, size=3, scale=0.5, pow=0.75
        )
        np.testing.assert_allclose(mean_diffs, np.zeros_like(x), atol=1e-12)
        np.testing.assert_allclose(out, np.zeros_like(x), atol=1e-12)
        np.testing.assert_allclose(denoms, np.ones_like(x))

    def test_backward_matches_finite_differences(self):
        rng = np.random.default_rng(1)
        kw = dict(channels=2, img_size=4, size=3, scale=0.2, pow=0.75)
        x = rng.standard_normal((2, 2 * 16))
        g = rng.standard_normal((2, 2 * 16))
        out, denoms, mean_diffs = contrast_norm_forward(x, **kw)
        analytic = contrast_norm_backward(g, mean_diffs, out, denoms, None, **kw)
        numeric = _numeric_grad(lambda v: contrast_norm_forward(v, **kw)[0], x, g)
        np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-8)


if __name__ == "__main__":
    unittest.main()
