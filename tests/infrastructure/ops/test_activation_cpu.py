import unittest

import numpy as np

from dagnet.domain import UnknownActivationError
from dagnet.infrastructure.ops.activation_cpu import get_activation


class TestActivations(unittest.TestCase):
    NAMES = ("ident", "relu", "logistic", "tanh", "softrelu")

    def test_derivative_matches_finite_differences(self):
        rng = np.random.default_rng(3)
        # Keep away from the relu kink.
        x = rng.uniform(0.1, 2.0, size=(4, 5)) * rng.choice([-1.0, 1.0], size=(4, 5))
        eps = 1e-6
        for name in self.NAMES:
            with self.subTest(activation=name):
                act = get_activation(name)
                y = act.forward(x)
                numeric = (act.forward(x + eps) - act.forward(x - eps)) / (2 * eps)
                analytic = act.apply_gradient(y, np.ones_like(x))
                np.testing.assert_allclose(analytic, numeric, rtol=1e-5, atol=1e-7)

    def test_apply_gradient_scales_incoming(self):
        act = get_activation("tanh")
        y = act.forward(np.array([[0.3, -0.7]]))
        g = np.array([[2.0, -3.0]])
        np.testing.assert_allclose(act.apply_gradient(y, g), g * (1 - y * y))

    def test_linear_is_alias_of_ident(self):
        self.assertIs(get_activation("linear"), get_activation("ident"))

    def test_unknown_name_raises(self):
        with self.assertRaises(UnknownActivationError) as ctx:
            get_activation("swish", "fc1")
        self.assertEqual(ctx.exception.layer, "fc1")

    def test_logistic_is_stable_for_large_inputs(self):
        act = get_activation("logistic")
        with np.errstate(over="raise"):
            y = act.forward(np.array([[-1000.0, 0.0, 1000.0]]))
        np.testing.assert_allclose(y, [[0.0, 0.5, 1.0]])

    def test_relu_zeroes_negative_side(self):
        act = get_activation("relu")
        y = act.forward(np.array([[-1.0, 2.0]]))
        np.testing.assert_array_equal(y, [[0.0, 2.0]])
        np.testing.assert_array_equal(act.apply_gradient(y, np.ones((1, 2))), [[0.0, 1.0]])


if __name__ == "__main__":
    unittest.main()
