import unittest

import numpy as np

from dagnet.domain import PassType, ProtocolError, ShapeMismatchError
from dagnet.infrastructure import WeightGroup


class TestWeightGroupUpdate(unittest.TestCase):
    def _group(self):
        g = WeightGroup("w", np.array([[2.0]]), lr=0.01, momentum=0.9, weight_decay=0.0005)
        g.increment = np.array([[0.1]])
        g.set_grad(np.array([[4.0]]))
        return g

    def test_closed_form_step(self):
        g = self._group()
        g.update(2)
        np.testing.assert_allclose(g.increment, [[0.10999]], rtol=0, atol=1e-12)
        np.testing.assert_allclose(g.value, [[2.10999]], rtol=0, atol=1e-12)

    def test_gradient_check_pass_drops_momentum(self):
        g = self._group()
        g.update(2, PassType.GRADIENT_CHECK)
        np.testing.assert_allclose(g.increment, [[0.01999]], rtol=0, atol=1e-12)
        np.testing.assert_allclose(g.value, [[2.01999]], rtol=0, atol=1e-12)

    def test_test_pass_keeps_momentum(self):
        g = self._group()
        g.update(2, PassType.TEST)
        np.testing.assert_allclose(g.increment, [[0.10999]], rtol=0, atol=1e-12)

    def test_non_positive_batch_size_rejected(self):
        with self.assertRaises(ValueError):
            self._group().update(0)

    def test_negative_hyperparameters_rejected(self):
        with self.assertRaises(ValueError):
            WeightGroup("w", np.ones((1, 1)), lr=-1.0)

    def test_value_must_be_matrix(self):
        with self.assertRaises(ShapeMismatchError):
            WeightGroup("w", np.ones(3), lr=0.1)

    def test_set_grad_checks_shape(self):
        g = WeightGroup("w", np.ones((2, 2)), lr=0.1)
        with self.assertRaises(ShapeMismatchError):
            g.set_grad(np.ones((2, 3)))

    def test_initial_value_is_copied(self):
        src = np.ones((2, 2))
        g = WeightGroup("w", src, lr=0.1)
        src[0, 0] = 5.0
        self.assertEqual(g.value[0, 0], 1.0)


class TestWeightGroupHostCopies(unittest.TestCase):
    def test_copy_to_device_without_host_copy(self):
        g = WeightGroup("w", np.ones((2, 2)), lr=0.1)
        with self.assertRaises(ProtocolError):
            g.copy_to_device()

    def test_round_trip_applies_host_edits(self):
        g = WeightGroup("w", np.ones((2, 2)), lr=0.1)
        g.copy_to_host()
        g.host_value[1, 1] = 9.0
        g.host_increment[0, 0] = -1.0
        self.assertEqual(g.value[1, 1], 1.0)
        g.copy_to_device()
        self.assertEqual(g.value[1, 1], 9.0)
        self.assertEqual(g.increment[0, 0], -1.0)

    def test_host_copy_is_a_snapshot(self):
        g = WeightGroup("w", np.ones((1, 2)), lr=0.1)
        g.copy_to_host()
        g.value = np.zeros((1, 2))
        np.testing.assert_array_equal(g.host_value, np.ones((1, 2)))

    def test_reshaped_host_copy_rejected(self):
        g = WeightGroup("w", np.ones((2, 2)), lr=0.1)
        g.copy_to_host()
        g.host_value = np.ones((4, 1))
        with self.assertRaises(ShapeMismatchError):
            g.copy_to_device()


if __name__ == "__main__":
    unittest.main()
