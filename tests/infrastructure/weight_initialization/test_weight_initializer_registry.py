import unittest

import numpy as np

from dagnet.domain import ConfigurationError
from dagnet.infrastructure.utils.weight_initializer import WeightInitializer


class TestWeightInitializerRegistry(unittest.TestCase):
    def test_available_contains_builtin_initializers(self):
        names = WeightInitializer.available()
        for name in ("gaussian", "xavier", "zeros"):
            self.assertIn(name, names)

    def test_unknown_initializer_raises_configuration_error(self):
        with self.assertRaises(ConfigurationError) as ctx:
            WeightInitializer("___does_not_exist___")
        msg = str(ctx.exception)
        self.assertIn("unsupported initializer name", msg)
        self.assertIn("Available:", msg)

    def test_register_initializer_no_overwrite_by_default(self):
        name = "__unit_test_initializer__"

        @WeightInitializer.register_initializer(name, overwrite=True)
        def init_a(shape, *, scale, dtype):
            return np.zeros(shape, dtype=dtype)

        with self.assertRaises(ValueError):

            @WeightInitializer.register_initializer(name)
            def init_b(shape, *, scale, dtype):
                return np.zeros(shape, dtype=dtype)

    def test_register_initializer_overwrite_true(self):
        name = "__unit_test_initializer_overwrite__"

        @WeightInitializer.register_initializer(name, overwrite=True)
        def init_a(shape, *, scale, dtype):
            return np.zeros(shape, dtype=dtype)

        @WeightInitializer.register_initializer(name, overwrite=True)
        def init_b(shape, *, scale, dtype):
            return np.full(shape, 7.0, dtype=dtype)

        out = WeightInitializer(name)((2, 2))
        np.testing.assert_array_equal(out, np.full((2, 2), 7.0))

    def test_empty_name_rejected(self):
        with self.assertRaises(ValueError):
            WeightInitializer.register_initializer("")

    def test_dispatch_forwards_scale_and_dtype(self):
        name = "__unit_test_dispatch__"
        seen = {}

        @WeightInitializer.register_initializer(name, overwrite=True)
        def init(shape, *, scale, dtype):
            seen["scale"] = scale
            seen["dtype"] = dtype
            return np.zeros(shape, dtype=dtype)

        w = WeightInitializer(name)((3, 5), scale=0.5, dtype="float32")
        self.assertEqual(w.shape, (3, 5))
        self.assertEqual(w.dtype, np.float32)
        self.assertEqual(seen, {"scale": 0.5, "dtype": "float32"})


class TestBuiltinInitializers(unittest.TestCase):
    def test_zeros(self):
        w = WeightInitializer("zeros")((4, 3))
        np.testing.assert_array_equal(w, np.zeros((4, 3)))

    def test_gaussian_scale(self):
        np.random.seed(0)
        w = WeightInitializer("gaussian")((200, 200), scale=0.1)
        self.assertEqual(w.shape, (200, 200))
        self.assertAlmostEqual(float(w.std()), 0.1, delta=0.005)
        self.assertAlmostEqual(float(w.mean()), 0.0, delta=0.005)

    def test_xavier_ignores_scale(self):
        np.random.seed(1)
        w = WeightInitializer("xavier")((300, 100), scale=123.0)
        expected = np.sqrt(2.0 / 400.0)
        self.assertAlmostEqual(float(w.std()), expected, delta=0.005)

    def test_dtype_respected(self):
        w = WeightInitializer("gaussian")((2, 3), dtype="float32")
        self.assertEqual(w.dtype, np.float32)


if __name__ == "__main__":
    unittest.main()
