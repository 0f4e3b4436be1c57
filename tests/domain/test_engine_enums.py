import dataclasses
import unittest

from dagnet.domain import ILayerOps, LayerKind, PassType, RunConfig


class TestLayerKind(unittest.TestCase):
    def test_from_tag_resolves_every_kind(self):
        for kind in LayerKind:
            self.assertIs(LayerKind.from_tag(kind.value), kind)

    def test_from_tag_unknown_returns_none(self):
        self.assertIsNone(LayerKind.from_tag("dropout"))
        self.assertIsNone(LayerKind.from_tag("cost.hinge"))

    def test_is_cost(self):
        self.assertTrue(LayerKind.COST_LOGREG.is_cost)
        self.assertTrue(LayerKind.COST_SUM2.is_cost)
        self.assertFalse(LayerKind.SOFTMAX.is_cost)
        self.assertFalse(LayerKind.DATA.is_cost)


class TestPassType(unittest.TestCase):
    def test_only_gradient_check_is_gradient_check(self):
        self.assertTrue(PassType.GRADIENT_CHECK.is_gradient_check)
        self.assertFalse(PassType.TRAIN.is_gradient_check)
        self.assertFalse(PassType.TEST.is_gradient_check)


class TestRunConfig(unittest.TestCase):
    def test_defaults_retain_everything(self):
        cfg = RunConfig()
        self.assertTrue(cfg.retain_activations)
        self.assertTrue(cfg.retain_activation_gradients)
        self.assertEqual(cfg.dtype, "float64")

    def test_is_frozen(self):
        cfg = RunConfig()
        with self.assertRaises(dataclasses.FrozenInstanceError):
            cfg.retain_activations = False  # type: ignore[misc]


class TestLayerOpsProtocol(unittest.TestCase):
    def test_object_with_all_entries_satisfies_protocol(self):
        class Table:
            def compute_forward(self, graph, layer, inputs, pass_type):
                return None

            def compute_common_backward(self, graph, layer, grad, pass_type):
                return grad

            def compute_input_gradient(self, graph, layer, grad, i, pass_type):
                return None

            def compute_weight_gradients(self, graph, layer, grad, pass_type):
                return None

            def truncate_transient_buffers(self, layer, config):
                return None

            def check_gradients(self, graph, layer, data, tolerance=1e-4, epsilon=1e-5):
                return []

        self.assertIsInstance(Table(), ILayerOps)

    def test_incomplete_object_does_not_satisfy_protocol(self):
        class Partial:
            def compute_forward(self, graph, layer, inputs, pass_type):
                return None

        self.assertNotIsInstance(Partial(), ILayerOps)


if __name__ == "__main__":
    unittest.main()
