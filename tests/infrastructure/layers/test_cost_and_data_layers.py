import unittest

import numpy as np

from dagnet.domain import (
    ConfigurationError,
    LayerKind,
    ShapeMismatchError,
    UnknownCostTypeError,
)
from dagnet.infrastructure import (
    Graph,
    graph_from_config,
    make_cost_layer,
    make_data_layer,
)


class TestCostFactory(unittest.TestCase):
    def test_resolves_known_tags(self):
        self.assertIs(make_cost_layer("c", "cost.logreg").kind, LayerKind.COST_LOGREG)
        self.assertIs(make_cost_layer("c", "cost.sum2").kind, LayerKind.COST_SUM2)

    def test_unknown_tags(self):
        for tag in ("cost.hinge", "fc", "softmax"):
            with self.subTest(tag=tag):
                with self.assertRaises(UnknownCostTypeError):
                    make_cost_layer("c", tag)

    def test_coefficient_controls_gradient_flags(self):
        active = make_cost_layer("c", "cost.sum2", coeff=0.3)
        self.assertTrue(active.grad_consumer and active.grad_producer)
        self.assertEqual(active.params.coeff, 0.3)
        idle = make_cost_layer("c", "cost.sum2", coeff=0.0)
        self.assertFalse(idle.grad_consumer)
        self.assertFalse(idle.grad_producer)


class TestSumOfSquaresCost(unittest.TestCase):
    def test_metric_and_gradient(self):
        graph = Graph()
        d = graph.add_layer(make_data_layer("x", outputs=2))
        h = graph.add_layer(make_cost_layer("sq", "cost.sum2", coeff=1.5))
        graph.connect(d, h)
        x = np.array([[1.0, -2.0], [3.0, 0.5]])
        graph.run_forward([x])
        self.assertEqual(graph.costs()["sq"], (14.25,))
        self.assertAlmostEqual(graph.total_cost(), 1.5 * 14.25)


class TestLogisticRegressionCost(unittest.TestCase):
    def _graph(self):
        graph = Graph()
        probs = graph.add_layer(make_data_layer("probs", data_idx=0, outputs=2))
        labels = graph.add_layer(make_data_layer("labels", data_idx=1, outputs=1))
        cost = graph.add_layer(make_cost_layer("cost", "cost.logreg"))
        graph.connect(labels, cost)
        graph.connect(probs, cost)
        return graph

    def test_metrics(self):
        graph = self._graph()
        probs = np.array([[0.26894142, 0.73105858], [0.9, 0.1]])
        graph.run_forward([probs, np.array([[1.0], [1.0]])])
        nll, errors = graph.costs()["cost"]
        self.assertAlmostEqual(nll, -np.log(0.73105858) - np.log(0.1), places=6)
        self.assertEqual(errors, 1.0)

    def test_label_count_must_match(self):
        graph = self._graph()
        with self.assertRaises(ShapeMismatchError):
            graph.run_forward([np.full((2, 2), 0.5), np.array([[1.0]])])

    def test_invalid_labels_rejected_in_forward(self):
        graph = graph_from_config(
            [
                {"name": "data", "type": "data", "data_idx": 0, "outputs": 2},
                {"name": "labels", "type": "data", "data_idx": 1, "outputs": 1},
                {
                    "name": "fc",
                    "type": "fc",
                    "inputs": ["data"],
                    "outputs": 2,
                    "weights": [[[1.0, 0.0], [0.0, 1.0]]],
                },
                {"name": "probs", "type": "softmax", "inputs": ["fc"]},
                {"name": "cost", "type": "cost.logreg", "inputs": ["labels", "probs"]},
            ]
        )
        x = np.array([[1.0, 2.0]])
        for label in (-1.0, 2.0, 0.5):
            with self.subTest(label=label):
                with self.assertRaises(ShapeMismatchError):
                    graph.run_forward([x, np.array([[label]])])

        graph.run_forward([x, np.array([[1.0]])])
        self.assertAlmostEqual(graph.costs()["cost"][0], 0.31326169, places=6)


class TestDataLayer(unittest.TestCase):
    def test_flags_and_selection(self):
        layer = make_data_layer("d", data_idx=1, outputs=2)
        self.assertFalse(layer.grad_consumer)
        self.assertFalse(layer.grad_producer)
        graph = Graph()
        graph.add_layer(layer)
        second = np.array([[1.0, 2.0]])
        graph.run_forward([np.zeros((1, 5)), second])
        np.testing.assert_array_equal(layer.acts.matrix, second)

    def test_negative_index_rejected(self):
        with self.assertRaises(ConfigurationError):
            make_data_layer("d", data_idx=-1)


if __name__ == "__main__":
    unittest.main()
