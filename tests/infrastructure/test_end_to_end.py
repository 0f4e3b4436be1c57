import unittest

import numpy as np

import dagnet
from dagnet import (
    Graph,
    PassType,
    make_cost_layer,
    make_data_layer,
    make_fc_layer,
    make_softmax_layer,
)


class TestEndToEnd(unittest.TestCase):
    """data -> fc(identity) -> softmax -> logistic-regression cost."""

    def setUp(self):
        self.graph = Graph()
        data = self.graph.add_layer(make_data_layer("data", data_idx=0, outputs=2))
        labels = self.graph.add_layer(make_data_layer("labels", data_idx=1, outputs=1))
        fc = self.graph.add_layer(
            make_fc_layer("fc", [[[1.0, 0.0], [0.0, 1.0]]], [0.0, 0.0])
        )
        probs = self.graph.add_layer(make_softmax_layer("probs", outputs=2))
        cost = self.graph.add_layer(make_cost_layer("cost", "cost.logreg", coeff=1.0))
        self.graph.connect(data, fc)
        self.graph.connect(fc, probs)
        self.graph.connect(labels, cost)
        self.graph.connect(probs, cost)
        self.batch = [np.array([[1.0, 2.0]]), np.array([[1.0]])]

    def test_forward(self):
        self.graph.run_forward(self.batch, PassType.TEST)
        np.testing.assert_allclose(self.graph.layer("fc").acts.matrix, [[1.0, 2.0]])
        np.testing.assert_allclose(
            self.graph.layer("probs").acts.matrix, [[0.2689, 0.7311]], atol=1e-4
        )
        nll, errors = self.graph.costs()["cost"]
        self.assertAlmostEqual(nll, 0.3133, places=4)
        self.assertEqual(errors, 0.0)

    def test_backward_reaches_fully_connected_layer(self):
        self.graph.run_forward(self.batch)
        self.graph.run_backward()
        np.testing.assert_allclose(
            self.graph.layer("fc").acts_grad.matrix, [[0.2689, -0.2689]], atol=1e-4
        )
        np.testing.assert_allclose(
            self.graph.layer("fc").weight("weights0").grad,
            -np.array([[1.0], [2.0]]) @ np.array([[0.26894142, -0.26894142]]),
            atol=1e-7,
        )

    def test_package_exports(self):
        for name in ("Graph", "RunConfig", "graph_from_config", "check_gradient", "ConfigurationError"):
            self.assertIn(name, dagnet.__all__)


if __name__ == "__main__":
    unittest.main()
