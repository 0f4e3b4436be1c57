"""
Infrastructure layer of dagnet: NumPy backend, layer kinds and the graph
engine.
"""

from ._buffer import BufferView
from ._weights import WeightGroup
from ._layer import Layer
from ._graph import Graph
from ._config import graph_from_config
from ._gradient_check import GradientCheckResult, check_all_gradients, check_gradient
from .layers import (
    layer_from_config,
    make_conv_layer,
    make_cost_layer,
    make_data_layer,
    make_fc_layer,
    make_norm_layer,
    make_pool_layer,
    make_softmax_layer,
)
from .utils.weight_initializer import WeightInitializer

__all__ = [
    BufferView.__name__,
    WeightGroup.__name__,
    Layer.__name__,
    Graph.__name__,
    graph_from_config.__name__,
    GradientCheckResult.__name__,
    check_all_gradients.__name__,
    check_gradient.__name__,
    layer_from_config.__name__,
    make_conv_layer.__name__,
    make_cost_layer.__name__,
    make_data_layer.__name__,
    make_fc_layer.__name__,
    make_norm_layer.__name__,
    make_pool_layer.__name__,
    make_softmax_layer.__name__,
    WeightInitializer.__name__,
]
