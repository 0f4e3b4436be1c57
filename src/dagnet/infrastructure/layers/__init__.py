"""
Layer kinds.

Importing this package registers every kind's capability table and
configuration builder via import side effects.
"""

from ._registry import (
    LayerOps,
    get_layer_builder,
    get_layer_ops,
    layer_from_config,
    register_layer,
    register_layer_ops,
    registered_tags,
)
from ._data import DataParams, make_data_layer
from ._fully_connected import FCParams, make_fc_layer
from ._convolution import ConvParams, make_conv_layer
from ._pooling import PoolParams, make_pool_layer
from ._normalization import NormParams, make_norm_layer
from ._softmax import make_softmax_layer, uses_fused_logreg_gradient
from ._cost import CostParams, make_cost_layer, skips_explicit_gradient

__all__ = [
    LayerOps.__name__,
    get_layer_builder.__name__,
    get_layer_ops.__name__,
    layer_from_config.__name__,
    register_layer.__name__,
    register_layer_ops.__name__,
    registered_tags.__name__,
    DataParams.__name__,
    make_data_layer.__name__,
    FCParams.__name__,
    make_fc_layer.__name__,
    ConvParams.__name__,
    make_conv_layer.__name__,
    PoolParams.__name__,
    make_pool_layer.__name__,
    NormParams.__name__,
    make_norm_layer.__name__,
    make_softmax_layer.__name__,
    uses_fused_logreg_gradient.__name__,
    CostParams.__name__,
    make_cost_layer.__name__,
    skips_explicit_gradient.__name__,
]
