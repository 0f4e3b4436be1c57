"""
Convolution layer.

Input and output matrices are ``(cases, channels * size * size)``,
channel-major. The filter bank is a ``(channels * filter_size**2,
num_filters)`` weight group named ``filters``; biases are ``(1,
num_filters)`` when shared across output positions, otherwise ``(1,
num_filters * modules_x**2)``.

When ``partial_sum`` is positive and smaller than the number of output
positions, the filter gradient is reduced per tile of positions first. The
tile buffer is kept as the scratch buffer ``weight_grad_partials`` and is
released together with the activation gradients.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence

import numpy as np

from ...domain._errors import ConfigurationError, ShapeMismatchError
from ...domain._layer_kind import LayerKind
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer
from .._weights import WeightGroup
from ..ops.activation_cpu import get_activation
from ..ops.conv_cpu import (
    conv_backward_input,
    conv_backward_weights,
    conv_forward,
    conv_output_size,
)
from ..ops.matrix_cpu import add_row_vector, column_sums
from ._common import (
    image_size,
    initial_matrix,
    per_group,
    release_scratch,
    require_int,
    single_input,
    store_scratch,
)
from ._registry import LayerOps, register_layer, register_layer_ops

logger = logging.getLogger(__name__)

PARTIALS = "weight_grad_partials"


@dataclass(frozen=True)
class ConvParams:
    channels: int
    img_size: int
    filter_size: int
    num_filters: int
    padding: int = 0
    stride: int = 1
    modules_x: int = 0
    partial_sum: int = 0
    shared_biases: bool = True
    activation: str = "ident"

    @property
    def positions(self) -> int:
        return self.modules_x * self.modules_x

    def geometry(self) -> dict:
        return dict(
            channels=self.channels,
            img_size=self.img_size,
            filter_size=self.filter_size,
            padding=self.padding,
            stride=self.stride,
            modules_x=self.modules_x,
        )


def _bias_row(p: ConvParams, biases: np.ndarray) -> np.ndarray:
    # Output columns are filter-major: filter f owns columns [f*P, (f+1)*P).
    if p.shared_biases:
        return np.repeat(biases, p.positions, axis=1)
    return biases


def conv_layer_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    p: ConvParams = layer.params
    act = get_activation(p.activation, layer.name)
    out = conv_forward(inputs[0], layer.weights["filters"].value, **p.geometry())
    return act.forward(add_row_vector(out, _bias_row(p, layer.weights["biases"].value)))


def conv_common_backward(
    graph: Any, layer: Layer, grad: np.ndarray, pass_type: PassType
) -> np.ndarray:
    act = get_activation(layer.params.activation, layer.name)
    return act.apply_gradient(layer.acts.matrix, grad)


def conv_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    p: ConvParams = layer.params
    filters = layer.weights["filters"].value
    graph.accumulate_input_gradient(
        layer,
        input_index,
        lambda target, scale_target: conv_backward_input(
            grad, filters, target, scale_target=scale_target, **p.geometry()
        ),
    )


def conv_weight_gradients(
    graph: Any, layer: Layer, grad: np.ndarray, pass_type: PassType
) -> None:
    p: ConvParams = layer.params
    dw, partials = conv_backward_weights(
        graph.input_matrix(layer, 0),
        grad,
        num_filters=p.num_filters,
        partial_sum=p.partial_sum,
        **p.geometry(),
    )
    layer.weights["filters"].set_grad(-dw)
    if partials is not None:
        store_scratch(layer, PARTIALS, partials.reshape(partials.shape[0], -1))

    db = column_sums(grad)
    if p.shared_biases:
        db = db.reshape(1, p.num_filters, p.positions).sum(axis=2)
    layer.weights["biases"].set_grad(-db)


def conv_truncate(layer: Layer, config: RunConfig) -> None:
    if not config.retain_activation_gradients:
        release_scratch(layer, PARTIALS)


register_layer_ops(
    LayerKind.CONVOLUTION,
    LayerOps(
        compute_forward=conv_layer_forward,
        compute_common_backward=conv_common_backward,
        compute_input_gradient=conv_input_gradient,
        compute_weight_gradients=conv_weight_gradients,
        truncate_transient_buffers=conv_truncate,
    ),
)


def make_conv_layer(
    name: str,
    params: ConvParams,
    filters: np.ndarray,
    biases: np.ndarray,
    *,
    lr: float = 0.0,
    momentum: float = 0.0,
    weight_decay: float = 0.0,
    bias_lr: float = 0.0,
    bias_momentum: float = 0.0,
    transposed: bool = False,
    dtype: str = "float64",
) -> Layer:
    """
    Create a convolution layer.

    ``params.modules_x`` may be 0, in which case it is derived from the
    image size, filter size, padding and stride.

    Raises
    ------
    ConfigurationError
        If the geometry is invalid.
    ShapeMismatchError
        If the filter or bias shapes do not match the geometry.
    """
    if params.padding < 0 or params.stride < 1 or params.partial_sum < 0:
        raise ConfigurationError(
            f"invalid convolution geometry: padding={params.padding}, "
            f"stride={params.stride}, partial_sum={params.partial_sum}",
            name,
        )
    modules_x = params.modules_x or conv_output_size(
        params.img_size, params.filter_size, params.padding, params.stride
    )
    if modules_x < 1:
        raise ConfigurationError(
            f"filters of size {params.filter_size} produce no output positions "
            f"on {params.img_size}x{params.img_size} images",
            name,
        )
    if modules_x != params.modules_x:
        params = replace(params, modules_x=modules_x)
    get_activation(params.activation, name)

    k = params.channels * params.filter_size * params.filter_size
    f = np.array(filters, dtype=dtype, ndmin=2)
    if f.shape != (k, params.num_filters):
        raise ShapeMismatchError(
            f"layer '{name}': filters have shape {f.shape}, "
            f"expected {(k, params.num_filters)}"
        )
    bias_width = params.num_filters * (1 if params.shared_biases else params.positions)
    b = np.array(biases, dtype=dtype).reshape(1, -1)
    if b.shape[1] != bias_width:
        raise ShapeMismatchError(
            f"layer '{name}': biases have width {b.shape[1]}, expected {bias_width}"
        )
    if 0 < params.partial_sum < params.positions:
        logger.debug(
            "layer %s: filter gradients reduced over %d tiles of %d positions",
            name,
            math.ceil(params.positions / params.partial_sum),
            params.partial_sum,
        )

    return Layer(
        name=name,
        kind=LayerKind.CONVOLUTION,
        params=params,
        outputs=params.num_filters * params.positions,
        transposed=bool(transposed),
        weights={
            "filters": WeightGroup(
                "filters", f, lr=lr, momentum=momentum, weight_decay=weight_decay, dtype=dtype
            ),
            "biases": WeightGroup("biases", b, lr=bias_lr, momentum=bias_momentum, dtype=dtype),
        },
    )


@register_layer("conv")
def build_conv_layer(
    cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
) -> Layer:
    name = cfg["name"]
    src = single_input(cfg, inputs)
    channels = require_int(cfg, "channels")
    img_size = image_size(cfg, src, channels)

    params = ConvParams(
        channels=channels,
        img_size=img_size,
        filter_size=require_int(cfg, "filter_size"),
        num_filters=require_int(cfg, "num_filters"),
        padding=int(cfg.get("padding", 0)),
        stride=int(cfg.get("stride", 1)),
        modules_x=int(cfg.get("modules_x", 0)),
        partial_sum=int(cfg.get("partial_sum", 0)),
        shared_biases=bool(cfg.get("shared_biases", True)),
        activation=cfg.get("activation", cfg.get("neuron", "ident")),
    )
    modules_x = params.modules_x or conv_output_size(
        img_size, params.filter_size, params.padding, params.stride
    )
    k = channels * params.filter_size * params.filter_size
    bias_width = params.num_filters * (1 if params.shared_biases else modules_x * modules_x)
    filters = initial_matrix(
        cfg, "filters", (k, params.num_filters), run_config.dtype, cfg.get("init", "gaussian")
    )
    biases = initial_matrix(cfg, "biases", (1, bias_width), run_config.dtype, "zeros")
    return make_conv_layer(
        name,
        params,
        filters,
        biases,
        lr=per_group(cfg, "lr", 1, 0.0)[0],
        momentum=per_group(cfg, "momentum", 1, 0.0)[0],
        weight_decay=per_group(cfg, "weight_decay", 1, 0.0)[0],
        bias_lr=float(cfg.get("bias_lr", 0.0)),
        bias_momentum=float(cfg.get("bias_momentum", 0.0)),
        transposed=bool(cfg.get("trans", False)),
        dtype=run_config.dtype,
    )
