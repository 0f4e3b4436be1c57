"""
Local pooling layer (``max`` and ``avg``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence

import numpy as np

from ...domain._errors import (
    ConfigurationError,
    UnknownPoolingTypeError,
)
from ...domain._layer_kind import LayerKind
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer
from ..ops.pool_cpu import (
    avg_pool_backward,
    avg_pool_forward,
    max_pool_backward,
    max_pool_forward,
)
from ._common import image_size, require, require_int, single_input
from ._registry import LayerOps, register_layer, register_layer_ops

POOL_TYPES = ("max", "avg")


@dataclass(frozen=True)
class PoolParams:
    pool: str
    channels: int
    img_size: int
    size_x: int
    start: int = 0
    stride: int = 1
    outputs_x: int = 0

    def geometry(self) -> dict:
        return dict(
            channels=self.channels,
            img_size=self.img_size,
            size_x=self.size_x,
            start=self.start,
            stride=self.stride,
            outputs_x=self.outputs_x,
        )


def pool_output_size(img_size: int, size_x: int, start: int, stride: int) -> int:
    """
    Number of windows per axis needed to cover the image from ``start``.
    """
    return int(math.ceil((img_size - start - size_x) / float(stride))) + 1


def pool_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    p: PoolParams = layer.params
    if p.pool == "max":
        return max_pool_forward(inputs[0], **p.geometry())
    return avg_pool_forward(inputs[0], **p.geometry())


def pool_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    p: PoolParams = layer.params
    if p.pool == "max":
        images = graph.input_matrix(layer, input_index)
        graph.accumulate_input_gradient(
            layer,
            input_index,
            lambda target, scale_target: max_pool_backward(
                images, grad, target, scale_target=scale_target, **p.geometry()
            ),
        )
    else:
        graph.accumulate_input_gradient(
            layer,
            input_index,
            lambda target, scale_target: avg_pool_backward(
                grad, target, scale_target=scale_target, **p.geometry()
            ),
        )


register_layer_ops(
    LayerKind.POOLING,
    LayerOps(compute_forward=pool_forward, compute_input_gradient=pool_input_gradient),
)


def make_pool_layer(name: str, params: PoolParams, transposed: bool = False) -> Layer:
    """
    Create a pooling layer.

    ``params.outputs_x`` may be 0, in which case it is derived so that the
    windows cover the image.

    Raises
    ------
    UnknownPoolingTypeError
        If ``params.pool`` is neither ``"max"`` nor ``"avg"``.
    ConfigurationError
        If the window geometry is invalid.
    """
    if params.pool not in POOL_TYPES:
        raise UnknownPoolingTypeError(params.pool, name)
    if params.size_x < 1 or params.stride < 1 or params.channels < 1:
        raise ConfigurationError(
            f"invalid pooling geometry: channels={params.channels}, "
            f"size_x={params.size_x}, stride={params.stride}",
            name,
        )
    outputs_x = params.outputs_x or pool_output_size(
        params.img_size, params.size_x, params.start, params.stride
    )
    if outputs_x < 1:
        raise ConfigurationError("pooling produces no outputs", name)
    if outputs_x != params.outputs_x:
        params = replace(params, outputs_x=outputs_x)
    return Layer(
        name=name,
        kind=LayerKind.POOLING,
        params=params,
        outputs=params.channels * outputs_x * outputs_x,
        transposed=bool(transposed),
    )


@register_layer("pool")
def build_pool_layer(
    cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
) -> Layer:
    name = cfg["name"]
    src = single_input(cfg, inputs)
    channels = require_int(cfg, "channels")
    size_x = require_int(cfg, "size_x")
    img_size = image_size(cfg, src, channels)
    params = PoolParams(
        pool=str(require(cfg, "pool")),
        channels=channels,
        img_size=img_size,
        size_x=size_x,
        start=int(cfg.get("start", 0)),
        stride=int(cfg.get("stride", size_x)),
        outputs_x=int(cfg.get("outputs_x", 0)),
    )
    return make_pool_layer(name, params, transposed=bool(cfg.get("trans", False)))
