"""
Local normalization layers.

``rnorm`` (response normalization) divides every activation by
``(1 + scale * sum x**2)**pow`` over a window of ``size`` neighbouring
channels. ``cnorm`` (contrast normalization) first subtracts the local
``size x size`` spatial mean and normalizes the mean differences.

Backward needs forward-derived transients: the denominators (both kinds)
and the mean differences (``cnorm``). They are kept as scratch buffers and
released together with the activations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import numpy as np

from ...domain._errors import ConfigurationError
from ...domain._layer_kind import LayerKind
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer
from ..ops.norm_cpu import (
    contrast_norm_backward,
    contrast_norm_forward,
    response_norm_backward,
    response_norm_forward,
)
from ._common import (
    image_size,
    release_scratch,
    require_int,
    scratch_matrix,
    single_input,
    store_scratch,
)
from ._registry import LayerOps, register_layer, register_layer_ops

DENOMS = "denoms"
MEAN_DIFFS = "mean_diffs"


@dataclass(frozen=True)
class NormParams:
    channels: int
    img_size: int
    size: int
    scale: float = 0.0001
    pow: float = 0.75


def rnorm_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    p: NormParams = layer.params
    out, denoms = response_norm_forward(
        inputs[0], channels=p.channels, size=p.size, scale=p.scale, pow=p.pow
    )
    store_scratch(layer, DENOMS, denoms)
    return out


def rnorm_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    p: NormParams = layer.params
    x = graph.input_matrix(layer, input_index)
    denoms = scratch_matrix(layer, DENOMS)
    graph.accumulate_input_gradient(
        layer,
        input_index,
        lambda target, scale_target: response_norm_backward(
            grad,
            x,
            layer.acts.matrix,
            denoms,
            target,
            channels=p.channels,
            size=p.size,
            scale=p.scale,
            pow=p.pow,
            scale_target=scale_target,
        ),
    )


def cnorm_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    p: NormParams = layer.params
    out, denoms, mean_diffs = contrast_norm_forward(
        inputs[0],
        channels=p.channels,
        img_size=p.img_size,
        size=p.size,
        scale=p.scale,
        pow=p.pow,
    )
    store_scratch(layer, DENOMS, denoms)
    store_scratch(layer, MEAN_DIFFS, mean_diffs)
    return out


def cnorm_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    p: NormParams = layer.params
    denoms = scratch_matrix(layer, DENOMS)
    mean_diffs = scratch_matrix(layer, MEAN_DIFFS)
    graph.accumulate_input_gradient(
        layer,
        input_index,
        lambda target, scale_target: contrast_norm_backward(
            grad,
            mean_diffs,
            layer.acts.matrix,
            denoms,
            target,
            channels=p.channels,
            img_size=p.img_size,
            size=p.size,
            scale=p.scale,
            pow=p.pow,
            scale_target=scale_target,
        ),
    )


def norm_truncate(layer: Layer, config: RunConfig) -> None:
    if not config.retain_activations:
        release_scratch(layer, DENOMS, MEAN_DIFFS)


register_layer_ops(
    LayerKind.RESPONSE_NORM,
    LayerOps(
        compute_forward=rnorm_forward,
        compute_input_gradient=rnorm_input_gradient,
        truncate_transient_buffers=norm_truncate,
    ),
)
register_layer_ops(
    LayerKind.CONTRAST_NORM,
    LayerOps(
        compute_forward=cnorm_forward,
        compute_input_gradient=cnorm_input_gradient,
        truncate_transient_buffers=norm_truncate,
    ),
)


def make_norm_layer(
    name: str, kind: LayerKind, params: NormParams, transposed: bool = False
) -> Layer:
    """
    Create a response- or contrast-normalization layer.

    Raises
    ------
    ConfigurationError
        If ``kind`` is not a normalization kind or the hyperparameters are
        invalid.
    """
    if kind not in (LayerKind.RESPONSE_NORM, LayerKind.CONTRAST_NORM):
        raise ConfigurationError(f"{kind.value!r} is not a normalization kind", name)
    if params.size < 1 or params.channels < 1 or params.img_size < 1:
        raise ConfigurationError(
            f"invalid normalization geometry: channels={params.channels}, "
            f"img_size={params.img_size}, size={params.size}",
            name,
        )
    if kind is LayerKind.CONTRAST_NORM and params.size > params.img_size:
        raise ConfigurationError(
            f"contrast window {params.size} exceeds image size {params.img_size}", name
        )
    return Layer(
        name=name,
        kind=kind,
        params=params,
        outputs=params.channels * params.img_size * params.img_size,
        transposed=bool(transposed),
    )


def _build_norm(
    kind: LayerKind, cfg: Mapping[str, Any], inputs: Sequence[Layer]
) -> Layer:
    name = cfg["name"]
    src = single_input(cfg, inputs)
    channels = require_int(cfg, "channels")
    img_size = image_size(cfg, src, channels)
    params = NormParams(
        channels=channels,
        img_size=img_size,
        size=require_int(cfg, "size"),
        scale=float(cfg.get("scale", 0.0001)),
        pow=float(cfg.get("pow", 0.75)),
    )
    return make_norm_layer(name, kind, params, transposed=bool(cfg.get("trans", False)))


@register_layer("rnorm")
def build_rnorm_layer(
    cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
) -> Layer:
    return _build_norm(LayerKind.RESPONSE_NORM, cfg, inputs)


@register_layer("cnorm")
def build_cnorm_layer(
    cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
) -> Layer:
    return _build_norm(LayerKind.CONTRAST_NORM, cfg, inputs)
