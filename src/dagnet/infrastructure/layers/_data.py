"""
Data-source layer.

A data layer has no predecessors. It is driven with an explicit list of
external matrices and publishes the one selected by ``data_idx`` as its
activations. It neither consumes nor produces gradients, so backward never
visits it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import numpy as np

from ...domain._errors import ConfigurationError, ShapeMismatchError
from ...domain._layer_kind import LayerKind
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer
from ._registry import LayerOps, register_layer, register_layer_ops


@dataclass(frozen=True)
class DataParams:
    data_idx: int = 0


def data_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    idx = layer.params.data_idx
    if idx >= len(inputs):
        raise ShapeMismatchError(
            f"layer '{layer.name}' selects data item {idx}, "
            f"but only {len(inputs)} were supplied"
        )
    m = np.asarray(inputs[idx])
    if m.ndim != 2:
        raise ShapeMismatchError(
            f"layer '{layer.name}': data item {idx} must be 2-D, got shape {m.shape}"
        )
    if layer.outputs and m.shape[1] != layer.outputs:
        raise ShapeMismatchError(
            f"layer '{layer.name}' expects {layer.outputs} features, "
            f"got {m.shape[1]}"
        )
    return m


register_layer_ops(LayerKind.DATA, LayerOps(compute_forward=data_forward))


def make_data_layer(
    name: str, data_idx: int = 0, outputs: int = 0, transposed: bool = False
) -> Layer:
    """
    Create a data-source layer.

    Parameters
    ----------
    name : str
        Layer name.
    data_idx : int, optional
        Index of the external matrix this layer publishes.
    outputs : int, optional
        Expected feature width; 0 leaves it unchecked.
    transposed : bool, optional
        Physical orientation of the published buffer.
    """
    if data_idx < 0:
        raise ConfigurationError(f"data_idx must be >= 0, got {data_idx}", name)
    return Layer(
        name=name,
        kind=LayerKind.DATA,
        params=DataParams(data_idx=int(data_idx)),
        outputs=int(outputs),
        transposed=bool(transposed),
        grad_consumer=False,
        grad_producer=False,
    )


@register_layer("data")
def build_data_layer(
    cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
) -> Layer:
    if inputs:
        raise ConfigurationError("data layers take no inputs", cfg["name"])
    return make_data_layer(
        cfg["name"],
        data_idx=int(cfg.get("data_idx", 0)),
        outputs=int(cfg.get("outputs", 0)),
        transposed=bool(cfg.get("trans", False)),
    )
