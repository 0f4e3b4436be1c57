"""
Softmax layer.

Backward takes one of two paths:

- generic: the softmax Jacobian-vector product against the incoming
  gradient
- fused: when the layer has exactly one successor and that successor is a
  logistic-regression cost, the gradient with respect to the softmax input
  is ``coeff * (probs - indicator(labels))``, computed directly from the
  cost layer's labels. The cost layer then skips its own gradient.

A softmax feeding two or more successors always takes the generic path,
even when one of them is a logistic-regression cost.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import numpy as np

from ...domain._layer_kind import LayerKind
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer
from ..ops import softmax_cpu
from ._common import single_input
from ._registry import LayerOps, register_layer, register_layer_ops

logger = logging.getLogger(__name__)


def uses_fused_logreg_gradient(graph: Any, layer: Layer) -> bool:
    """
    Return whether ``layer`` computes the fused softmax/log-likelihood
    gradient for its successor.
    """
    return (
        len(layer.next) == 1
        and graph.layer(layer.next[0]).kind is LayerKind.COST_LOGREG
    )


def softmax_layer_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    return softmax_cpu.softmax_forward(inputs[0])


def softmax_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    probs = layer.acts.matrix
    if uses_fused_logreg_gradient(graph, layer):
        cost = graph.layer(layer.next[0])
        labels = graph.input_matrix(cost, 0)
        coeff = cost.params.coeff
        logger.debug("layer %s: fused softmax/logreg gradient", layer.name)
        graph.accumulate_input_gradient(
            layer,
            input_index,
            lambda target, scale_target: softmax_cpu.logreg_softmax_grad(
                labels, probs, target, coeff, scale_target
            ),
        )
        return
    graph.accumulate_input_gradient(
        layer,
        input_index,
        lambda target, scale_target: softmax_cpu.softmax_backward(
            probs, grad, target, scale_target
        ),
    )


register_layer_ops(
    LayerKind.SOFTMAX,
    LayerOps(
        compute_forward=softmax_layer_forward,
        compute_input_gradient=softmax_input_gradient,
    ),
)


def make_softmax_layer(name: str, outputs: int = 0, transposed: bool = False) -> Layer:
    return Layer(
        name=name,
        kind=LayerKind.SOFTMAX,
        outputs=int(outputs),
        transposed=bool(transposed),
    )


@register_layer("softmax")
def build_softmax_layer(
    cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
) -> Layer:
    src = single_input(cfg, inputs)
    return make_softmax_layer(
        cfg["name"], outputs=src.outputs, transposed=bool(cfg.get("trans", False))
    )
