"""
Cost layers and the cost factory.

Cost layers are sinks. They publish a short sequence of metrics in
``Layer.cost_values`` (the first entry is the cost itself) and, when their
coefficient is non-zero, start the backward pass by writing the scaled cost
gradient into their predecessors.

A cost with coefficient 0 is neither a gradient consumer nor a gradient
producer: it adds nothing to any predecessor's backward fan-in and its
backward step does nothing.

Variants
--------
- ``cost.logreg``: inputs ``[labels, probs]``; metrics ``(nll, errors)``
- ``cost.sum2``: input ``[x]``; metric ``(sum(x**2),)``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

import numpy as np

from ...domain._errors import (
    ConfigurationError,
    ShapeMismatchError,
    UnknownCostTypeError,
)
from ...domain._layer_kind import LayerKind
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer
from ..ops import softmax_cpu
from ..ops.matrix_cpu import add_scaled
from ._registry import LayerOps, register_layer, register_layer_ops


@dataclass(frozen=True)
class CostParams:
    coeff: float = 1.0


def _metrics_row(layer: Layer) -> np.ndarray:
    return np.asarray([layer.cost_values], dtype=np.float64)


def logreg_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    labels, probs = inputs
    if labels.shape[0] != probs.shape[0]:
        raise ShapeMismatchError(
            f"layer '{layer.name}': {labels.shape[0]} labels for "
            f"{probs.shape[0]} cases"
        )
    layer.cost_values = softmax_cpu.logreg_cost(labels, probs)
    return _metrics_row(layer)


def skips_explicit_gradient(graph: Any, layer: Layer) -> bool:
    """
    Return whether the logistic-regression cost leaves its gradient to the
    preceding softmax layer.
    """
    probs_src = graph.layer(layer.prev[1])
    return probs_src.kind is LayerKind.SOFTMAX and len(probs_src.next) <= 1


def logreg_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    # Labels carry no gradient.
    if input_index != 1 or skips_explicit_gradient(graph, layer):
        return
    labels = graph.input_matrix(layer, 0)
    probs = graph.input_matrix(layer, 1)
    coeff = layer.params.coeff
    graph.accumulate_input_gradient(
        layer,
        input_index,
        lambda target, scale_target: softmax_cpu.logreg_grad(
            labels, probs, target, coeff, scale_target
        ),
    )


def sum2_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    x = inputs[0]
    layer.cost_values = (float(np.sum(x * x)),)
    return _metrics_row(layer)


def sum2_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    x = graph.input_matrix(layer, input_index)
    coeff = layer.params.coeff
    graph.accumulate_input_gradient(
        layer,
        input_index,
        lambda target, scale_target: add_scaled(target, x, scale_target, 2.0 * coeff),
    )


register_layer_ops(
    LayerKind.COST_LOGREG,
    LayerOps(compute_forward=logreg_forward, compute_input_gradient=logreg_input_gradient),
)
register_layer_ops(
    LayerKind.COST_SUM2,
    LayerOps(compute_forward=sum2_forward, compute_input_gradient=sum2_input_gradient),
)


def make_cost_layer(name: str, type_tag: str, coeff: float = 1.0) -> Layer:
    """
    Cost factory: resolve a ``cost.*`` type tag to a cost layer.

    Parameters
    ----------
    name : str
        Layer name.
    type_tag : str
        ``"cost.logreg"`` or ``"cost.sum2"``.
    coeff : float, optional
        Scale applied to the cost gradient. 0 disables gradient flow.

    Raises
    ------
    UnknownCostTypeError
        If the tag names no known cost.
    """
    kind = LayerKind.from_tag(type_tag)
    if kind is None or not kind.is_cost:
        raise UnknownCostTypeError(type_tag, name)
    active = float(coeff) != 0.0
    return Layer(
        name=name,
        kind=kind,
        params=CostParams(coeff=float(coeff)),
        outputs=0,
        grad_consumer=active,
        grad_producer=active,
    )


def _cost_builder(type_tag: str, arity: int) -> Callable[..., Layer]:
    def build(
        cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
    ) -> Layer:
        name = cfg["name"]
        if len(inputs) != arity:
            raise ConfigurationError(
                f"{type_tag} expects {arity} inputs, got {len(inputs)}", name
            )
        if type_tag == "cost.logreg" and inputs[0].grad_consumer:
            raise ConfigurationError(
                f"label input '{inputs[0].name}' must not take gradients", name
            )
        return make_cost_layer(name, type_tag, float(cfg.get("coeff", 1.0)))

    build.__name__ = f"build_{type_tag.replace('.', '_')}_layer"
    return build


register_layer("cost.logreg")(_cost_builder("cost.logreg", 2))
register_layer("cost.sum2")(_cost_builder("cost.sum2", 1))
