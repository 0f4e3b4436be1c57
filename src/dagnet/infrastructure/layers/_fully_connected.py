"""
Fully-connected layer.

Forward
-------
    acts = f( sum_i inputs[i] @ weights_i + biases )

with one weight matrix per predecessor (``weights0``, ``weights1``, ...) of
shape ``(in_i, outputs)`` and a shared ``(1, outputs)`` bias row.

Backward
--------
- common: chain the incoming gradient through ``f``
- input ``i``: ``grad @ weights_i.T``, overwriting or accumulating into the
  predecessor's gradient buffer
- weights: ``weights_i`` accumulator = ``-(inputs[i].T @ grad)``, biases
  accumulator = ``-colsum(grad)`` (descent direction; see `WeightGroup`)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

import numpy as np

from ...domain._errors import ConfigurationError, ShapeMismatchError
from ...domain._layer_kind import LayerKind
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer
from .._weights import WeightGroup
from ..ops.activation_cpu import get_activation
from ..ops.matrix_cpu import add_product, add_row_vector, column_sums
from ._common import initial_matrix, per_group
from ._registry import LayerOps, register_layer, register_layer_ops


@dataclass(frozen=True)
class FCParams:
    activation: str = "ident"
    num_inputs: int = 1


def fc_forward(
    graph: Any, layer: Layer, inputs: Sequence[np.ndarray], pass_type: PassType
) -> np.ndarray:
    act = get_activation(layer.params.activation, layer.name)
    total: Optional[np.ndarray] = None
    for i, x in enumerate(inputs):
        w = layer.weights[f"weights{i}"].value
        if x.shape[1] != w.shape[0]:
            raise ShapeMismatchError(
                f"layer '{layer.name}': input {i} has {x.shape[1]} features, "
                f"weights{i} expects {w.shape[0]}"
            )
        total = add_product(total, x, w, scale_target=0.0 if total is None else 1.0)
    assert total is not None
    return act.forward(add_row_vector(total, layer.weights["biases"].value))


def fc_common_backward(
    graph: Any, layer: Layer, grad: np.ndarray, pass_type: PassType
) -> np.ndarray:
    act = get_activation(layer.params.activation, layer.name)
    return act.apply_gradient(layer.acts.matrix, grad)


def fc_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    w = layer.weights[f"weights{input_index}"].value
    graph.accumulate_input_gradient(
        layer,
        input_index,
        lambda target, scale_target: add_product(target, grad, w.T, scale_target),
    )


def fc_weight_gradients(
    graph: Any, layer: Layer, grad: np.ndarray, pass_type: PassType
) -> None:
    for i in range(layer.params.num_inputs):
        x = graph.input_matrix(layer, i)
        layer.weights[f"weights{i}"].set_grad(-(x.T @ grad))
    layer.weights["biases"].set_grad(-column_sums(grad))


register_layer_ops(
    LayerKind.FULLY_CONNECTED,
    LayerOps(
        compute_forward=fc_forward,
        compute_common_backward=fc_common_backward,
        compute_input_gradient=fc_input_gradient,
        compute_weight_gradients=fc_weight_gradients,
    ),
)


def make_fc_layer(
    name: str,
    weights: Sequence[np.ndarray],
    biases: np.ndarray,
    *,
    activation: str = "ident",
    lr: float | Sequence[float] = 0.0,
    momentum: float | Sequence[float] = 0.0,
    weight_decay: float | Sequence[float] = 0.0,
    bias_lr: float = 0.0,
    bias_momentum: float = 0.0,
    transposed: bool = False,
    dtype: str = "float64",
) -> Layer:
    """
    Create a fully-connected layer from explicit weight matrices.

    Parameters
    ----------
    name : str
        Layer name.
    weights : Sequence[np.ndarray]
        One ``(in_i, outputs)`` matrix per predecessor, in input order.
    biases : np.ndarray
        ``(1, outputs)`` bias row (a flat vector is accepted).
    activation : str, optional
        Registered activation name. Defaults to ``"ident"``.
    lr, momentum, weight_decay : float or Sequence[float], optional
        Hyperparameters of the weight matrices, scalar or one per input.
    bias_lr, bias_momentum : float, optional
        Hyperparameters of the bias row (never decayed).

    Raises
    ------
    ConfigurationError
        If no weight matrix is given or hyperparameter lists have the wrong
        length.
    ShapeMismatchError
        If the weight matrices disagree on the output width or the bias row
        does not match it.
    """
    if not weights:
        raise ConfigurationError("fully-connected layers need at least one input", name)
    get_activation(activation, name)
    mats = [np.array(w, dtype=dtype, ndmin=2) for w in weights]
    outputs = mats[0].shape[1]
    for i, w in enumerate(mats):
        if w.shape[1] != outputs:
            raise ShapeMismatchError(
                f"layer '{name}': weights{i} has {w.shape[1]} outputs, expected {outputs}"
            )
    b = np.array(biases, dtype=dtype).reshape(1, -1)
    if b.shape[1] != outputs:
        raise ShapeMismatchError(
            f"layer '{name}': biases have width {b.shape[1]}, expected {outputs}"
        )

    hp = {"name": name, "lr": lr, "momentum": momentum, "weight_decay": weight_decay}
    lrs = per_group(hp, "lr", len(mats), 0.0)
    moms = per_group(hp, "momentum", len(mats), 0.0)
    wcs = per_group(hp, "weight_decay", len(mats), 0.0)

    groups = {
        f"weights{i}": WeightGroup(
            f"weights{i}", w, lr=lrs[i], momentum=moms[i], weight_decay=wcs[i], dtype=dtype
        )
        for i, w in enumerate(mats)
    }
    groups["biases"] = WeightGroup(
        "biases", b, lr=bias_lr, momentum=bias_momentum, dtype=dtype
    )
    return Layer(
        name=name,
        kind=LayerKind.FULLY_CONNECTED,
        params=FCParams(activation=activation, num_inputs=len(mats)),
        outputs=outputs,
        transposed=bool(transposed),
        weights=groups,
    )


@register_layer("fc")
def build_fc_layer(
    cfg: Mapping[str, Any], inputs: Sequence[Layer], run_config: RunConfig
) -> Layer:
    # 'weights', when given, is a list with one matrix per input.
    name = cfg["name"]
    if not inputs:
        raise ConfigurationError("fully-connected layers need at least one input", name)
    outputs = int(cfg.get("outputs", 0))
    if outputs <= 0:
        if cfg.get("weights") is None:
            raise ConfigurationError("missing required field 'outputs'", name)
        outputs = np.array(cfg["weights"][0], ndmin=2).shape[1]

    mats: List[np.ndarray] = []
    for i, src in enumerate(inputs):
        if src.outputs > 0:
            shape = (src.outputs, outputs)
        elif cfg.get("weights") is not None:
            shape = np.array(cfg["weights"][i], ndmin=2).shape
        else:
            raise ConfigurationError(
                f"cannot infer the width of input '{src.name}'; "
                "give it 'outputs' or supply explicit weights",
                name,
            )
        mats.append(
            initial_matrix(
                cfg, "weights", shape, run_config.dtype, cfg.get("init", "gaussian"), index=i
            )
        )
    biases = initial_matrix(
        cfg, "biases", (1, outputs), run_config.dtype, "zeros"
    )
    return make_fc_layer(
        name,
        mats,
        biases,
        activation=cfg.get("activation", cfg.get("neuron", "ident")),
        lr=cfg.get("lr", 0.0),
        momentum=cfg.get("momentum", 0.0),
        weight_decay=cfg.get("weight_decay", 0.0),
        bias_lr=float(cfg.get("bias_lr", 0.0)),
        bias_momentum=float(cfg.get("bias_momentum", 0.0)),
        transposed=bool(cfg.get("trans", False)),
        dtype=run_config.dtype,
    )
