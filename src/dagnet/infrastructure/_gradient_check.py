"""
Finite-difference verification of weight gradients.

The analytic gradient of one weight group is taken from a
gradient-verification pass (forward + backward with
`PassType.GRADIENT_CHECK`). The numerical estimate perturbs each entry of
the group's host copy by ``+/- epsilon``, pushes it to the backend, and
evaluates `Graph.total_cost` by central differences. The original values are
restored afterwards.

Both sides are derivatives of `Graph.total_cost`; since weight-group
accumulators hold the descent direction, the analytic side is
``-group.grad``.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from ..domain._pass_type import PassType
from ._graph import Graph, LayerRef
from .layers import get_layer_ops

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GradientCheckResult:
    """
    Outcome of checking one weight group.

    Attributes
    ----------
    layer, group : str
        Names of the checked layer and weight group.
    rel_error : float
        ``||analytic - numeric|| / ||numeric||`` (absolute error when the
        numerical gradient is exactly zero).
    tolerance : float
        Threshold the error was compared against.
    passed : bool
        True when ``rel_error <= tolerance``.
    """

    layer: str
    group: str
    rel_error: float
    tolerance: float
    passed: bool


def _evaluate(graph: Graph, data: Sequence[np.ndarray]) -> float:
    graph.run_forward(data, PassType.GRADIENT_CHECK)
    return graph.total_cost()


def check_gradient(
    graph: Graph,
    layer: LayerRef,
    group: str,
    data: Sequence[np.ndarray],
    tolerance: float = 1e-4,
    epsilon: float = 1e-5,
) -> GradientCheckResult:
    """
    Compare the analytic gradient of one weight group with central
    differences.

    Parameters
    ----------
    graph : Graph
        Graph holding the layer.
    layer : int, str or Layer
        Weight-bearing layer to check.
    group : str
        Name of the weight group.
    data : Sequence[np.ndarray]
        External matrices for the data layers.
    tolerance : float, optional
        Largest acceptable relative error.
    epsilon : float, optional
        Perturbation size.

    Returns
    -------
    GradientCheckResult
        The comparison outcome. A failed check also emits a
        ``RuntimeWarning``.
    """
    target = graph.layer(layer)
    weights = target.weight(group)

    graph.run_forward(data, PassType.GRADIENT_CHECK)
    graph.run_backward(PassType.GRADIENT_CHECK)
    analytic = -np.array(weights.grad, dtype=np.float64, copy=True)

    target.copy_to_host()
    assert weights.host_value is not None
    base = weights.host_value.copy()
    numeric = np.zeros_like(base, dtype=np.float64)
    try:
        for idx in np.ndindex(*base.shape):
            weights.host_value[idx] = base[idx] + epsilon
            target.copy_to_device()
            cost_pos = _evaluate(graph, data)

            weights.host_value[idx] = base[idx] - epsilon
            target.copy_to_device()
            cost_neg = _evaluate(graph, data)

            weights.host_value[idx] = base[idx]
            numeric[idx] = (cost_pos - cost_neg) / (2.0 * epsilon)
    finally:
        weights.host_value[...] = base
        target.copy_to_device()

    diff = float(np.linalg.norm(analytic - numeric))
    scale = float(np.linalg.norm(numeric))
    rel_error = diff / scale if scale > 0.0 else diff
    passed = rel_error <= tolerance

    logger.info(
        "gradient check %s.%s: relative error %.3e (tolerance %.1e) %s",
        target.name,
        group,
        rel_error,
        tolerance,
        "PASS" if passed else "FAIL",
    )
    if not passed:
        warnings.warn(
            f"gradient check failed for {target.name}.{group}: relative error "
            f"{rel_error:.3e} exceeds tolerance {tolerance:.1e}",
            RuntimeWarning,
            stacklevel=2,
        )
    return GradientCheckResult(
        layer=target.name,
        group=group,
        rel_error=rel_error,
        tolerance=float(tolerance),
        passed=passed,
    )


def check_all_gradients(
    graph: Graph,
    data: Sequence[np.ndarray],
    tolerance: float = 1e-4,
    epsilon: float = 1e-5,
) -> List[GradientCheckResult]:
    """
    Run each weight-bearing layer's ``check_gradients`` table entry, which by
    default applies `check_gradient` to every weight group of the layer.
    """
    results: List[GradientCheckResult] = []
    for layer in graph.weight_layers():
        ops = get_layer_ops(layer.kind)
        results.extend(ops.check_gradients(graph, layer, data, tolerance, epsilon))
    return results
