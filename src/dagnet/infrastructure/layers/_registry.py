"""
Layer-kind capability tables and configuration registries.

Two registries live here:

- the *capability table* registry, keyed by `LayerKind`, holding one
  `LayerOps` record per kind; the graph engine dispatches every per-kind
  step through it
- the *builder* registry, keyed by configuration type tag, holding the
  callables that turn a configuration mapping into a `Layer`

Both are filled by import side effects of the per-kind modules in this
package.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

import numpy as np

from ...domain._errors import (
    ConfigurationError,
    UnknownCostTypeError,
    UnknownLayerTypeError,
)
from ...domain._layer_kind import LayerKind
from ...domain._layer_ops import ILayerOps
from ...domain._pass_type import PassType
from ...domain._run_config import RunConfig
from .._layer import Layer


def _pass_gradient_through(
    graph: Any, layer: Layer, grad: np.ndarray, pass_type: PassType
) -> np.ndarray:
    return grad


def _no_input_gradient(
    graph: Any, layer: Layer, grad: np.ndarray, input_index: int, pass_type: PassType
) -> None:
    return None


def _no_weight_gradients(
    graph: Any, layer: Layer, grad: np.ndarray, pass_type: PassType
) -> None:
    return None


def _no_transient_buffers(layer: Layer, config: RunConfig) -> None:
    return None


def _check_weight_groups(
    graph: Any,
    layer: Layer,
    data: Sequence[np.ndarray],
    tolerance: float = 1e-4,
    epsilon: float = 1e-5,
) -> List[Any]:
    from .._gradient_check import check_gradient

    return [
        check_gradient(graph, layer.handle, name, data, tolerance, epsilon)
        for name in layer.weights
    ]


@dataclass(frozen=True)
class LayerOps:
    """
    Capability table of one layer kind.

    Every entry is a plain function taking the owning graph (for access to
    neighbour records) and the layer record. Only ``compute_forward`` is
    mandatory; the backward entries default to a pass-through common step
    and no-op gradient and truncation steps, and ``check_gradients`` defaults
    to a finite-difference check of every weight group the layer owns.
    """

    compute_forward: Callable[..., np.ndarray]
    compute_common_backward: Callable[..., np.ndarray] = _pass_gradient_through
    compute_input_gradient: Callable[..., None] = _no_input_gradient
    compute_weight_gradients: Callable[..., None] = _no_weight_gradients
    truncate_transient_buffers: Callable[[Layer, RunConfig], None] = (
        _no_transient_buffers
    )
    check_gradients: Callable[..., List[Any]] = _check_weight_groups


_LAYER_OPS: Dict[LayerKind, LayerOps] = {}

Builder = Callable[[Mapping[str, Any], Sequence[Layer], RunConfig], Layer]
B = TypeVar("B", bound=Builder)

_LAYER_BUILDERS: Dict[str, Builder] = {}


def register_layer_ops(kind: LayerKind, ops: LayerOps) -> LayerOps:
    """
    Install the capability table for ``kind``.

    Raises
    ------
    TypeError
        If ``ops`` does not provide every capability-table entry.
    """
    if not isinstance(ops, ILayerOps):
        raise TypeError(f"capability table for {kind.value!r} is incomplete: {ops!r}")
    _LAYER_OPS[kind] = ops
    return ops


def get_layer_ops(kind: LayerKind) -> LayerOps:
    """
    Return the capability table for ``kind``.

    Raises
    ------
    UnknownLayerTypeError
        If no table is registered for the kind.
    """
    try:
        return _LAYER_OPS[kind]
    except KeyError:
        raise UnknownLayerTypeError(str(kind.value)) from None


def register_layer(tag: str) -> Callable[[B], B]:
    """
    Decorator to register a layer builder under a configuration type tag.
    """

    def deco(fn: B) -> B:
        _LAYER_BUILDERS[tag] = fn
        return fn

    return deco


def registered_tags() -> tuple[str, ...]:
    """Return the registered configuration type tags (sorted)."""
    return tuple(sorted(_LAYER_BUILDERS))


def get_layer_builder(tag: str, layer: Optional[str] = None) -> Builder:
    """
    Resolve a configuration type tag to its builder.

    Tags starting with ``cost.`` are resolved by the cost factory and report
    unknown variants as `UnknownCostTypeError`.

    Raises
    ------
    UnknownLayerTypeError
        If the tag is not registered.
    """
    builder = _LAYER_BUILDERS.get(tag)
    if builder is not None:
        return builder
    if isinstance(tag, str) and tag.startswith("cost."):
        raise UnknownCostTypeError(tag, layer)
    raise UnknownLayerTypeError(str(tag), layer)


def layer_from_config(
    cfg: Mapping[str, Any],
    inputs: Sequence[Layer] = (),
    run_config: Optional[RunConfig] = None,
) -> Layer:
    """
    Build one layer from a configuration mapping.

    Parameters
    ----------
    cfg : Mapping[str, Any]
        Layer configuration with at least ``name`` and ``type``.
    inputs : Sequence[Layer], optional
        Already-built predecessor layers, in input order. Builders use them
        to infer input widths; edges are not created here.
    run_config : RunConfig, optional
        Run configuration (for the storage dtype).

    Returns
    -------
    Layer
        The new, unconnected layer record.

    Raises
    ------
    ConfigurationError
        If ``name`` or ``type`` is missing, or the type tag is unknown.
    """
    name = cfg.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError("layer configuration needs a non-empty 'name'")
    if "type" not in cfg:
        raise ConfigurationError("missing required field 'type'", name)
    builder = get_layer_builder(cfg["type"], name)
    return builder(cfg, list(inputs), run_config or RunConfig())
