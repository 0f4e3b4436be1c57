"""
Shared helpers for layer builders and capability tables.
"""

from __future__ import annotations

import math
from typing import Any, List, Mapping, Sequence, Tuple

import numpy as np

from ...domain._errors import ConfigurationError, ShapeMismatchError
from .._buffer import EMPTY, BufferView
from .._layer import Layer
from ..utils.weight_initializer import WeightInitializer


def require(cfg: Mapping[str, Any], key: str) -> Any:
    """
    Return ``cfg[key]`` or raise a configuration error naming the layer.
    """
    try:
        return cfg[key]
    except KeyError:
        raise ConfigurationError(
            f"missing required field {key!r}", cfg.get("name")
        ) from None


def require_int(cfg: Mapping[str, Any], key: str, minimum: int = 1) -> int:
    value = int(require(cfg, key))
    if value < minimum:
        raise ConfigurationError(
            f"field {key!r} must be >= {minimum}, got {value}", cfg.get("name")
        )
    return value


def per_group(
    cfg: Mapping[str, Any], key: str, count: int, default: float
) -> List[float]:
    """
    Expand a scalar-or-sequence hyperparameter into one value per group.

    Python and NumPy scalars (including 0-d arrays) count as scalars.

    Raises
    ------
    ConfigurationError
        If a sequence of the wrong length is supplied.
    """
    value = cfg.get(key, default)
    if np.ndim(value) == 0:
        return [float(value)] * count
    values = [float(v) for v in value]
    if len(values) != count:
        raise ConfigurationError(
            f"field {key!r} needs {count} values, got {len(values)}",
            cfg.get("name"),
        )
    return values


def initial_matrix(
    cfg: Mapping[str, Any],
    key: str,
    shape: Tuple[int, int],
    dtype: str,
    initializer: str,
    index: int | None = None,
) -> np.ndarray:
    """
    Initial value for a weight group.

    An explicit matrix under ``key`` wins (for multi-input layers, a sequence
    of matrices indexed by ``index``); otherwise the named initializer draws
    one, scaled by ``init_scale``.

    Raises
    ------
    ShapeMismatchError
        If an explicit matrix does not have the expected shape.
    """
    name = cfg.get("name")
    if key in cfg and cfg[key] is not None:
        explicit = cfg[key] if index is None else cfg[key][index]
        m = np.array(explicit, dtype=dtype, ndmin=2)
        if m.shape != tuple(shape):
            raise ShapeMismatchError(
                f"layer '{name}': {key} has shape {m.shape}, expected {tuple(shape)}"
            )
        return m
    init = WeightInitializer(initializer)
    return init(shape, scale=float(cfg.get("init_scale", 0.01)), dtype=dtype)


def single_input(cfg: Mapping[str, Any], inputs: Sequence[Layer]) -> Layer:
    """
    Return the only input layer of a single-input kind.
    """
    if len(inputs) != 1:
        raise ConfigurationError(
            f"expects exactly one input, got {len(inputs)}", cfg.get("name")
        )
    return inputs[0]


def store_scratch(layer: Layer, key: str, matrix: np.ndarray) -> None:
    layer.scratch[key] = BufferView.wrap(matrix, layer.transposed)


def scratch_matrix(layer: Layer, key: str) -> np.ndarray:
    """
    Return a retained scratch buffer.

    Raises
    ------
    RuntimeError
        If the buffer was released before backward needed it.
    """
    view = layer.scratch.get(key, EMPTY)
    if view.is_empty:
        raise RuntimeError(
            f"layer '{layer.name}': scratch buffer {key!r} is not available"
        )
    return view.matrix


def release_scratch(layer: Layer, *keys: str) -> None:
    for key in keys:
        if key in layer.scratch:
            layer.scratch[key] = EMPTY


def image_size(cfg: Mapping[str, Any], src: Layer, channels: int) -> int:
    """
    Side length of the square images a spatial layer reads.

    Taken from ``img_size`` when given, otherwise inferred from the input
    layer's width.

    Raises
    ------
    ConfigurationError
        If the size is neither given nor inferable.
    ShapeMismatchError
        If the input width is not ``channels * img_size**2``.
    """
    name = cfg.get("name")
    if "img_size" in cfg:
        size = require_int(cfg, "img_size")
    elif src.outputs:
        size = int(round(math.sqrt(src.outputs / channels)))
    else:
        raise ConfigurationError("missing required field 'img_size'", name)
    if src.outputs and src.outputs != channels * size * size:
        raise ShapeMismatchError(
            f"layer '{name}': input '{src.name}' has {src.outputs} features, "
            f"expected {channels}x{size}x{size}"
        )
    return size
