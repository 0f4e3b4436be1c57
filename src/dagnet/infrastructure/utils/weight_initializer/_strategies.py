"""
Built-in weight initializers.

Registered names
----------------
- ``gaussian``:
    Zero-mean normal with standard deviation ``scale``.
- ``xavier``:
    Zero-mean normal with ``std = sqrt(2 / (fan_in + fan_out))``; ``scale`` is
    ignored. Weight matrices are ``(fan_in, fan_out)``.
- ``zeros``:
    All zeros; the usual choice for biases.
"""

import math
from typing import Tuple

import numpy as np

from ._base import WeightInitializer


@WeightInitializer.register_initializer("gaussian")
def gaussian(
    shape: Tuple[int, int], *, scale: float = 0.01, dtype: str | np.dtype = "float64"
) -> np.ndarray:
    """
    Draw weights from ``N(0, scale**2)``.
    """
    return (np.random.randn(*shape) * float(scale)).astype(dtype, copy=False)


@WeightInitializer.register_initializer("xavier")
def xavier(
    shape: Tuple[int, int], *, scale: float = 0.01, dtype: str | np.dtype = "float64"
) -> np.ndarray:
    """
    Xavier (Glorot) normal initialization for ``(fan_in, fan_out)`` matrices.
    """
    fan_in, fan_out = max(1, int(shape[0])), max(1, int(shape[-1]))
    std = math.sqrt(2.0 / float(fan_in + fan_out))
    return (np.random.randn(*shape) * std).astype(dtype, copy=False)


@WeightInitializer.register_initializer("zeros")
def zeros(
    shape: Tuple[int, int], *, scale: float = 0.01, dtype: str | np.dtype = "float64"
) -> np.ndarray:
    """
    Return an all-zero matrix.
    """
    return np.zeros(shape, dtype=dtype)
