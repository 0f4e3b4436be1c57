"""
Dense 2-D matrix primitives (CPU, NumPy).

These are the matrix-algebra entry points the layer kinds call. Every
function that writes into an existing buffer takes two scale factors:

    result = scale_target * target + scale_new * contribution

The overwrite/accumulate rule of the backward protocol is expressed purely
through ``scale_target``: 0 overwrites whatever the target holds (including a
truncated, empty target), 1 accumulates.

Buffers are logical ``(cases, features)`` matrices. Functions return new
arrays instead of writing through views so that no caller ever aliases a
buffer owned by another layer.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


def _blend(
    target: Optional[np.ndarray],
    contribution: np.ndarray,
    scale_target: float,
    scale_new: float,
) -> np.ndarray:
    """
    Combine an existing buffer with a new contribution.

    Parameters
    ----------
    target : np.ndarray or None
        Existing buffer contents. Ignored when ``scale_target`` is 0.
    contribution : np.ndarray
        Newly computed term.
    scale_target, scale_new : float
        Scale factors for the existing and new terms.

    Returns
    -------
    np.ndarray
        ``scale_target * target + scale_new * contribution``.

    Raises
    ------
    ValueError
        If accumulation is requested into a buffer of a different shape.
    """
    out = contribution if scale_new == 1.0 else scale_new * contribution
    if scale_target == 0.0:
        return np.array(out, copy=True)
    if target is None or target.shape != contribution.shape:
        got = None if target is None else target.shape
        raise ValueError(
            f"cannot accumulate into buffer of shape {got}; "
            f"contribution has shape {contribution.shape}"
        )
    if scale_target == 1.0:
        return target + out
    return scale_target * target + out


def add_product(
    target: Optional[np.ndarray],
    a: np.ndarray,
    b: np.ndarray,
    scale_target: float = 0.0,
    scale_ab: float = 1.0,
) -> np.ndarray:
    """
    Product-accumulate: ``scale_target * target + scale_ab * (a @ b)``.

    Parameters
    ----------
    target : np.ndarray or None
        Existing contents of the destination buffer.
    a, b : np.ndarray
        Matrix operands.
    scale_target : float, optional
        Scale applied to the existing contents. Defaults to 0 (overwrite).
    scale_ab : float, optional
        Scale applied to the product. Defaults to 1.

    Returns
    -------
    np.ndarray
        The combined buffer.
    """
    return _blend(target, a @ b, scale_target, scale_ab)


def add_scaled(
    target: Optional[np.ndarray],
    contribution: np.ndarray,
    scale_target: float = 0.0,
    scale_new: float = 1.0,
) -> np.ndarray:
    """
    Elementwise accumulate: ``scale_target * target + scale_new * contribution``.
    """
    return _blend(target, contribution, scale_target, scale_new)


def add_row_vector(m: np.ndarray, vec: np.ndarray) -> np.ndarray:
    """
    Broadcast-add a ``(1, features)`` row vector to every row of ``m``.

    Raises
    ------
    ValueError
        If the vector width differs from the matrix width.
    """
    vec = np.asarray(vec).reshape(1, -1)
    if vec.shape[1] != m.shape[1]:
        raise ValueError(
            f"row vector of width {vec.shape[1]} cannot be added to matrix "
            f"of shape {m.shape}"
        )
    return m + vec


def column_sums(m: np.ndarray) -> np.ndarray:
    """
    Sum over cases, returning a ``(1, features)`` row.
    """
    return m.sum(axis=0, keepdims=True)


def row_max(m: np.ndarray) -> np.ndarray:
    """
    Maximum over features, returning a ``(cases, 1)`` column.
    """
    return m.max(axis=1, keepdims=True)


def row_sums(m: np.ndarray) -> np.ndarray:
    """
    Sum over features, returning a ``(cases, 1)`` column.
    """
    return m.sum(axis=1, keepdims=True)
