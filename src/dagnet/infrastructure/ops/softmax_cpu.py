"""
Softmax and log-likelihood kernels (CPU, NumPy).

Rows are cases, columns are classes. Labels are a ``(cases, 1)`` column of
class indices stored as floats, as produced by a data layer.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from ...domain._errors import ShapeMismatchError
from .matrix_cpu import add_scaled, row_max, row_sums


def softmax_forward(x: np.ndarray) -> np.ndarray:
    """
    Numerically stable row-wise softmax.

    The per-row maximum is subtracted before exponentiating, so inputs with
    very large magnitudes neither overflow nor produce NaN.
    """
    z = np.exp(x - row_max(x))
    return z / row_sums(z)


def softmax_backward(
    probs: np.ndarray,
    grad: np.ndarray,
    target: Optional[np.ndarray],
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Generic softmax Jacobian-vector product ``y * (g - sum(g * y))``.
    """
    dx = probs * (grad - row_sums(grad * probs))
    return add_scaled(target, dx, scale_target)


def label_indices(labels: np.ndarray, num_classes: int) -> np.ndarray:
    """
    Validate a column of class labels and return them as integer indices.

    Raises
    ------
    ShapeMismatchError
        If a label is not integral or falls outside ``[0, num_classes)``.
    """
    values = np.asarray(labels, dtype=np.float64).reshape(-1)
    if not np.all(np.isfinite(values)) or np.any(values != np.round(values)):
        raise ShapeMismatchError(f"labels must be integral class indices, got {values}")
    if values.size and (values.min() < 0 or values.max() >= num_classes):
        raise ShapeMismatchError(f"labels must lie in [0, {num_classes}), got {values}")
    return values.astype(np.int64)


def label_indicator(labels: np.ndarray, num_classes: int) -> np.ndarray:
    """
    One-hot matrix for a column of class indices.

    Raises
    ------
    ShapeMismatchError
        If a label is not a valid class index (see `label_indices`).
    """
    idx = label_indices(labels, num_classes)
    ind = np.zeros((idx.size, num_classes))
    ind[np.arange(idx.size), idx] = 1.0
    return ind


def logreg_cost(labels: np.ndarray, probs: np.ndarray) -> Tuple[float, float]:
    """
    Negative log-likelihood and misclassification count.

    A case counts as correct when the probability of its true class is not
    below the largest probability in its row.

    Returns
    -------
    tuple[float, float]
        ``(sum of -log p[true], number of misclassified cases)``.

    Raises
    ------
    ShapeMismatchError
        If a label is not a valid class index.
    """
    idx = label_indices(labels, probs.shape[1])
    true_probs = probs[np.arange(idx.size), idx]
    nll = float(-np.sum(np.log(true_probs)))
    correct = true_probs >= probs.max(axis=1)
    return nll, float(idx.size - int(np.count_nonzero(correct)))


def logreg_grad(
    labels: np.ndarray,
    probs: np.ndarray,
    target: Optional[np.ndarray],
    coeff: float,
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Gradient of ``coeff * nll`` with respect to the probabilities:
    ``-coeff * indicator / probs``.
    """
    ind = label_indicator(labels, probs.shape[1])
    return add_scaled(target, -coeff * ind / probs, scale_target)


def logreg_softmax_grad(
    labels: np.ndarray,
    probs: np.ndarray,
    target: Optional[np.ndarray],
    coeff: float,
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Fused softmax + log-likelihood gradient with respect to the softmax input:
    ``coeff * (probs - indicator)``.

    Avoids the division by near-zero probabilities that the generic
    composition performs.
    """
    ind = label_indicator(labels, probs.shape[1])
    return add_scaled(target, coeff * (probs - ind), scale_target)
