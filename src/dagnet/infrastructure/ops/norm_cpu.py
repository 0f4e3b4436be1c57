"""
Local normalization kernels (CPU, NumPy).

Response normalization divides every activation by a denominator built from
the squared activations of neighbouring channels at the same spatial
position:

    denom[c] = 1 + scale * sum_{c' in W(c)} x[c']**2
    y[c]     = x[c] * denom[c] ** (-pow)

where ``W(c) = [c - size // 2, c - size // 2 + size)`` clipped to the valid
channels. The denominators are returned to the caller so the backward pass
can evaluate the derivative in closed form.

Contrast normalization first subtracts a local ``size x size`` spatial mean
(stride 1, centred) and applies the same normalization to the mean
differences; it returns both the denominators and the mean differences.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .matrix_cpu import add_scaled
from .pool_cpu import avg_pool_backward, avg_pool_forward


def _window_bounds(size: int) -> Tuple[int, int]:
    """
    Inclusive channel offsets ``(lo, hi)`` of the normalization window.
    """
    half = size // 2
    return -half, size - 1 - half


def _channel_window_sum(a: np.ndarray, lo: int, hi: int) -> np.ndarray:
    """
    Sum ``a[:, c + lo : c + hi + 1]`` along axis 1 for every channel ``c``.

    Parameters
    ----------
    a : np.ndarray
        Array of shape ``(cases, channels, positions)``.
    lo, hi : int
        Inclusive channel offsets; out-of-range channels are skipped.
    """
    n, c, p = a.shape
    cs = np.concatenate([np.zeros((n, 1, p), dtype=a.dtype), np.cumsum(a, axis=1)], axis=1)
    idx = np.arange(c)
    first = np.clip(idx + lo, 0, c)
    last = np.clip(idx + hi + 1, 0, c)
    return cs[:, last] - cs[:, first]


def response_norm_forward(
    images: np.ndarray, *, channels: int, size: int, scale: float, pow: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Cross-channel response normalization.

    Parameters
    ----------
    images : np.ndarray
        Shape ``(cases, channels * positions)``, channel-major.
    channels : int
        Number of channels.
    size : int
        Channel window width.
    scale, pow : float
        Normalization hyperparameters.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        Normalized activations and the denominators, both shaped like
        ``images``.
    """
    n = images.shape[0]
    x = images.reshape(n, channels, -1)
    lo, hi = _window_bounds(size)
    denoms = 1.0 + scale * _channel_window_sum(x * x, lo, hi)
    out = x * np.power(denoms, -pow)
    return out.reshape(n, -1), denoms.reshape(n, -1)


def response_norm_backward(
    grad: np.ndarray,
    inputs: np.ndarray,
    acts: np.ndarray,
    denoms: np.ndarray,
    target: Optional[np.ndarray],
    *,
    channels: int,
    size: int,
    scale: float,
    pow: float,
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Gradient of response normalization with respect to its input.

    Uses

        dx[j] = g[j] * denom[j]**(-pow)
                - 2 * scale * pow * x[j] * sum_{c : j in W(c)} g[c] * y[c] / denom[c]

    Parameters
    ----------
    grad : np.ndarray
        Gradient with respect to the normalized output.
    inputs : np.ndarray
        Forward input.
    acts : np.ndarray
        Forward output.
    denoms : np.ndarray
        Denominators returned by the forward kernel.
    target : np.ndarray or None
        Existing contents of the input-gradient buffer.
    scale_target : float, optional
        0 to overwrite ``target``, 1 to accumulate into it.
    """
    n = grad.shape[0]
    g = grad.reshape(n, channels, -1)
    x = inputs.reshape(n, channels, -1)
    y = acts.reshape(n, channels, -1)
    d = denoms.reshape(n, channels, -1)
    lo, hi = _window_bounds(size)
    back = _channel_window_sum(g * y / d, -hi, -lo)
    dx = g * np.power(d, -pow) - 2.0 * scale * pow * x * back
    return add_scaled(target, dx.reshape(n, -1), scale_target)


def contrast_norm_forward(
    images: np.ndarray,
    *,
    channels: int,
    img_size: int,
    size: int,
    scale: float,
    pow: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Contrast normalization: mean-centre locally, then response-normalize.

    Returns
    -------
    tuple[np.ndarray, np.ndarray, np.ndarray]
        Normalized activations, denominators and mean differences.
    """
    means = avg_pool_forward(
        images,
        channels=channels,
        img_size=img_size,
        size_x=size,
        start=-(size // 2),
        stride=1,
        outputs_x=img_size,
    )
    mean_diffs = images - means
    out, denoms = response_norm_forward(
        mean_diffs, channels=channels, size=size, scale=scale, pow=pow
    )
    return out, denoms, mean_diffs


def contrast_norm_backward(
    grad: np.ndarray,
    mean_diffs: np.ndarray,
    acts: np.ndarray,
    denoms: np.ndarray,
    target: Optional[np.ndarray],
    *,
    channels: int,
    img_size: int,
    size: int,
    scale: float,
    pow: float,
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Gradient of contrast normalization with respect to its input.

    The mean subtraction is linear (``m = x - A x``), so the input gradient is
    the mean-difference gradient minus its local-average back-projection.
    """
    g_md = response_norm_backward(
        grad, mean_diffs, acts, denoms, None,
        channels=channels, size=size, scale=scale, pow=pow,
    )
    g_mean = avg_pool_backward(
        g_md,
        None,
        channels=channels,
        img_size=img_size,
        size_x=size,
        start=-(size // 2),
        stride=1,
        outputs_x=img_size,
    )
    return add_scaled(target, g_md - g_mean, scale_target)
