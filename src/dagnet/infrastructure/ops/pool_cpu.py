"""
CPU reference implementations of local pooling (NumPy backend).

Inputs are row-per-case image matrices ``(cases, channels * img_size**2)``;
outputs are ``(cases, channels * outputs_x**2)``. Output position ``(i, j)``
pools the ``size_x x size_x`` window whose top-left corner is at
``(start + i * stride, start + j * stride)``, clipped to the image.

Implemented pooling variants
----------------------------
- max pooling (forward + backward)
- average pooling (forward + backward)

Design notes
------------
- Max pooling picks the first maximum in row-major window order, via
  ``np.argmax``. Backward recomputes the same argmax from the forward input,
  so the position that produced the output is exactly the one that receives
  the gradient.
- Average pooling divides by the number of in-image positions of the
  clipped window; overlapping windows accumulate in backward.
"""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

import numpy as np

from .matrix_cpu import add_scaled


def _windows(
    img_size: int, size_x: int, start: int, stride: int, outputs_x: int
) -> Iterator[Tuple[int, int, int, int, int, int]]:
    """
    Yield ``(i, j, y0, y1, x0, x1)`` for every output position.

    Raises
    ------
    ValueError
        If a window lies entirely outside the image.
    """
    bounds = []
    for i in range(outputs_x):
        lo = start + i * stride
        a, b = max(0, lo), min(img_size, lo + size_x)
        if a >= b:
            raise ValueError(
                f"pooling window {i} [{lo}, {lo + size_x}) lies outside "
                f"an image of size {img_size}"
            )
        bounds.append((a, b))
    for i, (y0, y1) in enumerate(bounds):
        for j, (x0, x1) in enumerate(bounds):
            yield i, j, y0, y1, x0, x1


def _as_images(m: np.ndarray, channels: int, size: int) -> np.ndarray:
    n = m.shape[0]
    if m.shape[1] != channels * size * size:
        raise ValueError(
            f"matrix has {m.shape[1]} features; expected "
            f"{channels} x {size} x {size}"
        )
    return m.reshape(n, channels, size, size)


def _window_argmax(region: np.ndarray) -> np.ndarray:
    """
    Flat index of the first maximum of each ``(n, c)`` window.
    """
    n, c = region.shape[0], region.shape[1]
    return np.argmax(region.reshape(n, c, -1), axis=2)


def max_pool_forward(
    images: np.ndarray,
    *,
    channels: int,
    img_size: int,
    size_x: int,
    start: int,
    stride: int,
    outputs_x: int,
) -> np.ndarray:
    """
    Max pooling forward pass.

    Returns
    -------
    np.ndarray
        Pooled matrix of shape ``(cases, channels * outputs_x**2)``.
    """
    x = _as_images(images, channels, img_size)
    n = x.shape[0]
    y = np.empty((n, channels, outputs_x, outputs_x), dtype=x.dtype)
    for i, j, y0, y1, x0, x1 in _windows(img_size, size_x, start, stride, outputs_x):
        region = x[:, :, y0:y1, x0:x1]
        idx = _window_argmax(region)
        flat = region.reshape(n, channels, -1)
        y[:, :, i, j] = np.take_along_axis(flat, idx[..., None], axis=2)[..., 0]
    return y.reshape(n, channels * outputs_x * outputs_x)


def max_pool_backward(
    images: np.ndarray,
    grad: np.ndarray,
    target: Optional[np.ndarray],
    *,
    channels: int,
    img_size: int,
    size_x: int,
    start: int,
    stride: int,
    outputs_x: int,
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Max pooling backward pass.

    Each output gradient is routed in full to the input position that won
    the forward maximum; every other position of the window receives 0.

    Parameters
    ----------
    images : np.ndarray
        Forward input.
    grad : np.ndarray
        Gradient with respect to the pooled output.
    target : np.ndarray or None
        Existing contents of the input-gradient buffer.
    scale_target : float, optional
        0 to overwrite ``target``, 1 to accumulate into it.

    Returns
    -------
    np.ndarray
        Input gradient of shape ``(cases, channels * img_size**2)``.
    """
    x = _as_images(images, channels, img_size)
    g = _as_images(grad, channels, outputs_x)
    n = x.shape[0]
    gx = np.zeros_like(x, dtype=np.result_type(x, g))
    for i, j, y0, y1, x0, x1 in _windows(img_size, size_x, start, stride, outputs_x):
        region = x[:, :, y0:y1, x0:x1]
        idx = _window_argmax(region)
        routed = np.zeros((n, channels, (y1 - y0) * (x1 - x0)), dtype=gx.dtype)
        np.put_along_axis(routed, idx[..., None], g[:, :, i, j][..., None], axis=2)
        gx[:, :, y0:y1, x0:x1] += routed.reshape(n, channels, y1 - y0, x1 - x0)
    return add_scaled(target, gx.reshape(n, -1), scale_target)


def avg_pool_forward(
    images: np.ndarray,
    *,
    channels: int,
    img_size: int,
    size_x: int,
    start: int,
    stride: int,
    outputs_x: int,
) -> np.ndarray:
    """
    Average pooling forward pass.

    Returns
    -------
    np.ndarray
        Pooled matrix of shape ``(cases, channels * outputs_x**2)``.
    """
    x = _as_images(images, channels, img_size)
    n = x.shape[0]
    y = np.empty((n, channels, outputs_x, outputs_x), dtype=x.dtype)
    for i, j, y0, y1, x0, x1 in _windows(img_size, size_x, start, stride, outputs_x):
        y[:, :, i, j] = x[:, :, y0:y1, x0:x1].mean(axis=(2, 3))
    return y.reshape(n, channels * outputs_x * outputs_x)


def avg_pool_backward(
    grad: np.ndarray,
    target: Optional[np.ndarray],
    *,
    channels: int,
    img_size: int,
    size_x: int,
    start: int,
    stride: int,
    outputs_x: int,
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Average pooling backward pass.

    Every position of a window of area ``A`` receives ``grad / A``; positions
    shared by overlapping windows receive the sum of their shares.

    Returns
    -------
    np.ndarray
        Input gradient of shape ``(cases, channels * img_size**2)``.
    """
    g = _as_images(grad, channels, outputs_x)
    n = g.shape[0]
    gx = np.zeros((n, channels, img_size, img_size), dtype=g.dtype)
    for i, j, y0, y1, x0, x1 in _windows(img_size, size_x, start, stride, outputs_x):
        area = float((y1 - y0) * (x1 - x0))
        gx[:, :, y0:y1, x0:x1] += (g[:, :, i, j] / area)[:, :, None, None]
    return add_scaled(target, gx.reshape(n, -1), scale_target)
