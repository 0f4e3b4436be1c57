"""
CPU convolution kernels (NumPy) for row-per-case image buffers.

Images travel through the graph as 2-D ``(cases, channels * size * size)``
matrices with features ordered channel-major (NCHW flattened). Filters are a
2-D ``(channels * filter_size**2, num_filters)`` matrix whose rows follow the
same (channel, y, x) order. Convolution outputs are
``(cases, num_filters * modules_x**2)`` matrices, filter-major.

Geometry
--------
Output position ``(i, j)`` reads the ``filter_size x filter_size`` window whose
top-left corner sits at ``(-padding + i * stride, -padding + j * stride)`` in
image coordinates; positions outside the image read zeros. ``modules_x`` is
given explicitly, so the zero border on the far side is sized to fit it.

Kernels
-------
- `conv_forward`: filter responses (no bias, no activation)
- `conv_backward_input`: transposed ("full") convolution of the output
  gradient with the filters, blended into an existing buffer
- `conv_backward_weights`: filter gradient, optionally as a tiled partial
  reduction over groups of output positions

The patch extraction follows the stride-tricks im2col approach; the scatter
back (col2im) is an explicit loop over output positions so that overlapping
windows accumulate.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .matrix_cpu import add_scaled


def conv_output_size(img_size: int, filter_size: int, padding: int, stride: int) -> int:
    """
    Number of output positions per spatial axis for a padded convolution.
    """
    return (img_size + 2 * padding - filter_size) // stride + 1


def _pad_images(
    images: np.ndarray,
    *,
    channels: int,
    img_size: int,
    filter_size: int,
    padding: int,
    stride: int,
    modules_x: int,
) -> np.ndarray:
    """
    Reshape a row-per-case image matrix to NCHW and zero-pad it.

    The leading border is ``padding``; the trailing border is whatever the
    last window needs beyond the image edge.
    """
    n = images.shape[0]
    x = images.reshape(n, channels, img_size, img_size)
    extent = (modules_x - 1) * stride + filter_size
    after = max(0, extent - padding - img_size)
    return np.pad(
        x,
        pad_width=((0, 0), (0, 0), (padding, after), (padding, after)),
        mode="constant",
        constant_values=0.0,
    )


def _im2col(x_pad: np.ndarray, filter_size: int, stride: int, modules_x: int) -> np.ndarray:
    """
    Gather every filter window into a row.

    Returns
    -------
    np.ndarray
        Shape ``(cases * modules_x**2, channels * filter_size**2)``; rows are
        ordered (case, i, j).
    """
    n, c = x_pad.shape[0], x_pad.shape[1]
    s0, s1, s2, s3 = x_pad.strides
    patches = np.lib.stride_tricks.as_strided(
        x_pad,
        shape=(n, c, filter_size, filter_size, modules_x, modules_x),
        strides=(s0, s1, s2, s3, s2 * stride, s3 * stride),
        writeable=False,
    )
    return patches.transpose(0, 4, 5, 1, 2, 3).reshape(
        n * modules_x * modules_x, c * filter_size * filter_size
    )


def _col2im(
    cols: np.ndarray,
    pad_shape: Tuple[int, int, int, int],
    filter_size: int,
    stride: int,
    modules_x: int,
) -> np.ndarray:
    """
    Scatter-add window rows back into a padded NCHW image.
    """
    n, c = pad_shape[0], pad_shape[1]
    c6 = cols.reshape(n, modules_x, modules_x, c, filter_size, filter_size)
    out = np.zeros(pad_shape, dtype=cols.dtype)
    for i in range(modules_x):
        h0 = i * stride
        for j in range(modules_x):
            w0 = j * stride
            out[:, :, h0 : h0 + filter_size, w0 : w0 + filter_size] += c6[:, i, j]
    return out


def _to_position_rows(m: np.ndarray, num_filters: int, modules_x: int) -> np.ndarray:
    """
    ``(cases, F*P)`` filter-major matrix -> ``(cases*P, F)`` position rows.
    """
    n = m.shape[0]
    return (
        m.reshape(n, num_filters, modules_x * modules_x)
        .transpose(0, 2, 1)
        .reshape(n * modules_x * modules_x, num_filters)
    )


def conv_forward(
    images: np.ndarray,
    filters: np.ndarray,
    *,
    channels: int,
    img_size: int,
    filter_size: int,
    padding: int,
    stride: int,
    modules_x: int,
) -> np.ndarray:
    """
    Convolve a batch of images with a filter bank.

    Parameters
    ----------
    images : np.ndarray
        Shape ``(cases, channels * img_size**2)``.
    filters : np.ndarray
        Shape ``(channels * filter_size**2, num_filters)``.
    channels, img_size, filter_size, padding, stride, modules_x : int
        Convolution geometry.

    Returns
    -------
    np.ndarray
        Shape ``(cases, num_filters * modules_x**2)``, filter-major.

    Raises
    ------
    ValueError
        If the image or filter widths do not match the geometry.
    """
    k = channels * filter_size * filter_size
    if images.shape[1] != channels * img_size * img_size:
        raise ValueError(
            f"images have {images.shape[1]} features; geometry expects "
            f"{channels * img_size * img_size}"
        )
    if filters.shape[0] != k:
        raise ValueError(f"filters have {filters.shape[0]} rows; geometry expects {k}")

    n = images.shape[0]
    num_filters = filters.shape[1]
    x_pad = _pad_images(
        images,
        channels=channels,
        img_size=img_size,
        filter_size=filter_size,
        padding=padding,
        stride=stride,
        modules_x=modules_x,
    )
    cols = _im2col(x_pad, filter_size, stride, modules_x)
    out = cols @ filters  # (n*P, F)
    return (
        out.reshape(n, modules_x * modules_x, num_filters)
        .transpose(0, 2, 1)
        .reshape(n, num_filters * modules_x * modules_x)
    )


def conv_backward_input(
    grad: np.ndarray,
    filters: np.ndarray,
    target: Optional[np.ndarray],
    *,
    channels: int,
    img_size: int,
    filter_size: int,
    padding: int,
    stride: int,
    modules_x: int,
    scale_target: float = 0.0,
) -> np.ndarray:
    """
    Gradient with respect to the convolution input, blended into ``target``.

    Parameters
    ----------
    grad : np.ndarray
        Output gradient, shape ``(cases, num_filters * modules_x**2)``.
    filters : np.ndarray
        Filter bank used in forward.
    target : np.ndarray or None
        Existing contents of the input-gradient buffer.
    scale_target : float, optional
        0 to overwrite ``target``, 1 to accumulate into it.

    Returns
    -------
    np.ndarray
        Shape ``(cases, channels * img_size**2)``.
    """
    n = grad.shape[0]
    num_filters = filters.shape[1]
    g_rows = _to_position_rows(grad, num_filters, modules_x)
    cols = g_rows @ filters.T  # (n*P, K)

    extent = (modules_x - 1) * stride + filter_size
    after = max(0, extent - padding - img_size)
    side = padding + img_size + after
    x_pad = _col2im(cols, (n, channels, side, side), filter_size, stride, modules_x)
    dx = x_pad[:, :, padding : padding + img_size, padding : padding + img_size]
    return add_scaled(target, dx.reshape(n, channels * img_size * img_size), scale_target)


def conv_backward_weights(
    images: np.ndarray,
    grad: np.ndarray,
    *,
    channels: int,
    img_size: int,
    filter_size: int,
    padding: int,
    stride: int,
    modules_x: int,
    num_filters: int,
    partial_sum: int = 0,
) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """
    Filter gradient ``sum_positions(window^T @ grad)``.

    Parameters
    ----------
    images : np.ndarray
        Forward input, shape ``(cases, channels * img_size**2)``.
    grad : np.ndarray
        Output gradient, shape ``(cases, num_filters * modules_x**2)``.
    partial_sum : int, optional
        Number of output positions per tile. When positive and smaller than
        ``modules_x**2`` the gradient is first reduced per tile into a
        ``(tiles, K, num_filters)`` buffer, then summed over tiles.

    Returns
    -------
    tuple[np.ndarray, np.ndarray or None]
        dW :
            Filter gradient, shape ``(channels * filter_size**2, num_filters)``.
        partials :
            The per-tile buffer when tiling was used, otherwise None.
    """
    n = images.shape[0]
    positions = modules_x * modules_x
    x_pad = _pad_images(
        images,
        channels=channels,
        img_size=img_size,
        filter_size=filter_size,
        padding=padding,
        stride=stride,
        modules_x=modules_x,
    )
    cols = _im2col(x_pad, filter_size, stride, modules_x)
    g_rows = _to_position_rows(grad, num_filters, modules_x)

    if partial_sum <= 0 or partial_sum >= positions:
        return cols.T @ g_rows, None

    k = cols.shape[1]
    cols3 = cols.reshape(n, positions, k)
    g3 = g_rows.reshape(n, positions, num_filters)
    tiles = (positions + partial_sum - 1) // partial_sum
    partials = np.empty((tiles, k, num_filters), dtype=np.result_type(cols, g_rows))
    for t in range(tiles):
        sl = slice(t * partial_sum, min(positions, (t + 1) * partial_sum))
        partials[t] = np.einsum("npk,npf->kf", cols3[:, sl], g3[:, sl])
    return partials.sum(axis=0), partials
