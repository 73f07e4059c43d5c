"""CPU kernels using Numba JIT."""

from __future__ import annotations

import numpy as np
from numba import jit


# =============================================================================
# Patch Features
# =============================================================================

@jit(nopython=True, cache=True)
def _rect_mean(
    channel: np.ndarray,  # (H, W)
    x: int,
    y: int,
    w: int,
    h: int,
) -> float:
    total = 0.0
    for j in range(y, y + h):
        for i in range(x, x + w):
            total += channel[j, i]
    return total / (w * h)


@jit(nopython=True, cache=True)
def _rect_difference(
    channels: np.ndarray,  # (C, H, W)
    c: int,
    x1: int, y1: int, w1: int, h1: int,
    x2: int, y2: int, w2: int, h2: int,
) -> float:
    channel = channels[c]
    return _rect_mean(channel, x1, y1, w1, h1) - _rect_mean(channel, x2, y2, w2, h2)


def rect_difference_cpu(
    channels: np.ndarray,
    channel: int,
    rect1: tuple[int, int, int, int],
    rect2: tuple[int, int, int, int],
) -> float:
    """Mean of `rect1` minus mean of `rect2` on one channel.

    Args:
        channels: Patch, shape (n_channels, height, width)
        channel: Channel index
        rect1: (x, y, width, height)
        rect2: (x, y, width, height)
    """
    x1, y1, w1, h1 = rect1
    x2, y2, w2, h2 = rect2
    return float(_rect_difference(
        channels, channel,
        x1, y1, w1, h1,
        x2, y2, w2, h2,
    ))


# =============================================================================
# Information Gain
# =============================================================================

@jit(nopython=True, cache=True)
def _regression_gain(
    offsets: np.ndarray,  # (n_samples, n_dims) float64
    go_left: np.ndarray,  # (n_samples,) bool
):
    """Variance reduction of offsets for the partition given by `go_left`."""
    n = offsets.shape[0]
    d = offsets.shape[1]

    sum_left = np.zeros(d)
    sum_right = np.zeros(d)
    sq_left = 0.0
    sq_right = 0.0
    n_left = 0

    for i in range(n):
        sq = 0.0
        for k in range(d):
            sq += offsets[i, k] * offsets[i, k]
        if go_left[i]:
            n_left += 1
            sq_left += sq
            for k in range(d):
                sum_left[k] += offsets[i, k]
        else:
            sq_right += sq
            for k in range(d):
                sum_right[k] += offsets[i, k]

    n_right = n - n_left
    sse_left = sq_left
    sse_right = sq_right
    sse_parent = sq_left + sq_right
    for k in range(d):
        total = sum_left[k] + sum_right[k]
        sse_parent -= total * total / n
        if n_left > 0:
            sse_left -= sum_left[k] * sum_left[k] / n_left
        if n_right > 0:
            sse_right -= sum_right[k] * sum_right[k] / n_right

    child_var = (sse_left + sse_right) / n
    gain = sse_parent / n - child_var
    return gain, n_left, child_var


@jit(nopython=True, cache=True)
def _entropy(counts: np.ndarray, total: int) -> float:
    if total == 0:
        return 0.0
    h = 0.0
    for k in range(counts.shape[0]):
        if counts[k] > 0:
            p = counts[k] / total
            h -= p * np.log(p)
    return h


@jit(nopython=True, cache=True)
def _entropy_gain(
    labels: np.ndarray,   # (n_samples,) int64
    go_left: np.ndarray,  # (n_samples,) bool
    n_classes: int,
):
    """Label entropy reduction for the partition given by `go_left`."""
    n = labels.shape[0]
    counts_left = np.zeros(n_classes)
    counts_right = np.zeros(n_classes)
    n_left = 0

    for i in range(n):
        if go_left[i]:
            counts_left[labels[i]] += 1.0
            n_left += 1
        else:
            counts_right[labels[i]] += 1.0

    n_right = n - n_left
    parent = _entropy(counts_left + counts_right, n)
    child = (n_left * _entropy(counts_left, n_left) + n_right * _entropy(counts_right, n_right)) / n
    return parent - child, n_left, child


def regression_gain_cpu(
    offsets: np.ndarray,
    go_left: np.ndarray,
) -> tuple[float, int, float]:
    """Offset variance reduction of a two-way partition.

    Args:
        offsets: Targets, shape (n_samples, n_dims)
        go_left: Boolean mask of samples in the left child

    Returns:
        gain: Parent variance minus weighted child variance
        n_left: Samples in the left child
        child_var: Weighted child variance
    """
    gain, n_left, child_var = _regression_gain(
        np.ascontiguousarray(offsets, dtype=np.float64),
        np.ascontiguousarray(go_left, dtype=np.bool_),
    )
    return float(gain), int(n_left), float(child_var)


def entropy_gain_cpu(
    labels: np.ndarray,
    go_left: np.ndarray,
    n_classes: int,
) -> tuple[float, int, float]:
    """Label entropy reduction of a two-way partition.

    Returns:
        gain: Parent entropy minus weighted child entropy
        n_left: Samples in the left child
        child_entropy: Weighted child entropy
    """
    gain, n_left, child = _entropy_gain(
        np.ascontiguousarray(labels, dtype=np.int64),
        np.ascontiguousarray(go_left, dtype=np.bool_),
        n_classes,
    )
    return float(gain), int(n_left), float(child)
