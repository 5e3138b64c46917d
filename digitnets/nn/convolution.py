"""Convolution and pooling primitives with their gradient routing.

Feature maps are single-channel :class:`Matrix` grids. ``cross_correlate``
slides an unflipped kernel over the (zero padded) input; the backward
helpers scatter an upstream gradient onto kernel weights and inputs. For
stride 1 the input gradient equals the full convolution of the map gradient
with the 180-degree rotated kernel.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..core.errors import ShapeError
from ..core.matrix import Matrix

POOL_MODES = ("max", "average")


@dataclass
class ConvKernel:
    """Square weight bank plus scalar bias for one output channel."""

    weights: Matrix
    bias: float = 0.0

    def __post_init__(self) -> None:
        if self.weights.rows != self.weights.cols:
            raise ShapeError(f"Kernel must be square, got {self.weights.rows}x{self.weights.cols}")
        self.bias = float(self.bias)

    @classmethod
    def random(cls, size: int, rng: random.Random | None = None, scale: float = 1.0) -> "ConvKernel":
        return cls(weights=Matrix.random(size, size, rng, scale), bias=0.0)

    @property
    def size(self) -> int:
        return self.weights.rows


@dataclass(frozen=True)
class PoolConfig:
    """Pooling window size, stride and reduction mode."""

    size: int = 2
    stride: int = 2
    mode: str = "max"

    def __post_init__(self) -> None:
        if self.size < 1 or self.stride < 1:
            raise ShapeError(f"Pool size and stride must be positive, got {self.size}/{self.stride}")
        if self.mode not in POOL_MODES:
            raise ValueError(f"Unknown pooling mode {self.mode!r}; expected one of {POOL_MODES}")


def output_size(length: int, window: int, stride: int = 1, padding: int = 0) -> int:
    """Number of window positions along one axis."""

    span = length + 2 * padding - window
    if span < 0:
        raise ShapeError(
            f"Window {window} does not fit an axis of length {length} with padding {padding}"
        )
    return span // stride + 1


def pad(inputs: Matrix, padding: int) -> Matrix:
    if padding == 0:
        return inputs
    width = inputs.cols + 2 * padding
    out = Matrix(inputs.rows + 2 * padding, width)
    for r in range(inputs.rows):
        start = (r + padding) * width + padding
        out.data[start : start + inputs.cols] = inputs.data[r * inputs.cols : (r + 1) * inputs.cols]
    return out


def cross_correlate(inputs: Matrix, kernel: Matrix, stride: int = 1, padding: int = 0) -> Matrix:
    """Valid cross-correlation of ``inputs`` with ``kernel``."""

    k = kernel.rows
    out_h = output_size(inputs.rows, k, stride, padding)
    out_w = output_size(inputs.cols, kernel.cols, stride, padding)
    src = pad(inputs, padding)
    width = src.cols
    data, weights = src.data, kernel.data
    out = [0.0] * (out_h * out_w)
    for i in range(out_h):
        for j in range(out_w):
            total = 0.0
            top, left = i * stride, j * stride
            for u in range(k):
                row = (top + u) * width + left
                krow = u * kernel.cols
                for v in range(kernel.cols):
                    total += data[row + v] * weights[krow + v]
            out[i * out_w + j] = total
    return Matrix(out_h, out_w, out)


def kernel_gradient(
    inputs: Matrix, grad: Matrix, kernel_size: int, stride: int = 1, padding: int = 0
) -> Matrix:
    """Cost gradient with respect to kernel weights.

    ``dK[u, v] = sum_ij grad[i, j] * input[i*stride + u, j*stride + v]``, the
    cross-correlation of the stage input with the map gradient.
    """

    expected = (
        output_size(inputs.rows, kernel_size, stride, padding),
        output_size(inputs.cols, kernel_size, stride, padding),
    )
    if expected != grad.shape:
        raise ShapeError(f"Gradient {grad.shape} does not match the convolution output {expected}")
    src = pad(inputs, padding)
    width = src.cols
    out = [0.0] * (kernel_size * kernel_size)
    for i in range(grad.rows):
        for j in range(grad.cols):
            g = grad.data[i * grad.cols + j]
            if g == 0.0:
                continue
            top, left = i * stride, j * stride
            for u in range(kernel_size):
                row = (top + u) * width + left
                for v in range(kernel_size):
                    out[u * kernel_size + v] += g * src.data[row + v]
    return Matrix(kernel_size, kernel_size, out)


def input_gradient(
    grad: Matrix,
    kernel: Matrix,
    input_shape: Tuple[int, int],
    stride: int = 1,
    padding: int = 0,
) -> Matrix:
    """Cost gradient with respect to the convolution input."""

    rows, cols = input_shape
    k = kernel.rows
    width = cols + 2 * padding
    acc = [0.0] * ((rows + 2 * padding) * width)
    for i in range(grad.rows):
        for j in range(grad.cols):
            g = grad.data[i * grad.cols + j]
            if g == 0.0:
                continue
            top, left = i * stride, j * stride
            for u in range(k):
                row = (top + u) * width + left
                for v in range(k):
                    acc[row + v] += g * kernel.data[u * k + v]
    if padding == 0:
        return Matrix(rows, cols, acc)
    out = Matrix(rows, cols)
    for r in range(rows):
        start = (r + padding) * width + padding
        out.data[r * cols : (r + 1) * cols] = acc[start : start + cols]
    return out


def pool_forward(feature_map: Matrix, config: PoolConfig) -> Tuple[Matrix, Optional[List[int]]]:
    """Reduce every window; max pooling also returns the winning flat indices."""

    size, stride = config.size, config.stride
    out_h = output_size(feature_map.rows, size, stride)
    out_w = output_size(feature_map.cols, size, stride)
    width = feature_map.cols
    data = feature_map.data
    pooled = [0.0] * (out_h * out_w)
    indices: Optional[List[int]] = [0] * (out_h * out_w) if config.mode == "max" else None
    area = float(size * size)
    for i in range(out_h):
        for j in range(out_w):
            top, left = i * stride, j * stride
            cell = i * out_w + j
            if indices is not None:
                best = top * width + left
                for u in range(size):
                    for v in range(size):
                        idx = (top + u) * width + left + v
                        if data[idx] > data[best]:
                            best = idx
                indices[cell] = best
                pooled[cell] = data[best]
            else:
                total = 0.0
                for u in range(size):
                    row = (top + u) * width + left
                    total += sum(data[row : row + size])
                pooled[cell] = total / area
    return Matrix(out_h, out_w, pooled), indices


def pool_backward(
    grad: Matrix,
    feature_shape: Tuple[int, int],
    config: PoolConfig,
    indices: Optional[Sequence[int]] = None,
) -> Matrix:
    """Route a pooled-map gradient back onto the feature map.

    Max pooling sends each value to its window's cached maximum and zero
    elsewhere; average pooling spreads it evenly over the window. Overlapping
    windows accumulate.
    """

    rows, cols = feature_shape
    out = Matrix(rows, cols)
    if config.mode == "max":
        if indices is None:
            raise ValueError("Max pooling backward requires the cached maximum indices")
        if len(indices) != len(grad.data):
            raise ShapeError(
                f"{len(indices)} cached indices for a {grad.rows}x{grad.cols} gradient"
            )
        limit = rows * cols
        for g, idx in zip(grad.data, indices):
            if not 0 <= idx < limit:
                raise IndexError(f"Pooling index {idx} out of range for a {rows}x{cols} map")
            out.data[idx] += g
        return out

    size, stride = config.size, config.stride
    if (output_size(rows, size, stride), output_size(cols, size, stride)) != grad.shape:
        raise ShapeError(f"Gradient {grad.shape} does not match the pooled map")
    share = 1.0 / (size * size)
    for i in range(grad.rows):
        for j in range(grad.cols):
            g = grad.data[i * grad.cols + j] * share
            top, left = i * stride, j * stride
            for u in range(size):
                row = (top + u) * cols + left
                for v in range(size):
                    out.data[row + v] += g
    return out


__all__ = [
    "ConvKernel",
    "POOL_MODES",
    "PoolConfig",
    "cross_correlate",
    "input_gradient",
    "kernel_gradient",
    "output_size",
    "pad",
    "pool_backward",
    "pool_forward",
]
