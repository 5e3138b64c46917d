"""Activation functions and their derivatives for :class:`Matrix` values."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable

from .matrix import Matrix


def sigmoid(x: float) -> float:
    """Numerically stable logistic function."""

    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def sigmoid_prime(x: float) -> float:
    s = sigmoid(x)
    return s * (1.0 - s)


def relu(x: float) -> float:
    return x if x > 0.0 else 0.0


def relu_prime(x: float) -> float:
    return 1.0 if x > 0.0 else 0.0


def softmax(z: Matrix) -> Matrix:
    """Return the softmax of a column vector."""

    peak = z.max()
    exps = [math.exp(v - peak) for v in z.data]
    total = math.fsum(exps)
    return Matrix(z.rows, z.cols, [e / total for e in exps])


@dataclass(frozen=True)
class Activation:
    """Forward transform plus the vector-Jacobian product used by backprop."""

    name: str
    forward: Callable[[Matrix], Matrix]
    backward: Callable[[Matrix, Matrix, Matrix], Matrix]
    elementwise: bool = True

    def __call__(self, z: Matrix) -> Matrix:
        return self.forward(z)


def _elementwise(name: str, fn: Callable[[float], float], prime: Callable[[float], float]) -> Activation:
    def forward(z: Matrix) -> Matrix:
        return z.map(fn)

    def backward(z: Matrix, a: Matrix, grad: Matrix) -> Matrix:
        return grad.hadamard(z.map(prime))

    return Activation(name=name, forward=forward, backward=backward)


def _softmax_backward(z: Matrix, a: Matrix, grad: Matrix) -> Matrix:
    dot = math.fsum(g * p for g, p in zip(grad.data, a.data))
    return Matrix(a.rows, a.cols, [p * (g - dot) for g, p in zip(grad.data, a.data)])


_REGISTRY: Dict[str, Activation] = {
    "sigmoid": _elementwise("sigmoid", sigmoid, sigmoid_prime),
    "relu": _elementwise("relu", relu, relu_prime),
    "softmax": Activation(
        name="softmax", forward=softmax, backward=_softmax_backward, elementwise=False
    ),
}


def get_activation(name: str) -> Activation:
    try:
        return _REGISTRY[name]
    except KeyError:
        available = ", ".join(sorted(_REGISTRY))
        raise KeyError(f"Unknown activation {name!r}. Available activations: {available}") from None


def available_activations() -> Iterable[str]:
    return sorted(_REGISTRY)


__all__ = [
    "Activation",
    "available_activations",
    "get_activation",
    "relu",
    "relu_prime",
    "sigmoid",
    "sigmoid_prime",
    "softmax",
]
