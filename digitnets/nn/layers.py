"""Fully-connected layer parameters and the dense-stack propagation rules."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field
from typing import List, MutableSequence, Sequence, Tuple

from ..core.activations import Activation
from ..core.errors import ShapeError
from ..core.matrix import Matrix
from ..core.types import LayerGradients


def init_scale(activation: str, fan_in: int) -> float:
    """Standard deviation used for fresh weights feeding ``activation``."""

    if activation == "relu":
        return math.sqrt(2.0 / fan_in)
    return 1.0 / math.sqrt(fan_in)


@dataclass
class DenseLayer:
    """Weights (``out x in``) and biases (``out x 1``) of one layer boundary."""

    weights: Matrix
    biases: Matrix

    def __post_init__(self) -> None:
        if self.biases.shape != (self.weights.rows, 1):
            raise ShapeError(
                f"Bias shape {self.biases.shape} does not match weights {self.weights.shape}"
            )

    @classmethod
    def random(
        cls,
        input_size: int,
        output_size: int,
        *,
        rng: random.Random | None = None,
        scale: float | None = None,
    ) -> "DenseLayer":
        scale = scale if scale is not None else 1.0 / math.sqrt(input_size)
        return cls(
            weights=Matrix.random(output_size, input_size, rng, scale),
            biases=Matrix(output_size, 1),
        )

    @property
    def input_size(self) -> int:
        return self.weights.cols

    @property
    def output_size(self) -> int:
        return self.weights.rows

    def pre_activation(self, inputs: Matrix) -> Matrix:
        if inputs.shape != (self.input_size, 1):
            raise ShapeError(
                f"Layer expects a {self.input_size}x1 input, got {inputs.rows}x{inputs.cols}"
            )
        return self.weights.multiply(inputs).add(self.biases)


@dataclass
class DenseTrace:
    """Cached pre-activations and activations (``activations[0]`` is the input)."""

    zs: List[Matrix] = field(default_factory=list)
    activations: List[Matrix] = field(default_factory=list)


def build_layers(
    sizes: Sequence[int], activation: str, rng: random.Random | None = None
) -> List[DenseLayer]:
    if len(sizes) < 2:
        raise ShapeError(f"A dense stack needs at least two layer sizes, got {list(sizes)}")
    return [
        DenseLayer.random(n_in, n_out, rng=rng, scale=init_scale(activation, n_in))
        for n_in, n_out in zip(sizes[:-1], sizes[1:])
    ]


def check_chain(layers: Sequence[DenseLayer]) -> None:
    """Verify that every layer consumes the previous layer's output."""

    for idx in range(1, len(layers)):
        if layers[idx].input_size != layers[idx - 1].output_size:
            raise ShapeError(
                f"Layer {idx} expects {layers[idx].input_size} inputs but layer {idx - 1} "
                f"produces {layers[idx - 1].output_size}"
            )


def dense_forward(
    layers: Sequence[DenseLayer],
    inputs: Matrix,
    activation: Activation,
    output_activation: Activation,
) -> Tuple[Matrix, DenseTrace]:
    trace = DenseTrace(activations=[inputs])
    a = inputs
    last = len(layers) - 1
    for idx, layer in enumerate(layers):
        z = layer.pre_activation(a)
        a = (output_activation if idx == last else activation)(z)
        trace.zs.append(z)
        trace.activations.append(a)
    return a, trace


def dense_output(
    layers: Sequence[DenseLayer],
    inputs: Matrix,
    activation: Activation,
    output_activation: Activation,
) -> Matrix:
    """Forward pass that keeps no intermediates."""

    a = inputs
    last = len(layers) - 1
    for idx, layer in enumerate(layers):
        a = (output_activation if idx == last else activation)(layer.pre_activation(a))
    return a


def dense_backward(
    layers: Sequence[DenseLayer],
    trace: DenseTrace,
    delta: Matrix,
    activation: Activation,
) -> Tuple[List[LayerGradients], Matrix]:
    """Propagate the output error ``delta`` back through the stack.

    Returns the per-layer gradients and the error with respect to the stack
    input, ``W_0^T . delta_0``.
    """

    grads: List[LayerGradients] = [None] * len(layers)  # type: ignore[list-item]
    for idx in range(len(layers) - 1, -1, -1):
        a_prev = trace.activations[idx]
        grads[idx] = LayerGradients(
            weights=delta.multiply(a_prev.transpose()),
            biases=delta.copy(),
        )
        upstream = layers[idx].weights.transpose().multiply(delta)
        if idx == 0:
            return grads, upstream
        delta = activation.backward(trace.zs[idx - 1], a_prev, upstream)
    raise ShapeError("Cannot backpropagate through an empty dense stack")


def zero_gradients(layers: Sequence[DenseLayer]) -> List[LayerGradients]:
    return [
        LayerGradients(
            weights=Matrix(layer.weights.rows, layer.weights.cols),
            biases=Matrix(layer.biases.rows, 1),
        )
        for layer in layers
    ]


def accumulate(total: Sequence[LayerGradients], grads: Sequence[LayerGradients]) -> None:
    for acc, grad in zip(total, grads):
        acc.weights.iadd(grad.weights)
        acc.biases.iadd(grad.biases)


def apply_gradients(
    layers: MutableSequence[DenseLayer],
    grads: Sequence[LayerGradients],
    learning_rate: float,
    batch_size: int,
    regularization: float = 0.0,
) -> None:
    """Gradient-descent step with optional L2 weight decay.

    ``W -= (lr / batch) * sum(dW) + lr * reg * W`` and
    ``b -= (lr / batch) * sum(db)``.
    """

    step = learning_rate / batch_size
    decay = learning_rate * regularization
    for layer, grad in zip(layers, grads):
        update = grad.weights.scale(step)
        if decay:
            update.iadd(layer.weights.scale(decay))
        layer.weights.isub(update)
        layer.biases.isub(grad.biases.scale(step))


__all__ = [
    "DenseLayer",
    "DenseTrace",
    "accumulate",
    "apply_gradients",
    "build_layers",
    "check_chain",
    "dense_backward",
    "dense_forward",
    "dense_output",
    "init_scale",
    "zero_gradients",
]
