"""Convolutional classifier: convolution -> activation -> pooling -> dense stack."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..core.activations import get_activation
from ..core.errors import ShapeError
from ..core.matrix import Matrix
from ..core.types import EpochReport, Evaluation, LayerGradients, Sample
from ..training import metrics
from ..training.loop import fit
from .convolution import (
    ConvKernel,
    PoolConfig,
    cross_correlate,
    input_gradient,
    kernel_gradient,
    output_size,
    pool_backward,
    pool_forward,
)
from .costs import get_cost
from .layers import (
    DenseLayer,
    DenseTrace,
    accumulate,
    apply_gradients,
    build_layers,
    check_chain,
    dense_backward,
    dense_forward,
    dense_output,
    zero_gradients,
)


@dataclass
class ForwardTrace:
    """Intermediates of one forward pass, kept for backpropagation."""

    inputs: Matrix
    pre_activations: List[Matrix]
    feature_maps: List[Matrix]
    pooled: List[Matrix]
    pool_indices: List[Optional[List[int]]]
    flattened: Matrix
    dense: DenseTrace


@dataclass(frozen=True)
class CNNGradients:
    """Cost gradients for every CNN parameter plus the raw input."""

    kernels: List[Matrix]
    kernel_biases: List[float]
    dense: List[LayerGradients]
    inputs: Matrix


class CNN:
    """Single convolution/pooling stage followed by a dense classification stack."""

    def __init__(
        self,
        *,
        input_shape: Tuple[int, int] = (28, 28),
        kernel_count: int = 8,
        kernel_size: int = 5,
        stride: int = 1,
        padding: int = 0,
        conv_activation: str = "relu",
        pool: PoolConfig | None = None,
        hidden: Sequence[int] = (),
        num_classes: int = 10,
        activation: str = "relu",
        output_activation: str = "softmax",
        cost: str = "cross_entropy",
        seed: int | None = None,
        kernels: Sequence[ConvKernel] | None = None,
        layers: Sequence[DenseLayer] | None = None,
    ) -> None:
        if kernel_count < 1 or kernel_size < 1:
            raise ShapeError(f"Need at least one kernel of positive size, got {kernel_count}x{kernel_size}")
        if stride < 1 or padding < 0:
            raise ShapeError(f"Invalid convolution stride {stride} or padding {padding}")
        self.input_shape = (int(input_shape[0]), int(input_shape[1]))
        self.kernel_size = int(kernel_size)
        self.stride = int(stride)
        self.padding = int(padding)
        self.pool = pool or PoolConfig()
        self.conv_activation = get_activation(conv_activation)
        self.activation = get_activation(activation)
        self.output_activation = get_activation(output_activation)
        for act in (self.conv_activation, self.activation):
            if not act.elementwise:
                raise ValueError(f"Activation {act.name!r} cannot be used before the output layer")
        self.cost = get_cost(cost)
        self.cost.check_output(self.output_activation)

        rows, cols = self.input_shape
        self.conv_shape = (
            output_size(rows, self.kernel_size, self.stride, self.padding),
            output_size(cols, self.kernel_size, self.stride, self.padding),
        )
        self.pooled_shape = (
            output_size(self.conv_shape[0], self.pool.size, self.pool.stride),
            output_size(self.conv_shape[1], self.pool.size, self.pool.stride),
        )
        flat = kernel_count * self.pooled_shape[0] * self.pooled_shape[1]
        dense_sizes = [flat, *(int(h) for h in hidden), int(num_classes)]

        rng = random.Random(seed)
        if kernels is None:
            scale = math.sqrt(2.0 / (self.kernel_size * self.kernel_size))
            self.kernels = [ConvKernel.random(self.kernel_size, rng, scale) for _ in range(kernel_count)]
        else:
            self.kernels = list(kernels)
            if len(self.kernels) != kernel_count:
                raise ShapeError(f"Expected {kernel_count} kernels, got {len(self.kernels)}")
            for idx, kernel in enumerate(self.kernels):
                if kernel.size != self.kernel_size:
                    raise ShapeError(
                        f"Kernel {idx} is {kernel.size}x{kernel.size}, expected {self.kernel_size}"
                    )
        if layers is None:
            self.layers: List[DenseLayer] = build_layers(dense_sizes, activation, rng)
        else:
            self.layers = list(layers)
            check_chain(self.layers)
            actual = [self.layers[0].input_size] + [layer.output_size for layer in self.layers]
            if actual != dense_sizes:
                raise ShapeError(f"Dense parameters describe sizes {actual}, expected {dense_sizes}")

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "CNN":
        from .serialization import cnn_from_document

        return cnn_from_document(document)

    def to_document(self) -> dict:
        from .serialization import cnn_to_document

        return cnn_to_document(self)

    @property
    def kernel_count(self) -> int:
        return len(self.kernels)

    @property
    def dense_sizes(self) -> List[int]:
        return [self.layers[0].input_size] + [layer.output_size for layer in self.layers]

    # ------------------------------------------------------------------
    # Inference

    def _check_input(self, inputs: Matrix) -> None:
        if inputs.shape != self.input_shape:
            raise ShapeError(
                f"CNN expects a {self.input_shape[0]}x{self.input_shape[1]} input, "
                f"got {inputs.rows}x{inputs.cols}"
            )

    def _convolve(self, inputs: Matrix, kernel: ConvKernel) -> Matrix:
        bias = kernel.bias
        return cross_correlate(inputs, kernel.weights, self.stride, self.padding).map(
            lambda x: x + bias
        )

    def forward(self, inputs: Matrix) -> Tuple[Matrix, ForwardTrace]:
        self._check_input(inputs)
        pre_activations: List[Matrix] = []
        feature_maps: List[Matrix] = []
        pooled: List[Matrix] = []
        pool_indices: List[Optional[List[int]]] = []
        flat: List[float] = []
        for kernel in self.kernels:
            z = self._convolve(inputs, kernel)
            a = self.conv_activation(z)
            p, indices = pool_forward(a, self.pool)
            pre_activations.append(z)
            feature_maps.append(a)
            pooled.append(p)
            pool_indices.append(indices)
            flat.extend(p.data)
        flattened = Matrix(len(flat), 1, flat)
        output, dense_trace = dense_forward(
            self.layers, flattened, self.activation, self.output_activation
        )
        trace = ForwardTrace(
            inputs=inputs,
            pre_activations=pre_activations,
            feature_maps=feature_maps,
            pooled=pooled,
            pool_indices=pool_indices,
            flattened=flattened,
            dense=dense_trace,
        )
        return output, trace

    def output(self, inputs: Matrix) -> Matrix:
        self._check_input(inputs)
        flat: List[float] = []
        for kernel in self.kernels:
            pooled, _ = pool_forward(self.conv_activation(self._convolve(inputs, kernel)), self.pool)
            flat.extend(pooled.data)
        return dense_output(
            self.layers, Matrix(len(flat), 1, flat), self.activation, self.output_activation
        )

    def predict(self, inputs: Matrix) -> List[float]:
        return self.output(inputs).to_list()

    def cost_of(self, output: Matrix, target: Matrix) -> float:
        return self.cost.value(output, target, self.output_activation)

    # ------------------------------------------------------------------
    # Training

    def backpropagate(self, inputs: Matrix, target: Matrix) -> CNNGradients:
        output, trace = self.forward(inputs)
        if target.shape != output.shape:
            raise ShapeError(f"Target shape {target.shape} does not match output {output.shape}")
        delta = self.cost.delta(trace.dense.zs[-1], output, target, self.output_activation)
        dense_grads, flat_error = dense_backward(self.layers, trace.dense, delta, self.activation)

        ph, pw = self.pooled_shape
        per_map = ph * pw
        kernel_grads: List[Matrix] = []
        bias_grads: List[float] = []
        input_grad = Matrix(*self.input_shape)
        for c, kernel in enumerate(self.kernels):
            pooled_grad = Matrix(ph, pw, flat_error.data[c * per_map : (c + 1) * per_map])
            map_grad = pool_backward(pooled_grad, self.conv_shape, self.pool, trace.pool_indices[c])
            z_grad = self.conv_activation.backward(
                trace.pre_activations[c], trace.feature_maps[c], map_grad
            )
            kernel_grads.append(
                kernel_gradient(inputs, z_grad, self.kernel_size, self.stride, self.padding)
            )
            bias_grads.append(z_grad.sum())
            input_grad.iadd(
                input_gradient(z_grad, kernel.weights, self.input_shape, self.stride, self.padding)
            )
        return CNNGradients(
            kernels=kernel_grads, kernel_biases=bias_grads, dense=dense_grads, inputs=input_grad
        )

    def update_mini_batch(self, batch: Sequence[Sample], learning_rate: float) -> None:
        kernel_sums = [Matrix(self.kernel_size, self.kernel_size) for _ in self.kernels]
        bias_sums = [0.0] * len(self.kernels)
        dense_sums = zero_gradients(self.layers)
        for sample in batch:
            grads = self.backpropagate(sample.inputs, sample.target)
            for c, grad in enumerate(grads.kernels):
                kernel_sums[c].iadd(grad)
                bias_sums[c] += grads.kernel_biases[c]
            accumulate(dense_sums, grads.dense)

        step = learning_rate / len(batch)
        for kernel, grad, bias_grad in zip(self.kernels, kernel_sums, bias_sums):
            kernel.weights.isub(grad.scale(step))
            kernel.bias -= step * bias_grad
        apply_gradients(self.layers, dense_sums, learning_rate, len(batch))

    def train(
        self,
        training_set: Sequence[Sample],
        epochs: int,
        learning_rate: float,
        test_set: Sequence[Sample] | None = None,
        *,
        mini_batch_size: int = 1,
        rng: random.Random | None = None,
        callbacks: Sequence[object] = (),
    ) -> List[EpochReport]:
        def step(batch: Sequence[Sample]) -> None:
            self.update_mini_batch(batch, learning_rate)

        return fit(
            self,
            training_set,
            epochs,
            mini_batch_size,
            step,
            test_set=test_set,
            rng=rng,
            callbacks=callbacks,
        )

    # ------------------------------------------------------------------
    # Evaluation

    def accuracy(self, dataset: Sequence[Sample]) -> int:
        return metrics.accuracy(self, dataset)

    test = accuracy

    def evaluate(self, dataset: Sequence[Sample]) -> Evaluation:
        return metrics.evaluate(self, dataset)

    def __repr__(self) -> str:
        return (
            f"CNN(input_shape={self.input_shape}, kernels={self.kernel_count}x"
            f"{self.kernel_size}x{self.kernel_size}, pool={self.pool}, dense={self.dense_sizes})"
        )


__all__ = ["CNN", "CNNGradients", "ForwardTrace"]
