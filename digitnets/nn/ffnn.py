"""Fully-connected feedforward classifier."""

from __future__ import annotations

import random
from typing import Any, List, Mapping, Optional, Sequence

from ..core.activations import get_activation
from ..core.errors import ShapeError
from ..core.matrix import Matrix
from ..core.normalization import Normalization
from ..core.types import EpochReport, Evaluation, LayerGradients, Sample
from ..training import metrics
from ..training.loop import fit
from .costs import get_cost
from .layers import (
    DenseLayer,
    accumulate,
    apply_gradients,
    build_layers,
    check_chain,
    dense_backward,
    dense_forward,
    dense_output,
    zero_gradients,
)


class FFNN:
    """Stack of dense layers trained with mini-batch gradient descent."""

    def __init__(
        self,
        sizes: Sequence[int],
        *,
        activation: str = "sigmoid",
        output_activation: str | None = None,
        cost: str = "quadratic",
        seed: int | None = None,
        layers: Sequence[DenseLayer] | None = None,
        normalization: Optional[Normalization] = None,
    ) -> None:
        self.activation = get_activation(activation)
        self.output_activation = get_activation(output_activation or activation)
        if not self.activation.elementwise:
            raise ValueError(f"Hidden activation {activation!r} must be elementwise")
        self.cost = get_cost(cost)
        self.cost.check_output(self.output_activation)
        sizes = [int(s) for s in sizes]
        if layers is None:
            self.layers: List[DenseLayer] = build_layers(sizes, activation, random.Random(seed))
        else:
            self.layers = list(layers)
            check_chain(self.layers)
            actual = [self.layers[0].input_size] + [layer.output_size for layer in self.layers]
            if actual != sizes:
                raise ShapeError(f"Layer parameters describe sizes {actual}, expected {sizes}")
        self.normalization = normalization

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "FFNN":
        """Rehydrate a network from a serialized model document."""

        from .serialization import ffnn_from_document

        return ffnn_from_document(document)

    def to_document(self) -> dict:
        from .serialization import ffnn_to_document

        return ffnn_to_document(self)

    @property
    def sizes(self) -> List[int]:
        return [self.layers[0].input_size] + [layer.output_size for layer in self.layers]

    # ------------------------------------------------------------------
    # Inference

    def output(self, inputs: Matrix) -> Matrix:
        return dense_output(self.layers, inputs, self.activation, self.output_activation)

    def feedforward(self, inputs: Matrix) -> Matrix:
        return self.output(inputs)

    def predict(self, inputs: Matrix) -> List[float]:
        """Output vector as a list; the predicted class is its argmax."""

        return self.output(inputs).to_list()

    def cost_of(self, output: Matrix, target: Matrix) -> float:
        return self.cost.value(output, target, self.output_activation)

    # ------------------------------------------------------------------
    # Training

    def backpropagate(self, inputs: Matrix, target: Matrix) -> List[LayerGradients]:
        """Per-layer cost gradients for a single sample."""

        output, trace = dense_forward(
            self.layers, inputs, self.activation, self.output_activation
        )
        if target.shape != output.shape:
            raise ShapeError(f"Target shape {target.shape} does not match output {output.shape}")
        delta = self.cost.delta(trace.zs[-1], output, target, self.output_activation)
        grads, _ = dense_backward(self.layers, trace, delta, self.activation)
        return grads

    def update_mini_batch(
        self, batch: Sequence[Sample], learning_rate: float, regularization: float = 0.0
    ) -> None:
        total = zero_gradients(self.layers)
        for sample in batch:
            accumulate(total, self.backpropagate(sample.inputs, sample.target))
        apply_gradients(self.layers, total, learning_rate, len(batch), regularization)

    def stochastic_gradient_descent(
        self,
        training_set: Sequence[Sample],
        epochs: int,
        mini_batch_size: int,
        learning_rate: float,
        regularization: float = 0.0,
        test_set: Sequence[Sample] | None = None,
        *,
        rng: random.Random | None = None,
        callbacks: Sequence[object] = (),
    ) -> List[EpochReport]:
        def step(batch: Sequence[Sample]) -> None:
            self.update_mini_batch(batch, learning_rate, regularization)

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
    # Evaluation and normalization

    def accuracy(self, dataset: Sequence[Sample]) -> int:
        return metrics.accuracy(self, dataset)

    def evaluate(self, dataset: Sequence[Sample]) -> Evaluation:
        return metrics.evaluate(self, dataset)

    def initialize_normalization(self, training_set: Sequence[Sample]) -> Normalization:
        """Compute and attach standardization statistics once."""

        if self.normalization is None:
            stats = Normalization.fit(training_set)
            if stats.mean.shape != (self.sizes[0], 1):
                raise ShapeError(
                    f"Training inputs {stats.mean.shape} do not match input size {self.sizes[0]}"
                )
            self.normalization = stats
        return self.normalization

    def __repr__(self) -> str:
        return (
            f"FFNN(sizes={self.sizes}, activation={self.activation.name!r}, "
            f"cost={self.cost.name!r})"
        )


__all__ = ["FFNN"]
