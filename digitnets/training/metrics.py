"""Evaluation helpers shared by both network architectures."""

from __future__ import annotations

from typing import Protocol, Sequence

from ..core.matrix import Matrix
from ..core.types import Evaluation, Sample


class Classifier(Protocol):
    def output(self, inputs: Matrix) -> Matrix: ...

    def cost_of(self, output: Matrix, target: Matrix) -> float: ...


def argmax(values: Sequence[float]) -> int:
    """Index of the first largest value."""

    if not values:
        raise IndexError("argmax of an empty sequence")
    best = 0
    for idx, value in enumerate(values):
        if value > values[best]:
            best = idx
    return best


def accuracy(network: Classifier, dataset: Sequence[Sample]) -> int:
    """Number of samples whose predicted class matches the target class."""

    correct = 0
    for sample in dataset:
        if network.output(sample.inputs).argmax() == sample.target.argmax():
            correct += 1
    return correct


def evaluate(network: Classifier, dataset: Sequence[Sample]) -> Evaluation:
    """Correct count, dataset size and mean cost over ``dataset``."""

    correct = 0
    total_cost = 0.0
    for sample in dataset:
        output = network.output(sample.inputs)
        if output.argmax() == sample.target.argmax():
            correct += 1
        total_cost += network.cost_of(output, sample.target)
    total = len(dataset)
    return Evaluation(correct=correct, total=total, cost=total_cost / total if total else 0.0)


__all__ = ["Classifier", "accuracy", "argmax", "evaluate"]
