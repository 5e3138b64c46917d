"""Per-dimension input standardization."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from .errors import ShapeError
from .matrix import Matrix
from .types import Sample

EPSILON = 10.0 ** -100


@dataclass(frozen=True)
class Normalization:
    """Mean and standard deviation of every input dimension of a training set."""

    mean: Matrix
    std: Matrix
    epsilon: float = EPSILON

    def __post_init__(self) -> None:
        if self.mean.shape != self.std.shape:
            raise ShapeError(
                f"Normalization mean {self.mean.shape} and std {self.std.shape} differ"
            )

    @classmethod
    def fit(cls, samples: Sequence[Sample], epsilon: float = EPSILON) -> "Normalization":
        """Compute population mean/std of ``samples`` inputs."""

        if not samples:
            raise ValueError("Cannot compute normalization statistics of an empty dataset")
        rows, cols = samples[0].inputs.shape
        mean = Matrix(rows, cols)
        for sample in samples:
            mean.iadd(sample.inputs)
        mean.idiv(len(samples))

        variance = Matrix(rows, cols)
        for sample in samples:
            variance.iadd(sample.inputs.sub(mean).map(lambda x: x * x))
        count = len(samples)
        std = variance.map(lambda x: math.sqrt(x / count))
        return cls(mean=mean, std=std, epsilon=epsilon)

    def apply(self, inputs: Matrix) -> Matrix:
        """Return ``(inputs - mean) / (std + epsilon)`` as a new matrix."""

        eps = self.epsilon
        return inputs.sub(self.mean).div(self.std.map(lambda x: x + eps))

    def apply_all(self, samples: Sequence[Sample]) -> list[Sample]:
        return [Sample(inputs=self.apply(s.inputs), target=s.target) for s in samples]


__all__ = ["EPSILON", "Normalization"]
