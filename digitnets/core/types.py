"""Core typing contracts for digitnets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from .matrix import Matrix


@dataclass(frozen=True)
class Sample:
    """A single labeled example: network input plus one-hot target."""

    inputs: Matrix
    target: Matrix


Dataset = Sequence[Sample]


@dataclass(frozen=True)
class LayerGradients:
    """Gradient of the cost with respect to one dense layer."""

    weights: Matrix
    biases: Matrix


@dataclass(frozen=True)
class Evaluation:
    """Outcome of running a network over a labeled dataset."""

    correct: int
    total: int
    cost: float = 0.0

    @property
    def fraction(self) -> float:
        return self.correct / self.total if self.total else 0.0

    def as_metrics(self) -> Dict[str, float]:
        return {
            "correct": float(self.correct),
            "total": float(self.total),
            "accuracy": self.fraction,
            "cost": self.cost,
        }


@dataclass(frozen=True)
class EpochReport:
    """Evaluation recorded at the end of a training epoch."""

    epoch: int
    evaluation: Evaluation | None = None


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :func:`digitnets.training.pipelines.run_pipeline`."""

    epochs: int
    metrics_path: str
    manifest_path: str
    summary_path: str = ""
    model_path: str = ""
    evaluation: Evaluation | None = None
    history: List[EpochReport] = field(default_factory=list)


__all__ = [
    "Dataset",
    "EpochReport",
    "Evaluation",
    "LayerGradients",
    "RunResult",
    "Sample",
]
