"""Epoch/mini-batch driver shared by :class:`FFNN` and :class:`CNN`."""

from __future__ import annotations

import logging
import random
from typing import Callable, List, Mapping, Sequence

from ..core.types import EpochReport, Sample
from .metrics import Classifier, evaluate

logger = logging.getLogger(__name__)

StepFn = Callable[[Sequence[Sample]], None]


def mini_batches(
    dataset: Sequence[Sample], size: int, rng: random.Random | None = None
) -> List[List[Sample]]:
    """Shuffle a copy of ``dataset`` and cut it into contiguous batches.

    The last batch is smaller when ``size`` does not divide the dataset.
    """

    if size < 1:
        raise ValueError(f"mini-batch size must be positive, got {size}")
    order = list(dataset)
    (rng or random).shuffle(order)
    return [order[start : start + size] for start in range(0, len(order), size)]


def emit_epoch(callbacks: Sequence[object], epoch: int, metrics: Mapping[str, float]) -> None:
    for callback in callbacks:
        if hasattr(callback, "on_epoch"):
            callback.on_epoch(epoch, metrics)  # type: ignore[attr-defined]
        elif callable(callback):
            callback(epoch, metrics)


def fit(
    network: Classifier,
    training_set: Sequence[Sample],
    epochs: int,
    mini_batch_size: int,
    step: StepFn,
    *,
    test_set: Sequence[Sample] | None = None,
    rng: random.Random | None = None,
    callbacks: Sequence[object] = (),
) -> List[EpochReport]:
    """Run ``epochs`` passes of ``step`` over shuffled mini-batches."""

    if epochs < 0:
        raise ValueError(f"epochs must be non-negative, got {epochs}")
    history: List[EpochReport] = []
    for epoch in range(1, epochs + 1):
        for batch in mini_batches(training_set, mini_batch_size, rng):
            step(batch)
        evaluation = evaluate(network, test_set) if test_set is not None else None
        metrics = {"samples": float(len(training_set))}
        if evaluation is not None:
            metrics.update(evaluation.as_metrics())
            logger.info(
                "Epoch %d: %d/%d correct (%.2f%%)",
                epoch,
                evaluation.correct,
                evaluation.total,
                100.0 * evaluation.fraction,
            )
        else:
            logger.info("Epoch %d complete", epoch)
        emit_epoch(callbacks, epoch, metrics)
        history.append(EpochReport(epoch=epoch, evaluation=evaluation))
    return history


__all__ = ["emit_epoch", "fit", "mini_batches"]
