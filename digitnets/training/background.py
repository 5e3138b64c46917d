"""Run pipelines off the calling thread."""

from __future__ import annotations

import logging
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from copy import deepcopy
from typing import Mapping

from ..core.types import RunResult
from .pipelines import run_pipeline

logger = logging.getLogger(__name__)


def submit_pipeline(
    config: Mapping[str, object],
    *,
    executor: Executor | None = None,
    use_processes: bool = False,
) -> "Future[RunResult]":
    """Schedule :func:`run_pipeline` and return its future.

    Without an ``executor`` a single-worker pool is created and shut down
    once the run finishes. Epoch progress still flows through the sinks the
    config enables; exceptions surface from ``Future.result()``.
    """

    snapshot = deepcopy(dict(config))
    if executor is not None:
        return executor.submit(run_pipeline, snapshot)

    pool: Executor = ProcessPoolExecutor(max_workers=1) if use_processes else ThreadPoolExecutor(
        max_workers=1, thread_name_prefix="digitnets"
    )
    logger.info("Submitting %s pipeline to a %s", snapshot.get("architecture", "ffnn"), type(pool).__name__)
    future = pool.submit(run_pipeline, snapshot)
    future.add_done_callback(lambda _: pool.shutdown(wait=False))
    return future


__all__ = ["submit_pipeline"]
