"""Run dispatcher: choose a bounded, unbiased subset of the due instances."""

from __future__ import annotations

import logging
import random
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def batch_size(max_parallel_runs: int) -> int:
    """Effective batch cap; at least one instance runs per invocation."""
    return max(1, int(max_parallel_runs))


def select_batch(
    due: list[T],
    max_parallel_runs: int,
    rng: random.Random | None = None,
) -> tuple[list[T], list[T]]:
    """Shuffle ``due`` uniformly and split it into ``(selected, deferred)``.

    The input list is not modified. Deferred items keep their stored
    ``next_run_at`` and stay candidates for the next invocation.
    """
    pool = list(due)
    (rng if rng is not None else random).shuffle(pool)
    cap = batch_size(max_parallel_runs)
    selected, deferred = pool[:cap], pool[cap:]
    if deferred:
        logger.debug("Dispatcher deferred %d due instance(s) cap=%d", len(deferred), cap)
    return selected, deferred
