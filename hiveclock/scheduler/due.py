"""Due selector: partition known instances into due and waiting."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime

from hiveclock.scheduler.models import Instance, ScheduleSpec
from hiveclock.scheduler.schedule import initial_run_at, parse_timestamp


@dataclass
class DueDecision:
    """Due verdict for one instance plus its best-known next run time."""

    instance: Instance
    due: bool
    next_run_at: datetime

    @property
    def handle(self) -> str:
        return self.instance.handle


def is_due(spec: ScheduleSpec, stored_next_run_at: object, now: datetime) -> bool:
    """Return whether an instance may run at ``now``.

    Unknown timing state (absent or unparseable) counts as due so that a
    corrupted record can never park an instance forever.
    """
    if not spec.only_due:
        return True
    parsed = parse_timestamp(stored_next_run_at)
    if parsed is None:
        return True
    return now >= parsed


def select_due(
    instances: list[Instance],
    now: datetime,
    rng: random.Random | None = None,
) -> list[DueDecision]:
    """Return a decision for every instance, in input order."""
    decisions: list[DueDecision] = []
    for instance in instances:
        schedule = instance.template.schedule
        stored = instance.state.next_run_at
        parsed = parse_timestamp(stored)
        best_known = parsed if parsed is not None else initial_run_at(schedule, now, rng)
        decisions.append(
            DueDecision(
                instance=instance,
                due=is_due(schedule, stored, now),
                next_run_at=best_known,
            )
        )
    return decisions


def upcoming(decisions: list[DueDecision], limit: int = 5) -> list[DueDecision]:
    """Return the earliest scheduled decisions, soonest first."""
    ordered = sorted(decisions, key=lambda d: d.next_run_at)
    return ordered[: max(0, limit)]
