"""Due-aware scheduling: calculators, selection and the per-pass engine."""

from hiveclock.scheduler.dispatch import batch_size, select_batch
from hiveclock.scheduler.due import DueDecision, is_due, select_due, upcoming
from hiveclock.scheduler.models import AgentTemplate, Instance, ScheduleSpec
from hiveclock.scheduler.schedule import format_timestamp, initial_run_at, next_run_at, parse_timestamp, utc_now

__all__ = [
    "AgentTemplate",
    "DueDecision",
    "Instance",
    "ScheduleSpec",
    "batch_size",
    "format_timestamp",
    "initial_run_at",
    "is_due",
    "next_run_at",
    "parse_timestamp",
    "select_batch",
    "select_due",
    "upcoming",
    "utc_now",
]
