"""Schedule calculator: first and subsequent run times for an instance.

Both calculators are pure. Randomness comes from a single jitter draw per call
on an injectable :class:`random.Random`, so tests can pin the draw.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

from hiveclock.scheduler.models import ScheduleSpec

_SYSTEM_RANDOM = random.Random()


def _jitter(spec: ScheduleSpec, rng: random.Random | None) -> timedelta:
    source = rng if rng is not None else _SYSTEM_RANDOM
    return timedelta(minutes=source.randint(-spec.jitter_minutes, spec.jitter_minutes))


def initial_run_at(spec: ScheduleSpec, now: datetime, rng: random.Random | None = None) -> datetime:
    """Return the first eligible run time; never earlier than ``now``."""
    delay = (
        timedelta(minutes=spec.initial_delay_minutes)
        + timedelta(minutes=spec.offset_minutes)
        + _jitter(spec, rng)
    )
    return now + max(timedelta(0), delay)


def next_run_at(spec: ScheduleSpec, from_time: datetime, rng: random.Random | None = None) -> datetime:
    """Return ``from_time + interval +/- jitter``.

    Not clamped: when jitter exceeds the interval the result may precede
    ``from_time``.
    """
    return from_time + spec.interval + _jitter(spec, rng)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw: object) -> datetime | None:
    """Parse a stored timestamp; absent or unparseable values yield ``None``."""
    if not isinstance(raw, str):
        return None
    text = raw.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
