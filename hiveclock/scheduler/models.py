"""Scheduling data models: schedule specs, agent templates and instances."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

from hiveclock.store.models import InstanceState


@dataclass(frozen=True)
class ScheduleSpec:
    """Normalized schedule for one agent instance. All durations are whole minutes."""

    interval_minutes: int = 10
    jitter_minutes: int = 1
    offset_minutes: int = 0
    initial_delay_minutes: int = 0
    only_due: bool = True

    def __post_init__(self) -> None:
        if self.interval_minutes <= 0:
            raise ValueError("interval_minutes must be > 0")
        for name in ("jitter_minutes", "offset_minutes", "initial_delay_minutes"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)

    @property
    def jitter(self) -> timedelta:
        return timedelta(minutes=self.jitter_minutes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "interval_minutes": self.interval_minutes,
            "jitter_minutes": self.jitter_minutes,
            "offset_minutes": self.offset_minutes,
            "initial_delay_minutes": self.initial_delay_minutes,
            "only_due": self.only_due,
        }


@dataclass(frozen=True)
class AgentTemplate:
    """Identity of one agent, immutable for the duration of an invocation."""

    handle: str
    name: str
    schedule: ScheduleSpec = field(default_factory=ScheduleSpec)
    agent_command: str | dict[str, Any] | None = None
    model: str | None = None
    repo_context: tuple[str, ...] = ()
    credential: str | None = None

    def snapshot(self) -> dict[str, Any]:
        """Fields persisted as the identity snapshot. Secrets and commands are excluded."""
        return {
            "handle": self.handle,
            "name": self.name,
            "repo_context": list(self.repo_context),
            "schedule": self.schedule.to_dict(),
            "model": self.model,
        }


@dataclass
class Instance:
    """An agent template paired with its mutable state, keyed by handle."""

    template: AgentTemplate
    state: InstanceState
    instance_dir: Path

    @property
    def handle(self) -> str:
        return self.template.handle
