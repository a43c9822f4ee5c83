"""Shared test fixtures for hiveclock."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

from hiveclock.config.resolve import parse_fleet_config
from hiveclock.errors import RegistrationError
from hiveclock.integrations.registration import Registration
from hiveclock.scheduler.engine import FleetScheduler
from hiveclock.scheduler.models import AgentTemplate
from hiveclock.store.instance_store import InstanceStore

T0 = datetime(2026, 10, 18, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock; every call returns the current value."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeRegistrar:
    """Registrar double that records calls and can be told to fail."""

    def __init__(self, credential: str = "key-123", error: str | None = None) -> None:
        self.credential = credential
        self.error = error
        self.calls: list[str] = []

    async def register(self, template: AgentTemplate) -> Registration:
        self.calls.append(template.handle)
        if self.error is not None:
            raise RegistrationError(template.handle, self.error)
        return Registration(credential=f"{self.credential}-{template.handle}", profile_url=f"https://example.test/{template.handle}")


def make_config(agents: list[dict[str, Any]], **platform: Any) -> Any:
    base: dict[str, Any] = {
        "schedule_defaults": {"interval_minutes": 10, "jitter_minutes": 0, "offset_minutes": 0, "initial_delay_minutes": 0},
    }
    base.update(platform)
    return parse_fleet_config({"platform": base, "agents": agents}, environ={})


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("HIVECLOCK_CONFIG", "HIVECLOCK_INSTANCES"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registrar() -> FakeRegistrar:
    return FakeRegistrar()


@pytest.fixture
def make_fleet_config():
    return make_config


@pytest.fixture
def store(tmp_path: Path) -> InstanceStore:
    return InstanceStore(tmp_path / "instances")


@pytest.fixture
def make_scheduler(store: InstanceStore, registrar: FakeRegistrar, clock: FakeClock):
    def _make(agents: list[dict[str, Any]], *, seed: int = 7, **platform: Any) -> FleetScheduler:
        return FleetScheduler(
            make_config(agents, **platform),
            store,
            registrar,
            clock=clock,
            rng=random.Random(seed),
        )

    return _make
