"""Fleet scheduler: one scheduling pass, bootstrap and status over all instances."""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from hiveclock.config.models import FleetConfig
from hiveclock.config.resolve import resolve_agent, resolve_instance_template
from hiveclock.errors import ConfigurationError, RegistrationError, StateIOError
from hiveclock.integrations.registration import RegistrationClient
from hiveclock.runtime.identity import ensure_identity, write_env_file
from hiveclock.scheduler.dispatch import select_batch
from hiveclock.scheduler.due import DueDecision, is_due, select_due, upcoming
from hiveclock.scheduler.executor import CycleOutcome, Registrar, RunExecutor, RunPhase
from hiveclock.scheduler.models import Instance
from hiveclock.scheduler.schedule import format_timestamp, initial_run_at, parse_timestamp, utc_now
from hiveclock.store.instance_store import InstanceStore

logger = logging.getLogger(__name__)


@dataclass
class PassReport:
    """Summary of one ``run`` invocation."""

    started_at: datetime
    decisions: list[DueDecision] = field(default_factory=list)
    selected: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    outcomes: list[CycleOutcome] = field(default_factory=list)
    upcoming: list[DueDecision] = field(default_factory=list)
    persist_errors: list[str] = field(default_factory=list)

    @property
    def due(self) -> list[str]:
        return [d.handle for d in self.decisions if d.due]

    @property
    def failures(self) -> list[CycleOutcome]:
        return [o for o in self.outcomes if not o.success]


@dataclass
class BootstrapResult:
    handle: str
    instance_dir: Path
    registered: bool = False
    already_registered: bool = False
    error: str | None = None


@dataclass
class StatusRow:
    handle: str
    next_run_at: datetime
    due: bool
    interval_minutes: int
    run_count: int = 0
    last_run: str | None = None
    last_error: str | None = None


class FleetScheduler:
    """Coordinate the config, instance store, registrar and executor for one invocation."""

    def __init__(
        self,
        config: FleetConfig,
        store: InstanceStore,
        registrar: Registrar | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self.store = store
        self.registrar = registrar or RegistrationClient(
            config.platform.api_base,
            timeout_seconds=config.platform.request_timeout_seconds,
        )
        self._clock = clock
        self._rng = rng
        self.executor = RunExecutor(store, config.platform, self.registrar, clock=clock, rng=rng)

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def known_handles(self) -> list[str]:
        """Instance directories on disk, limited to configured handles when restricted."""
        handles = self.store.list()
        if self.config.platform.restrict_to_config:
            configured = self.config.handles
            handles = [h for h in handles if h in configured]
        return handles

    def _read_instance(self, handle: str) -> Instance:
        template = resolve_instance_template(
            handle,
            self.store.get_snapshot(handle),
            self.config.entry(handle),
            self.config.platform,
        )
        return Instance(template=template, state=self.store.get(handle), instance_dir=self.store.instance_dir(handle))

    def load_instances(self, now: datetime | None = None) -> list[Instance]:
        """Read every known instance; fill in a first run time where none is stored."""
        now = now or self._clock()
        instances: list[Instance] = []
        for handle in self.known_handles():
            try:
                instance = self._read_instance(handle)
            except StateIOError as exc:
                logger.error("Skipping unreadable instance handle=%s: %s", handle, exc)
                continue
            if instance.state.next_run_at is None:
                first = initial_run_at(instance.template.schedule, now, self._rng)
                instance.state.next_run_at = format_timestamp(first)
                instance.state.run_count = 0
            instances.append(instance)
        return instances

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def run_pass(self) -> PassReport:
        """Run one scheduling pass over the fleet."""
        now = self._clock()
        self.store.root.mkdir(parents=True, exist_ok=True)
        instances = self.load_instances(now)
        decisions = select_due(instances, now, self._rng)
        report = PassReport(started_at=now, decisions=decisions)
        due = [d.instance for d in decisions if d.due]
        logger.info("Scheduler pass at=%s tracked=%d due=%d", format_timestamp(now), len(instances), len(due))

        if not due:
            report.upcoming = upcoming(decisions)
            report.persist_errors = self.persist_untouched(decisions, set(), now)
            return report

        selected, deferred = select_batch(due, self.config.platform.max_parallel_runs, self._rng)
        report.selected = [i.handle for i in selected]
        report.deferred = [i.handle for i in deferred]

        for instance in selected:
            try:
                outcome = await self.executor.run_cycle(instance, now)
            except Exception as exc:
                outcome = self._record_crash(instance, exc)
            report.outcomes.append(outcome)

        report.persist_errors = self.persist_untouched(decisions, set(report.selected), now)
        return report

    def persist_untouched(self, decisions: list[DueDecision], touched: set[str], now: datetime) -> list[str]:
        """Rewrite the full state of every instance the executor did not write.

        Returns the handles whose write failed; one failure does not stop the rest.
        """
        failed: list[str] = []
        stamp = format_timestamp(now)
        for decision in decisions:
            if decision.handle in touched:
                continue
            state = decision.instance.state
            state.handle = decision.handle
            state.updated_at = stamp
            try:
                self.store.put(decision.handle, state)
            except StateIOError as exc:
                logger.error("State write failed handle=%s: %s", decision.handle, exc)
                failed.append(decision.handle)
        return failed

    def _record_crash(self, instance: Instance, exc: Exception) -> CycleOutcome:
        logger.exception("Cycle crashed handle=%s", instance.handle)
        state = instance.state
        stamp = format_timestamp(self._clock())
        state.last_error = str(exc) or type(exc).__name__
        state.last_run = stamp
        state.handle = instance.handle
        state.updated_at = stamp
        self.store.append_activity(instance.handle, stamp, f"cycle failed: {state.last_error}")
        outcome = CycleOutcome(
            handle=instance.handle,
            phase=RunPhase.SETTLED,
            success=False,
            error=state.last_error,
        )
        try:
            self.store.put(instance.handle, state)
        except StateIOError as write_exc:
            logger.error("State write failed handle=%s: %s", instance.handle, write_exc)
        return outcome

    async def bootstrap(self) -> list[BootstrapResult]:
        """Create and register every configured instance without running actions."""
        if not self.config.agents:
            raise ConfigurationError("No agents found in config")
        self.store.root.mkdir(parents=True, exist_ok=True)
        platform = self.config.platform
        results: list[BootstrapResult] = []
        for entry in self.config.agents:
            template = resolve_agent(entry, platform)
            result = BootstrapResult(handle=template.handle, instance_dir=self.store.instance_dir(template.handle))
            results.append(result)
            now = self._clock()
            stamp = format_timestamp(now)
            try:
                instance_dir = ensure_identity(self.store, template, stamp, platform.api_base)
                state = self.store.get(template.handle)
                if state.next_run_at is None:
                    state.next_run_at = format_timestamp(initial_run_at(template.schedule, now, self._rng))
                obtained = False
                if state.credential:
                    result.already_registered = True
                elif template.credential:
                    state.credential = template.credential
                    state.registered_at = state.registered_at or stamp
                    obtained = True
                else:
                    try:
                        registration = await self.registrar.register(template)
                    except RegistrationError as exc:
                        result.error = str(exc)
                        logger.warning("Bootstrap registration failed handle=%s: %s", template.handle, exc)
                    else:
                        state.credential = registration.credential
                        state.profile_url = registration.profile_url
                        state.registered_at = stamp
                        result.registered = True
                        obtained = True
                        self.store.append_activity(template.handle, stamp, "registered")
                write_env_file(instance_dir, template.handle, state.credential, platform.api_base, overwrite=obtained)
                state.handle = template.handle
                state.updated_at = stamp
                self.store.put(template.handle, state)
                self.store.append_activity(template.handle, stamp, "bootstrapped")
            except StateIOError as exc:
                result.error = str(exc)
                logger.error("Bootstrap failed handle=%s: %s", template.handle, exc)
        return results

    def status(self) -> list[StatusRow]:
        """Report each known instance's next run time and due state. Read-only."""
        now = self._clock()
        rows: list[StatusRow] = []
        for handle in self.known_handles():
            try:
                instance = self._read_instance(handle)
            except StateIOError as exc:
                logger.error("Skipping unreadable instance handle=%s: %s", handle, exc)
                continue
            schedule = instance.template.schedule
            stored = instance.state.next_run_at
            next_at = parse_timestamp(stored) or initial_run_at(schedule, now, self._rng)
            rows.append(
                StatusRow(
                    handle=handle,
                    next_run_at=next_at,
                    due=is_due(schedule, stored, now),
                    interval_minutes=schedule.interval_minutes,
                    run_count=instance.state.run_count,
                    last_run=instance.state.last_run,
                    last_error=instance.state.last_error,
                )
            )
        return rows
