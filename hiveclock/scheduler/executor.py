"""Run executor: drive one instance through a single cycle.

Phases::

    UNPROVISIONED -> PROVISIONING -> READY -> RUNNING -> SETTLED

A cycle that settles successfully advances ``next_run_at`` from the completion
time. Any failure records ``last_error`` and ``last_run`` and leaves
``next_run_at`` untouched, so the instance is due again on the next
invocation.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Protocol

from hiveclock.config.models import PlatformConfig
from hiveclock.errors import ActionError, RegistrationError, StateIOError
from hiveclock.integrations.registration import Registration
from hiveclock.runtime.action import (
    SESSION_ACTION,
    ActionContext,
    ActionFailed,
    ActionNotConfigured,
    ActionOutput,
    ActionResult,
    ActionTimedOut,
    build_argv,
    build_env,
    run_with_timeout,
    timeout_for,
)
from hiveclock.runtime.identity import build_session_prompt, ensure_identity, write_env_file
from hiveclock.scheduler.models import AgentTemplate, Instance
from hiveclock.scheduler.schedule import format_timestamp, next_run_at, utc_now
from hiveclock.store.instance_store import InstanceStore

logger = logging.getLogger(__name__)

NO_OUTPUT_PLACEHOLDER = "No output or agent_command not configured\n"


class RunPhase(str, Enum):
    """Lifecycle phase of one instance cycle."""

    UNPROVISIONED = "unprovisioned"
    PROVISIONING = "provisioning"
    READY = "ready"
    RUNNING = "running"
    SETTLED = "settled"


@dataclass
class CycleOutcome:
    """Result of one cycle, reported back to the engine."""

    handle: str
    phase: RunPhase
    success: bool
    error: str | None = None
    failed_in: RunPhase | None = None
    log_path: Path | None = None
    result: ActionResult | None = None


class Registrar(Protocol):
    async def register(self, template: AgentTemplate) -> Registration: ...


def action_error(result: ActionResult) -> ActionError | None:
    """Map a failed action result onto :class:`ActionError`; ``None`` on success."""
    if isinstance(result, ActionTimedOut):
        return ActionError(f"action timed out after {result.timeout_seconds:g}s", timed_out=True)
    if isinstance(result, ActionFailed):
        return ActionError(result.message, code=result.code)
    return None


class RunExecutor:
    """Execute cycles for selected instances, one at a time."""

    def __init__(
        self,
        store: InstanceStore,
        platform: PlatformConfig,
        registrar: Registrar,
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.platform = platform
        self.registrar = registrar
        self._clock = clock
        self._rng = rng

    def _log(self, handle: str, message: str) -> None:
        self.store.append_activity(handle, format_timestamp(self._clock()), message)

    async def run_cycle(self, instance: Instance, scheduled_at: datetime) -> CycleOutcome:
        """Run one cycle; per-instance errors are recorded, never raised."""
        handle = instance.handle
        state = instance.state
        state.last_scheduled = format_timestamp(scheduled_at)
        phase = RunPhase.UNPROVISIONED
        result: ActionResult | None = None
        log_path: Path | None = None
        error: Exception | None = None

        try:
            phase = RunPhase.PROVISIONING
            instance_dir = ensure_identity(self.store, instance.template, format_timestamp(self._clock()), self.platform.api_base)
            credential = await self.obtain_credential(instance)
            phase = RunPhase.READY
            write_env_file(instance_dir, handle, credential, self.platform.api_base, overwrite=True)
            phase = RunPhase.RUNNING
            result = await self.invoke(instance, instance_dir)
            log_path = self._write_session_log(instance, result)
            error = action_error(result)
        except (RegistrationError, StateIOError) as exc:
            error = exc

        completed_at = self._clock()
        state.last_run = format_timestamp(completed_at)
        if error is None:
            state.next_run_at = format_timestamp(next_run_at(instance.template.schedule, completed_at, self._rng))
            state.run_count += 1
            state.last_error = None
            self._log(handle, self._success_message(result, log_path))
        else:
            state.last_error = str(error)
            self._log(handle, f"cycle failed during {phase.value}: {error}")
            logger.warning("Cycle failed handle=%s phase=%s: %s", handle, phase.value, error)
        state.handle = handle
        state.updated_at = format_timestamp(self._clock())

        outcome = CycleOutcome(
            handle=handle,
            phase=RunPhase.SETTLED,
            success=error is None,
            error=None if error is None else str(error),
            failed_in=None if error is None else phase,
            log_path=log_path,
            result=result,
        )
        try:
            self.store.put(handle, state)
        except StateIOError as exc:
            logger.error("State write failed handle=%s: %s", handle, exc)
            outcome.success = False
            outcome.error = str(exc)
        return outcome

    async def obtain_credential(self, instance: Instance) -> str:
        """Stored credential, else pre-supplied, else a fresh registration.

        A newly obtained credential is persisted immediately so a crash later
        in the cycle cannot cause a second registration.
        """
        state = instance.state
        template = instance.template
        if state.credential:
            return state.credential
        now = format_timestamp(self._clock())
        if template.credential:
            state.credential = template.credential
            state.registered_at = state.registered_at or now
            self.store.put(template.handle, state)
            self._log(template.handle, "stored pre-supplied credential")
            return state.credential
        registration = await self.registrar.register(template)
        state.credential = registration.credential
        state.profile_url = registration.profile_url
        state.registered_at = now
        self.store.put(template.handle, state)
        self._log(template.handle, "registered")
        return state.credential

    async def invoke(self, instance: Instance, instance_dir: Path, action: str = SESSION_ACTION) -> ActionResult:
        template = instance.template
        context = ActionContext(
            handle=template.handle,
            name=template.name,
            action=action,
            prompt=build_session_prompt(template),
            instance_dir=instance_dir,
        )
        argv = build_argv(template.agent_command, context, model=template.model)
        if argv is None:
            return ActionNotConfigured()
        timeout = timeout_for(
            action,
            action_timeout_seconds=self.platform.action_timeout_seconds,
            session_timeout_seconds=self.platform.session_timeout_seconds,
        )
        logger.info("Spawning %s action handle=%s timeout=%ss", action, template.handle, timeout)
        return await run_with_timeout(
            argv,
            cwd=instance_dir,
            env=build_env(context, self.platform.local_agent_env, self.platform.strip_agent_env),
            timeout_seconds=timeout,
        )

    def _write_session_log(self, instance: Instance, result: ActionResult) -> Path:
        stamp = format_timestamp(self._clock())
        if isinstance(result, ActionOutput) and result.text:
            text = result.text
        elif isinstance(result, ActionTimedOut):
            text = f"[timed out after {result.timeout_seconds:g}s]\n{result.partial_output}\n"
        elif isinstance(result, ActionFailed):
            text = f"[exit code {result.code}]\n{result.message}\n"
        else:
            text = NO_OUTPUT_PLACEHOLDER
        return self.store.write_session_log(instance.handle, stamp, text)

    @staticmethod
    def _success_message(result: ActionResult | None, log_path: Path | None) -> str:
        target = f"logs/{log_path.name}" if log_path is not None else "-"
        if isinstance(result, ActionOutput) and result.text:
            return f"session completed ({len(result.text)} chars) -> {target}"
        if isinstance(result, ActionNotConfigured):
            return "session: agent_command not configured"
        return f"session completed (no output) -> {target}"
