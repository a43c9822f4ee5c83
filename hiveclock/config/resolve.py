"""Explicit merge from the fleet document to typed runtime objects.

Fallback rules, applied field by field:

* per-agent schedule value -> platform ``schedule_defaults`` -> built-in default;
* per-agent ``only_due`` -> platform ``only_due``;
* per-agent ``agent_command`` / ``model`` -> platform values -> ``None``;
* ``name`` -> ``handle``.

Environment variables named ``HIVECLOCK_<SECTION>__<FIELD>`` override the
document before validation.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from pydantic import ValidationError

from hiveclock.config.loader import YAMLConfigLoader
from hiveclock.config.models import AgentCommand, AgentEntry, FleetConfig, PlatformConfig, ScheduleOverride
from hiveclock.errors import ConfigurationError
from hiveclock.scheduler.models import AgentTemplate, ScheduleSpec

logger = logging.getLogger(__name__)

ENV_PREFIX = "HIVECLOCK_"
_OVERRIDABLE_SECTIONS = frozenset({"platform"})


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in updates.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _coerce_env_value(raw: str) -> Any:
    value = raw.strip()
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        pass
    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def collect_env_overrides(environ: dict[str, str] | None = None, prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """Collect nested overrides such as ``HIVECLOCK_PLATFORM__API_BASE``."""
    source = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    for key, raw_value in source.items():
        if not key.startswith(prefix):
            continue
        path = [p.strip().lower() for p in key[len(prefix):].split("__") if p.strip()]
        if len(path) < 2 or path[0] not in _OVERRIDABLE_SECTIONS:
            continue
        cursor = overrides
        for part in path[:-1]:
            existing = cursor.get(part)
            if not isinstance(existing, dict):
                existing = {}
                cursor[part] = existing
            cursor = existing
        value: Any = raw_value if path[-1] == "api_base" else _coerce_env_value(raw_value)
        cursor[path[-1]] = value
    return overrides


def _format_validation_error(exc: ValidationError) -> str:
    parts: list[str] = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location or '<root>'}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def parse_fleet_config(data: dict[str, Any], environ: dict[str, str] | None = None) -> FleetConfig:
    """Validate a raw document (with env overrides applied) into :class:`FleetConfig`."""
    merged = _deep_merge(data, collect_env_overrides(environ))
    try:
        return FleetConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {_format_validation_error(exc)}") from exc


def load_fleet_config(cli_path: str | None = None, environ: dict[str, str] | None = None) -> FleetConfig:
    """Resolve, read and validate the fleet document."""
    path, explicit = YAMLConfigLoader.resolve_path(cli_path)
    data = YAMLConfigLoader.load_dict(path, required=explicit)
    config = parse_fleet_config(data, environ)
    logger.debug("Loaded fleet config path=%s agents=%d", path, len(config.agents))
    return config


def resolve_schedule(override: ScheduleOverride | None, platform: PlatformConfig) -> ScheduleSpec:
    """Merge a per-agent schedule over the platform defaults."""
    defaults = platform.schedule_defaults
    override = override or ScheduleOverride()

    def pick(value: int | None, fallback: int) -> int:
        return fallback if value is None else value

    return ScheduleSpec(
        interval_minutes=pick(override.interval_minutes, defaults.interval_minutes),
        jitter_minutes=pick(override.jitter_minutes, defaults.jitter_minutes),
        offset_minutes=pick(override.offset_minutes, defaults.offset_minutes),
        initial_delay_minutes=pick(override.initial_delay_minutes, defaults.initial_delay_minutes),
        only_due=platform.only_due if override.only_due is None else override.only_due,
    )


def _command_value(command: str | AgentCommand | None) -> str | dict[str, Any] | None:
    if command is None:
        return None
    if isinstance(command, AgentCommand):
        return command.model_dump()
    stripped = command.strip()
    return stripped or None


def resolve_agent(entry: AgentEntry, platform: PlatformConfig) -> AgentTemplate:
    """Build the runtime template for one configured agent."""
    return AgentTemplate(
        handle=entry.handle,
        name=entry.name or entry.handle,
        schedule=resolve_schedule(entry.schedule, platform),
        agent_command=_command_value(entry.agent_command) or _command_value(platform.agent_command),
        model=entry.model or platform.model,
        repo_context=tuple(entry.repo_context),
        credential=entry.credential,
    )


def resolve_instance_template(
    handle: str,
    snapshot: dict[str, Any] | None,
    entry: AgentEntry | None,
    platform: PlatformConfig,
) -> AgentTemplate:
    """Resolve the template of a known instance.

    The identity snapshot on disk wins over the config entry, which wins over a
    bare handle. ``agent_command`` and ``credential`` are never snapshotted and
    always come from the config entry when one exists.
    """
    base: AgentEntry | None = None
    if snapshot:
        try:
            base = AgentEntry.model_validate({**snapshot, "handle": handle})
        except ValidationError as exc:
            logger.warning("Ignoring invalid identity snapshot handle=%s: %s", handle, _format_validation_error(exc))
    if base is None:
        base = entry or AgentEntry(handle=handle)
    if entry is not None and base is not entry:
        base = base.model_copy(
            update={
                "agent_command": entry.agent_command,
                "credential": entry.credential,
                "model": base.model or entry.model,
            }
        )
    return resolve_agent(base, platform)
