"""Fleet configuration: document loading, typed models and merge rules."""

from hiveclock.config.loader import YAMLConfigLoader
from hiveclock.config.models import (
    AgentCommand,
    AgentEntry,
    FleetConfig,
    PlatformConfig,
    ScheduleDefaults,
    ScheduleOverride,
)
from hiveclock.config.resolve import (
    collect_env_overrides,
    load_fleet_config,
    parse_fleet_config,
    resolve_agent,
    resolve_instance_template,
    resolve_schedule,
)

__all__ = [
    "AgentCommand",
    "AgentEntry",
    "FleetConfig",
    "PlatformConfig",
    "ScheduleDefaults",
    "ScheduleOverride",
    "YAMLConfigLoader",
    "collect_env_overrides",
    "load_fleet_config",
    "parse_fleet_config",
    "resolve_agent",
    "resolve_instance_template",
    "resolve_schedule",
]
