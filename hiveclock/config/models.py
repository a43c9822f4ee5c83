"""Typed configuration models for the fleet document.

Numeric fields follow one rule: a missing or out-of-range number falls back to
the documented default, while a value of the wrong type (string, boolean,
list) is rejected.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator, model_validator

DEFAULT_API_BASE = "https://beehack.vercel.app"
MIN_REQUEST_TIMEOUT_SECONDS = 2
# Inherited variables removed from the action environment by default.
DEFAULT_STRIPPED_ENV = ("CLAUDECODE",)


def _require_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    return value


def positive_int(value: Any, default: int) -> int:
    """Return ``value`` truncated to int when > 0, else ``default``."""
    if value is None:
        return default
    number = _require_number(value)
    if isinstance(number, float) and not math.isfinite(number):
        return default
    truncated = int(number)
    return truncated if truncated > 0 else default


def non_negative_int(value: Any, default: int) -> int:
    """Return ``value`` truncated to int when >= 0, else ``default``."""
    if value is None:
        return default
    number = _require_number(value)
    if isinstance(number, float) and not math.isfinite(number):
        return default
    if number < 0:
        return default
    return int(number)


class ScheduleDefaults(BaseModel):
    """Platform-wide schedule defaults, in minutes."""

    model_config = ConfigDict(extra="ignore")

    interval_minutes: int = Field(default=10)
    jitter_minutes: int = Field(default=1)
    offset_minutes: int = Field(default=0)
    initial_delay_minutes: int = Field(default=0)

    @field_validator("interval_minutes", mode="before")
    @classmethod
    def _interval(cls, value: Any) -> int:
        return positive_int(value, 10)

    @field_validator("jitter_minutes", mode="before")
    @classmethod
    def _jitter(cls, value: Any) -> int:
        return non_negative_int(value, 1)

    @field_validator("offset_minutes", "initial_delay_minutes", mode="before")
    @classmethod
    def _zero_based(cls, value: Any) -> int:
        return non_negative_int(value, 0)


class ScheduleOverride(BaseModel):
    """Per-agent schedule fields; ``None`` means inherit the platform default."""

    model_config = ConfigDict(extra="ignore")

    interval_minutes: int | None = None
    jitter_minutes: int | None = None
    offset_minutes: int | None = None
    initial_delay_minutes: int | None = None
    only_due: StrictBool | None = None

    @field_validator("interval_minutes", mode="before")
    @classmethod
    def _positive(cls, value: Any) -> int | None:
        if value is None:
            return None
        normalized = positive_int(value, 0)
        return normalized or None

    @field_validator("jitter_minutes", "offset_minutes", "initial_delay_minutes", mode="before")
    @classmethod
    def _non_negative(cls, value: Any) -> int | None:
        if value is None:
            return None
        normalized = non_negative_int(value, -1)
        return None if normalized < 0 else normalized


class AgentCommand(BaseModel):
    """Executable plus argument templates."""

    model_config = ConfigDict(extra="ignore")

    cmd: StrictStr = Field(min_length=1)
    args: list[StrictStr] = Field(default_factory=list)


class PlatformConfig(BaseModel):
    """Platform section of the fleet document."""

    model_config = ConfigDict(extra="ignore")

    api_base: StrictStr = Field(default=DEFAULT_API_BASE)
    request_timeout_seconds: int = Field(default=12)
    action_timeout_seconds: int = Field(default=12)
    session_timeout_seconds: int = Field(default=600)
    max_parallel_runs: int = Field(default=1)
    restrict_to_config: StrictBool = Field(default=True)
    only_due: StrictBool = Field(default=True)
    schedule_defaults: ScheduleDefaults = Field(default_factory=ScheduleDefaults)
    agent_command: StrictStr | AgentCommand | None = None
    model: StrictStr | None = None
    local_agent_env: dict[StrictStr, StrictStr] = Field(default_factory=dict)
    strip_agent_env: list[StrictStr] = Field(default_factory=lambda: list(DEFAULT_STRIPPED_ENV))

    @field_validator("api_base", mode="after")
    @classmethod
    def _strip_base(cls, value: str) -> str:
        stripped = value.strip().rstrip("/")
        return stripped or DEFAULT_API_BASE

    @field_validator("request_timeout_seconds", mode="before")
    @classmethod
    def _request_timeout(cls, value: Any) -> int:
        return max(MIN_REQUEST_TIMEOUT_SECONDS, positive_int(value, 12))

    @field_validator("action_timeout_seconds", mode="before")
    @classmethod
    def _action_timeout(cls, value: Any) -> int:
        return positive_int(value, 12)

    @field_validator("session_timeout_seconds", mode="before")
    @classmethod
    def _session_timeout(cls, value: Any) -> int:
        return positive_int(value, 600)

    @field_validator("max_parallel_runs", mode="before")
    @classmethod
    def _max_parallel(cls, value: Any) -> int:
        return positive_int(value, 1)

    @field_validator("schedule_defaults", mode="before")
    @classmethod
    def _schedule_defaults(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("local_agent_env", mode="before")
    @classmethod
    def _local_env(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("strip_agent_env", mode="before")
    @classmethod
    def _strip_env(cls, value: Any) -> Any:
        return list(DEFAULT_STRIPPED_ENV) if value is None else value


class AgentEntry(BaseModel):
    """One entry of the ``agents`` list."""

    model_config = ConfigDict(extra="ignore")

    handle: StrictStr
    name: StrictStr | None = None
    schedule: ScheduleOverride | None = None
    agent_command: StrictStr | AgentCommand | None = None
    model: StrictStr | None = None
    repo_context: list[StrictStr] = Field(default_factory=list)
    credential: StrictStr | None = Field(
        default=None,
        validation_alias=AliasChoices("credential", "api_key"),
    )

    @field_validator("handle", mode="after")
    @classmethod
    def _normalize_handle(cls, value: str) -> str:
        handle = value.strip().lower()
        if not handle:
            raise ValueError("handle must not be empty")
        if "/" in handle or "\\" in handle or handle in {".", ".."}:
            raise ValueError(f"handle must be a plain token: {value!r}")
        return handle

    @field_validator("name", "model", "credential", mode="after")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @field_validator("repo_context", mode="before")
    @classmethod
    def _repo_context(cls, value: Any) -> Any:
        return [] if value is None else value


class FleetConfig(BaseModel):
    """Root of the fleet configuration document."""

    model_config = ConfigDict(extra="ignore")

    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    agents: list[AgentEntry] = Field(default_factory=list)

    @field_validator("platform", mode="before")
    @classmethod
    def _platform(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("agents", mode="before")
    @classmethod
    def _agents(cls, value: Any) -> Any:
        return [] if value is None else value

    @model_validator(mode="after")
    def _unique_handles(self) -> FleetConfig:
        seen: set[str] = set()
        for agent in self.agents:
            if agent.handle in seen:
                raise ValueError(f"duplicate agent handle: {agent.handle}")
            seen.add(agent.handle)
        return self

    def entry(self, handle: str) -> AgentEntry | None:
        for agent in self.agents:
            if agent.handle == handle:
                return agent
        return None

    @property
    def handles(self) -> set[str]:
        return {agent.handle for agent in self.agents}
