"""Persisted per-instance records."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any

_LEGACY_KEYS = {"api_key": "credential"}


@dataclass
class InstanceState:
    """Mutable state persisted as ``state.json`` for one handle.

    ``next_run_at`` holds the raw stored value so that an unparseable entry
    survives a rewrite untouched; interpretation belongs to the due selector.
    """

    next_run_at: str | None = None
    last_run: str | None = None
    run_count: int = 0
    last_error: str | None = None
    credential: str | None = None
    registered_at: str | None = None
    profile_url: str | None = None
    last_scheduled: str | None = None
    updated_at: str | None = None
    handle: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstanceState:
        known = {f.name for f in fields(cls)} - {"extra"}
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for raw_key, value in data.items():
            key = _LEGACY_KEYS.get(raw_key, raw_key)
            if key in known:
                if key in values and raw_key != key:
                    continue
                values[key] = value
            else:
                extra[raw_key] = value
        next_run = values.get("next_run_at")
        if next_run is not None and not isinstance(next_run, str):
            values["next_run_at"] = str(next_run)
        run_count = values.get("run_count")
        if isinstance(run_count, bool) or not isinstance(run_count, int) or run_count < 0:
            values["run_count"] = 0
        return cls(**values, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is None and f.name not in ("next_run_at", "last_error"):
                continue
            out[f.name] = value
        return out
