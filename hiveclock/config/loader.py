"""YAML/JSON configuration document loader."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from hiveclock.errors import ConfigurationError


class YAMLConfigLoader:
    """Load the fleet document with deterministic path resolution.

    JSON documents load through the same parser since YAML accepts them.
    """

    DEFAULT_FILENAME = "agents.yaml"
    ENV_VAR = "HIVECLOCK_CONFIG"

    @classmethod
    def resolve_path(cls, cli_path: str | None = None) -> tuple[Path, bool]:
        """Resolve config path by priority: env -> cli -> cwd default.

        Returns the path and whether it was given explicitly.
        """
        env_path = os.environ.get(cls.ENV_VAR, "").strip()
        if env_path:
            return Path(env_path), True
        if cli_path and cli_path.strip():
            return Path(cli_path.strip()), True
        return Path.cwd() / cls.DEFAULT_FILENAME, False

    @classmethod
    def load_dict(cls, path: str | Path | None = None, *, required: bool = False) -> dict[str, Any]:
        """Load the document into a dict. A missing optional or empty file yields ``{}``."""
        target = Path(path) if path is not None else cls.resolve_path()[0]
        if not target.exists():
            if required:
                raise ConfigurationError(f"Config file not found: {target}")
            return {}
        try:
            text = target.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read config {target}: {exc}") from exc
        if not text.strip():
            return {}
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            mark = getattr(exc, "problem_mark", None)
            if mark is not None:
                raise ConfigurationError(
                    f"Invalid config at {target}:{mark.line + 1}:{mark.column + 1}"
                ) from exc
            raise ConfigurationError(f"Invalid config at {target}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root must be mapping: {target}")
        return data
