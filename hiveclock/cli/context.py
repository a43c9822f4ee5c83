"""Shared construction for CLI commands: logging, config and scheduler."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from hiveclock.config.resolve import load_fleet_config
from hiveclock.scheduler.engine import FleetScheduler
from hiveclock.store.instance_store import InstanceStore

DEFAULT_INSTANCES_DIR = "instances"
INSTANCES_ENV_VAR = "HIVECLOCK_INSTANCES"


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def resolve_instances_dir(cli_path: str | None) -> Path:
    """Instance root by priority: cli -> env -> ``./instances``."""
    if cli_path and cli_path.strip():
        return Path(cli_path.strip()).resolve()
    env_path = os.environ.get(INSTANCES_ENV_VAR, "").strip()
    if env_path:
        return Path(env_path).resolve()
    return (Path.cwd() / DEFAULT_INSTANCES_DIR).resolve()


def build_scheduler(config_path: str | None, instances: str | None) -> FleetScheduler:
    """Load configuration and wire up the scheduler. Raises ``ConfigurationError``."""
    config = load_fleet_config(config_path)
    store = InstanceStore(resolve_instances_dir(instances))
    return FleetScheduler(config, store)
