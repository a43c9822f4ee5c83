"""CLI tests for bootstrap, run, status and help."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from hiveclock.cli import app

runner = CliRunner()


def _write_config(path: Path, agents: list[dict], **platform) -> Path:
    doc = {
        "platform": {
            "schedule_defaults": {"interval_minutes": 10, "jitter_minutes": 0},
            **platform,
        },
        "agents": agents,
    }
    path.write_text(yaml.safe_dump(doc), encoding="utf-8")
    return path


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    return _write_config(
        tmp_path / "agents.yaml",
        [
            {"handle": "alpha", "api_key": "key-a", "agent_command": {"cmd": "/bin/sh", "args": ["-c", "echo ok"]}},
            {"handle": "beta", "api_key": "key-b", "agent_command": {"cmd": "/bin/sh", "args": ["-c", "exit 2"]}},
        ],
        max_parallel_runs=5,
    )


def _invoke(*args: str):
    return runner.invoke(app, list(args))


def test_no_args_shows_help() -> None:
    result = _invoke()
    assert "bootstrap" in result.output
    assert "status" in result.output


def test_help_command_lists_commands() -> None:
    result = _invoke("help")
    assert result.exit_code == 0
    for name in ("bootstrap", "run", "status"):
        assert name in result.output


def test_version_flag() -> None:
    result = _invoke("--version")
    assert result.exit_code == 0
    assert result.output.startswith("hiveclock ")


def test_bootstrap_creates_instances(config_file: Path, tmp_path: Path) -> None:
    instances = tmp_path / "instances"

    result = _invoke("bootstrap", "--config", str(config_file), "--instances", str(instances))

    assert result.exit_code == 0, result.output
    assert "Bootstrap complete." in result.output
    assert sorted(p.name for p in instances.iterdir()) == ["alpha", "beta"]
    state = json.loads((instances / "alpha" / "state.json").read_text(encoding="utf-8"))
    assert state["credential"] == "key-a"
    assert (instances / "alpha" / ".env.local").exists()


def test_bootstrap_without_agents_fails(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "agents.yaml", [])

    result = _invoke("bootstrap", "--config", str(config), "--instances", str(tmp_path / "instances"))

    assert result.exit_code == 1
    assert "No agents found in config" in result.output


def test_run_reports_successes_and_failures_with_exit_zero(config_file: Path, tmp_path: Path) -> None:
    instances = tmp_path / "instances"
    _invoke("bootstrap", "--config", str(config_file), "--instances", str(instances))

    result = _invoke("run", "--config", str(config_file), "--instances", str(instances))

    assert result.exit_code == 0, result.output
    assert "(total instances: 2)" in result.output
    assert "Due: 2, running: 2, deferred: 0" in result.output
    assert "alpha session done" in result.output
    assert "beta failed: exit_code_2" in result.output
    beta = json.loads((instances / "beta" / "state.json").read_text(encoding="utf-8"))
    assert beta["last_error"] == "exit_code_2"


def test_run_with_nothing_due(config_file: Path, tmp_path: Path) -> None:
    instances = tmp_path / "instances"
    _invoke("bootstrap", "--config", str(config_file), "--instances", str(instances))
    _invoke("run", "--config", str(config_file), "--instances", str(instances))
    alpha_state = instances / "alpha" / "state.json"
    beta_state = instances / "beta" / "state.json"
    for path in (alpha_state, beta_state):
        state = json.loads(path.read_text(encoding="utf-8"))
        state["next_run_at"] = "2999-01-01T00:00:00.000Z"
        path.write_text(json.dumps(state), encoding="utf-8")

    result = _invoke("run", "--config", str(config_file), "--instances", str(instances))

    assert result.exit_code == 0, result.output
    assert "No agent due now." in result.output
    assert "alpha at 2999-01-01T00:00:00.000Z" in result.output


def test_run_uses_environment_for_paths(config_file: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    instances = tmp_path / "env-instances"
    monkeypatch.setenv("HIVECLOCK_CONFIG", str(config_file))
    monkeypatch.setenv("HIVECLOCK_INSTANCES", str(instances))

    _invoke("bootstrap")
    result = _invoke("run")

    assert result.exit_code == 0, result.output
    assert (instances / "alpha" / "logs").is_dir()


def test_run_with_missing_explicit_config_fails(tmp_path: Path) -> None:
    result = _invoke("run", "--config", str(tmp_path / "missing.yaml"), "--instances", str(tmp_path / "i"))

    assert result.exit_code == 1
    assert "run failed: Config file not found" in result.output


def test_run_with_invalid_config_fails(tmp_path: Path) -> None:
    config = tmp_path / "agents.yaml"
    config.write_text("platform:\n  max_parallel_runs: lots\n", encoding="utf-8")

    result = _invoke("run", "--config", str(config), "--instances", str(tmp_path / "i"))

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_status_without_instances(config_file: Path, tmp_path: Path) -> None:
    result = _invoke("status", "--config", str(config_file), "--instances", str(tmp_path / "empty"))

    assert result.exit_code == 0
    assert "Run bootstrap first." in result.output


def test_status_after_run(config_file: Path, tmp_path: Path) -> None:
    instances = tmp_path / "instances"
    _invoke("bootstrap", "--config", str(config_file), "--instances", str(instances))
    _invoke("run", "--config", str(config_file), "--instances", str(instances))

    result = _invoke("status", "--config", str(config_file), "--instances", str(instances))

    assert result.exit_code == 0, result.output
    assert "alpha" in result.output
    assert "waiting" in result.output
    assert "due" in result.output
