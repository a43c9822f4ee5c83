"""Unit tests for YAMLConfigLoader and fleet config loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from hiveclock.config.loader import YAMLConfigLoader
from hiveclock.config.resolve import load_fleet_config
from hiveclock.errors import ConfigurationError


def test_resolve_path_uses_env_first(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HIVECLOCK_CONFIG", "/tmp/from-env.yaml")
    resolved, explicit = YAMLConfigLoader.resolve_path("/tmp/from-cli.yaml")
    assert str(resolved).endswith("from-env.yaml")
    assert explicit is True


def test_resolve_path_uses_cli_when_env_missing() -> None:
    resolved, explicit = YAMLConfigLoader.resolve_path("/tmp/from-cli.yaml")
    assert str(resolved).endswith("from-cli.yaml")
    assert explicit is True


def test_resolve_path_defaults_to_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    resolved, explicit = YAMLConfigLoader.resolve_path(None)
    assert resolved == tmp_path / "agents.yaml"
    assert explicit is False


def test_load_dict_missing_optional_file_returns_empty(tmp_path: Path) -> None:
    assert YAMLConfigLoader.load_dict(tmp_path / "missing.yaml") == {}


def test_load_dict_missing_required_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found"):
        YAMLConfigLoader.load_dict(tmp_path / "missing.yaml", required=True)


def test_load_dict_empty_file_returns_empty(tmp_path: Path) -> None:
    target = tmp_path / "agents.yaml"
    target.write_text("", encoding="utf-8")
    assert YAMLConfigLoader.load_dict(target) == {}


def test_load_dict_accepts_json(tmp_path: Path) -> None:
    target = tmp_path / "agents.json"
    target.write_text('{"agents": [{"handle": "alpha"}]}', encoding="utf-8")
    assert YAMLConfigLoader.load_dict(target)["agents"][0]["handle"] == "alpha"


def test_load_dict_yaml_error_has_line_column(tmp_path: Path) -> None:
    target = tmp_path / "agents.yaml"
    target.write_text("platform:\n  max_parallel_runs: [\n", encoding="utf-8")
    with pytest.raises(ConfigurationError) as exc_info:
        YAMLConfigLoader.load_dict(target)
    message = str(exc_info.value)
    assert "agents.yaml:" in message


def test_load_dict_non_mapping_root_raises(tmp_path: Path) -> None:
    target = tmp_path / "agents.yaml"
    target.write_text("- invalid\n- root\n", encoding="utf-8")
    with pytest.raises(ConfigurationError, match="root must be mapping"):
        YAMLConfigLoader.load_dict(target)


def test_load_fleet_config_reads_document(tmp_path: Path) -> None:
    target = tmp_path / "agents.yaml"
    target.write_text(
        "platform:\n  max_parallel_runs: 3\nagents:\n  - handle: Alpha\n    name: The Alpha\n",
        encoding="utf-8",
    )
    config = load_fleet_config(str(target), environ={})
    assert config.platform.max_parallel_runs == 3
    assert config.agents[0].handle == "alpha"
    assert config.agents[0].name == "The Alpha"


def test_load_fleet_config_without_any_file_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_fleet_config(None, environ={})
    assert config.agents == []
    assert config.platform.max_parallel_runs == 1


def test_load_fleet_config_explicit_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        load_fleet_config(str(tmp_path / "nope.yaml"), environ={})
