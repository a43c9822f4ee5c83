"""Unit tests for the on-disk instance store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from hiveclock.errors import StateIOError
from hiveclock.store.instance_store import InstanceStore, write_json_atomic
from hiveclock.store.models import InstanceState


def test_list_returns_sorted_directories(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    for name in ("beta", "alpha", ".hidden"):
        (tmp_path / name).mkdir()
    (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
    assert store.list() == ["alpha", "beta"]


def test_list_missing_root_is_empty(tmp_path: Path) -> None:
    assert InstanceStore(tmp_path / "missing").list() == []


def test_get_absent_record_is_fresh_state(tmp_path: Path) -> None:
    state = InstanceStore(tmp_path).get("alpha")
    assert state == InstanceState()


def test_put_then_get(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    store.put("alpha", InstanceState(next_run_at="2026-10-18T09:00:00.000Z", run_count=2, credential="k"))
    loaded = store.get("alpha")
    assert loaded.next_run_at == "2026-10-18T09:00:00.000Z"
    assert loaded.run_count == 2
    assert loaded.credential == "k"


def test_put_replaces_whole_record(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    store.put("alpha", InstanceState(last_error="boom", profile_url="p"))
    store.put("alpha", InstanceState(next_run_at="x"))
    raw = json.loads(store.state_path("alpha").read_text(encoding="utf-8"))
    assert raw == {"next_run_at": "x", "run_count": 0, "last_error": None}


def test_put_leaves_no_temp_files(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    store.put("alpha", InstanceState(next_run_at="x"))
    assert sorted(p.name for p in store.instance_dir("alpha").iterdir()) == ["state.json"]


def test_corrupt_state_reads_as_fresh(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    store.ensure_instance_dir("alpha")
    store.state_path("alpha").write_text("{not json", encoding="utf-8")
    assert store.get("alpha") == InstanceState()


def test_put_failure_raises_state_io_error(tmp_path: Path) -> None:
    blocker = tmp_path / "root"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store = InstanceStore(blocker)
    with pytest.raises(StateIOError, match="alpha"):
        store.put("alpha", InstanceState())


def test_write_json_atomic_failure_keeps_previous_content(tmp_path: Path) -> None:
    target = tmp_path / "state.json"
    write_json_atomic(target, {"ok": True})
    with pytest.raises(TypeError):
        write_json_atomic(target, {"bad": object()})
    assert json.loads(target.read_text(encoding="utf-8")) == {"ok": True}
    assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


def test_snapshot_roundtrip(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    assert store.get_snapshot("alpha") is None
    store.put_snapshot("alpha", {"handle": "alpha", "name": "Alpha"})
    assert store.get_snapshot("alpha") == {"handle": "alpha", "name": "Alpha"}


def test_append_activity_format(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    store.append_activity("alpha", "2026-10-18T09:00:00.000Z", "registered")
    store.append_activity("alpha", "2026-10-18T09:01:00.000Z", "bootstrapped")
    lines = (tmp_path / "alpha" / "activity.log").read_text(encoding="utf-8").splitlines()
    assert lines == [
        "[2026-10-18T09:00:00.000Z] alpha: registered",
        "[2026-10-18T09:01:00.000Z] alpha: bootstrapped",
    ]


def test_write_session_log_uses_safe_name(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    path = store.write_session_log("alpha", "2026-10-18T09:00:00.000Z", "output")
    assert path == tmp_path / "alpha" / "logs" / "2026-10-18T09-00-00-000Z.log"
    assert path.read_text(encoding="utf-8") == "output"


def test_put_moves_unreadable_record_aside(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    store = InstanceStore(tmp_path)
    store.ensure_instance_dir("alpha")
    store.state_path("alpha").write_text("{not json", encoding="utf-8")
    assert store.get("alpha") == InstanceState()

    with caplog.at_level("ERROR", logger="hiveclock.store.instance_store"):
        store.put("alpha", InstanceState(next_run_at="2026-10-18T09:00:00.000Z"))

    saved = list((tmp_path / "alpha").glob("state.json.corrupt-*"))
    assert len(saved) == 1
    assert saved[0].read_text(encoding="utf-8") == "{not json"
    assert store.get("alpha").next_run_at == "2026-10-18T09:00:00.000Z"
    assert "Moved unreadable record aside" in caplog.text


def test_put_over_readable_record_keeps_no_copy(tmp_path: Path) -> None:
    store = InstanceStore(tmp_path)
    store.put("alpha", InstanceState(run_count=1))
    store.put("alpha", InstanceState(run_count=2))

    assert list((tmp_path / "alpha").glob("state.json.corrupt-*")) == []
    assert store.get("alpha").run_count == 2
