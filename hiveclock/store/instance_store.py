"""Instance store: one directory per handle under an instance root.

Each directory holds ``agent.json`` (identity snapshot), ``state.json``
(mutable state), an append-only ``activity.log`` and per-session logs. JSON
records are always replaced whole through a temp file and :func:`os.replace`.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from hiveclock.errors import StateIOError
from hiveclock.store.models import InstanceState

logger = logging.getLogger(__name__)

SNAPSHOT_FILENAME = "agent.json"
STATE_FILENAME = "state.json"
ACTIVITY_FILENAME = "activity.log"
LOGS_DIRNAME = "logs"


def write_json_atomic(path: Path, value: Any) -> None:
    """Replace ``path`` with the JSON encoding of ``value`` in one rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(value, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def write_text_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class InstanceStore:
    """Key-value access to instance records keyed by handle."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    # ------------------------------------------------------------------
    # Key-value API
    # ------------------------------------------------------------------

    def list(self) -> list[str]:
        """Return known handles (instance directories), sorted."""
        if not self.root.exists():
            return []
        return sorted(entry.name for entry in self.root.iterdir() if entry.is_dir() and not entry.name.startswith("."))

    def get(self, handle: str) -> InstanceState:
        """Return the stored state for ``handle``; an absent record is a fresh state."""
        data = self._read_json(handle, self.state_path(handle))
        return InstanceState.from_dict(data) if isinstance(data, dict) else InstanceState()

    def put(self, handle: str, state: InstanceState) -> None:
        """Replace the stored state for ``handle`` with ``state``."""
        path = self.state_path(handle)
        try:
            self._preserve_unreadable(handle, path)
            write_json_atomic(path, state.to_dict())
        except OSError as exc:
            raise StateIOError(handle, path, str(exc)) from exc

    # ------------------------------------------------------------------
    # Identity snapshot
    # ------------------------------------------------------------------

    def get_snapshot(self, handle: str) -> dict[str, Any] | None:
        data = self._read_json(handle, self.snapshot_path(handle))
        return data if isinstance(data, dict) else None

    def put_snapshot(self, handle: str, snapshot: dict[str, Any]) -> None:
        path = self.snapshot_path(handle)
        try:
            write_json_atomic(path, snapshot)
        except OSError as exc:
            raise StateIOError(handle, path, str(exc)) from exc

    # ------------------------------------------------------------------
    # Paths and logs
    # ------------------------------------------------------------------

    def instance_dir(self, handle: str) -> Path:
        return self.root / handle

    def ensure_instance_dir(self, handle: str) -> Path:
        path = self.instance_dir(handle)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StateIOError(handle, path, str(exc)) from exc
        return path

    def state_path(self, handle: str) -> Path:
        return self.instance_dir(handle) / STATE_FILENAME

    def snapshot_path(self, handle: str) -> Path:
        return self.instance_dir(handle) / SNAPSHOT_FILENAME

    def append_activity(self, handle: str, timestamp: str, message: str) -> None:
        """Append one ``[ts] handle: message`` line to the activity log."""
        path = self.instance_dir(handle) / ACTIVITY_FILENAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as handle_file:
                handle_file.write(f"[{timestamp}] {handle}: {message}\n")
        except OSError as exc:
            logger.warning("Activity log append failed handle=%s path=%s: %s", handle, path, exc)

    def write_session_log(self, handle: str, timestamp: str, text: str) -> Path:
        """Write one session log named after ``timestamp`` and return its path."""
        safe_stamp = timestamp.replace(":", "-").replace(".", "-")
        path = self.instance_dir(handle) / LOGS_DIRNAME / f"{safe_stamp}.log"
        try:
            write_text_atomic(path, text)
        except OSError as exc:
            raise StateIOError(handle, path, str(exc)) from exc
        return path

    def _read_json(self, handle: str, path: Path) -> Any:
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            logger.error("Unreadable record handle=%s path=%s: %s", handle, path, exc)
            return None
        except OSError as exc:
            raise StateIOError(handle, path, str(exc)) from exc
        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            logger.error("Unreadable record handle=%s path=%s: %s", handle, path, exc)
            return None

    def _preserve_unreadable(self, handle: str, path: Path) -> Path | None:
        """Move an unparseable record aside before it is rewritten.

        The copy is named ``<name>.corrupt-<utc stamp>`` next to the original.
        """
        if not path.exists():
            return None
        try:
            text = path.read_text(encoding="utf-8")
            if not text.strip():
                return None
            json.loads(text)
        except ValueError:
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
            target = path.with_name(f"{path.name}.corrupt-{stamp}")
            os.replace(path, target)
            logger.error("Moved unreadable record aside handle=%s path=%s saved=%s", handle, path, target)
            return target
        return None
