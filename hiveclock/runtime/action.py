"""External action invocation with a hard timeout.

:func:`run_with_timeout` drives a subprocess on the asyncio event loop and
always returns one of the typed results below; it never raises for a
non-zero exit or a timeout.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

logger = logging.getLogger(__name__)

SESSION_ACTION = "session"
KILL_GRACE_SECONDS = 5.0
_WHITESPACE = re.compile(r"\s+")
_PLACEHOLDERS = ("handle", "name", "action", "prompt", "instance_dir")


@dataclass(frozen=True)
class ActionOutput:
    """The action exited cleanly (or was ended by an outside signal)."""

    text: str


@dataclass(frozen=True)
class ActionTimedOut:
    """The action exceeded its timeout and was terminated."""

    timeout_seconds: float
    partial_output: str


@dataclass(frozen=True)
class ActionFailed:
    """The action could not start or exited with a non-zero code."""

    code: int | None
    message: str


@dataclass(frozen=True)
class ActionNotConfigured:
    """No command is configured for this agent."""


ActionResult = Union[ActionOutput, ActionTimedOut, ActionFailed, ActionNotConfigured]


@dataclass(frozen=True)
class ActionContext:
    """Values substituted into command templates."""

    handle: str
    name: str
    action: str
    prompt: str
    instance_dir: Path

    def as_mapping(self) -> dict[str, str]:
        return {
            "handle": self.handle,
            "name": self.name,
            "action": self.action,
            "prompt": self.prompt,
            "instance_dir": str(self.instance_dir),
        }


def _collapse(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def substitute_template(template: str, context: ActionContext) -> str:
    """Replace ``{handle}``-style placeholders; other braces are left alone."""
    rendered = str(template or "")
    values = context.as_mapping()
    for key in _PLACEHOLDERS:
        rendered = rendered.replace(f"{{{key}}}", _collapse(values[key]))
    return rendered


def build_argv(
    command: str | dict[str, Any] | None,
    context: ActionContext,
    *,
    model: str | None = None,
    shell: str | None = None,
) -> list[str] | None:
    """Turn an agent command descriptor into an argv, or ``None`` when unset.

    A string runs through ``$SHELL -lc``; a ``{cmd, args}`` mapping runs
    directly and receives ``--model`` when a model is set.
    """
    if command is None:
        return None
    if isinstance(command, str):
        if not command.strip():
            return None
        login_shell = shell or os.environ.get("SHELL") or "/bin/sh"
        return [login_shell, "-lc", substitute_template(command, context)]
    cmd = command.get("cmd")
    if not isinstance(cmd, str) or not cmd.strip():
        return None
    raw_args = command.get("args") or []
    argv = [cmd] + [substitute_template(str(arg), context) for arg in raw_args]
    if model:
        argv.extend(["--model", model])
    return argv


def build_env(
    context: ActionContext,
    extra_env: dict[str, str] | None = None,
    strip: tuple[str, ...] | list[str] = (),
) -> dict[str, str]:
    """Child environment: inherited env minus ``strip``, platform extras, then agent variables."""
    env = {key: value for key, value in os.environ.items() if key not in strip}
    env.update(extra_env or {})
    env["HIVECLOCK_AGENT_HANDLE"] = context.handle
    env["HIVECLOCK_AGENT_ACTION"] = context.action
    env["HIVECLOCK_AGENT_PROMPT"] = context.prompt
    return env


def _signal_group(process: asyncio.subprocess.Process, signum: int) -> None:
    """Signal the whole process group; the group outlives an exited leader."""
    try:
        os.killpg(process.pid, signum)
    except ProcessLookupError:
        pass
    except PermissionError:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.send_signal(signum)


async def _settle(process: asyncio.subprocess.Process, readers: asyncio.Future[Any]) -> None:
    await asyncio.shield(readers)
    await process.wait()


async def _terminate(process: asyncio.subprocess.Process, readers: asyncio.Future[Any], grace_seconds: float) -> None:
    """SIGTERM the process group, then SIGKILL whatever is left after ``grace_seconds``.

    Runs even when the leader has already exited, since its children may still
    hold the output pipes.
    """
    _signal_group(process, signal.SIGTERM)
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(_settle(process, readers), timeout=grace_seconds)
    _signal_group(process, signal.SIGKILL)
    await process.wait()
    with contextlib.suppress(asyncio.TimeoutError):
        await asyncio.wait_for(readers, timeout=grace_seconds)


async def _drain(stream: asyncio.StreamReader | None, sink: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(65536)
        if not chunk:
            return
        sink.append(chunk)


async def run_with_timeout(
    argv: list[str],
    *,
    cwd: Path,
    env: dict[str, str],
    timeout_seconds: float,
    kill_grace_seconds: float = KILL_GRACE_SECONDS,
) -> ActionResult:
    """Run ``argv`` to completion or until ``timeout_seconds`` elapse.

    On timeout or cancellation the whole process group is terminated. When the
    leader already exited and only its children kept the output open past the
    deadline, the result follows the leader's exit code.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=True,
        )
    except FileNotFoundError as exc:
        return ActionFailed(code=127, message=f"command not found: {argv[0]} ({exc})")
    except OSError as exc:
        return ActionFailed(code=None, message=f"failed to start {argv[0]}: {exc}")

    stdout_chunks: list[bytes] = []
    stderr_chunks: list[bytes] = []
    readers = asyncio.gather(
        _drain(process.stdout, stdout_chunks),
        _drain(process.stderr, stderr_chunks),
    )

    timed_out = False
    try:
        await asyncio.wait_for(_settle(process, readers), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        timed_out = process.returncode is None
        if timed_out:
            logger.warning("Action timed out pid=%s timeout=%ss; terminating", process.pid, timeout_seconds)
        else:
            logger.warning(
                "Action exited but its process group held output open pid=%s timeout=%ss; terminating group",
                process.pid,
                timeout_seconds,
            )
        await _terminate(process, readers, kill_grace_seconds)
    except asyncio.CancelledError:
        logger.warning("Action cancelled pid=%s; terminating", process.pid)
        await _terminate(process, readers, kill_grace_seconds)
        raise

    output = b"".join(stdout_chunks).decode("utf-8", errors="replace").strip()
    errors = b"".join(stderr_chunks).decode("utf-8", errors="replace").strip()

    if timed_out:
        return ActionTimedOut(timeout_seconds=timeout_seconds, partial_output=output)
    code = process.returncode
    if code == 0 or (code is not None and code < 0):
        return ActionOutput(text=output)
    return ActionFailed(code=code, message=errors or output or f"exit_code_{code}")


def timeout_for(action: str, *, action_timeout_seconds: int, session_timeout_seconds: int) -> int:
    """Session runs get the long timeout; every other action gets the short one."""
    return session_timeout_seconds if action == SESSION_ACTION else action_timeout_seconds
