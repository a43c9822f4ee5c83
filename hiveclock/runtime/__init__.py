"""Instance-side runtime: identity artifacts and external action invocation."""

from hiveclock.runtime.action import (
    ActionContext,
    ActionFailed,
    ActionNotConfigured,
    ActionOutput,
    ActionResult,
    ActionTimedOut,
    build_argv,
    build_env,
    run_with_timeout,
    substitute_template,
    timeout_for,
)
from hiveclock.runtime.identity import build_session_prompt, ensure_identity, write_env_file

__all__ = [
    "ActionContext",
    "ActionFailed",
    "ActionNotConfigured",
    "ActionOutput",
    "ActionResult",
    "ActionTimedOut",
    "build_argv",
    "build_env",
    "build_session_prompt",
    "ensure_identity",
    "run_with_timeout",
    "substitute_template",
    "timeout_for",
    "write_env_file",
]
