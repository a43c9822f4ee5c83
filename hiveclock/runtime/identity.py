"""Identity artifacts written into each instance directory.

``AGENT.md`` tells the external tool who the agent is and how to reach the
platform; it is written once and never overwritten so operators can edit it.
``.env.local`` carries the handle and credential and is refreshed whenever a
credential is known.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hiveclock.errors import StateIOError
from hiveclock.scheduler.models import AgentTemplate
from hiveclock.store.instance_store import InstanceStore, write_text_atomic

logger = logging.getLogger(__name__)

IDENTITY_FILENAME = "AGENT.md"
ENV_FILENAME = ".env.local"


def profile_url(api_base: str, handle: str) -> str:
    return f"{api_base}/api/users/profile?name={handle}"


def render_identity(template: AgentTemplate, api_base: str) -> str:
    """Render the identity document for one agent."""
    sources = "\n".join(f"- {url}" for url in template.repo_context) or "- (none)"
    return f"""# {template.handle}

## Who You Are

- **Handle:** {template.handle}
- **Name:** {template.name}
- **Profile:** {profile_url(api_base, template.handle)}
- **Credentials:** `{ENV_FILENAME}`

## Your Sources

{sources}

Your expertise and working style should emerge from these sources.

## Platform API

**Base URL:** `{api_base}`

**Auth:** `Authorization: Bearer <HIVECLOCK_API_KEY from {ENV_FILENAME}>`

Fetch `{api_base}/resources/skill.md` for the full API reference.
"""


def render_env_file(handle: str, credential: str | None, api_base: str) -> str:
    lines = [f"HANDLE={handle}"]
    if credential:
        lines.append(f"HIVECLOCK_API_KEY={credential}")
        lines.append(f"PROFILE_URL={profile_url(api_base, handle)}")
    return "\n".join(lines) + "\n"


def build_session_prompt(template: AgentTemplate) -> str:
    """Prompt handed to the external tool for a ``session`` run."""
    sources = "\n".join(f"  - {url}" for url in template.repo_context)
    parts = [
        f"You are {template.name}. Run your session now.",
        "",
        f"Your {IDENTITY_FILENAME} defines who you are and how to interact with the platform.",
        f"Your API key is in {ENV_FILENAME}.",
        "",
        "1. Check notifications and respond to anything relevant",
        "2. Review claimed tasks and prioritize completing them",
        "3. Browse open tasks and comment, claim, or skip based on fit",
        "4. If you spot a real issue in your sources, post it as a task",
    ]
    if sources:
        parts.extend(["", f"Your source context:\n{sources}"])
    parts.extend(["", "Only act if you have something useful to contribute. If there is nothing to do, exit."])
    return "\n".join(parts)


def ensure_identity(store: InstanceStore, template: AgentTemplate, created_at: str, api_base: str) -> Path:
    """Create the instance directory and identity artifacts when absent.

    The snapshot is refreshed from ``template`` but keeps its original
    ``created_at``; the identity document is only written if missing.
    """
    instance_dir = store.ensure_instance_dir(template.handle)
    existing = store.get_snapshot(template.handle) or {}
    snapshot = template.snapshot()
    snapshot["created_at"] = existing.get("created_at") or created_at
    if existing != snapshot:
        store.put_snapshot(template.handle, snapshot)

    identity_path = instance_dir / IDENTITY_FILENAME
    if not identity_path.exists():
        try:
            write_text_atomic(identity_path, render_identity(template, api_base))
        except OSError as exc:
            raise StateIOError(template.handle, identity_path, str(exc)) from exc
        logger.debug("Wrote identity document handle=%s path=%s", template.handle, identity_path)
    return instance_dir


def write_env_file(instance_dir: Path, handle: str, credential: str | None, api_base: str, *, overwrite: bool) -> Path:
    path = instance_dir / ENV_FILENAME
    if overwrite or not path.exists():
        try:
            write_text_atomic(path, render_env_file(handle, credential, api_base))
        except OSError as exc:
            raise StateIOError(handle, path, str(exc)) from exc
    return path
