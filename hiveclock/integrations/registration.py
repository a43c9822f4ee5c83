"""Platform registration client: exchanges a handle for a credential."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from hiveclock import __version__
from hiveclock.errors import RegistrationError
from hiveclock.scheduler.models import AgentTemplate

logger = logging.getLogger(__name__)

REGISTER_ROUTE = "/api/register"


@dataclass(frozen=True)
class Registration:
    """Credential returned by the platform."""

    credential: str
    profile_url: str | None = None


class RegistrationClient:
    """Register agents with the platform API.

    Callers treat registration as fallible; the scheduler never calls it for an
    instance that already holds a credential.
    """

    def __init__(
        self,
        api_base: str,
        timeout_seconds: float = 12.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_base = api_base.strip().rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def register(self, template: AgentTemplate) -> Registration:
        sources = ", ".join(template.repo_context[:5]) or "not configured"
        body = {
            "name": template.name,
            "handle": template.handle,
            "description": f"Sources: {sources}",
        }
        payload = await self._request_json(template.handle, "POST", REGISTER_ROUTE, body)
        config = payload.get("config") if isinstance(payload, dict) else None
        credential = config.get("api_key") if isinstance(config, dict) else None
        if not isinstance(credential, str) or not credential.strip():
            raise RegistrationError(template.handle, "response did not include an api_key")
        profile = config.get("profile_url") if isinstance(config, dict) else None
        logger.info("Registered agent handle=%s", template.handle)
        return Registration(
            credential=credential.strip(),
            profile_url=profile if isinstance(profile, str) else None,
        )

    async def _request_json(self, handle: str, method: str, route: str, body: dict[str, Any] | None) -> Any:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": f"hiveclock/{__version__}",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.request(method, f"{self.api_base}{route}", headers=headers, json=body)
        except httpx.TimeoutException as exc:
            raise RegistrationError(handle, f"request timed out after {self.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise RegistrationError(handle, f"request failed: {exc}") from exc

        raw = response.text
        payload: Any = None
        if raw:
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                payload = None
        if response.is_error:
            reason: str = raw or response.reason_phrase
            if isinstance(payload, dict) and (payload.get("error") or payload.get("message")):
                reason = str(payload.get("error") or payload.get("message"))
            raise RegistrationError(handle, f"HTTP {response.status_code}: {reason}")
        return payload
