"""
Voice-AI platform (Vapi) REST client.

Thin async wrapper over https://api.vapi.ai:
- Assistants: get / create / update
- Calls: list (createdAt window) / get
- Files: get (knowledge base metadata)
- Phone numbers: import (Twilio) / delete
- Tools: create / update / delete (knowledge "query" tool)

IDs that end up in URL paths are validated first; an ID is never trusted
just because it came from our own database.
"""

import logging
import re
from datetime import datetime
from typing import Any, Optional

import httpx

from ..config import VAPI_API_URL, REQUEST_TIMEOUT_SECONDS, USER_AGENT, require_env
from .errors import NotFoundError, UpstreamError, ValidationError
from .retry import request_with_retry

logger = logging.getLogger(__name__)

# endedReason values meaning the caller never spoke with the assistant
MISSED_CODES = frozenset({
    "customer-did-not-answer",
    "customer-busy",
    "voicemail",
    "no-routes-available",
    "customer-did-not-give-microphone-permission",
    "assistant-error",
    "assistant-not-found",
    "call-declined",
    "insufficient-funds",
})

ANSWERED_STATUSES = ("ended", "completed")

ASSISTANT_ID_PATTERN = re.compile(r"^[a-z0-9\-_]{8,64}$")
CALL_ID_PATTERN = re.compile(r"^[A-Za-z0-9\-_]+$")

SSRF_PATTERNS = [
    re.compile(r"://"),
    re.compile(r"localhost", re.IGNORECASE),
    re.compile(r"127\.0\.0\.1"),
    re.compile(r"0\.0\.0\.0"),
    re.compile(r"::1"),
    re.compile(r"\.\."),
    re.compile(r"[<>\"']"),
    re.compile(r"\s"),
    re.compile(r"[^\x20-\x7E]"),
]


def validate_assistant_id(assistant_id: Optional[str]) -> bool:
    """True if the ID is a plausible assistant ID and safe to put in a URL."""
    if not assistant_id or not isinstance(assistant_id, str):
        return False

    candidate = assistant_id.strip()
    if not candidate:
        return False

    for pattern in SSRF_PATTERNS:
        if pattern.search(candidate):
            logger.warning(f"Rejected assistant ID matching {pattern.pattern!r}")
            return False

    return bool(ASSISTANT_ID_PATTERN.match(candidate))


def validate_call_id(call_id: Optional[str]) -> bool:
    if not call_id or not isinstance(call_id, str):
        return False
    return bool(CALL_ID_PATTERN.match(call_id))


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def call_duration_seconds(call: dict) -> float:
    """durationSeconds when present, else endedAt - startedAt."""
    duration = call.get("durationSeconds")
    if isinstance(duration, (int, float)):
        return float(duration)

    started = _parse_time(call.get("startedAt"))
    ended = _parse_time(call.get("endedAt"))
    if started and ended and ended >= started:
        return (ended - started).total_seconds()
    return 0.0


def is_missed(call: dict) -> bool:
    return call.get("endedReason") in MISSED_CODES


def is_answered(call: dict) -> bool:
    return call.get("status") in ANSWERED_STATUSES and not is_missed(call)


def compute_dashboard_metrics(calls: list[dict]) -> dict:
    """
    Aggregate raw call records into dashboard KPIs.

    Returns:
    - total: all calls
    - answered: ended/completed and not a missed code
    - missed: endedReason in MISSED_CODES
    - conversionRate: converted / answered (0 when nothing answered)
    - avgDuration: mean duration of answered calls, in seconds
    """
    total = len(calls)
    answered = [call for call in calls if is_answered(call)]
    missed = sum(1 for call in calls if is_missed(call))
    converted = sum(
        1 for call in answered
        if (call.get("metadata") or {}).get("converted") is True
    )

    if answered:
        conversion_rate = converted / len(answered)
        avg_duration = sum(call_duration_seconds(call) for call in answered) / len(answered)
    else:
        conversion_rate = 0.0
        avg_duration = 0.0

    return {
        "total": total,
        "answered": len(answered),
        "missed": missed,
        "conversionRate": round(conversion_rate, 4),
        "avgDuration": round(avg_duration, 1),
    }


class VapiClient:
    """Async client for the voice-AI REST API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = VAPI_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key or require_env("VAPI_PRIVATE_KEY")
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "User-Agent": USER_AGENT,
            },
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, retry: bool = False, **kwargs) -> Any:
        async with self._client() as client:
            try:
                if retry:
                    response = await request_with_retry(client, method, path, **kwargs)
                else:
                    response = await client.request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                raise UpstreamError("Voice AI request timed out", status_code=504) from e
            except httpx.TransportError as e:
                raise UpstreamError("Voice AI service unreachable") from e

        if response.status_code == 404:
            raise NotFoundError("Not found on voice AI platform")

        if response.status_code >= 400:
            logger.error(f"Vapi {method} {path} failed: {response.status_code} {response.text[:200]}")
            raise UpstreamError(f"Voice AI request failed ({response.status_code})")

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def get_assistant(self, assistant_id: str) -> dict:
        if not validate_assistant_id(assistant_id):
            raise ValidationError("Invalid assistant ID")
        return await self._request("GET", f"/assistant/{assistant_id.strip()}")

    async def create_assistant(self, payload: dict) -> dict:
        return await self._request("POST", "/assistant", json=payload)

    async def update_assistant(self, assistant_id: str, payload: dict) -> dict:
        if not validate_assistant_id(assistant_id):
            raise ValidationError("Invalid assistant ID")
        return await self._request("PATCH", f"/assistant/{assistant_id.strip()}", json=payload)

    async def list_calls(
        self,
        assistant_id: Optional[str] = None,
        limit: int = 100,
        created_after: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        retry: bool = False,
    ) -> list[dict]:
        """List calls, newest first. The API returns a bare JSON array."""
        params = {"limit": limit}
        if assistant_id:
            if not validate_assistant_id(assistant_id):
                raise ValidationError("Invalid assistant ID")
            params["assistantId"] = assistant_id.strip()
        if created_after:
            params["createdAtGe"] = created_after.isoformat()
        if created_before:
            params["createdAtLe"] = created_before.isoformat()

        data = await self._request("GET", "/call", retry=retry, params=params)
        if isinstance(data, dict):
            # Some API versions wrap results
            data = data.get("results") or data.get("data") or []
        return data or []

    async def get_call(self, call_id: str) -> dict:
        if not validate_call_id(call_id):
            raise ValidationError("Invalid call ID")
        return await self._request("GET", f"/call/{call_id}")

    async def import_phone_number(
        self,
        number: str,
        twilio_account_sid: str,
        twilio_auth_token: str,
        assistant_id: str,
        name: Optional[str] = None,
        server: Optional[dict] = None,
    ) -> dict:
        """Register a Twilio number so its inbound calls reach the assistant."""
        if not validate_assistant_id(assistant_id):
            raise ValidationError("Invalid assistant ID")

        payload = {
            "provider": "twilio",
            "number": number,
            "twilioAccountSid": twilio_account_sid,
            "twilioAuthToken": twilio_auth_token,
            "assistantId": assistant_id.strip(),
        }
        if name:
            payload["name"] = name
        if server:
            payload["server"] = server
        return await self._request("POST", "/phone-number", json=payload)

    async def delete_phone_number(self, phone_number_id: str) -> None:
        if not validate_call_id(phone_number_id):
            raise ValidationError("Invalid phone number ID")
        await self._request("DELETE", f"/phone-number/{phone_number_id}")

    async def get_file(self, file_id: str) -> dict:
        if not validate_call_id(file_id):
            raise ValidationError("Invalid file ID")
        return await self._request("GET", f"/file/{file_id}")

    async def create_query_tool(self, name: str, file_ids: list[str]) -> dict:
        return await self._request("POST", "/tool", json={
            "type": "query",
            "function": {"name": "knowledge_query"},
            "knowledgeBases": [self._knowledge_base(name, file_ids)],
        })

    async def update_query_tool(self, tool_id: str, name: str, file_ids: list[str]) -> dict:
        if not validate_call_id(tool_id):
            raise ValidationError("Invalid tool ID")
        return await self._request("PATCH", f"/tool/{tool_id}", json={
            "knowledgeBases": [self._knowledge_base(name, file_ids)],
        })

    async def delete_tool(self, tool_id: str) -> None:
        if not validate_call_id(tool_id):
            raise ValidationError("Invalid tool ID")
        await self._request("DELETE", f"/tool/{tool_id}")

    @staticmethod
    def _knowledge_base(name: str, file_ids: list[str]) -> dict:
        return {
            "provider": "google",
            "name": name,
            "description": "User uploaded files for this assistant",
            "fileIds": file_ids,
        }
