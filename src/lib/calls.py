"""
Calls service.

Call records live on the voice-AI platform and are fetched on demand:
- recent_calls: per-user listing, cached for CALL_CACHE_TTL_SECONDS
- call_details: one call, ownership checked, merged with stored analysis
- dashboard_metrics: KPIs over a window ending "now" in the user's timezone

End-of-call reports arrive by webhook; the structured analysis is stored in
call_analysis and open dashboards are notified through the event bus.
"""

import hmac
import logging
import os
from datetime import datetime, time, timedelta, timezone
from typing import Optional

import pytz

from ..config import CALL_CACHE_TTL_SECONDS
from ..db import get_admin_client, first_row
from .cache import TTLCache
from .errors import ConfigurationError, NotAuthenticatedError, NotFoundError, ValidationError
from .events import CALL_UPDATED, CallEventBus, NEW_CALL, call_events
from .logger import mask_user_id, sanitize_data
from .vapi import VapiClient, call_duration_seconds, compute_dashboard_metrics, validate_call_id

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "America/New_York"
END_OF_CALL_REPORT = "end-of-call-report"
STATUS_UPDATE = "status-update"

SENTIMENTS = ("positive", "negative", "neutral")
LEAD_QUALITIES = ("hot", "warm", "cold")

# Largest page the call listing endpoint accepts
MAX_CALLS_PER_REQUEST = 1000

call_cache = TTLCache(default_ttl=CALL_CACHE_TTL_SECONDS)


def summarize_call(call: dict) -> dict:
    """The fields the dashboard call list shows."""
    customer = call.get("customer") or {}
    analysis = call.get("analysis") or {}
    return {
        "id": call.get("id"),
        "status": call.get("status"),
        "endedReason": call.get("endedReason"),
        "startedAt": call.get("startedAt"),
        "endedAt": call.get("endedAt"),
        "createdAt": call.get("createdAt"),
        "duration": call_duration_seconds(call),
        "callerNumber": customer.get("number"),
        "callerName": customer.get("name"),
        "summary": analysis.get("summary"),
    }


def verify_webhook_secret(provided: Optional[str]) -> None:
    """Constant-time check of the x-vapi-secret header."""
    expected = os.environ.get("VAPI_WEBHOOK_SECRET")
    if not expected:
        logger.error("VAPI_WEBHOOK_SECRET is not set; rejecting voice AI webhook")
        raise ConfigurationError("Server misconfigured")

    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise NotAuthenticatedError("Invalid webhook secret")


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item]


class CallService:

    def __init__(
        self,
        client=None,
        vapi: Optional[VapiClient] = None,
        cache: TTLCache = call_cache,
        bus: CallEventBus = call_events,
    ):
        self.client = client or get_admin_client()
        self._vapi = vapi
        self.cache = cache
        self.bus = bus

    @property
    def vapi(self) -> VapiClient:
        if self._vapi is None:
            self._vapi = VapiClient()
        return self._vapi

    def _settings(self, user_id: str) -> dict:
        return first_row(
            self.client.table("ai_settings")
            .select("vapi_assistant_id, timezone")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        ) or {}

    async def recent_calls(self, user_id: str, limit: int = 10) -> list[dict]:
        limit = max(1, min(limit, 100))
        key = f"calls:{user_id}:{limit}"

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        assistant_id = self._settings(user_id).get("vapi_assistant_id")
        if not assistant_id:
            return []

        calls = await self.vapi.list_calls(assistant_id=assistant_id, limit=limit)
        summaries = [summarize_call(call) for call in calls]

        self.cache.set(key, summaries)
        return summaries

    def invalidate(self, user_id: str) -> None:
        self.cache.invalidate_prefix(f"calls:{user_id}:")

    async def call_details(self, user_id: str, call_id: str) -> dict:
        if not validate_call_id(call_id):
            raise ValidationError("Invalid call ID")

        assistant_id = self._settings(user_id).get("vapi_assistant_id")
        if not assistant_id:
            raise NotFoundError("Call not found")

        call = await self.vapi.get_call(call_id)
        if (call or {}).get("assistantId") != assistant_id:
            # Same answer as a missing call: don't confirm other users' IDs
            raise NotFoundError("Call not found")

        analysis = first_row(
            self.client.table("call_analysis")
            .select("call_purpose, sentiment, lead_quality, key_points, follow_up_items, urgent_concerns, analyzed_at")
            .eq("vapi_call_id", call_id)
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )

        return {**call, "storedAnalysis": analysis}

    async def dashboard_metrics(self, user_id: str, days: int = 30, now: Optional[datetime] = None) -> dict:
        """
        KPIs for the last `days` calendar days in the user's timezone,
        counting today.
        """
        if days < 1 or days > 365:
            raise ValidationError("days must be between 1 and 365")

        settings = self._settings(user_id)
        tz_name = settings.get("timezone") or DEFAULT_TIMEZONE
        try:
            tz = pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone {tz_name!r} for {mask_user_id(user_id)}; using default")
            tz_name = DEFAULT_TIMEZONE
            tz = pytz.timezone(tz_name)

        local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
        first_day = local_now.date() - timedelta(days=days - 1)
        window_start = tz.localize(datetime.combine(first_day, time.min))

        assistant_id = settings.get("vapi_assistant_id")
        if assistant_id:
            calls = await self.vapi.list_calls(
                assistant_id=assistant_id,
                limit=MAX_CALLS_PER_REQUEST,
                created_after=window_start.astimezone(timezone.utc),
                created_before=local_now.astimezone(timezone.utc),
                retry=True,
            )
        else:
            calls = []

        return {
            **compute_dashboard_metrics(calls),
            "from": window_start.isoformat(),
            "to": local_now.isoformat(),
            "timezone": tz_name,
        }

    def handle_end_of_call(self, secret: Optional[str], envelope: dict) -> dict:
        """Store the analysis from an end-of-call report and notify the user's dashboards."""
        verify_webhook_secret(secret)

        message = (envelope or {}).get("message") or {}
        message_type = message.get("type")
        if message_type == STATUS_UPDATE:
            return self._handle_status_update(message)
        if message_type != END_OF_CALL_REPORT:
            return {"received": True}

        call = message.get("call") or {}
        call_id = call.get("id")
        assistant_id = call.get("assistantId") or (message.get("assistant") or {}).get("id")

        if not call_id or not assistant_id:
            logger.warning(f"Malformed end-of-call report: {sanitize_data(call)}")
            raise ValidationError("End-of-call report without call or assistant ID")

        settings = first_row(
            self.client.table("ai_settings")
            .select("user_id")
            .eq("vapi_assistant_id", assistant_id)
            .limit(1)
            .execute()
        )
        if not settings:
            logger.warning(f"End-of-call report for unknown assistant {assistant_id}")
            return {"received": True}

        user_id = settings["user_id"]
        analysis = message.get("analysis") or {}
        structured = analysis.get("structuredData") or {}

        sentiment = structured.get("sentiment")
        lead_quality = structured.get("leadQuality")

        row = {
            "user_id": user_id,
            "vapi_call_id": call_id,
            "call_purpose": structured.get("callPurpose"),
            "sentiment": sentiment if sentiment in SENTIMENTS else None,
            "lead_quality": lead_quality if lead_quality in LEAD_QUALITIES else None,
            "key_points": _string_list(structured.get("keyPoints")),
            "follow_up_items": _string_list(structured.get("followUpItems")),
            "urgent_concerns": _string_list(structured.get("urgentConcerns")),
            "analyzed_at": datetime.now(timezone.utc).isoformat(),
        }
        self.client.table("call_analysis").upsert(row, on_conflict="vapi_call_id").execute()

        self.invalidate(user_id)
        notified = self.bus.publish(user_id, NEW_CALL, {
            "callId": call_id,
            "sentiment": row["sentiment"],
            "summary": analysis.get("summary"),
        })

        logger.info(f"Stored analysis for call {call_id} ({mask_user_id(user_id)}, {notified} listener(s))")
        return {"received": True, "callId": call_id}

    def _handle_status_update(self, message: dict) -> dict:
        """Live call status change: refresh the listing and tell open dashboards."""
        call = message.get("call") or {}
        call_id = call.get("id")
        assistant_id = call.get("assistantId") or (message.get("assistant") or {}).get("id")
        if not call_id or not assistant_id:
            return {"received": True}

        settings = first_row(
            self.client.table("ai_settings")
            .select("user_id")
            .eq("vapi_assistant_id", assistant_id)
            .limit(1)
            .execute()
        )
        if not settings:
            return {"received": True}

        user_id = settings["user_id"]
        self.invalidate(user_id)
        self.bus.publish(user_id, CALL_UPDATED, {
            "callId": call_id,
            "status": message.get("status") or call.get("status"),
        })
        return {"received": True, "callId": call_id}
