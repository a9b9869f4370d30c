"""
AI receptionist settings service.
One row per user: assistant name, greeting, summary email, timezone and
notification preference.

A greeting change is pushed to the user's assistant as its firstMessage.
"""

import logging
from typing import Optional

import pytz

from ..db import get_admin_client, first_row
from .errors import AppError, NotFoundError, ValidationError
from .logger import mask_user_id

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ("ai_name", "greeting_script", "summary_email", "timezone", "email_notifications")


def validate_timezone(timezone: str) -> str:
    try:
        pytz.timezone(timezone)
    except pytz.UnknownTimeZoneError as e:
        raise ValidationError("Invalid timezone") from e
    return timezone


class AISettingsService:

    def __init__(self, client=None, vapi=None):
        self.client = client or get_admin_client()
        self._vapi = vapi

    @property
    def vapi(self):
        # Built lazily: most settings calls never talk to the voice platform
        if self._vapi is None:
            from .vapi import VapiClient
            self._vapi = VapiClient()
        return self._vapi

    def get_settings(self, user_id: str) -> dict:
        result = (
            self.client.table("ai_settings")
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )

        settings = first_row(result)
        if not settings:
            raise NotFoundError("AI settings not found")
        return settings

    async def update_settings(
        self,
        user_id: str,
        ai_name: Optional[str] = None,
        greeting_script: Optional[str] = None,
        summary_email: Optional[str] = None,
        timezone: Optional[str] = None,
        email_notifications: Optional[bool] = None,
    ) -> dict:
        """
        Save the provided fields.
        A failed greeting sync is logged; the saved settings stand.
        """
        updates = {
            "ai_name": ai_name,
            "greeting_script": greeting_script,
            "summary_email": summary_email,
            "timezone": timezone,
            "email_notifications": email_notifications,
        }
        updates = {k: v for k, v in updates.items() if v is not None}

        if not updates:
            raise ValidationError("No fields to update")

        if "timezone" in updates:
            validate_timezone(updates["timezone"])

        current = self.get_settings(user_id)

        result = (
            self.client.table("ai_settings")
            .update(updates)
            .eq("user_id", user_id)
            .execute()
        )
        saved = first_row(result) or {**current, **updates}

        greeting_changed = (
            "greeting_script" in updates
            and updates["greeting_script"] != current.get("greeting_script")
        )
        assistant_id = current.get("vapi_assistant_id")

        if greeting_changed and assistant_id:
            try:
                await self.vapi.update_assistant(assistant_id, {"firstMessage": updates["greeting_script"]})
                logger.info(f"Synced greeting to assistant for {mask_user_id(user_id)}")
            except AppError as e:
                logger.warning(f"Greeting sync failed for {mask_user_id(user_id)}: {e.message}")

        return saved

    def complete_welcome(self, user_id: str) -> dict:
        result = (
            self.client.table("ai_settings")
            .update({"welcome_completed": True})
            .eq("user_id", user_id)
            .execute()
        )

        if not result.data:
            raise NotFoundError("AI settings not found")
        return {"success": True}
