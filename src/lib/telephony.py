"""
Telephony provisioning (Twilio REST).

Once a user's subscription goes active they get a local number. The number
is then imported into the voice-AI platform against the user's assistant so
inbound calls reach it; that step is best effort. Every Twilio step retries
up to three times.
"""

import logging
import os
import re
from typing import Optional

import httpx

from ..config import (
    API_URL,
    TWILIO_API_URL,
    TWILIO_DEFAULT_AREA_CODE,
    TWILIO_VOICE_URL,
    REQUEST_TIMEOUT_SECONDS,
    USER_AGENT,
    require_env,
)
from ..db import get_admin_client, first_row
from .errors import NotFoundError, UpstreamError
from .logger import mask_user_id
from .retry import retry
from .subscriptions import is_active_subscription
from .vapi import VapiClient

logger = logging.getLogger(__name__)

TWILIO_RETRY_ON = (UpstreamError, httpx.TransportError)


def area_code_from_phone(phone_number: Optional[str]) -> Optional[str]:
    """US area code from a free-form phone number, if one can be read."""
    if not phone_number:
        return None
    digits = re.sub(r"\D", "", phone_number)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return digits[:3]


class TwilioClient:
    """Minimal async Twilio REST client (basic auth, form-encoded bodies)."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        base_url: str = TWILIO_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid or require_env("TWILIO_ACCOUNT_SID")
        self.auth_token = auth_token or require_env("TWILIO_AUTH_TOKEN")
        self.base_url = f"{base_url}/Accounts/{self.account_sid}"
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.account_sid, self.auth_token),
            headers={"User-Agent": USER_AGENT},
            timeout=REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    async def _send(self, method: str, path: str, action: str, ok_statuses: tuple = (), **kwargs) -> httpx.Response:
        async with self._client() as client:
            response = await client.request(method, path, **kwargs)
        if response.status_code >= 400 and response.status_code not in ok_statuses:
            logger.error(f"Twilio: failed to {action}: {response.status_code}")
            raise UpstreamError(f"Failed to {action}")
        return response

    async def search_available_numbers(self, area_code: Optional[str] = None) -> Optional[dict]:
        params = {"VoiceEnabled": "true", "SmsEnabled": "true", "Limit": "1"}
        if area_code:
            params["AreaCode"] = area_code

        response = await retry(
            lambda: self._send("GET", "/AvailablePhoneNumbers/US/Local.json", "search available numbers", params=params),
            retry_on=TWILIO_RETRY_ON,
        )
        numbers = response.json().get("available_phone_numbers") or []
        return numbers[0] if numbers else None

    async def provision_phone_number(self, phone_number: str, voice_url: Optional[str] = None) -> dict:
        data = {"PhoneNumber": phone_number}
        if voice_url:
            data["VoiceUrl"] = voice_url

        response = await retry(
            lambda: self._send("POST", "/IncomingPhoneNumbers.json", "provision phone number", data=data),
            retry_on=TWILIO_RETRY_ON,
        )
        return response.json()

    async def delete_phone_number(self, number_sid: str) -> bool:
        await retry(
            lambda: self._send(
                "DELETE",
                f"/IncomingPhoneNumbers/{number_sid}.json",
                "delete phone number",
                ok_statuses=(404,),
            ),
            retry_on=TWILIO_RETRY_ON,
        )
        return True


class TelephonyService:

    def __init__(self, client=None, twilio: Optional[TwilioClient] = None, vapi: Optional[VapiClient] = None):
        self.client = client or get_admin_client()
        self.twilio = twilio or TwilioClient()
        self._vapi = vapi

    @property
    def vapi(self) -> VapiClient:
        if self._vapi is None:
            self._vapi = VapiClient()
        return self._vapi

    async def provision_for_user(self, user_id: str) -> Optional[dict]:
        """
        Buy and route a number for a paying user.
        Returns the phone_numbers row, or None when nothing needed doing.
        """
        subscriptions = (
            self.client.table("subscriptions")
            .select("id, status, tier_type")
            .eq("user_id", user_id)
            .execute()
        )
        if not any(is_active_subscription(row) for row in subscriptions.data or []):
            logger.info(f"No active paid subscription for {mask_user_id(user_id)}; not provisioning")
            return None

        existing = first_row(
            self.client.table("phone_numbers")
            .select("id, e164_number, status")
            .eq("user_id", user_id)
            .eq("status", "active")
            .limit(1)
            .execute()
        )
        if existing:
            logger.info(f"{mask_user_id(user_id)} already has a number; not provisioning")
            return None

        profile = first_row(
            self.client.table("profiles")
            .select("phone_number")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        area_code = area_code_from_phone((profile or {}).get("phone_number")) or TWILIO_DEFAULT_AREA_CODE

        candidate = await self.twilio.search_available_numbers(area_code)
        if candidate is None and area_code != TWILIO_DEFAULT_AREA_CODE:
            candidate = await self.twilio.search_available_numbers(TWILIO_DEFAULT_AREA_CODE)
        if candidate is None:
            raise UpstreamError("No phone numbers available")

        purchased = await self.twilio.provision_phone_number(candidate["phone_number"], TWILIO_VOICE_URL)

        row = {
            "user_id": user_id,
            "provider": "twilio",
            "provider_number_id": purchased.get("sid"),
            "e164_number": purchased.get("phone_number") or candidate["phone_number"],
            "status": "active",
        }
        self.client.table("phone_numbers").upsert(row, on_conflict="user_id").execute()
        logger.info(f"Provisioned number for {mask_user_id(user_id)}")

        vapi_number_id = await self.link_to_assistant(user_id, row["e164_number"])
        if vapi_number_id:
            row["vapi_phone_number_id"] = vapi_number_id
        return row

    async def link_to_assistant(self, user_id: str, e164_number: str) -> Optional[str]:
        """
        Best effort: import the number into the voice-AI platform against the
        user's assistant. Returns the platform's phone number ID.
        """
        settings = first_row(
            self.client.table("ai_settings")
            .select("vapi_assistant_id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        assistant_id = (settings or {}).get("vapi_assistant_id")
        if not assistant_id:
            logger.warning(f"{mask_user_id(user_id)} has no assistant yet; number not linked")
            return None

        server = {"url": f"{API_URL}/webhooks/vapi", "timeoutSeconds": 20}
        secret = os.environ.get("VAPI_WEBHOOK_SECRET")
        if secret:
            server["secret"] = secret

        try:
            imported = await self.vapi.import_phone_number(
                e164_number,
                self.twilio.account_sid,
                self.twilio.auth_token,
                assistant_id,
                name=f"Spoqen {e164_number}",
                server=server,
            )
        except Exception:
            logger.exception(f"Linking number to assistant failed for {mask_user_id(user_id)}")
            return None

        vapi_number_id = (imported or {}).get("id")
        (
            self.client.table("phone_numbers")
            .update({"vapi_phone_number_id": vapi_number_id})
            .eq("user_id", user_id)
            .execute()
        )
        return vapi_number_id

    async def release_for_user(self, user_id: str) -> bool:
        """Release the user's number back to Twilio."""
        existing = first_row(
            self.client.table("phone_numbers")
            .select("provider_number_id, vapi_phone_number_id")
            .eq("user_id", user_id)
            .eq("status", "active")
            .limit(1)
            .execute()
        )
        if not existing or not existing.get("provider_number_id"):
            return False

        if existing.get("vapi_phone_number_id"):
            try:
                await self.vapi.delete_phone_number(existing["vapi_phone_number_id"])
            except NotFoundError:
                logger.info(f"Voice-AI number already gone for {mask_user_id(user_id)}")
            except Exception:
                logger.exception(f"Removing voice-AI number failed for {mask_user_id(user_id)}")

        await self.twilio.delete_phone_number(existing["provider_number_id"])
        (
            self.client.table("phone_numbers")
            .update({"status": "released"})
            .eq("user_id", user_id)
            .execute()
        )
        return True
