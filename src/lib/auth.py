"""
Authentication utilities.
Uses Supabase Auth - no custom JWT handling, no password storage.

Sign-up also seeds the account: one profile, one AI settings row and the
three default qualification questions.
"""

import hmac
import logging
import os
from typing import Callable, Optional

from fastapi import Depends, Header, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import SITE_URL
from ..db import get_supabase_client, get_admin_client, new_anon_client, first_row
from ..models import SubscriptionStatus
from .errors import AppError, ConfigurationError, ForbiddenError, NotAuthenticatedError, ValidationError
from .logger import mask_email, mask_user_id

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

DEFAULT_AI_NAME = "Ava"

DEFAULT_GREETING = (
    "Hi, thanks for calling {full_name}'s office! "
    "I'm Ava, the assistant. How can I help you today?"
)

DEFAULT_QUESTIONS = [
    "Are you looking to buy, sell, or ask about a property?",
    "What's your name and the best number to reach you?",
    "When would be the best time for {full_name} to call you back?",
]


def get_user_from_token(token: Optional[str]) -> dict:
    """Verify an access token with Supabase and return {id, email}."""
    if not token:
        raise NotAuthenticatedError()

    client = get_supabase_client()

    try:
        user = client.auth.get_user(token)
    except Exception as e:
        logger.info(f"Token verification failed: {type(e).__name__}")
        raise NotAuthenticatedError("Invalid or expired token") from e

    if not user or not user.user:
        raise NotAuthenticatedError("Invalid or expired token")

    return {
        "id": user.user.id,
        "email": user.user.email,
    }


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    Validate JWT and return current user.
    Uses Supabase Auth - no custom JWT handling.
    """
    return get_user_from_token(credentials.credentials if credentials else None)


async def get_current_user_for_stream(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    access_token: Optional[str] = Query(default=None),
) -> dict:
    """
    Same as get_current_user, but also accepts ?access_token=.
    Browser EventSource cannot set an Authorization header.
    """
    token = credentials.credentials if credentials else access_token
    return get_user_from_token(token)


async def verify_subscription(
    user: dict = Depends(get_current_user)
) -> dict:
    """
    Verify user has an active subscription.
    Returns user if valid, raises 402 if subscription required.
    """
    client = get_admin_client()

    result = (
        client.table("subscriptions")
        .select("id, status")
        .eq("user_id", user["id"])
        .eq("status", SubscriptionStatus.ACTIVE.value)
        .limit(1)
        .execute()
    )

    if not first_row(result):
        raise AppError("Active subscription required", status_code=402)

    return user


async def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None)
) -> None:
    """Guard for admin routes: X-Admin-Token must match ADMIN_API_TOKEN."""
    expected = os.environ.get("ADMIN_API_TOKEN")
    if not expected:
        raise ConfigurationError("Server misconfigured")

    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise ForbiddenError("Forbidden")


class AuthService:
    """Sign-up, sign-in and password flows on top of Supabase Auth."""

    def __init__(self, client=None, anon_client_factory: Callable = new_anon_client):
        self.client = client or get_admin_client()
        self._anon_client_factory = anon_client_factory

    def sign_up(
        self,
        email: str,
        password: str,
        full_name: str,
        phone_number: str,
        business_name: Optional[str] = None,
    ) -> dict:
        """
        Create the auth user and seed the account.

        Profile and AI settings are upserted on their keys and the default
        questions are only inserted when the user has none, so a retried
        sign-up never duplicates rows.
        """
        email = email.strip().lower()
        anon = self._anon_client_factory()

        try:
            response = anon.auth.sign_up({
                "email": email,
                "password": password,
                "options": {
                    "email_redirect_to": f"{SITE_URL}/auth/callback",
                    "data": {
                        "full_name": full_name,
                        "phone_number": phone_number,
                    },
                },
            })
        except Exception as e:
            logger.warning(f"Sign-up failed for {mask_email(email)}: {e}")
            raise ValidationError(str(e) or "Sign up failed") from e

        if not response or not response.user:
            raise ValidationError("Sign up failed")

        user_id = response.user.id
        self._seed_account(user_id, email, full_name, phone_number, business_name)

        logger.info(f"Signed up user {mask_user_id(user_id)} ({mask_email(email)})")

        session = response.session
        return {
            "user": {"id": user_id, "email": email},
            "session": self._session_payload(session),
            "requiresConfirmation": session is None,
        }

    def _seed_account(
        self,
        user_id: str,
        email: str,
        full_name: str,
        phone_number: str,
        business_name: Optional[str],
    ) -> None:
        self.client.table("profiles").upsert({
            "id": user_id,
            "email": email,
            "full_name": full_name,
            "phone_number": phone_number,
            "business_name": business_name,
        }, on_conflict="id").execute()

        self.client.table("ai_settings").upsert({
            "user_id": user_id,
            "ai_name": DEFAULT_AI_NAME,
            "greeting_script": DEFAULT_GREETING.format(full_name=full_name),
            "summary_email": email,
        }, on_conflict="user_id").execute()

        existing = (
            self.client.table("qualification_questions")
            .select("id")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if existing.data:
            return

        self.client.table("qualification_questions").insert([
            {
                "user_id": user_id,
                "question_text": text.format(full_name=full_name),
                "position": position,
            }
            for position, text in enumerate(DEFAULT_QUESTIONS, start=1)
        ]).execute()

    def sign_in(self, email: str, password: str) -> dict:
        """Password sign-in. Returns the session tokens."""
        anon = self._anon_client_factory()

        try:
            response = anon.auth.sign_in_with_password({
                "email": email.strip().lower(),
                "password": password,
            })
        except Exception as e:
            logger.info(f"Sign-in failed for {mask_email(email)}")
            raise NotAuthenticatedError("Invalid email or password") from e

        if not response or not response.session:
            raise NotAuthenticatedError("Invalid email or password")

        return {
            "user": {"id": response.user.id, "email": response.user.email},
            "session": self._session_payload(response.session),
        }

    def sign_out(self, token: str) -> dict:
        """Revoke the session behind this access token."""
        self.client.auth.admin.sign_out(token)
        return {"success": True}

    def reset_password(self, email: str) -> dict:
        """
        Send a password reset email.
        Always reports success so the endpoint cannot reveal which accounts exist.
        """
        anon = self._anon_client_factory()
        try:
            anon.auth.reset_password_for_email(
                email.strip().lower(),
                {"redirect_to": f"{SITE_URL}/auth/reset-password"},
            )
        except Exception as e:
            logger.warning(f"Password reset failed for {mask_email(email)}: {e}")

        return {"success": True}

    def update_password(self, user_id: str, password: str) -> dict:
        self.client.auth.admin.update_user_by_id(user_id, {"password": password})
        logger.info(f"Password updated for {mask_user_id(user_id)}")
        return {"success": True}

    @staticmethod
    def _session_payload(session) -> Optional[dict]:
        if session is None:
            return None
        return {
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expires_at": getattr(session, "expires_at", None),
        }
