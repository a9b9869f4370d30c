"""
Profile service.
Profile reads/updates plus the public "is this email taken?" check used by
the sign-up form.
"""

import logging
import re
from typing import Optional

from ..db import get_admin_client, first_row
from .errors import NotFoundError, ValidationError
from .logger import mask_email, mask_user_id

logger = logging.getLogger(__name__)

MAX_EMAIL_LENGTH = 254

EMAIL_PATTERN = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9._+-]*[a-zA-Z0-9])?"
    r"@[a-zA-Z0-9]([a-zA-Z0-9.-]*[a-zA-Z0-9])?\.[a-zA-Z]{2,}$"
)

PROFILE_FIELDS = ("full_name", "email", "phone_number", "business_name")


def normalize_email(raw: Optional[str]) -> Optional[str]:
    """Trim + lowercase; None when the value cannot be an email address."""
    if not raw:
        return None
    email = raw.strip().lower()
    if not email or len(email) > MAX_EMAIL_LENGTH:
        return None
    if not EMAIL_PATTERN.match(email):
        return None
    return email


class ProfileService:
    """Reads and writes the profiles table for one user at a time."""

    def __init__(self, client=None):
        self.client = client or get_admin_client()

    def get_profile(self, user_id: str) -> dict:
        result = (
            self.client.table("profiles")
            .select("id, email, full_name, phone_number, business_name, stripe_customer_id")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )

        profile = first_row(result)
        if not profile:
            raise NotFoundError("Profile not found")
        return profile

    def update_profile(self, user: dict, fields: dict) -> dict:
        """
        Update the given profile fields.
        An email change is pushed to Supabase Auth first so the login
        address and the profile never disagree.
        """
        updates = {k: v for k, v in fields.items() if k in PROFILE_FIELDS and v is not None}
        if not updates:
            raise ValidationError("No fields to update")

        if "email" in updates:
            updates["email"] = updates["email"].strip().lower()
            if updates["email"] != (user.get("email") or "").lower():
                self.client.auth.admin.update_user_by_id(user["id"], {"email": updates["email"]})
                logger.info(f"Email changed for {mask_user_id(user['id'])} to {mask_email(updates['email'])}")

        result = (
            self.client.table("profiles")
            .update(updates)
            .eq("id", user["id"])
            .execute()
        )

        profile = first_row(result)
        if not profile:
            raise NotFoundError("Profile not found")
        return profile

    def email_exists(self, raw_email: Optional[str]) -> bool:
        """
        True if a profile uses this address.
        Invalid or over-long input returns False without touching the database.
        """
        email = normalize_email(raw_email)
        if email is None:
            return False

        result = (
            self.client.table("profiles")
            .select("id")
            .eq("email", email)
            .limit(1)
            .execute()
        )
        return bool(result.data)
