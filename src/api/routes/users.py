"""
User profile routes.

Endpoints:
- GET /profile - Current user's profile
- PUT /profile - Update name, email, phone, business name
- GET /check-email-exists - Sign-up form helper (public, rate limited)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...config import EMAIL_CHECK_RPM
from ...lib import ProfileService, ValidationError, get_current_user
from ...lib.rate_limit import create_rate_limiter
from ...models import ProfileUpdate


router = APIRouter()

email_check_limit = create_rate_limiter(EMAIL_CHECK_RPM, 60, "check-email")


@router.get("/profile")
async def get_profile(
    user: dict = Depends(get_current_user)
):
    """
    Returns:
    - id, email, full_name, phone_number, business_name, stripe_customer_id
    """
    service = ProfileService()
    return service.get_profile(user["id"])


@router.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    user: dict = Depends(get_current_user)
):
    """
    Update profile fields. Only fields present in the body change.
    Changing the email also changes the login email.
    """
    service = ProfileService()
    return service.update_profile(user, body.model_dump(exclude_none=True))


@router.get("/check-email-exists", dependencies=[Depends(email_check_limit)])
async def check_email_exists(
    email: Optional[str] = Query(default=None)
):
    """
    Returns:
    - exists: whether an account uses this email

    Malformed addresses report exists=false without a lookup.
    """
    if email is None or not email.strip():
        raise ValidationError("Email parameter is required")

    service = ProfileService()
    return {"exists": service.email_exists(email)}
