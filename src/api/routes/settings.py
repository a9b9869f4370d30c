"""
AI settings routes.

Endpoints:
- GET / - Current settings
- PUT / - Update settings (greeting is synced to the assistant)
- POST /welcome-complete - Mark the welcome flow as done
"""

from fastapi import APIRouter, Depends

from ...lib import AISettingsService, get_current_user
from ...models import AISettingsUpdate


router = APIRouter()


@router.get("")
async def get_settings(
    user: dict = Depends(get_current_user)
):
    service = AISettingsService()
    return service.get_settings(user["id"])


@router.put("")
async def update_settings(
    body: AISettingsUpdate,
    user: dict = Depends(get_current_user)
):
    """
    Body (all optional):
    - ai_name, greeting_script, summary_email
    - timezone: IANA name, e.g. America/New_York
    - email_notifications: bool

    Returns the saved settings.
    """
    service = AISettingsService()
    return await service.update_settings(user["id"], **body.model_dump())


@router.post("/welcome-complete")
async def complete_welcome(
    user: dict = Depends(get_current_user)
):
    service = AISettingsService()
    return service.complete_welcome(user["id"])
