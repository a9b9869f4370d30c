"""
Assistant routes.

Endpoints:
- GET /info - The user's assistant (or null)
- POST /create - Create the assistant (active subscription required)
- PATCH / - Update first message / voice
- GET /knowledge - Knowledge base state
- POST /knowledge/sync - Attach files via the query tool
- POST /knowledge/detach - Remove one file, or all
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...lib import AssistantService, ValidationError, get_current_user, verify_subscription
from ...lib.vapi import validate_assistant_id
from ...models import AssistantUpdateRequest, KnowledgeAttachRequest


router = APIRouter()


@router.get("/info")
async def get_assistant_info(
    user: dict = Depends(get_current_user)
):
    """
    Returns:
    - assistant: assistant JSON from the voice-AI platform, or null
    """
    service = AssistantService()
    return await service.get_info(user["id"])


@router.post("/create")
async def create_assistant(
    user: dict = Depends(verify_subscription)
):
    """
    Idempotent: returns the existing assistant ID when there is one.

    Returns:
    - status: created | exists
    - assistantId
    """
    service = AssistantService()
    return await service.create_for_user(user["id"])


@router.patch("")
async def update_assistant(
    body: AssistantUpdateRequest,
    user: dict = Depends(get_current_user)
):
    """403 when assistant_id isn't the caller's assistant."""
    service = AssistantService()
    return await service.update_first_message(
        user["id"],
        body.assistant_id,
        body.first_message,
        body.voice_id,
    )


@router.get("/knowledge")
async def get_knowledge(
    assistant_id: str = Query(..., alias="assistantId"),
    user: dict = Depends(get_current_user)
):
    """
    Returns:
    - toolId, fileIds
    - files: [{id, name, size}]
    """
    if not validate_assistant_id(assistant_id):
        raise ValidationError("Invalid assistantId")
    service = AssistantService()
    return await service.get_knowledge(user["id"], assistant_id)


@router.post("/knowledge/sync")
async def attach_knowledge(
    body: KnowledgeAttachRequest,
    user: dict = Depends(get_current_user)
):
    service = AssistantService()
    return await service.attach_knowledge(user["id"], body.file_ids)


@router.post("/knowledge/detach")
async def detach_knowledge(
    file_id: Optional[str] = Query(default=None, alias="fileId"),
    user: dict = Depends(get_current_user)
):
    service = AssistantService()
    return await service.detach_knowledge(user["id"], file_id)
