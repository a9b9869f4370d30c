"""
Call routes. Records come live from the voice-AI platform.

Endpoints:
- GET /recent - Recent calls (cached briefly)
- GET /metrics - Dashboard KPIs
- GET /{call_id} - One call with its stored analysis
"""

from fastapi import APIRouter, Depends, Query

from ...lib import CallService, get_current_user


router = APIRouter()


@router.get("/recent")
async def recent_calls(
    limit: int = Query(default=10, ge=1, le=100),
    user: dict = Depends(get_current_user)
):
    service = CallService()
    return {"calls": await service.recent_calls(user["id"], limit=limit)}


@router.get("/metrics")
async def dashboard_metrics(
    days: int = Query(default=30, ge=1, le=365),
    user: dict = Depends(get_current_user)
):
    """
    Returns:
    - total, answered, missed
    - conversionRate: 0-1
    - avgDuration: seconds
    - from, to, timezone: the window used
    """
    service = CallService()
    return await service.dashboard_metrics(user["id"], days=days)


@router.get("/{call_id}")
async def call_details(
    call_id: str,
    user: dict = Depends(get_current_user)
):
    """404 for calls that aren't the user's."""
    service = CallService()
    return await service.call_details(user["id"], call_id)
