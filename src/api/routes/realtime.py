"""
Real-time routes.

Endpoints:
- GET /call-updates - SSE stream of new-call / call-updated events
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ...lib import call_events, get_current_user_for_stream
from ...lib.realtime import call_update_stream


router = APIRouter()


@router.get("/call-updates")
async def call_updates(
    request: Request,
    user: dict = Depends(get_current_user_for_stream)
):
    """
    Server-Sent Events for the signed-in user.

    Auth: Authorization header, or ?access_token= for EventSource.
    First event is {"type": "connected"}; heartbeats follow while idle.
    """
    return StreamingResponse(
        call_update_stream(user["id"], call_events, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
