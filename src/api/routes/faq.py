"""
FAQ feedback routes (public).

Endpoints:
- POST /feedback - Record a helpful / not helpful vote
- GET /feedback - Analytics (?questionId= to filter)
"""

from typing import Optional

from fastapi import APIRouter, Query, Request

from ...lib import FeedbackService
from ...lib.rate_limit import get_client_ip
from ...models import FeedbackRequest


router = APIRouter()


@router.post("/feedback")
async def record_feedback(body: FeedbackRequest, request: Request):
    """
    Body:
    - questionId, feedback ("helpful" | "not_helpful"), timestamp
    - userAgent, sessionId (optional)

    Returns:
    - success, message, feedbackId
    """
    service = FeedbackService()
    return service.record_feedback(
        question_id=body.questionId,
        feedback=body.feedback,
        timestamp=body.timestamp,
        user_agent=body.userAgent,
        session_id=body.sessionId,
        ip_address=get_client_ip(request),
        referrer=request.headers.get("referer"),
    )


@router.get("/feedback")
async def feedback_analytics(
    question_id: Optional[str] = Query(default=None, alias="questionId")
):
    """
    Returns:
    - analytics: totalFeedback, helpful, notHelpful, helpfulPercentage
    - questionInsights: per question, least helpful first
    - feedback: the votes (50 most recent when unfiltered)
    """
    service = FeedbackService()
    return service.feedback_analytics(question_id)
