"""
FAQ feedback: "was this answer helpful?" votes and their analytics.
"""

import logging
import time
import uuid
from typing import Optional

from ..db import get_admin_client, first_row
from ..models import FeedbackValue
from .errors import ValidationError

logger = logging.getLogger(__name__)

RECENT_FEEDBACK_LIMIT = 50

# Questions with at least this many votes and a lower helpful ratio get flagged
MIN_VOTES_FOR_INSIGHT = 3
HELPFUL_RATIO_THRESHOLD = 0.6

# Columns safe to hand to an anonymous caller
PUBLIC_FIELDS = ("id", "question_id", "feedback", "timestamp", "created_at")


def generate_feedback_id() -> str:
    return f"feedback_{int(time.time() * 1000)}_{uuid.uuid4()}"


def _percentage(part: int, total: int) -> int:
    # Half rounds up: 1 of 8 is 13
    return int(part / total * 100 + 0.5) if total else 0


class FeedbackService:

    def __init__(self, client=None):
        self.client = client or get_admin_client()

    def record_feedback(
        self,
        question_id: Optional[str],
        feedback: Optional[str],
        timestamp: Optional[str],
        user_agent: Optional[str] = None,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> dict:
        if not question_id or not feedback or not timestamp:
            raise ValidationError("Missing required fields: questionId, feedback, timestamp")

        if feedback not in {v.value for v in FeedbackValue}:
            raise ValidationError('Invalid feedback value. Must be "helpful" or "not_helpful"')

        feedback_id = generate_feedback_id()

        result = (
            self.client.table("faq_feedback")
            .insert({
                "id": feedback_id,
                "question_id": question_id,
                "feedback": feedback,
                "timestamp": timestamp,
                "user_agent": user_agent,
                "session_id": session_id,
                "ip_address": ip_address or "unknown",
                "referrer": referrer,
            })
            .execute()
        )
        stored = first_row(result) or {}

        logger.info(f"FAQ feedback recorded: {question_id} -> {feedback}")
        return {
            "success": True,
            "message": "Feedback recorded successfully",
            "feedbackId": stored.get("id", feedback_id),
        }

    def feedback_analytics(self, question_id: Optional[str] = None) -> dict:
        """
        Totals, per-question insights (least helpful first) and the votes.
        Votes carry no visitor details (IP, session, user agent, referrer).
        Unfiltered, only the most recent votes are returned.
        """
        query = (
            self.client.table("faq_feedback")
            .select(", ".join(PUBLIC_FIELDS))
            .order("created_at", desc=True)
        )
        if question_id:
            query = query.eq("question_id", question_id)
        rows = [
            {field: row.get(field) for field in PUBLIC_FIELDS}
            for row in query.execute().data or []
        ]

        helpful = sum(1 for row in rows if row.get("feedback") == FeedbackValue.HELPFUL.value)
        total = len(rows)

        by_question = {}
        for row in rows:
            stats = by_question.setdefault(row["question_id"], {
                "questionId": row["question_id"],
                "helpful": 0,
                "notHelpful": 0,
                "total": 0,
            })
            stats["total"] += 1
            if row.get("feedback") == FeedbackValue.HELPFUL.value:
                stats["helpful"] += 1
            else:
                stats["notHelpful"] += 1

        insights = []
        for stats in by_question.values():
            ratio = stats["helpful"] / stats["total"]
            insights.append({
                **stats,
                "helpfulPercentage": _percentage(stats["helpful"], stats["total"]),
                "needsImprovement": stats["total"] >= MIN_VOTES_FOR_INSIGHT and ratio < HELPFUL_RATIO_THRESHOLD,
            })
        insights.sort(key=lambda q: q["helpfulPercentage"])

        return {
            "analytics": {
                "totalFeedback": total,
                "helpful": helpful,
                "notHelpful": total - helpful,
                "helpfulPercentage": _percentage(helpful, total),
            },
            "questionInsights": insights,
            "feedback": rows if question_id else rows[:RECENT_FEEDBACK_LIMIT],
        }
