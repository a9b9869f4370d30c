#!/usr/bin/env python3
"""
Smoke Test I: FAQ Feedback

Validates:
1. questionId, feedback and timestamp are required
2. feedback must be "helpful" or "not_helpful"
3. Stored IDs look like feedback_<ms>_<uuid>
4. Analytics totals and per-question insights (least helpful first)
5. needsImprovement needs 3+ votes under 60% helpful
6. Unfiltered listings return only the 50 most recent votes
7. Percentages round half up
8. The public listing never exposes IP, session, user agent or referrer
"""

import re
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.main import app
from src.api.routes import faq as faq_routes
from src.lib.errors import ValidationError
from src.lib.feedback import RECENT_FEEDBACK_LIMIT, FeedbackService, generate_feedback_id

FEEDBACK_ID = re.compile(r"^feedback_\d{13}_[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def vote(service, question_id, value):
    return service.record_feedback(question_id, value, "2025-01-01T00:00:00Z")


class TestRecordFeedback:

    @pytest.mark.parametrize("question_id,feedback,timestamp", [
        (None, "helpful", "2025-01-01T00:00:00Z"),
        ("q1", None, "2025-01-01T00:00:00Z"),
        ("q1", "helpful", None),
    ])
    def test_required_fields(self, db, question_id, feedback, timestamp):
        with pytest.raises(ValidationError):
            FeedbackService(client=db).record_feedback(question_id, feedback, timestamp)
        assert db.queries == []

    def test_invalid_value(self, db):
        with pytest.raises(ValidationError) as exc:
            vote(FeedbackService(client=db), "q1", "meh")
        assert "helpful" in exc.value.message

    def test_recorded(self, db):
        service = FeedbackService(client=db)

        result = service.record_feedback(
            "q1", "helpful", "2025-01-01T00:00:00Z",
            user_agent="pytest", session_id="s1", ip_address=None, referrer="https://spoqen.com/faq",
        )

        assert result["success"] is True
        assert FEEDBACK_ID.match(result["feedbackId"])
        row = db.rows("faq_feedback")[0]
        assert row["id"] == result["feedbackId"]
        assert row["ip_address"] == "unknown"
        assert row["referrer"] == "https://spoqen.com/faq"

    def test_generated_ids_unique(self):
        assert generate_feedback_id() != generate_feedback_id()


class TestAnalytics:

    def test_totals_and_insights(self, db):
        service = FeedbackService(client=db)
        for value in ["helpful", "not_helpful", "not_helpful", "not_helpful"]:
            vote(service, "q-bad", value)
        for value in ["helpful", "helpful", "helpful"]:
            vote(service, "q-good", value)
        vote(service, "q-new", "not_helpful")

        result = service.feedback_analytics()

        print(f"  Analytics: {result['analytics']}")
        assert result["analytics"] == {
            "totalFeedback": 8,
            "helpful": 4,
            "notHelpful": 4,
            "helpfulPercentage": 50,
        }

        insights = {q["questionId"]: q for q in result["questionInsights"]}
        assert [q["questionId"] for q in result["questionInsights"]][-1] == "q-good"
        assert insights["q-bad"]["helpfulPercentage"] == 25
        assert insights["q-bad"]["needsImprovement"] is True
        assert insights["q-good"]["needsImprovement"] is False
        # One vote is not enough to flag a question
        assert insights["q-new"]["needsImprovement"] is False

    def test_percentage_rounds_half_up(self, db):
        service = FeedbackService(client=db)
        vote(service, "q1", "helpful")
        for _ in range(7):
            vote(service, "q1", "not_helpful")

        result = service.feedback_analytics()

        # 1 of 8 is 12.5%
        assert result["analytics"]["helpfulPercentage"] == 13
        assert result["questionInsights"][0]["helpfulPercentage"] == 13

    def test_filter_by_question(self, db):
        service = FeedbackService(client=db)
        vote(service, "q1", "helpful")
        vote(service, "q2", "not_helpful")

        result = service.feedback_analytics("q1")

        assert result["analytics"]["totalFeedback"] == 1
        assert [row["question_id"] for row in result["feedback"]] == ["q1"]

    def test_unfiltered_list_is_most_recent(self, db):
        service = FeedbackService(client=db)
        for _ in range(RECENT_FEEDBACK_LIMIT + 5):
            vote(service, "q1", "helpful")
        newest = db.rows("faq_feedback")[-1]["id"]
        oldest = db.rows("faq_feedback")[0]["id"]

        result = service.feedback_analytics()

        ids = [row["id"] for row in result["feedback"]]
        assert len(ids) == RECENT_FEEDBACK_LIMIT
        assert ids[0] == newest
        assert oldest not in ids
        assert result["analytics"]["totalFeedback"] == RECENT_FEEDBACK_LIMIT + 5


class TestFeedbackEndpoint:

    def test_post_and_get(self, db, monkeypatch):
        monkeypatch.setattr(faq_routes, "FeedbackService", lambda: FeedbackService(client=db))
        client = TestClient(app)

        created = client.post(
            "/faq/feedback",
            json={"questionId": "q1", "feedback": "helpful", "timestamp": "2025-01-01T00:00:00Z"},
            headers={"X-Forwarded-For": "203.0.113.9", "User-Agent": "pytest"},
        )
        rejected = client.post("/faq/feedback", json={"questionId": "q1", "feedback": "helpful"})
        listing = client.get("/faq/feedback", params={"questionId": "q1"})

        assert created.status_code == 200
        assert db.rows("faq_feedback")[0]["ip_address"] == "203.0.113.9"
        assert rejected.status_code == 400
        assert rejected.json() == {"error": "Missing required fields: questionId, feedback, timestamp"}
        assert listing.json()["analytics"]["helpful"] == 1

    def test_listing_hides_visitor_details(self, db, monkeypatch):
        monkeypatch.setattr(faq_routes, "FeedbackService", lambda: FeedbackService(client=db))
        client = TestClient(app)

        client.post(
            "/faq/feedback",
            json={
                "questionId": "q1",
                "feedback": "helpful",
                "timestamp": "2025-01-01T00:00:00Z",
                "sessionId": "sess-secret",
                "userAgent": "pytest",
            },
            headers={"X-Forwarded-For": "203.0.113.9", "Referer": "https://spoqen.com/faq"},
        )
        rows = client.get("/faq/feedback").json()["feedback"]

        assert db.rows("faq_feedback")[0]["session_id"] == "sess-secret"
        assert len(rows) == 1
        assert set(rows[0]) == {"id", "question_id", "feedback", "timestamp", "created_at"}
        assert "203.0.113.9" not in str(rows)
        assert "sess-secret" not in str(rows)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
