#!/usr/bin/env python3
"""
Smoke Test B: Qualification Questions + AI Settings

Validates:
1. Questions come back ordered by position
2. A new question goes after the current last one
3. Another user's question ID is a 404, never a silent success
4. Timezones are validated against the tz database
5. A greeting change is pushed to the assistant; a failed push keeps the save
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.lib.ai_settings import AISettingsService, validate_timezone
from src.lib.errors import NotFoundError, UpstreamError, ValidationError
from src.lib.questions import QuestionService


@pytest.fixture
def questions(db, user_id, other_user_id):
    db.seed(
        "qualification_questions",
        {"user_id": user_id, "question_text": "Second?", "position": 2},
        {"user_id": user_id, "question_text": "First?", "position": 1},
        {"user_id": other_user_id, "question_text": "Not yours", "position": 1},
    )
    return QuestionService(client=db)


class TestQuestions:

    def test_ordered_by_position(self, questions, user_id):
        result = questions.get_questions(user_id)

        assert [q["question_text"] for q in result] == ["First?", "Second?"]

    def test_add_appends(self, questions, user_id):
        added = questions.add_question(user_id, "  Third?  ")

        assert added["position"] == 3
        assert added["question_text"] == "Third?"

    def test_add_first_question(self, db):
        service = QuestionService(client=db)

        assert service.add_question("33333333-3333-3333-3333-333333333333", "Hello?")["position"] == 1

    def test_blank_question_rejected(self, questions, user_id):
        with pytest.raises(ValidationError):
            questions.add_question(user_id, "   ")

    def test_update_own_question(self, db, questions, user_id):
        own = db.rows("qualification_questions", user_id=user_id, position=1)[0]

        updated = questions.update_question(user_id, own["id"], "Reworded?")

        assert updated["question_text"] == "Reworded?"

    def test_update_other_users_question_is_404(self, db, questions, user_id, other_user_id):
        foreign = db.rows("qualification_questions", user_id=other_user_id)[0]

        with pytest.raises(NotFoundError):
            questions.update_question(user_id, foreign["id"], "Hijacked")

        assert db.rows("qualification_questions", id=foreign["id"])[0]["question_text"] == "Not yours"

    def test_delete_other_users_question_is_404(self, db, questions, user_id, other_user_id):
        foreign = db.rows("qualification_questions", user_id=other_user_id)[0]

        with pytest.raises(NotFoundError):
            questions.delete_question(user_id, foreign["id"])

        assert len(db.rows("qualification_questions", user_id=other_user_id)) == 1

    def test_delete_own_question(self, db, questions, user_id):
        own = db.rows("qualification_questions", user_id=user_id, position=2)[0]

        assert questions.delete_question(user_id, own["id"]) == {"success": True}
        assert len(db.rows("qualification_questions", user_id=user_id)) == 1


class FailingVapi:

    def __init__(self):
        self.attempts = 0

    async def update_assistant(self, assistant_id, payload):
        self.attempts += 1
        raise UpstreamError("Voice AI request failed (500)")


@pytest.fixture
def settings_row(db, user_id):
    return db.seed("ai_settings", {
        "user_id": user_id,
        "ai_name": "Ava",
        "greeting_script": "Hello!",
        "timezone": "America/New_York",
        "vapi_assistant_id": "assistant-0001",
    })[0]


class TestAISettings:

    def test_validate_timezone(self):
        assert validate_timezone("Europe/Berlin") == "Europe/Berlin"
        with pytest.raises(ValidationError):
            validate_timezone("Mars/Olympus_Mons")

    def test_invalid_timezone_not_saved(self, db, settings_row, user_id, vapi):
        service = AISettingsService(client=db, vapi=vapi)

        with pytest.raises(ValidationError):
            asyncio.run(service.update_settings(user_id, timezone="Nowhere/Land"))

        assert db.rows("ai_settings", user_id=user_id)[0]["timezone"] == "America/New_York"

    def test_greeting_synced_to_assistant(self, db, settings_row, user_id, vapi):
        service = AISettingsService(client=db, vapi=vapi)

        saved = asyncio.run(service.update_settings(user_id, greeting_script="Welcome in!"))

        assert saved["greeting_script"] == "Welcome in!"
        assert ("update_assistant", "assistant-0001", {"firstMessage": "Welcome in!"}) in vapi.requests

    def test_unchanged_greeting_not_synced(self, db, settings_row, user_id, vapi):
        service = AISettingsService(client=db, vapi=vapi)

        asyncio.run(service.update_settings(user_id, greeting_script="Hello!", ai_name="Max"))

        assert vapi.requests == []
        assert db.rows("ai_settings", user_id=user_id)[0]["ai_name"] == "Max"

    def test_failed_sync_keeps_saved_settings(self, db, settings_row, user_id):
        failing = FailingVapi()
        service = AISettingsService(client=db, vapi=failing)

        saved = asyncio.run(service.update_settings(user_id, greeting_script="New greeting"))

        assert failing.attempts == 1
        assert saved["greeting_script"] == "New greeting"

    def test_empty_update_rejected(self, db, settings_row, user_id, vapi):
        service = AISettingsService(client=db, vapi=vapi)

        with pytest.raises(ValidationError):
            asyncio.run(service.update_settings(user_id))

    def test_welcome_complete(self, db, settings_row, user_id, other_user_id):
        service = AISettingsService(client=db)

        assert service.complete_welcome(user_id) == {"success": True}
        assert db.rows("ai_settings", user_id=user_id)[0]["welcome_completed"] is True
        with pytest.raises(NotFoundError):
            service.complete_welcome(other_user_id)


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
