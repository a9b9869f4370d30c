#!/usr/bin/env python3
"""
Smoke Test A: Sign-Up Seeding

Validates:
1. Sign-up creates exactly one profile and one AI settings row
2. Three default qualification questions at positions 1-3
3. Greeting and questions are personalised with the agent's name
4. A retried sign-up does not duplicate anything
5. Email-confirmation projects get requiresConfirmation instead of a session
6. Sign-in / password flows map failures to 401 and never leak account existence
"""

import sys
from pathlib import Path

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fakes import FakeAuth, FakeSupabase
from src.lib.auth import DEFAULT_AI_NAME, DEFAULT_QUESTIONS, AuthService
from src.lib.errors import NotAuthenticatedError


def make_service(db):
    # The anon client shares the fake auth so sign-in sees sign-up's users
    return AuthService(client=db, anon_client_factory=lambda: db)


def sign_up(service, email="Agent@Example.com"):
    return service.sign_up(
        email=email,
        password="correct-horse",
        full_name="Dana Realtor",
        phone_number="+1 (212) 555-0100",
        business_name="Dana Homes",
    )


class TestSignUpSeeding:

    def test_seeds_one_profile_and_settings(self, db):
        result = sign_up(make_service(db))
        user_id = result["user"]["id"]

        print(f"  Profiles: {len(db.rows('profiles'))}, settings: {len(db.rows('ai_settings'))}")

        assert len(db.rows("profiles", id=user_id)) == 1
        assert len(db.rows("ai_settings", user_id=user_id)) == 1

        profile = db.rows("profiles", id=user_id)[0]
        assert profile["email"] == "agent@example.com"
        assert profile["business_name"] == "Dana Homes"

        settings = db.rows("ai_settings", user_id=user_id)[0]
        assert settings["ai_name"] == DEFAULT_AI_NAME
        assert "Dana Realtor" in settings["greeting_script"]
        assert settings["summary_email"] == "agent@example.com"

    def test_three_default_questions_in_order(self, db):
        result = sign_up(make_service(db))
        user_id = result["user"]["id"]

        questions = sorted(db.rows("qualification_questions", user_id=user_id), key=lambda q: q["position"])

        assert [q["position"] for q in questions] == [1, 2, 3]
        assert len(questions) == len(DEFAULT_QUESTIONS)
        assert "Dana Realtor" in questions[2]["question_text"]
        assert "{full_name}" not in "".join(q["question_text"] for q in questions)

    def test_retry_does_not_duplicate(self, db):
        service = make_service(db)
        first = sign_up(service)
        second = sign_up(service)

        user_id = first["user"]["id"]
        assert second["user"]["id"] == user_id
        assert len(db.rows("profiles", id=user_id)) == 1
        assert len(db.rows("ai_settings", user_id=user_id)) == 1
        assert len(db.rows("qualification_questions", user_id=user_id)) == 3

    def test_session_returned_without_confirmation(self, db):
        result = sign_up(make_service(db))

        assert result["requiresConfirmation"] is False
        assert result["session"]["access_token"].startswith("access-")

    def test_confirmation_required(self):
        db = FakeSupabase(auth=FakeAuth(confirm_email=True))
        result = sign_up(make_service(db))

        assert result["requiresConfirmation"] is True
        assert result["session"] is None


class TestPasswordFlows:

    def test_sign_in_after_sign_up(self, db):
        service = make_service(db)
        created = sign_up(service)

        result = service.sign_in("agent@example.com", "correct-horse")

        assert result["user"]["id"] == created["user"]["id"]
        assert result["session"]["refresh_token"]

    def test_wrong_password_is_401(self, db):
        service = make_service(db)
        sign_up(service)

        with pytest.raises(NotAuthenticatedError) as exc:
            service.sign_in("agent@example.com", "wrong")
        assert exc.value.status_code == 401

    def test_reset_password_always_succeeds(self, db):
        service = make_service(db)

        assert service.reset_password("nobody@example.com") == {"success": True}
        assert db.auth.reset_requests == ["nobody@example.com"]

    def test_update_password_goes_through_admin_api(self, db, user_id):
        service = make_service(db)

        assert service.update_password(user_id, "n3w-password") == {"success": True}
        assert db.auth.admin.updated == [(user_id, {"password": "n3w-password"})]


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
