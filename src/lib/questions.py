"""
Qualification questions service.
Ordered list of questions the assistant asks callers, one list per user.

Every query filters on the authenticated user's ID. The admin client
bypasses RLS, so an ID from another account simply matches nothing.
"""

import logging

from ..db import get_admin_client, first_row
from .errors import NotFoundError, ValidationError
from .logger import mask_user_id

logger = logging.getLogger(__name__)


class QuestionService:

    def __init__(self, client=None):
        self.client = client or get_admin_client()

    def get_questions(self, user_id: str) -> list[dict]:
        result = (
            self.client.table("qualification_questions")
            .select("id, question_text, position")
            .eq("user_id", user_id)
            .order("position")
            .execute()
        )
        return result.data or []

    def add_question(self, user_id: str, question_text: str) -> dict:
        """Append a question after the current last one."""
        text = (question_text or "").strip()
        if not text:
            raise ValidationError("Question text is required")

        last = (
            self.client.table("qualification_questions")
            .select("position")
            .eq("user_id", user_id)
            .order("position", desc=True)
            .limit(1)
            .execute()
        )
        row = first_row(last)
        position = (row["position"] + 1) if row else 1

        result = (
            self.client.table("qualification_questions")
            .insert({
                "user_id": user_id,
                "question_text": text,
                "position": position,
            })
            .execute()
        )
        return first_row(result)

    def update_question(self, user_id: str, question_id: str, question_text: str) -> dict:
        text = (question_text or "").strip()
        if not text:
            raise ValidationError("Question text is required")

        result = (
            self.client.table("qualification_questions")
            .update({"question_text": text})
            .eq("id", question_id)
            .eq("user_id", user_id)
            .execute()
        )

        row = first_row(result)
        if not row:
            logger.info(f"Question update matched nothing for {mask_user_id(user_id)}")
            raise NotFoundError("Question not found")
        return row

    def delete_question(self, user_id: str, question_id: str) -> dict:
        result = (
            self.client.table("qualification_questions")
            .delete()
            .eq("id", question_id)
            .eq("user_id", user_id)
            .execute()
        )

        if not result.data:
            raise NotFoundError("Question not found")
        return {"success": True}
