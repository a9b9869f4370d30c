"""
Qualification question routes.

Endpoints:
- GET / - Questions in order
- POST / - Append a question
- PUT /{question_id} - Edit text
- DELETE /{question_id} - Remove
"""

from fastapi import APIRouter, Depends

from ...lib import QuestionService, get_current_user
from ...models import QuestionCreate, QuestionUpdate


router = APIRouter()


@router.get("")
async def list_questions(
    user: dict = Depends(get_current_user)
):
    """
    Returns:
    - questions: [{id, question_text, position}] ordered by position
    """
    service = QuestionService()
    return {"questions": service.get_questions(user["id"])}


@router.post("")
async def add_question(
    body: QuestionCreate,
    user: dict = Depends(get_current_user)
):
    service = QuestionService()
    return service.add_question(user["id"], body.question_text)


@router.put("/{question_id}")
async def update_question(
    question_id: str,
    body: QuestionUpdate,
    user: dict = Depends(get_current_user)
):
    """404 when the question doesn't exist or belongs to someone else."""
    service = QuestionService()
    return service.update_question(user["id"], question_id, body.question_text)


@router.delete("/{question_id}")
async def delete_question(
    question_id: str,
    user: dict = Depends(get_current_user)
):
    service = QuestionService()
    return service.delete_question(user["id"], question_id)
