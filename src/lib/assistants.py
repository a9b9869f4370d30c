"""
Assistant service.
Each user owns at most one assistant on the voice-AI platform; its ID lives
in ai_settings.vapi_assistant_id. Ownership is always checked against that
column before an assistant is read or changed.

Knowledge base: uploaded files are exposed to the assistant through a single
"query" tool. The tool ID and file IDs are kept in ai_settings and mirrored
in the assistant's metadata.
"""

import logging
import os
from typing import Optional

from ..config import API_URL
from ..db import get_admin_client, first_row
from .errors import AppError, ForbiddenError, NotFoundError, ValidationError
from .logger import mask_user_id
from .vapi import VapiClient, validate_assistant_id

logger = logging.getLogger(__name__)

DEFAULT_MODEL = {"provider": "openai", "model": "gpt-4.1-nano"}
DEFAULT_VOICE = {"provider": "deepgram", "voiceId": "luna"}

ANALYSIS_PLAN = {
    "summaryPrompt": (
        "You are an expert note-taker. You will be given a transcript of a call. "
        "Summarize the call in 2-3 sentences, if applicable."
    ),
    "structuredDataPrompt": (
        "You are an AI assistant that analyzes call transcripts to extract key action "
        "points for real estate agents. Extract the structured data described by the "
        "schema, focusing on what the agent needs to follow up effectively."
    ),
    "structuredDataSchema": {
        "type": "object",
        "properties": {
            "callPurpose": {
                "type": "string",
                "description": "Brief description of the main purpose of the call",
            },
            "sentiment": {
                "type": "string",
                "enum": ["positive", "neutral", "negative"],
                "description": "Overall sentiment of the call",
            },
            "keyPoints": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Important discussion points (1-2 sentences each)",
            },
            "followUpItems": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Specific follow-up actions",
            },
            "urgentConcerns": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Time-sensitive issues needing immediate attention",
            },
        },
        "required": ["callPurpose", "sentiment", "keyPoints", "followUpItems", "urgentConcerns"],
    },
    "successEvaluationPrompt": (
        "You are an expert call evaluator for real estate agents. Determine if the call "
        "was successful: lead qualification, appointment setting or information gathering."
    ),
    "successEvaluationRubric": "PassFail",
}


def build_system_prompt(ai_name: str, agent_name: str, business_name: Optional[str], questions: list[str]) -> str:
    office = business_name or f"{agent_name}'s office"
    lines = [
        f"You are {ai_name}, the AI receptionist for {agent_name}, a real estate agent at {office}.",
        "Answer calls politely, take a message and collect the caller's details.",
        "Ask the following questions, one at a time:",
    ]
    lines.extend(f"{i}. {q}" for i, q in enumerate(questions, start=1))
    lines.append(f"Close by confirming that {agent_name} will call back.")
    return "\n".join(lines)


class AssistantService:

    def __init__(self, client=None, vapi: Optional[VapiClient] = None):
        self.client = client or get_admin_client()
        self._vapi = vapi

    @property
    def vapi(self) -> VapiClient:
        if self._vapi is None:
            self._vapi = VapiClient()
        return self._vapi

    def _settings(self, user_id: str) -> dict:
        settings = first_row(
            self.client.table("ai_settings")
            .select("user_id, ai_name, greeting_script, vapi_assistant_id, knowledge_tool_id, knowledge_file_ids")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
        if not settings:
            raise NotFoundError("AI settings not found")
        return settings

    def _owned_assistant_id(self, user_id: str, assistant_id: Optional[str] = None) -> str:
        """The user's assistant ID; 403 when a different one is requested."""
        if assistant_id is not None and not validate_assistant_id(assistant_id):
            raise ValidationError("Invalid assistant ID")

        owned = self._settings(user_id).get("vapi_assistant_id")
        if not owned:
            raise NotFoundError("No assistant configured")

        if assistant_id is not None and assistant_id.strip() != owned:
            logger.warning(f"{mask_user_id(user_id)} tried to access an assistant they do not own")
            raise ForbiddenError("Assistant does not belong to this user")

        return owned

    async def get_info(self, user_id: str) -> dict:
        assistant_id = self._settings(user_id).get("vapi_assistant_id")
        if not assistant_id:
            return {"assistant": None}

        try:
            assistant = await self.vapi.get_assistant(assistant_id)
        except NotFoundError:
            logger.warning(f"Stored assistant for {mask_user_id(user_id)} no longer exists")
            return {"assistant": None}

        return {"assistant": assistant}

    async def create_for_user(self, user_id: str) -> dict:
        """
        Create the user's assistant from their settings and questions.
        Returns the existing assistant ID when there already is one.
        """
        settings = self._settings(user_id)
        if settings.get("vapi_assistant_id"):
            return {"status": "exists", "assistantId": settings["vapi_assistant_id"]}

        profile = first_row(
            self.client.table("profiles")
            .select("full_name, business_name")
            .eq("id", user_id)
            .limit(1)
            .execute()
        ) or {}

        questions = (
            self.client.table("qualification_questions")
            .select("question_text, position")
            .eq("user_id", user_id)
            .order("position")
            .execute()
        ).data or []

        ai_name = settings.get("ai_name") or "Ava"
        agent_name = profile.get("full_name") or "the agent"

        payload = {
            "name": f"{ai_name} - {agent_name}"[:40],
            "firstMessage": settings.get("greeting_script"),
            "model": {
                **DEFAULT_MODEL,
                "messages": [{
                    "role": "system",
                    "content": build_system_prompt(
                        ai_name,
                        agent_name,
                        profile.get("business_name"),
                        [q["question_text"] for q in questions],
                    ),
                }],
            },
            "voice": DEFAULT_VOICE,
            "analysisPlan": ANALYSIS_PLAN,
            "serverUrl": f"{API_URL}/webhooks/vapi",
            "metadata": {"userId": user_id},
        }

        secret = os.environ.get("VAPI_WEBHOOK_SECRET")
        if secret:
            payload["serverUrlSecret"] = secret

        assistant = await self.vapi.create_assistant(payload)
        assistant_id = (assistant or {}).get("id")
        if not assistant_id:
            raise AppError("Voice AI platform returned no assistant ID", status_code=502)

        (
            self.client.table("ai_settings")
            .update({"vapi_assistant_id": assistant_id})
            .eq("user_id", user_id)
            .execute()
        )

        logger.info(f"Created assistant for {mask_user_id(user_id)}")
        return {"status": "created", "assistantId": assistant_id}

    async def update_first_message(
        self,
        user_id: str,
        assistant_id: str,
        first_message: str,
        voice_id: Optional[str] = None,
    ) -> dict:
        owned = self._owned_assistant_id(user_id, assistant_id)

        first_message = (first_message or "").strip()
        if not first_message:
            raise ValidationError("First message is required")

        payload = {"firstMessage": first_message}
        if voice_id:
            payload["voice"] = {**DEFAULT_VOICE, "voiceId": voice_id}

        assistant = await self.vapi.update_assistant(owned, payload)

        (
            self.client.table("ai_settings")
            .update({"greeting_script": first_message})
            .eq("user_id", user_id)
            .execute()
        )
        return {"success": True, "assistant": assistant}

    async def get_knowledge(self, user_id: str, assistant_id: str) -> dict:
        self._owned_assistant_id(user_id, assistant_id)
        settings = self._settings(user_id)
        file_ids = settings.get("knowledge_file_ids") or []

        files = []
        for file_id in file_ids:
            try:
                meta = await self.vapi.get_file(file_id)
                files.append({"id": file_id, "name": meta.get("name"), "size": meta.get("bytes") or meta.get("size")})
            except AppError as e:
                logger.info(f"File metadata unavailable for {file_id}: {e.message}")
                files.append({"id": file_id})

        return {"toolId": settings.get("knowledge_tool_id"), "fileIds": file_ids, "files": files}

    async def attach_knowledge(self, user_id: str, file_ids: list[str]) -> dict:
        """Point the single knowledge query tool at file_ids and attach it to the assistant."""
        if not isinstance(file_ids, list) or not all(isinstance(f, str) and f.strip() for f in file_ids):
            raise ValidationError("Invalid fileIds: must be an array of non-empty strings")
        if not file_ids:
            return await self.detach_knowledge(user_id)

        assistant_id = self._owned_assistant_id(user_id)
        settings = self._settings(user_id)
        tool_id = settings.get("knowledge_tool_id")
        tool_name = f"kb-{assistant_id}"

        if tool_id:
            await self.vapi.update_query_tool(tool_id, tool_name, file_ids)
        else:
            tool = await self.vapi.create_query_tool(tool_name, file_ids)
            tool_id = (tool or {}).get("id")
            if not tool_id:
                raise AppError("Voice AI platform returned no tool ID", status_code=502)

        assistant = await self.vapi.get_assistant(assistant_id)
        model = dict(assistant.get("model") or {})
        tool_ids = [t for t in (model.get("toolIds") or []) if t != tool_id]
        model["toolIds"] = tool_ids + [tool_id]

        metadata = {**(assistant.get("metadata") or {}), "knowledgeToolId": tool_id, "fileIds": file_ids}
        await self.vapi.update_assistant(assistant_id, {"model": model, "metadata": metadata})

        (
            self.client.table("ai_settings")
            .update({"knowledge_tool_id": tool_id, "knowledge_file_ids": file_ids})
            .eq("user_id", user_id)
            .execute()
        )

        logger.info(f"Attached {len(file_ids)} knowledge file(s) for {mask_user_id(user_id)}")
        return {"toolId": tool_id, "fileIds": file_ids}

    async def detach_knowledge(self, user_id: str, file_id: Optional[str] = None) -> dict:
        """
        Remove one file, or all of them when file_id is None.
        With no files left the tool is removed from the assistant and deleted.
        """
        assistant_id = self._owned_assistant_id(user_id)
        settings = self._settings(user_id)
        tool_id = settings.get("knowledge_tool_id")
        current = settings.get("knowledge_file_ids") or []

        remaining = [f for f in current if f != file_id] if file_id else []
        if remaining:
            return await self.attach_knowledge(user_id, remaining)

        if tool_id:
            assistant = await self.vapi.get_assistant(assistant_id)
            model = dict(assistant.get("model") or {})
            model["toolIds"] = [t for t in (model.get("toolIds") or []) if t != tool_id]
            metadata = {**(assistant.get("metadata") or {}), "knowledgeToolId": None, "fileIds": []}
            await self.vapi.update_assistant(assistant_id, {"model": model, "metadata": metadata})

            try:
                await self.vapi.delete_tool(tool_id)
            except NotFoundError:
                logger.info(f"Knowledge tool {tool_id} was already gone")

        (
            self.client.table("ai_settings")
            .update({"knowledge_tool_id": None, "knowledge_file_ids": []})
            .eq("user_id", user_id)
            .execute()
        )
        return {"toolId": None, "fileIds": []}
