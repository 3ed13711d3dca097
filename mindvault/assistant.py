"""
Study assistant: text-service calls that never fail.

Wraps a TextProvider so every capability degrades to a fixed fallback
value when the provider raises. Editing must never depend on the text
service being reachable, so nothing here propagates ExternalServiceError.
Provider calls run in worker threads to keep the event loop free.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .errors import ExternalServiceError
from .providers.base import ChatMessage, QuizQuestion, TextProvider
from .types import DEFAULT_SUBJECT, normalize_subject

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Error generating summary. Please check your API configuration."
FALLBACK_TITLE = "New Chapter"
FALLBACK_CHAT = "Sorry, I'm having trouble connecting to the study assistant right now."


class StudyAssistant:
    """Fallback-absorbing facade over a TextProvider."""

    def __init__(self, provider: TextProvider):
        self._provider = provider

    @property
    def provider(self) -> TextProvider:
        return self._provider

    async def summarize(self, content: str) -> str:
        try:
            return await asyncio.to_thread(self._provider.summarize, content)
        except ExternalServiceError as e:
            logger.warning("Summary failed: %s", e)
            return FALLBACK_SUMMARY

    async def quiz(self, content: str) -> list[QuizQuestion]:
        try:
            return await asyncio.to_thread(self._provider.quiz, content)
        except ExternalServiceError as e:
            logger.warning("Quiz generation failed: %s", e)
            return []

    async def classify(self, content: str) -> str:
        try:
            label = await asyncio.to_thread(self._provider.classify, content)
        except ExternalServiceError as e:
            logger.warning("Classification failed: %s", e)
            return DEFAULT_SUBJECT
        return normalize_subject(label)

    async def title_for(self, content: str) -> str:
        try:
            return await asyncio.to_thread(self._provider.title_for, content)
        except ExternalServiceError as e:
            logger.warning("Title generation failed: %s", e)
            return FALLBACK_TITLE

    async def chat(self, history: list[ChatMessage], note_content: str, message: str) -> str:
        try:
            return await asyncio.to_thread(self._provider.chat, history, note_content, message)
        except ExternalServiceError as e:
            logger.warning("Chat failed: %s", e)
            return FALLBACK_CHAT


@dataclass
class ChatSession:
    """
    Conversation about one note.

    History lives only as long as the session; starting a session for a
    different note starts with an empty history.
    """
    assistant: StudyAssistant
    note_id: str
    history: list[ChatMessage] = field(default_factory=list)

    async def ask(self, note_content: str, message: str) -> str:
        reply = await self.assistant.chat(list(self.history), note_content, message)
        self.history.append(ChatMessage(role="user", text=message))
        self.history.append(ChatMessage(role="model", text=reply))
        return reply

    def reset(self, note_id: Optional[str] = None) -> None:
        self.history.clear()
        if note_id is not None:
            self.note_id = note_id
