"""
Text providers: Google Gemini and an offline passthrough.
"""

import logging
import re
from typing import Sequence

from pydantic import ValidationError

from ..errors import ExternalServiceError
from ..types import DEFAULT_SUBJECT, SUBJECTS
from .base import (
    QUIZ_ADAPTER,
    QUIZ_COUNT,
    SUMMARY_SYSTEM_PROMPT,
    ChatMessage,
    QuizQuestion,
    build_chat_system_prompt,
    build_classify_prompt,
    build_quiz_prompt,
    build_summary_prompt,
    build_title_prompt,
    clean_title,
    get_registry,
    strip_code_fence,
)

logger = logging.getLogger(__name__)

# Very long notes are cut before being sent
MAX_PROMPT_CHARS = 50000


class GeminiTextProvider:
    """
    Text provider using Google's Gemini API.

    Authentication (checked in priority order):
    1. api_key parameter (if provided, uses Google AI Studio)
    2. GOOGLE_CLOUD_PROJECT env var (uses Vertex AI with ADC)
    3. GEMINI_API_KEY or GOOGLE_API_KEY (uses Google AI Studio)

    Default model is gemini-2.5-flash.
    """

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        api_key: str | None = None,
        client=None,
    ):
        self.model = model
        if client is None:
            from .gemini_client import create_gemini_client
            client = create_gemini_client(api_key)
        self._client = client

    def _generate(self, what: str, contents: str, **config) -> str:
        from google.genai import types

        try:
            response = self._client.models.generate_content(
                model=self.model,
                contents=contents[:MAX_PROMPT_CHARS],
                config=types.GenerateContentConfig(**config) if config else None,
            )
        except Exception as e:
            raise ExternalServiceError(f"Gemini {what} failed (model={self.model}): {e}") from e
        text = (response.text or "").strip()
        if not text:
            raise ExternalServiceError(f"Gemini {what} returned no text")
        return text

    def summarize(self, content: str) -> str:
        """Generate a summary paragraph."""
        return self._generate(
            "summary",
            build_summary_prompt(content),
            system_instruction=SUMMARY_SYSTEM_PROMPT,
        )

    def quiz(self, content: str, *, count: int = QUIZ_COUNT) -> list[QuizQuestion]:
        """Generate multiple-choice questions using a JSON response schema."""
        from google.genai import types

        schema = types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "question": types.Schema(type=types.Type.STRING),
                    "options": types.Schema(
                        type=types.Type.ARRAY,
                        items=types.Schema(type=types.Type.STRING),
                        description="A list of 4 possible answers.",
                    ),
                    "correctAnswer": types.Schema(
                        type=types.Type.INTEGER,
                        description="The index (0-3) of the correct answer in the options array.",
                    ),
                    "explanation": types.Schema(type=types.Type.STRING),
                },
                required=["question", "options", "correctAnswer", "explanation"],
            ),
        )
        text = self._generate(
            "quiz",
            build_quiz_prompt(content, count),
            response_mime_type="application/json",
            response_schema=schema,
        )
        try:
            return QUIZ_ADAPTER.validate_json(strip_code_fence(text))
        except ValidationError as e:
            raise ExternalServiceError(f"Gemini quiz response was malformed: {e}") from e

    def classify(self, content: str) -> str:
        """Ask for a subject label from the fixed list."""
        return self._generate(
            "classification",
            build_classify_prompt(content),
            response_mime_type="text/plain",
        )

    def title_for(self, content: str) -> str:
        """Ask for a short chapter-style title."""
        title = clean_title(self._generate(
            "title",
            build_title_prompt(content),
            response_mime_type="text/plain",
        ))
        if not title:
            raise ExternalServiceError("Gemini title response was empty")
        return title

    def chat(
        self,
        history: Sequence[ChatMessage],
        note_content: str,
        message: str,
    ) -> str:
        """Answer a question about a note, continuing an earlier conversation."""
        from google.genai import types

        try:
            session = self._client.chats.create(
                model=self.model,
                config=types.GenerateContentConfig(
                    system_instruction=build_chat_system_prompt(note_content[:MAX_PROMPT_CHARS]),
                ),
                history=[
                    types.Content(role=m.role, parts=[types.Part(text=m.text)])
                    for m in history
                ],
            )
            response = session.send_message(message)
        except Exception as e:
            raise ExternalServiceError(f"Gemini chat failed (model={self.model}): {e}") from e
        text = (response.text or "").strip()
        if not text:
            raise ExternalServiceError("Gemini chat returned no text")
        return text


class PassthroughTextProvider:
    """
    Offline text provider that needs no language model.

    Summaries are the opening of the note, titles come from the first
    heading or line, and subjects are picked by keyword. Quizzes are never
    generated and chat is unavailable.
    """

    def __init__(self, max_chars: int = 500):
        self.max_chars = max_chars

    def summarize(self, content: str) -> str:
        """Return the note's opening, cut at a word boundary."""
        text = content.strip()
        if len(text) <= self.max_chars:
            return text
        return text[:self.max_chars].rsplit(" ", 1)[0] + "..."

    def quiz(self, content: str, *, count: int = QUIZ_COUNT) -> list[QuizQuestion]:
        return []

    def classify(self, content: str) -> str:
        """Most specific subject named in the note, or the default."""
        head = content.lower()
        # Longest name first so "Physics: Numericals" beats "Physics"
        for subject in sorted(SUBJECTS, key=len, reverse=True):
            if re.search(rf"\b{re.escape(subject.lower())}\b", head):
                return subject
        return DEFAULT_SUBJECT

    def title_for(self, content: str) -> str:
        for line in content.splitlines():
            title = clean_title(line)
            if title:
                return title
        raise ExternalServiceError("Cannot derive a title from empty content")

    def chat(
        self,
        history: Sequence[ChatMessage],
        note_content: str,
        message: str,
    ) -> str:
        raise ExternalServiceError("Chat needs a language model; configure the gemini provider")


# Register providers
_registry = get_registry()
_registry.register_text("gemini", GeminiTextProvider)
_registry.register_text("passthrough", PassthroughTextProvider)
