"""
Base text-service protocol and provider registry.

A text provider exposes the study features that need a language model:
summaries, quizzes, subject classification, title generation, and chat
about a note. Providers raise ExternalServiceError when a call fails;
callers decide whether to retry or fall back.
"""

import re
from typing import Literal, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..types import SUBJECTS


# -----------------------------------------------------------------------------
# Shared data shapes
# -----------------------------------------------------------------------------

class QuizQuestion(BaseModel):
    """One multiple-choice question. ``correct_answer`` indexes ``options``."""
    model_config = ConfigDict(populate_by_name=True)

    question: str
    options: list[str] = Field(min_length=4, max_length=4)
    correct_answer: int = Field(alias="correctAnswer", ge=0, le=3)
    explanation: str = ""


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str


QUIZ_ADAPTER = TypeAdapter(list[QuizQuestion])


# -----------------------------------------------------------------------------
# Prompts
# -----------------------------------------------------------------------------

# Only the head of a note is needed to label it
CLASSIFY_CHARS = 1000

SUMMARY_SYSTEM_PROMPT = "You are an expert academic tutor. Provide clear, concise summaries."

QUIZ_COUNT = 3


def build_summary_prompt(content: str) -> str:
    return (
        "Summarize the following study notes into a concise paragraph, "
        f"highlighting key concepts: \n\n{content}"
    )


def build_quiz_prompt(content: str, count: int = QUIZ_COUNT) -> str:
    return (
        f"Generate {count} multiple-choice quiz questions based on these notes "
        f"to test understanding. Each question has exactly 4 options: \n\n{content}"
    )


def build_classify_prompt(content: str) -> str:
    valid = ", ".join(SUBJECTS)
    return (
        "Analyze the following note content and identify the single most relevant "
        f"academic Subject from this strict list: [{valid}]. Return ONLY the subject "
        "name as a string. If it fits multiple, pick the most specific one. "
        f"If none fit, return 'General'. Content: {content[:CLASSIFY_CHARS]}"
    )


def build_title_prompt(content: str) -> str:
    return (
        "Read the following study note and generate a short, descriptive Chapter Name "
        "or Title (e.g., \"Newton's Laws of Motion\", \"The French Revolution\", "
        "\"Cell Structure\"). Max 6 words. Do not use quotes. "
        f"Content: {content[:CLASSIFY_CHARS]}"
    )


def build_chat_system_prompt(note_content: str) -> str:
    return (
        "You are an expert tutor. The user is studying the following notes:\n"
        f"---\n{note_content}\n---\n\n"
        "Answer the user's questions based on these notes. If the answer isn't in "
        "the notes, use your general knowledge but mention that it wasn't in the "
        "notes. Be encouraging and helpful."
    )


def clean_title(text: str, max_words: int = 6) -> str:
    """Strip quotes and markdown heading marks, cap the word count."""
    text = re.sub(r"^#+\s*", "", text.strip())
    text = text.strip().strip("\"'`").strip()
    words = text.split()
    return " ".join(words[:max_words])


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3].strip()
    return text


# -----------------------------------------------------------------------------
# Protocol
# -----------------------------------------------------------------------------

@runtime_checkable
class TextProvider(Protocol):
    """
    Language-model capabilities used by the vault.

    Every method may raise ExternalServiceError (network, quota, malformed
    response). Methods never return partial garbage: a quiz either parses
    into QuizQuestion objects or the call fails.
    """

    def summarize(self, content: str) -> str:
        ...

    def quiz(self, content: str, *, count: int = QUIZ_COUNT) -> list[QuizQuestion]:
        ...

    def classify(self, content: str) -> str:
        """Return a subject label (not yet normalized to the subject list)."""
        ...

    def title_for(self, content: str) -> str:
        ...

    def chat(
        self,
        history: Sequence[ChatMessage],
        note_content: str,
        message: str,
    ) -> str:
        ...


# -----------------------------------------------------------------------------
# Provider Registry
# -----------------------------------------------------------------------------

class ProviderRegistry:
    """
    Registry of text provider classes, instantiated from configuration.

    Example:
        registry = get_registry()
        provider = registry.create_text("gemini", {"model": "gemini-2.5-flash"})
    """

    def __init__(self):
        self._text_providers: dict[str, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Import provider modules so they register themselves."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Only registers classes; SDK clients are created on instantiation
        from . import llm  # noqa: F401

    def register_text(self, name: str, provider_class: type) -> None:
        """Register a text provider class."""
        self._text_providers[name] = provider_class

    def create_text(self, name: str, params: dict | None = None) -> TextProvider:
        """Create a text provider instance."""
        self._ensure_providers_loaded()
        if name not in self._text_providers:
            available = ", ".join(self._text_providers.keys()) or "none"
            raise ValueError(
                f"Unknown text provider: '{name}'. "
                f"Available providers: {available}."
            )
        try:
            return self._text_providers[name](**(params or {}))
        except ImportError as e:
            raise RuntimeError(
                f"Failed to create text provider '{name}': {e}\n"
                f"Install required dependencies."
            ) from e
        except (TypeError, ValueError) as e:
            raise RuntimeError(f"Failed to create text provider '{name}': {e}") from e

    def list_text_providers(self) -> list[str]:
        """List registered text provider names."""
        self._ensure_providers_loaded()
        return list(self._text_providers.keys())


# Global registry instance
# Concrete providers register themselves on import
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry
