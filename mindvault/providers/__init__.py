"""Text-service providers."""

from .base import (
    ChatMessage,
    ProviderRegistry,
    QuizQuestion,
    TextProvider,
    get_registry,
)

__all__ = [
    "ChatMessage",
    "ProviderRegistry",
    "QuizQuestion",
    "TextProvider",
    "get_registry",
]
