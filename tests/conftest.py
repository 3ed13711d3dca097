"""
Shared pytest fixtures for mindvault tests.

Provides an in-memory note store and a scripted text provider so tests
never touch the network.
"""

import time
from pathlib import Path
from typing import Sequence

import pytest

from mindvault.errors import ExternalServiceError, StorageUnavailable
from mindvault.providers.base import ChatMessage, QuizQuestion
from mindvault.types import Note


class MemoryStore:
    """
    Dict-backed NoteStoreProtocol implementation.

    Records every put/delete so tests can assert on write order. Set
    ``fail`` (or add ids to ``fail_ids``) to make writes raise
    StorageUnavailable; ``delays`` is consumed one entry per put.
    """

    def __init__(self, notes: Sequence[Note] = ()):
        self.records: dict[str, Note] = {n.id: n for n in notes}
        self.puts: list[Note] = []
        self.deletes: list[str] = []
        self.fail = False
        self.fail_ids: set[str] = set()
        self.delays: list[float] = []
        self.closed = False

    def _check(self, id: str) -> None:
        if self.fail or id in self.fail_ids:
            raise StorageUnavailable(f"disk full writing {id}")

    def get_all(self) -> list[Note]:
        return list(self.records.values())

    def get(self, id: str):
        return self.records.get(id)

    def put(self, note: Note) -> None:
        self._check(note.id)
        if self.delays:
            time.sleep(self.delays.pop(0))
        self.puts.append(note)
        self.records[note.id] = note

    def delete(self, id: str) -> None:
        self._check(id)
        self.deletes.append(id)
        self.records.pop(id, None)

    def count(self) -> int:
        return len(self.records)

    def close(self) -> None:
        self.closed = True


class MockTextProvider:
    """
    Scripted text provider.

    Any call whose content contains one of ``fail_on`` raises
    ExternalServiceError, as does every call when ``fail_all`` is set.
    """

    def __init__(self, subject: str = "physics.", title: str = "Newton's Laws",
                 fail_on: Sequence[str] = (), fail_all: bool = False):
        self.subject = subject
        self.title = title
        self.fail_on = tuple(fail_on)
        self.fail_all = fail_all
        self.calls: list[tuple[str, str]] = []

    def _call(self, what: str, content: str) -> None:
        self.calls.append((what, content))
        if self.fail_all or any(marker in content for marker in self.fail_on):
            raise ExternalServiceError(f"mock {what} failed")

    def summarize(self, content: str) -> str:
        self._call("summarize", content)
        return f"Summary of {content[:20]}"

    def quiz(self, content: str, *, count: int = 3) -> list[QuizQuestion]:
        self._call("quiz", content)
        return [
            QuizQuestion(
                question="What is F?",
                options=["ma", "mv", "mgh", "pv"],
                correctAnswer=0,
                explanation="Newton's second law",
            )
        ]

    def classify(self, content: str) -> str:
        self._call("classify", content)
        return self.subject

    def title_for(self, content: str) -> str:
        self._call("title_for", content)
        return self.title

    def chat(self, history: Sequence[ChatMessage], note_content: str, message: str) -> str:
        self._call("chat", message)
        return f"Answer #{len(history) // 2 + 1}: {message}"


def make_note(id: str, *, title: str = "Untitled Note", content: str = "",
              updated_at: int = 1000, **kwargs) -> Note:
    """Build a note with fixed timestamps."""
    return Note(
        id=id,
        title=title,
        content=content,
        created_at=kwargs.pop("created_at", updated_at),
        updated_at=updated_at,
        **kwargs,
    )


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep logs and provider detection away from the real environment."""
    monkeypatch.setenv("MINDVAULT_STORE_PATH", str(tmp_path / "store"))
    for var in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "GOOGLE_CLOUD_PROJECT", "MINDVAULT_VERBOSE"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store_dir(tmp_path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def mock_text_provider():
    return MockTextProvider()
