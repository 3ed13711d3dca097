"""
Protocol definitions for the vault's storage backends.

The note cache depends only on these interfaces, so tests and alternative
backends can substitute their own stores.
"""

from typing import Optional, Protocol, runtime_checkable

from .types import Note


@runtime_checkable
class NoteStoreProtocol(Protocol):
    """
    Durable keyed storage for note records.

    Implemented by:
    - DocumentStore (local SQLite)
    """

    def get_all(self) -> list[Note]: ...

    def get(self, id: str) -> Optional[Note]: ...

    def put(self, note: Note) -> None: ...

    def delete(self, id: str) -> None: ...

    def count(self) -> int: ...

    def close(self) -> None: ...


@runtime_checkable
class LegacySourceProtocol(Protocol):
    """Read-only access to the old flat key-value storage."""

    def get_item(self, key: str) -> Optional[str]: ...
