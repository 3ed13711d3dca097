"""
MindVault

A personal study-notes vault: markdown notes with attachments, stored in a
local SQLite database, with optional language-model help for summaries,
quizzes, subject classification, and Q&A.

Quick Start:
    import asyncio
    from mindvault import Vault

    async def main():
        async with Vault() as vault:
            note = await vault.create_note(title="Optics", content="# Optics ...")
            print(vault.search("optics"))

    asyncio.run(main())

CLI Usage:
    mindvault list --by-subject
    mindvault new --title "Optics" "Snell's law ..."
    mindvault organize

Default Store:
    ~/.mindvault/ (created automatically).
    Override with MINDVAULT_STORE_PATH or the --store option.

Environment Variables:
    MINDVAULT_STORE_PATH     - Override default store location
    MINDVAULT_VERBOSE        - Set to 1 for debug logging
    GEMINI_API_KEY           - Enables the Gemini text provider
"""

__version__ = "0.3.0"

from .cache import NoteCache
from .document_store import DocumentStore
from .editor import EditingSession, SessionState
from .errors import (
    AttachmentTooLarge,
    ExternalServiceError,
    ImportFormatError,
    MigrationParseError,
    MindVaultError,
    NoteNotFound,
    StorageUnavailable,
    UnsupportedAttachment,
)
from .types import Attachment, Note
from .vault import Vault

__all__ = [
    "Attachment",
    "AttachmentTooLarge",
    "DocumentStore",
    "EditingSession",
    "ExternalServiceError",
    "ImportFormatError",
    "MigrationParseError",
    "MindVaultError",
    "Note",
    "NoteCache",
    "NoteNotFound",
    "SessionState",
    "StorageUnavailable",
    "UnsupportedAttachment",
    "Vault",
]
