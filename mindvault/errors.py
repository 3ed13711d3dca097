"""
Exceptions and error logging for mindvault.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


class MindVaultError(Exception):
    """Base class for all mindvault errors."""


class StorageUnavailable(MindVaultError):
    """The note database cannot be opened, or a transaction failed."""


class MigrationParseError(MindVaultError):
    """Legacy note data is malformed."""


class ExternalServiceError(MindVaultError):
    """A text-service call failed or timed out."""


class ImportFormatError(MindVaultError):
    """An import file is not a valid array of notes."""


class AttachmentTooLarge(MindVaultError):
    """A file exceeds the configured attachment size ceiling."""

    def __init__(self, name: str, size: int, limit: int):
        self.name = name
        self.size = size
        self.limit = limit
        super().__init__(
            f"File too large: {name} is {size} bytes "
            f"(max {limit // (1024 * 1024)}MB allowed)"
        )


class UnsupportedAttachment(MindVaultError):
    """A file is neither a PDF, an image, nor plain text."""


class NoteNotFound(MindVaultError, KeyError):
    """No note with the given id is loaded."""

    def __init__(self, id: str):
        self.id = id
        super().__init__(f"Note not found: {id}")

    def __str__(self) -> str:
        return self.args[0]


def _error_log_path(store_path: Optional[Path] = None) -> Path:
    """Resolve error log path, respecting MINDVAULT_STORE_PATH."""
    if store_path is not None:
        return Path(store_path) / "mindvault-errors.log"
    store = os.environ.get("MINDVAULT_STORE_PATH")
    if store:
        return Path(store) / "mindvault-errors.log"
    return Path.home() / ".mindvault" / "mindvault-errors.log"


def log_exception(exc: Exception, context: str = "", store_path: Optional[Path] = None) -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)
        store_path: Store directory; defaults to the environment/home location

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path(store_path)
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Error log is best-effort
    return log_path
