"""
Legacy storage format and its one-time migration.

Older versions kept every note in a single JSON-encoded string under one
flat key of a key-value file. The migrator copies those notes into the
document store the first time a vault opens with an empty store. The legacy
file itself is never modified.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from .errors import MigrationParseError
from .protocol import LegacySourceProtocol, NoteStoreProtocol
from .types import Note

logger = logging.getLogger(__name__)

LEGACY_NOTES_KEY = "mindvault_notes_v2"


class LegacyKeyValueFile:
    """
    Read-only view of the old flat key-value file.

    The file is a JSON object mapping keys to string values. A missing
    file behaves like an empty mapping.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def get_item(self, key: str) -> Optional[str]:
        """
        Return the raw string stored under ``key``, or None.

        Raises:
            MigrationParseError: If the file exists but is not a JSON object
        """
        if not self._path.exists():
            return None
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MigrationParseError(f"Unreadable legacy file {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise MigrationParseError(f"Legacy file {self._path} is not a key-value object")
        value = data.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            # Some writers stored the array directly instead of a string
            return json.dumps(value)
        return value


def parse_legacy_notes(blob: str) -> list[Note]:
    """
    Parse a legacy blob into notes.

    Raises:
        MigrationParseError: If the blob is not a JSON array of note objects
    """
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as e:
        raise MigrationParseError(f"Legacy notes are not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise MigrationParseError("Legacy notes are not a JSON array")
    try:
        return [Note.from_dict(item) for item in data]
    except (ValueError, KeyError, TypeError) as e:
        raise MigrationParseError(f"Invalid legacy note: {e}") from e


class Migrator:
    """
    Transfers legacy notes into the document store.

    Safe to run on every startup: once the store holds any note the
    migration is skipped, so stored data always wins over legacy data.
    """

    def __init__(self, store: NoteStoreProtocol, legacy: LegacySourceProtocol,
                 key: str = LEGACY_NOTES_KEY):
        self._store = store
        self._legacy = legacy
        self._key = key

    def migrate(self) -> list[Note]:
        """
        Run the migration.

        Returns:
            The stored notes if the store was already populated, the migrated
            notes if legacy data was copied, or an empty list when there was
            nothing (or nothing valid) to migrate.

        Raises:
            StorageUnavailable: If the document store cannot be read or written
        """
        existing = self._store.get_all()
        if existing:
            logger.debug("Store has %d notes, skipping legacy migration", len(existing))
            return existing

        try:
            blob = self._legacy.get_item(self._key)
            if not blob:
                return []
            notes = parse_legacy_notes(blob)
        except MigrationParseError as e:
            logger.error("Legacy migration failed: %s", e)
            return []

        # Validated in full before the first write
        for note in notes:
            self._store.put(note)
        logger.info("Migrated %d legacy notes", len(notes))
        return notes
