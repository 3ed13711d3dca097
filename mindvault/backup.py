"""
JSON backup and restore.

A backup is a JSON array of note records (camelCase keys, 2-space
indentation). Import validates the whole file before writing anything,
then upserts every note through the document store.
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Iterable

from .errors import ImportFormatError
from .protocol import NoteStoreProtocol
from .types import Note

logger = logging.getLogger(__name__)


def default_backup_name(today: date | None = None) -> str:
    today = today or date.today()
    return f"mindvault_backup_{today.isoformat()}.json"


def dumps_notes(notes: Iterable[Note]) -> str:
    return json.dumps([n.to_dict() for n in notes], indent=2, ensure_ascii=False)


def export_notes(notes: Iterable[Note], path: Path) -> Path:
    """Write notes to ``path`` as a JSON array. Returns the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    notes = list(notes)
    path.write_text(dumps_notes(notes) + "\n", encoding="utf-8")
    logger.info("Exported %d notes to %s", len(notes), path)
    return path


def parse_backup(text: str) -> list[Note]:
    """
    Validate and parse backup text.

    The payload must be a JSON array whose first element has an ``id``;
    every element must parse as a note.

    Raises:
        ImportFormatError: On any deviation from that shape
    """
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportFormatError(f"Failed to import JSON. Invalid format: {e}") from e
    if not isinstance(data, list):
        raise ImportFormatError("Failed to import JSON. Invalid format: expected an array of notes")
    if not data or not isinstance(data[0], dict) or "id" not in data[0]:
        raise ImportFormatError("Failed to import JSON. Invalid format: first note has no id")
    notes = []
    for i, item in enumerate(data):
        try:
            notes.append(Note.from_dict(item))
        except (ValueError, KeyError, TypeError) as e:
            raise ImportFormatError(f"Failed to import JSON. Invalid note at index {i}: {e}") from e
    return notes


def import_notes(path: Path, store: NoteStoreProtocol) -> list[Note]:
    """
    Upsert every note of a backup file into ``store``.

    Nothing is written unless the whole file is valid.

    Raises:
        ImportFormatError: If the file is unreadable or not a valid backup
        StorageUnavailable: If the store rejects a write
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ImportFormatError(f"Cannot read import file {path}: {e}") from e
    notes = parse_backup(text)
    for note in notes:
        store.put(note)
    logger.info("Imported %d notes from %s", len(notes), path)
    return notes
