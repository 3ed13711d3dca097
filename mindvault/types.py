"""
Data types for the notes vault.
"""

import re
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional


# Fixed subject list. Order matters: it is the display order for grouping.
SUBJECTS = (
    "History",
    "Civics",
    "Physics",
    "Physics: Numericals",
    "Biology",
    "Chemistry",
    "Maths",
    "Computer Applications",
    "Hindi",
    "English Literature",
    "General",
)

DEFAULT_SUBJECT = "General"
DEFAULT_TITLE = "Untitled Note"

# Titles that the organizer is allowed to overwrite
PLACEHOLDER_TITLES = frozenset({"New Note", "Untitled Note", "Untitled"})

ATTACHMENT_TYPES = ("image", "pdf", "file")

WELCOME_NOTE_ID = "welcome"

WELCOME_NOTE_CONTENT = """# Welcome to MindVault

This is your new static notes hub.

## Features
- **Markdown Support**: Write in standard markdown.
- **AI Powered**: Use the "Study Assistant" to summarize, quiz, or ask "Teach Me" to chat about your notes.
- **Smart Organize**: Automatically categorizes your notes into subjects like Physics, History, etc., and renames them to Chapter names.
- **Media**: Paste YouTube links to watch them here.

## Shortcuts
- Use `mindvault list` to browse.
- Use `mindvault edit` to modify this note.
"""

MAX_ID_LENGTH = 1024

# Control chars and quotes are never valid in a note id
_ID_BLOCKED_RE = re.compile(r'[\x00-\x1f\x7f"\']')


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds.

    All note timestamps are epoch milliseconds, the same unit the backup
    files carry in ``createdAt``/``updatedAt``.
    """
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def validate_id(id: str) -> None:
    """Validate a note ID: length, no control characters or quotes."""
    if not isinstance(id, str) or not id or len(id) > MAX_ID_LENGTH:
        raise ValueError(f"ID must be a string of 1-{MAX_ID_LENGTH} characters")
    if _ID_BLOCKED_RE.search(id):
        raise ValueError(f"ID contains invalid characters: {id!r}")


@dataclass(frozen=True)
class Attachment:
    """
    A binary payload embedded in a note.

    Attachments are content-immutable: there is no partial update, only
    removal and re-add. ``data`` is a self-describing base64 data URL.
    """
    id: str
    type: str
    name: str
    data: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "type": self.type, "name": self.name, "data": self.data}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Attachment":
        if not isinstance(d, dict):
            raise ValueError(f"Attachment must be an object, got {type(d).__name__}")
        att_type = d.get("type", "file")
        if att_type not in ATTACHMENT_TYPES:
            raise ValueError(f"Unknown attachment type: {att_type!r}")
        return cls(
            id=str(d["id"]),
            type=att_type,
            name=str(d.get("name", "")),
            data=str(d.get("data", "")),
        )


@dataclass(frozen=True)
class Note:
    """
    A note record.

    Notes are replaced wholesale at the storage boundary; use
    :meth:`with_changes` to derive a new record rather than mutating.

    Attributes:
        id: Stable identifier, primary key of the store
        title: Display title
        content: Markdown body
        created_at: Creation time, epoch milliseconds
        updated_at: Last persisted mutation, epoch milliseconds
        tags: Free-form tags used for search
        subject: Subject label; None is equivalent to DEFAULT_SUBJECT
        summary: Cached summary text, if one was generated
        attachments: Embedded attachments, in insertion order
    """
    id: str
    title: str = DEFAULT_TITLE
    content: str = ""
    created_at: int = 0
    updated_at: int = 0
    tags: tuple[str, ...] = ()
    subject: Optional[str] = DEFAULT_SUBJECT
    summary: Optional[str] = None
    attachments: tuple[Attachment, ...] = field(default_factory=tuple)

    @property
    def effective_subject(self) -> str:
        """Subject with the None → DEFAULT_SUBJECT equivalence applied."""
        return self.subject or DEFAULT_SUBJECT

    def with_changes(self, **changes: Any) -> "Note":
        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"])
        if "attachments" in changes:
            changes["attachments"] = tuple(changes["attachments"])
        return replace(self, **changes)

    def touched(self, **changes: Any) -> "Note":
        """Return a copy with ``changes`` applied and a fresh ``updated_at``."""
        stamp = max(now_ms(), self.created_at)
        return self.with_changes(updated_at=stamp, **changes)

    def matches(self, query: str) -> bool:
        """Case-insensitive substring match against title, tags, or subject."""
        if not query:
            return True
        q = query.lower()
        if q in self.title.lower():
            return True
        if any(q in tag.lower() for tag in self.tags):
            return True
        return q in self.effective_subject.lower()

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys of the backup format."""
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tags": list(self.tags),
            "subject": self.subject,
            "attachments": [a.to_dict() for a in self.attachments],
        }
        if self.summary is not None:
            d["summary"] = self.summary
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Note":
        """
        Parse a serialized note, filling defaults for missing optional keys.

        Raises:
            ValueError: If the record is not an object or has no valid id
        """
        if not isinstance(d, dict):
            raise ValueError(f"Note must be an object, got {type(d).__name__}")
        if "id" not in d:
            raise ValueError("Note is missing 'id'")
        note_id = d["id"]
        if isinstance(note_id, int) and not isinstance(note_id, bool):
            note_id = str(note_id)
        validate_id(note_id)

        created = _as_ms(d.get("createdAt", 0), "createdAt")
        updated = _as_ms(d.get("updatedAt", created), "updatedAt")
        tags = d.get("tags") or []
        if not isinstance(tags, list):
            raise ValueError("Note 'tags' must be a list")
        attachments = d.get("attachments") or []
        if not isinstance(attachments, list):
            raise ValueError("Note 'attachments' must be a list")

        title = d.get("title")
        content = d.get("content")
        return cls(
            id=note_id,
            title=DEFAULT_TITLE if title is None else str(title),
            content="" if content is None else str(content),
            created_at=created,
            updated_at=max(updated, created),
            tags=tuple(str(t) for t in tags),
            subject=d.get("subject") or DEFAULT_SUBJECT,
            summary=d.get("summary"),
            attachments=tuple(Attachment.from_dict(a) for a in attachments),
        )


def _as_ms(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Note {key!r} must be a number of epoch milliseconds")
    return int(value)


def new_note(
    *,
    title: str = DEFAULT_TITLE,
    content: str = "",
    tags: Iterable[str] = (),
    subject: str = DEFAULT_SUBJECT,
) -> Note:
    """Create a fresh note with a new id and matching timestamps."""
    stamp = now_ms()
    return Note(
        id=new_id(),
        title=title,
        content=content,
        created_at=stamp,
        updated_at=stamp,
        tags=tuple(tags),
        subject=subject,
    )


def welcome_note() -> Note:
    """The seeded note for an empty vault."""
    stamp = now_ms()
    return Note(
        id=WELCOME_NOTE_ID,
        title="Welcome to MindVault",
        content=WELCOME_NOTE_CONTENT,
        created_at=stamp,
        updated_at=stamp,
        tags=("guide", "welcome"),
        subject=DEFAULT_SUBJECT,
    )


def normalize_subject(label: str) -> str:
    """
    Constrain a free-form label to the subject list.

    Strips quotes and periods, then matches case-insensitively.
    Anything unrecognized becomes DEFAULT_SUBJECT.
    """
    cleaned = re.sub(r"['\".]", "", label or "").strip()
    for subject in SUBJECTS:
        if cleaned.lower() == subject.lower():
            return subject
    return DEFAULT_SUBJECT


def subject_sort_key(subject: str) -> tuple[int, str]:
    """Known subjects in list order, then the rest alphabetically."""
    try:
        return (SUBJECTS.index(subject), "")
    except ValueError:
        return (len(SUBJECTS), subject)


def group_by_subject(notes: Iterable[Note]) -> dict[str, list[Note]]:
    """Group notes by effective subject, ordered for display."""
    groups: dict[str, list[Note]] = {}
    for note in notes:
        groups.setdefault(note.effective_subject, []).append(note)
    return {k: groups[k] for k in sorted(groups, key=subject_sort_key)}
