"""
Debounced editing sessions.

An EditingSession buffers edits to one open note (title, content,
attachments) and commits a single cache update once edits have been quiet
for ``quiet_period`` seconds.

The session is an explicit two-state machine::

    IDLE --edit--> PENDING_WRITE(deadline)
    PENDING_WRITE --edit--> PENDING_WRITE(new deadline)
    PENDING_WRITE --timer fires / commit()--> IDLE
    PENDING_WRITE --open(other note) / close()--> IDLE   (buffer discarded
                                                          or flushed, per
                                                          ``on_switch``)

With the default ``on_switch="discard"``, edits made less than one quiet
period before switching notes are lost. This window is bounded by the
quiet period and is logged whenever it happens.
"""

import asyncio
import enum
import logging
from pathlib import Path
from typing import Awaitable, Optional

from .attachments import ingest_file
from .cache import NoteCache
from .config import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_MAX_ATTACHMENT_BYTES, SWITCH_POLICIES
from .types import Attachment, Note

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    PENDING_WRITE = "pending_write"


class EditingSession:
    """
    Edit buffer for the currently open note.

    Example:
        session = EditingSession(cache, quiet_period=1.5)
        session.open(note_id)
        session.set_content("# Optics")
        session.set_content("# Optics\\n\\nSnell's law")   # restarts the timer
        ...                                               # one write, 1.5s later
    """

    def __init__(
        self,
        cache: NoteCache,
        *,
        quiet_period: float = DEFAULT_DEBOUNCE_SECONDS,
        on_switch: str = "discard",
        max_attachment_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
    ):
        if on_switch not in SWITCH_POLICIES:
            raise ValueError(f"on_switch must be one of {SWITCH_POLICIES}, got {on_switch!r}")
        self._cache = cache
        self.quiet_period = quiet_period
        self.on_switch = on_switch
        self.max_attachment_bytes = max_attachment_bytes

        self._note_id: Optional[str] = None
        self._title = ""
        self._content = ""
        self._attachments: tuple[Attachment, ...] = ()

        self._state = SessionState.IDLE
        self._deadline: Optional[float] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._last_write: Optional[Awaitable[bool]] = None
        self.discarded = 0

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def deadline(self) -> Optional[float]:
        """Event-loop time at which the pending write fires, if any."""
        return self._deadline

    @property
    def note_id(self) -> Optional[str]:
        return self._note_id

    @property
    def title(self) -> str:
        return self._title

    @property
    def content(self) -> str:
        return self._content

    @property
    def attachments(self) -> tuple[Attachment, ...]:
        return self._attachments

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def open(self, note_id: str) -> Note:
        """
        Load a note into the buffer.

        Reopening the note that is already open keeps the buffer. Opening a
        different note first applies the ``on_switch`` policy to any pending
        edits.

        Raises:
            NoteNotFound: If the note is not in the cache
        """
        note = self._cache.get(note_id)
        if note_id == self._note_id:
            return note
        self._leave()
        self._note_id = note.id
        self._title = note.title
        self._content = note.content
        self._attachments = note.attachments
        return note

    def close(self) -> Optional[Awaitable[bool]]:
        """Apply the ``on_switch`` policy and release the open note."""
        write = self._leave()
        self._note_id = None
        self._title = ""
        self._content = ""
        self._attachments = ()
        return write

    def set_title(self, title: str) -> None:
        self._require_open()
        self._title = title
        self._edited()

    def set_content(self, content: str) -> None:
        self._require_open()
        self._content = content
        self._edited()

    def append_content(self, text: str) -> None:
        self._require_open()
        self._content += text
        self._edited()

    def add_attachment(self, attachment: Attachment) -> None:
        self._require_open()
        self._attachments = self._attachments + (attachment,)
        self._edited()

    def remove_attachment(self, attachment_id: str) -> bool:
        """Drop an attachment from the buffer. Returns False if it wasn't there."""
        self._require_open()
        kept = tuple(a for a in self._attachments if a.id != attachment_id)
        if len(kept) == len(self._attachments):
            return False
        self._attachments = kept
        self._edited()
        return True

    def attach_file(self, path: Path) -> Optional[Attachment]:
        """
        Ingest a file into the buffer.

        Raises:
            AttachmentTooLarge: Before the file is read, if it is over the limit
            UnsupportedAttachment: If the file type can't be attached
        """
        self._require_open()
        result = ingest_file(path, self.max_attachment_bytes)
        if result.attachment is not None:
            self._attachments = self._attachments + (result.attachment,)
        if result.content_append:
            self._content += result.content_append
        self._edited()
        return result.attachment

    def commit(self, *, background: bool = True) -> Optional[Awaitable[bool]]:
        """
        Write the buffer through the cache now and return to IDLE.

        Returns the cache's write task, or None when the buffer matches the
        cached note (nothing to write) or no note is open. With
        ``background=False`` the task raises StorageUnavailable if the write
        fails.
        """
        self._cancel_timer()
        self._state = SessionState.IDLE
        if self._note_id is None:
            return None

        current = self._cache.find(self._note_id)
        if current is None:
            logger.warning("Note %s was deleted while being edited; dropping buffer",
                           self._note_id)
            return None

        if (current.title == self._title
                and current.content == self._content
                and current.attachments == self._attachments):
            return None

        updated = current.touched(
            title=self._title,
            content=self._content,
            attachments=self._attachments,
        )
        self._last_write = self._cache.update(updated, background=background)
        logger.debug("Committed edits to note %s", self._note_id)
        return self._last_write

    async def flush(self) -> bool:
        """
        Commit pending edits and wait for them to be stored.

        Raises:
            StorageUnavailable: If the write did not reach the store
        """
        write = self.commit(background=False)
        if write is None:
            return True
        return await write

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _require_open(self) -> None:
        if self._note_id is None:
            raise RuntimeError("No note is open in this session")

    def _edited(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.quiet_period, self._fire)
        self._deadline = loop.time() + self.quiet_period
        self._state = SessionState.PENDING_WRITE

    def _fire(self) -> None:
        self._timer = None
        self.commit()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._deadline = None

    def _leave(self) -> Optional[Awaitable[bool]]:
        """Resolve pending edits for the note being left."""
        if self._state is not SessionState.PENDING_WRITE:
            return None
        if self.on_switch == "flush":
            return self.commit()
        self._cancel_timer()
        self._state = SessionState.IDLE
        self.discarded += 1
        logger.warning("Discarded uncommitted edits to note %s", self._note_id)
        return None
