"""
In-memory note cache with optimistic updates and ordered write-back.

The cache is the session's source of truth for which notes exist and what
they contain. Every mutation is two steps:

1. An immediate, synchronous change to the in-memory list.
2. An asynchronous durability operation against the document store,
   returned to the caller as an awaitable task.

A failed durability operation is logged and counted (and passed to the
optional ``on_write_error`` callback) but never rolls back step 1; the
in-memory list and the store converge once pending writes finish.

Writes for the same note id are chained so they reach the store in the
order they were issued. Writes for different ids run independently.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .errors import NoteNotFound, StorageUnavailable
from .legacy import Migrator
from .protocol import NoteStoreProtocol
from .types import Note, group_by_subject, welcome_note

logger = logging.getLogger(__name__)

WriteErrorCallback = Callable[[str, StorageUnavailable], None]


class NoteCache:
    """
    Authoritative in-process list of notes.

    Example:
        cache = NoteCache(DocumentStore(path), migrator)
        await cache.initialize()
        write = cache.update(note.touched(title="Kinematics"))
        ...
        await cache.flush()
    """

    def __init__(
        self,
        store: NoteStoreProtocol,
        migrator: Optional[Migrator] = None,
        *,
        on_write_error: Optional[WriteErrorCallback] = None,
    ):
        self._store = store
        self._migrator = migrator
        self._on_write_error = on_write_error
        self._notes: list[Note] = []
        # Last scheduled write per note id; new writes wait on it
        self._tails: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self._initialized = False
        self.write_failures = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(self) -> list[Note]:
        """
        Load the working set: migrate legacy data, then read the store.

        Seeds and persists the welcome note when the vault is empty.

        Raises:
            StorageUnavailable: If the store cannot be read
        """
        if self._migrator is not None:
            await asyncio.to_thread(self._migrator.migrate)
        notes = await asyncio.to_thread(self._store.get_all)
        if not notes:
            seed = welcome_note()
            await asyncio.to_thread(self._store.put, seed)
            logger.info("Empty vault, created welcome note")
            notes = [seed]
        self._notes = _newest_first(notes)
        self._initialized = True
        logger.debug("Cache initialized with %d notes", len(self._notes))
        return self.notes

    async def reload(self) -> list[Note]:
        """Replace the working set with the store's contents."""
        await self.flush()
        notes = await asyncio.to_thread(self._store.get_all)
        self._notes = _newest_first(notes)
        return self.notes

    @property
    def initialized(self) -> bool:
        return self._initialized

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @property
    def notes(self) -> list[Note]:
        """Snapshot of the working set, in display order."""
        return list(self._notes)

    def __len__(self) -> int:
        return len(self._notes)

    def __contains__(self, id: str) -> bool:
        return self.find(id) is not None

    def find(self, id: str) -> Optional[Note]:
        for note in self._notes:
            if note.id == id:
                return note
        return None

    def get(self, id: str) -> Note:
        """
        Raises:
            NoteNotFound: If no note with ``id`` is loaded
        """
        note = self.find(id)
        if note is None:
            raise NoteNotFound(id)
        return note

    def search(self, query: str) -> list[Note]:
        """Notes whose title, tags, or subject contain ``query`` (any case)."""
        return [n for n in self._notes if n.matches(query)]

    def by_subject(self, query: str = "") -> dict[str, list[Note]]:
        return group_by_subject(self.search(query))

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add(self, note: Note) -> Note:
        """
        Persist a new note immediately, then put it at the front of the list.

        Creation is not debounced; a storage failure propagates to the caller
        and the note is not added.

        Raises:
            ValueError: If a note with the same id is already loaded
            StorageUnavailable: If the note could not be saved
        """
        if self.find(note.id) is not None:
            raise ValueError(f"Note already exists: {note.id}")
        await self._schedule(note.id, self._store.put, note, background=False)
        self._notes.insert(0, note)
        logger.info("Created note %s", note.id)
        return note

    def update(self, note: Note, *, background: bool = True) -> Awaitable[bool]:
        """
        Replace the loaded note with the same id, then save it in the background.

        The in-memory change is visible as soon as this returns. The returned
        task resolves to True once the write lands. If the write fails, a
        background task resolves to False (the failure has already been
        logged); with ``background=False`` the task raises instead.

        Raises:
            NoteNotFound: If no note with ``note.id`` is loaded
        """
        for i, current in enumerate(self._notes):
            if current.id == note.id:
                self._notes[i] = note
                break
        else:
            raise NoteNotFound(note.id)
        return self._schedule(note.id, self._store.put, note, background=background)

    def remove(self, id: str, *, background: bool = True) -> Awaitable[bool]:
        """
        Drop a note from memory, then delete it from the store in the background.

        Removing an id that is not loaded still issues the (no-op) delete.
        Failures are handled as in update().
        """
        self._notes = [n for n in self._notes if n.id != id]
        logger.info("Deleted note %s", id)
        return self._schedule(id, self._store.delete, id, background=background)

    async def flush(self) -> None:
        """Wait until every scheduled write has finished."""
        while self._inflight:
            await asyncio.wait(list(self._inflight))

    @property
    def pending_writes(self) -> int:
        return len(self._inflight)

    # -------------------------------------------------------------------------
    # Write ordering
    # -------------------------------------------------------------------------

    def _schedule(self, id: str, op, arg, *, background: bool = True) -> asyncio.Task:
        prev = self._tails.get(id)
        task = asyncio.get_running_loop().create_task(
            self._run_after(prev, id, op, arg, background)
        )
        self._tails[id] = task
        self._inflight.add(task)
        task.add_done_callback(lambda t: self._write_done(id, t))
        return task

    def _write_done(self, id: str, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if self._tails.get(id) is task:
            del self._tails[id]

    async def _run_after(self, prev: Optional[asyncio.Task], id: str, op, arg,
                         background: bool) -> bool:
        if prev is not None:
            # Earlier writes for this id report their own failures
            await asyncio.wait([prev])
        try:
            await asyncio.to_thread(op, arg)
        except StorageUnavailable as e:
            if not background:
                raise
            self.write_failures += 1
            logger.error("Background write for note %s failed: %s", id, e)
            if self._on_write_error is not None:
                self._on_write_error(id, e)
            return False
        return True


def _newest_first(notes: list[Note]) -> list[Note]:
    return sorted(notes, key=lambda n: n.updated_at, reverse=True)
