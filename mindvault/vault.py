"""
The Vault: application object tying storage, cache, and services together.

A Vault has an explicit lifecycle (construct, ``await open()``, use,
``await close()``) and owns the single NoteCache for the session.
Components that need note access receive the cache from the vault rather
than reaching for global state.
"""

import asyncio
import logging
import weakref
from pathlib import Path
from typing import Iterable, Optional

from .assistant import ChatSession, FALLBACK_SUMMARY, StudyAssistant
from .backup import default_backup_name, export_notes, import_notes
from .cache import NoteCache
from .config import StoreConfig, get_config_dir, load_or_create_config
from .document_store import DocumentStore
from .editor import EditingSession
from .legacy import LegacyKeyValueFile, Migrator
from .logging_config import configure_ops_log, remove_ops_log
from .organize import OrganizeReport, ProgressCallback, organize_notes
from .protocol import LegacySourceProtocol, NoteStoreProtocol
from .providers.base import QuizQuestion, TextProvider, get_registry
from .types import DEFAULT_SUBJECT, DEFAULT_TITLE, Attachment, Note, new_note

logger = logging.getLogger(__name__)


class Vault:
    """
    A personal notes vault backed by a local SQLite store.

    Example:
        async with Vault() as vault:
            note = await vault.create_note(title="Optics")
            await vault.edit(note.id, content="# Optics\\n\\nSnell's law ...")
            print(await vault.summarize(note.id))
    """

    def __init__(
        self,
        store_path: Optional[str | Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        store: Optional[NoteStoreProtocol] = None,
        legacy: Optional[LegacySourceProtocol] = None,
        text_provider: Optional[TextProvider] = None,
    ) -> None:
        """
        Args:
            store_path: Store directory. Uses MINDVAULT_STORE_PATH or
                ~/.mindvault if not specified.
            config: Pre-loaded StoreConfig (skips filesystem config discovery).
            store: Injected note store (skips SQLite store creation).
            legacy: Injected legacy source (skips the legacy file).
            text_provider: Injected text provider (skips config-based creation).
        """
        if config is not None:
            self._config = config
        else:
            config_dir = Path(store_path).expanduser().resolve() if store_path else get_config_dir()
            self._config = load_or_create_config(config_dir)
        self._store_path = self._config.path

        self._ops_log_handler = configure_ops_log(self._store_path)

        self._store: NoteStoreProtocol = store if store is not None else DocumentStore(self._config.db_path)
        legacy = legacy if legacy is not None else LegacyKeyValueFile(self._config.legacy_path)
        self._cache = NoteCache(self._store, Migrator(self._store, legacy))

        # Created on first use so read-only commands never touch the network
        self._text_provider = text_provider
        self._assistant: Optional[StudyAssistant] = None
        self._sessions: "weakref.WeakSet[EditingSession]" = weakref.WeakSet()
        self._closed = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> "Vault":
        """Load notes (running the legacy migration first)."""
        if not self._cache.initialized:
            await self._cache.initialize()
        return self

    async def close(self) -> None:
        """
        Commit edits still waiting in open sessions, wait for pending writes,
        then release the database.
        """
        if self._closed:
            return
        self._closed = True
        try:
            for session in list(self._sessions):
                session.commit()
                session.close()
            await self._cache.flush()
        finally:
            self._store.close()
            remove_ops_log(self._ops_log_handler)
            self._ops_log_handler = None

    async def __aenter__(self) -> "Vault":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def store_path(self) -> Path:
        return self._store_path

    @property
    def cache(self) -> NoteCache:
        return self._cache

    @property
    def text_provider(self) -> TextProvider:
        if self._text_provider is None:
            self._text_provider = get_registry().create_text(
                self._config.text.name, self._config.text.params,
            )
        return self._text_provider

    @property
    def assistant(self) -> StudyAssistant:
        if self._assistant is None:
            self._assistant = StudyAssistant(self.text_provider)
        return self._assistant

    def editing_session(self) -> EditingSession:
        """
        A new debounced editing session configured from the store config.

        Edits still pending in the session are committed when the vault closes.
        """
        session = EditingSession(
            self._cache,
            quiet_period=self._config.debounce_seconds,
            on_switch=self._config.on_switch,
            max_attachment_bytes=self._config.max_attachment_bytes,
        )
        self._sessions.add(session)
        return session

    # -------------------------------------------------------------------------
    # Notes
    # -------------------------------------------------------------------------

    @property
    def notes(self) -> list[Note]:
        return self._cache.notes

    def get(self, id: str) -> Note:
        return self._cache.get(id)

    def search(self, query: str) -> list[Note]:
        return self._cache.search(query)

    def by_subject(self, query: str = "") -> dict[str, list[Note]]:
        return self._cache.by_subject(query)

    async def create_note(
        self,
        *,
        title: str = DEFAULT_TITLE,
        content: str = "",
        tags: Iterable[str] = (),
        subject: str = DEFAULT_SUBJECT,
    ) -> Note:
        """Create and immediately persist a note."""
        return await self._cache.add(
            new_note(title=title, content=content, tags=tags, subject=subject)
        )

    async def edit(
        self,
        id: str,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
    ) -> Note:
        """
        Apply a one-shot edit and wait until it is stored.

        Raises:
            NoteNotFound: If the note is not loaded
            StorageUnavailable: If the edit could not be saved
        """
        session = self.editing_session()
        session.open(id)
        if title is not None:
            session.set_title(title)
        if content is not None:
            session.set_content(content)
        await session.flush()
        return self._cache.get(id)

    async def delete_note(self, id: str) -> bool:
        """
        Delete a note. Returns False if it wasn't loaded.

        Raises:
            StorageUnavailable: If the record could not be deleted
        """
        existed = id in self._cache
        await self._cache.remove(id, background=False)
        return existed

    async def attach(self, id: str, path: Path) -> Optional[Attachment]:
        """
        Attach a file to a note and store the result.

        Returns the new attachment, or None for text files (which are
        appended to the body instead).

        Raises:
            AttachmentTooLarge: If the file is over the configured limit
            StorageUnavailable: If the note could not be saved
        """
        session = self.editing_session()
        session.open(id)
        attachment = session.attach_file(Path(path))
        await session.flush()
        return attachment

    async def detach(self, id: str, attachment_id: str) -> bool:
        session = self.editing_session()
        session.open(id)
        removed = session.remove_attachment(attachment_id)
        await session.flush()
        return removed

    # -------------------------------------------------------------------------
    # Backup
    # -------------------------------------------------------------------------

    async def export(self, path: Optional[Path] = None) -> Path:
        await self._cache.flush()
        target = Path(path) if path is not None else Path.cwd() / default_backup_name()
        return await asyncio.to_thread(export_notes, self._cache.notes, target)

    async def import_file(self, path: Path) -> list[Note]:
        """
        Restore notes from a backup file, then reload the cache.

        Raises:
            ImportFormatError: If the file is not a valid backup (nothing is written)
        """
        await self._cache.flush()
        imported = await asyncio.to_thread(import_notes, Path(path), self._store)
        await self._cache.reload()
        return imported

    # -------------------------------------------------------------------------
    # Study features
    # -------------------------------------------------------------------------

    async def organize(
        self,
        *,
        rename_all: Optional[bool] = None,
        stop: Optional[asyncio.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> OrganizeReport:
        return await organize_notes(
            self._cache,
            self.text_provider,
            min_content_length=self._config.min_content_length,
            rename_all=self._config.rename_all if rename_all is None else rename_all,
            stop=stop,
            on_progress=on_progress,
        )

    async def summarize(self, id: str) -> str:
        """Summarize a note; a successful summary is saved on the note."""
        note = self._cache.get(id)
        summary = await self.assistant.summarize(note.content)
        if summary != FALLBACK_SUMMARY:
            current = self._cache.find(id)
            if current is not None and current.summary != summary:
                await self._cache.update(current.touched(summary=summary))
        return summary

    async def quiz(self, id: str) -> list[QuizQuestion]:
        return await self.assistant.quiz(self._cache.get(id).content)

    def chat_session(self, id: str) -> ChatSession:
        self._cache.get(id)
        return ChatSession(self.assistant, id)

    async def ask(self, id: str, question: str, session: Optional[ChatSession] = None) -> str:
        session = session or self.chat_session(id)
        return await session.ask(self._cache.get(id).content, question)
