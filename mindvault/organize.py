"""
Batch classification of notes ("Smart Organize").

Split into a producer and a driver:

- ClassificationBatch asks the text provider for a subject and a title,
  one note at a time, and yields a result per note. Notes are processed
  strictly sequentially to stay inside the provider's rate limits.
- organize_notes() consumes the batch, writes each result back through
  the note cache as soon as it arrives, and reports progress.

A failure on one note is logged and the batch moves on. A stop event is
checked before each note; the note in progress is always finished.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional, Sequence

from .cache import NoteCache
from .config import DEFAULT_MIN_CONTENT_LENGTH
from .errors import ExternalServiceError
from .providers.base import TextProvider
from .types import PLACEHOLDER_TITLES, Note, normalize_subject

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrganizeResult:
    """Outcome for one note of a batch."""
    note: Note
    index: int
    total: int
    subject: Optional[str] = None
    title: Optional[str] = None
    skipped: bool = False
    error: Optional[ExternalServiceError] = None

    @property
    def progress(self) -> float:
        """Fraction of the batch processed, including this note."""
        return (self.index + 1) / self.total if self.total else 1.0

    @property
    def ok(self) -> bool:
        return not self.skipped and self.error is None


@dataclass
class OrganizeReport:
    total: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    failed: int = 0
    stopped: bool = False


class ClassificationBatch:
    """
    Finite, restartable async sequence of per-note classifications.

    Each ``async for`` over the batch starts again from the first note.
    The provider is called directly so its failures are visible per note
    (no fallback values are substituted).
    """

    def __init__(
        self,
        notes: Sequence[Note],
        provider: TextProvider,
        *,
        min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
        rename_all: bool = False,
        stop: Optional[asyncio.Event] = None,
    ):
        self._notes = list(notes)
        self._provider = provider
        self.min_content_length = min_content_length
        self.rename_all = rename_all
        self._stop = stop
        self.stopped = False

    def __len__(self) -> int:
        return len(self._notes)

    def __aiter__(self) -> AsyncIterator[OrganizeResult]:
        return self._run()

    async def _run(self) -> AsyncIterator[OrganizeResult]:
        self.stopped = False
        total = len(self._notes)
        for i, note in enumerate(self._notes):
            if self._stop is not None and self._stop.is_set():
                self.stopped = True
                logger.info("Organize stopped after %d of %d notes", i, total)
                return

            if len(note.content) < self.min_content_length:
                yield OrganizeResult(note=note, index=i, total=total, skipped=True)
                continue

            try:
                # Both requests for one note may run together
                label, title = await asyncio.gather(
                    asyncio.to_thread(self._provider.classify, note.content),
                    asyncio.to_thread(self._provider.title_for, note.content),
                )
            except ExternalServiceError as e:
                logger.warning("Error organizing note %s: %s", note.id, e)
                yield OrganizeResult(note=note, index=i, total=total, error=e)
                continue

            if not (self.rename_all or note.title in PLACEHOLDER_TITLES):
                title = None
            yield OrganizeResult(
                note=note,
                index=i,
                total=total,
                subject=normalize_subject(label),
                title=title,
            )


ProgressCallback = Callable[[OrganizeResult], None]


async def organize_notes(
    cache: NoteCache,
    provider: TextProvider,
    *,
    min_content_length: int = DEFAULT_MIN_CONTENT_LENGTH,
    rename_all: bool = False,
    stop: Optional[asyncio.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> OrganizeReport:
    """
    Classify and retitle every cached note, saving each result immediately.

    Results are applied to the note's *current* cached record, so edits made
    while the batch runs are kept. Each write is awaited before the next
    note starts, so a crash mid-batch keeps the notes already processed.
    """
    batch = ClassificationBatch(
        cache.notes,
        provider,
        min_content_length=min_content_length,
        rename_all=rename_all,
        stop=stop,
    )
    report = OrganizeReport(total=len(batch))
    logger.info("Organizing %d notes", report.total)

    async for result in batch:
        if result.skipped:
            report.skipped += 1
        elif result.error is not None:
            report.failed += 1
        else:
            await _apply(cache, result, report)
        if on_progress is not None:
            on_progress(result)

    report.stopped = batch.stopped
    logger.info(
        "Organize finished: %d updated, %d unchanged, %d skipped, %d failed",
        report.updated, report.unchanged, report.skipped, report.failed,
    )
    return report


async def _apply(cache: NoteCache, result: OrganizeResult, report: OrganizeReport) -> None:
    current = cache.find(result.note.id)
    if current is None:
        logger.info("Note %s was deleted during organize", result.note.id)
        report.unchanged += 1
        return

    changes = {}
    if result.subject and result.subject != current.effective_subject:
        changes["subject"] = result.subject
    if result.title and result.title != current.title:
        changes["title"] = result.title
    if not changes:
        report.unchanged += 1
        return

    await cache.update(current.touched(**changes))
    report.updated += 1
