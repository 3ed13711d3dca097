"""
Tests for the note cache: optimistic updates and ordered write-back.
"""

import asyncio

import pytest

from mindvault.cache import NoteCache
from mindvault.errors import NoteNotFound, StorageUnavailable
from mindvault.legacy import Migrator
from mindvault.types import WELCOME_NOTE_ID, new_note

from conftest import MemoryStore, make_note


async def _loaded(store: MemoryStore, **kwargs) -> NoteCache:
    cache = NoteCache(store, **kwargs)
    await cache.initialize()
    return cache


class TestInitialize:

    @pytest.mark.asyncio
    async def test_empty_vault_seeds_welcome_note(self):
        store = MemoryStore()
        cache = await _loaded(store)
        assert [n.id for n in cache.notes] == [WELCOME_NOTE_ID]
        assert WELCOME_NOTE_ID in store.records

    @pytest.mark.asyncio
    async def test_newest_first(self):
        store = MemoryStore([
            make_note("old", updated_at=100),
            make_note("new", updated_at=300),
            make_note("mid", updated_at=200),
        ])
        cache = await _loaded(store)
        assert [n.id for n in cache.notes] == ["new", "mid", "old"]

    @pytest.mark.asyncio
    async def test_runs_migration_first(self):
        class Legacy:
            def get_item(self, key):
                return '[{"id": "legacy-1", "title": "From before", "createdAt": 5, "updatedAt": 5}]'

        store = MemoryStore()
        cache = NoteCache(store, Migrator(store, Legacy()))
        await cache.initialize()
        assert [n.id for n in cache.notes] == ["legacy-1"]

    @pytest.mark.asyncio
    async def test_unreadable_store_propagates(self):
        class BrokenStore(MemoryStore):
            def get_all(self):
                raise StorageUnavailable("database is locked")

        with pytest.raises(StorageUnavailable):
            await NoteCache(BrokenStore()).initialize()


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_is_visible_before_write_lands(self):
        note = make_note("a", title="Before")
        store = MemoryStore([note])
        cache = await _loaded(store)

        write = cache.update(note.touched(title="After"))
        # No await yet: memory changed, store has not
        assert cache.get("a").title == "After"
        assert store.records["a"].title == "Before"

        assert await write is True
        assert store.records["a"].title == "After"

    @pytest.mark.asyncio
    async def test_update_unknown_note(self):
        cache = await _loaded(MemoryStore([make_note("a")]))
        with pytest.raises(NoteNotFound):
            cache.update(make_note("ghost"))

    @pytest.mark.asyncio
    async def test_writes_for_same_note_land_in_order(self):
        note = make_note("a", content="v0")
        store = MemoryStore([note])
        cache = await _loaded(store)
        # The first write is slow; the second must still land after it
        store.delays = [0.1, 0.0]

        first = cache.update(note.with_changes(content="v1", updated_at=2000))
        second = cache.update(note.with_changes(content="v2", updated_at=3000))
        await asyncio.gather(first, second)

        assert [n.content for n in store.puts] == ["v1", "v2"]
        assert store.records["a"].content == "v2"

    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_and_is_reported(self, caplog):
        note = make_note("a", title="Before")
        store = MemoryStore([note])
        errors = []
        cache = await _loaded(store, on_write_error=lambda id, e: errors.append(id))
        store.fail = True

        ok = await cache.update(note.touched(title="After"))

        assert ok is False
        assert cache.get("a").title == "After"
        assert store.records["a"].title == "Before"
        assert cache.write_failures == 1
        assert errors == ["a"]
        assert "Background write for note a failed" in caplog.text

    @pytest.mark.asyncio
    async def test_failure_does_not_block_later_writes(self):
        note = make_note("a")
        store = MemoryStore([note])
        cache = await _loaded(store)

        store.fail = True
        failed = cache.update(note.with_changes(content="lost"))
        await failed
        store.fail = False
        assert await cache.update(note.with_changes(content="saved")) is True
        assert store.records["a"].content == "saved"


class TestAddRemove:

    @pytest.mark.asyncio
    async def test_add_persists_and_goes_first(self):
        store = MemoryStore([make_note("a", updated_at=10**13)])
        cache = await _loaded(store)
        note = new_note(title="Fresh")
        await cache.add(note)
        assert cache.notes[0].id == note.id
        assert store.records[note.id] == note

    @pytest.mark.asyncio
    async def test_add_failure_propagates(self):
        store = MemoryStore([make_note("a")])
        cache = await _loaded(store)
        store.fail = True
        note = new_note(title="Doomed")
        with pytest.raises(StorageUnavailable):
            await cache.add(note)
        assert note.id not in cache
        assert cache.write_failures == 0

    @pytest.mark.asyncio
    async def test_add_duplicate_id(self):
        cache = await _loaded(MemoryStore([make_note("a")]))
        with pytest.raises(ValueError):
            await cache.add(make_note("a"))

    @pytest.mark.asyncio
    async def test_remove(self):
        store = MemoryStore([make_note("a"), make_note("b")])
        cache = await _loaded(store)
        write = cache.remove("a")
        assert "a" not in cache
        assert await write is True
        assert "a" not in store.records

    @pytest.mark.asyncio
    async def test_update_then_remove_ends_deleted(self):
        note = make_note("a")
        store = MemoryStore([note])
        cache = await _loaded(store)
        store.delays = [0.05]
        cache.update(note.with_changes(content="edit"))
        cache.remove("a")
        await cache.flush()
        assert "a" not in store.records
        assert cache.pending_writes == 0


class TestQueries:

    @pytest.mark.asyncio
    async def test_search_matches_tag_or_subject(self):
        store = MemoryStore([
            make_note("1", title="Lecture 3", tags=("physics",), updated_at=3),
            make_note("2", title="Lecture 4", subject="Physics", updated_at=2),
            make_note("3", title="Lecture 5", subject="History", updated_at=1),
        ])
        cache = await _loaded(store)
        assert [n.id for n in cache.search("phys")] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_by_subject(self):
        store = MemoryStore([
            make_note("1", subject="Physics"),
            make_note("2", subject="History"),
        ])
        cache = await _loaded(store)
        groups = cache.by_subject()
        assert list(groups) == ["History", "Physics"]

    @pytest.mark.asyncio
    async def test_reload_picks_up_store_changes(self):
        store = MemoryStore([make_note("a")])
        cache = await _loaded(store)
        store.records["b"] = make_note("b", updated_at=5000)
        await cache.reload()
        assert [n.id for n in cache.notes] == ["b", "a"]


class TestExplicitWrites:
    """Writes issued with background=False report failures to the caller."""

    @pytest.mark.asyncio
    async def test_explicit_update_failure_raises(self):
        note = make_note("a", title="Before")
        store = MemoryStore([note])
        cache = await _loaded(store)
        store.fail = True

        with pytest.raises(StorageUnavailable):
            await cache.update(note.touched(title="After"), background=False)

        assert store.records["a"].title == "Before"
        assert cache.write_failures == 0

    @pytest.mark.asyncio
    async def test_explicit_remove_failure_raises(self):
        store = MemoryStore([make_note("a")])
        cache = await _loaded(store)
        store.fail = True

        with pytest.raises(StorageUnavailable):
            await cache.remove("a", background=False)

        assert "a" in store.records

    @pytest.mark.asyncio
    async def test_explicit_write_waits_for_earlier_failure(self):
        note = make_note("a")
        store = MemoryStore([note])
        cache = await _loaded(store)
        store.fail_ids = {"a"}
        first = cache.update(note.with_changes(content="bg"))
        second = cache.update(note.with_changes(content="explicit"), background=False)
        assert await first is False
        with pytest.raises(StorageUnavailable):
            await second
        assert cache.write_failures == 1
