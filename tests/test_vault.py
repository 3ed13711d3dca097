"""
End-to-end tests for the Vault against a real SQLite store.
"""

import json

import pytest

from mindvault import Vault
from mindvault.assistant import FALLBACK_SUMMARY
from mindvault.editor import SessionState
from mindvault.errors import ImportFormatError, NoteNotFound, StorageUnavailable
from mindvault.types import WELCOME_NOTE_ID, Attachment

from conftest import MemoryStore, MockTextProvider, make_note

LONG = "Newton's second law says force equals mass times acceleration."


class TestVaultLifecycle:

    @pytest.mark.asyncio
    async def test_new_vault_has_welcome_note(self, store_dir):
        async with Vault(store_dir) as vault:
            assert [n.id for n in vault.notes] == [WELCOME_NOTE_ID]
        assert (store_dir / "notes.db").exists()
        assert (store_dir / "mindvault.toml").exists()
        assert (store_dir / "mindvault-ops.log").exists()

    @pytest.mark.asyncio
    async def test_notes_survive_reopen(self, store_dir):
        async with Vault(store_dir) as vault:
            note = await vault.create_note(title="Optics", content="Snell", tags=["physics"])
            await vault.edit(note.id, content="Snell's law")

        async with Vault(store_dir) as vault:
            reopened = vault.get(note.id)
            assert reopened.content == "Snell's law"
            assert reopened.tags == ("physics",)
            assert vault.notes[0].id == note.id

    @pytest.mark.asyncio
    async def test_legacy_notes_migrated_on_first_open(self, store_dir):
        store_dir.mkdir(parents=True)
        legacy = [{"id": "old-1", "title": "Legacy", "content": "x",
                   "createdAt": 1, "updatedAt": 2}]
        (store_dir / "legacy.json").write_text(json.dumps({"mindvault_notes_v2": json.dumps(legacy)}))

        async with Vault(store_dir) as vault:
            assert [n.id for n in vault.notes] == ["old-1"]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, store_dir):
        vault = await Vault(store_dir).open()
        await vault.close()
        await vault.close()


class TestVaultOperations:

    @pytest.mark.asyncio
    async def test_delete(self, store_dir):
        async with Vault(store_dir) as vault:
            assert await vault.delete_note(WELCOME_NOTE_ID) is True
            assert await vault.delete_note(WELCOME_NOTE_ID) is False
            with pytest.raises(NoteNotFound):
                vault.get(WELCOME_NOTE_ID)

    @pytest.mark.asyncio
    async def test_attach_and_detach(self, store_dir, tmp_path):
        pdf = tmp_path / "slides.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        async with Vault(store_dir) as vault:
            note = await vault.create_note(title="Optics")
            attachment = await vault.attach(note.id, pdf)
            assert vault.get(note.id).attachments[0].name == "slides.pdf"
            assert await vault.detach(note.id, attachment.id) is True
            assert vault.get(note.id).attachments == ()

    @pytest.mark.asyncio
    async def test_export_import(self, store_dir, tmp_path):
        async with Vault(store_dir) as vault:
            note = await vault.create_note(title="Optics", content="Snell")
            path = await vault.export(tmp_path / "backup.json")

        other = tmp_path / "other"
        async with Vault(other) as vault:
            imported = await vault.import_file(path)
            assert {n.id for n in imported} == {note.id, WELCOME_NOTE_ID}
            assert vault.get(note.id).content == "Snell"

    @pytest.mark.asyncio
    async def test_bad_import_changes_nothing(self, store_dir, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text('{"a":1}')
        async with Vault(store_dir) as vault:
            with pytest.raises(ImportFormatError):
                await vault.import_file(bad)
            assert [n.id for n in vault.notes] == [WELCOME_NOTE_ID]


class TestStudyFeatures:

    @pytest.mark.asyncio
    async def test_summary_is_saved(self, store_dir):
        async with Vault(store_dir, text_provider=MockTextProvider()) as vault:
            note = await vault.create_note(content=LONG)
            summary = await vault.summarize(note.id)
            assert summary.startswith("Summary of")
            assert vault.get(note.id).summary == summary

    @pytest.mark.asyncio
    async def test_failed_summary_is_not_saved(self, store_dir):
        async with Vault(store_dir, text_provider=MockTextProvider(fail_all=True)) as vault:
            note = await vault.create_note(content=LONG)
            assert await vault.summarize(note.id) == FALLBACK_SUMMARY
            assert vault.get(note.id).summary is None

    @pytest.mark.asyncio
    async def test_organize(self, store_dir):
        async with Vault(store_dir, text_provider=MockTextProvider()) as vault:
            note = await vault.create_note(content=LONG)
            report = await vault.organize()
            assert report.updated >= 1
            organized = vault.get(note.id)
            assert organized.subject == "Physics"
            assert organized.title == "Newton's Laws"

    @pytest.mark.asyncio
    async def test_quiz_and_ask(self, store_dir):
        async with Vault(store_dir, text_provider=MockTextProvider()) as vault:
            note = await vault.create_note(content=LONG)
            questions = await vault.quiz(note.id)
            assert questions[0].options[0] == "ma"
            session = vault.chat_session(note.id)
            assert await vault.ask(note.id, "why?", session) == "Answer #1: why?"
            assert len(session.history) == 2

    @pytest.mark.asyncio
    async def test_passthrough_provider_from_config(self, store_dir):
        async with Vault(store_dir) as vault:
            assert type(vault.text_provider).__name__ == "PassthroughTextProvider"


class TestStorageFailures:
    """Explicit vault operations report a failed write instead of returning normally."""

    @staticmethod
    def _vault(store_dir, *notes) -> tuple[Vault, MemoryStore]:
        store = MemoryStore(notes or [make_note("a", title="Before", content="start")])
        return Vault(store_dir, store=store, text_provider=MockTextProvider()), store

    @pytest.mark.asyncio
    async def test_edit_failure_raises(self, store_dir):
        vault, store = self._vault(store_dir)
        async with vault:
            store.fail = True
            with pytest.raises(StorageUnavailable, match="disk full"):
                await vault.edit("a", title="After")
        assert store.records["a"].title == "Before"

    @pytest.mark.asyncio
    async def test_delete_failure_raises(self, store_dir):
        vault, store = self._vault(store_dir)
        async with vault:
            store.fail = True
            with pytest.raises(StorageUnavailable):
                await vault.delete_note("a")
        assert "a" in store.records

    @pytest.mark.asyncio
    async def test_attach_failure_raises(self, store_dir, tmp_path):
        pdf = tmp_path / "slides.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        vault, store = self._vault(store_dir)
        async with vault:
            store.fail = True
            with pytest.raises(StorageUnavailable):
                await vault.attach("a", pdf)
        assert store.records["a"].attachments == ()

    @pytest.mark.asyncio
    async def test_detach_failure_raises(self, store_dir):
        slides = Attachment("att-1", "pdf", "slides.pdf", "data:application/pdf;base64,AAAA")
        vault, store = self._vault(store_dir, make_note("a", attachments=(slides,)))
        async with vault:
            store.fail_ids = {"a"}
            with pytest.raises(StorageUnavailable):
                await vault.detach("a", "att-1")
        assert store.records["a"].attachments == (slides,)

    @pytest.mark.asyncio
    async def test_close_commits_pending_session_edits(self, store_dir):
        vault = await Vault(store_dir).open()
        note = await vault.create_note(title="Optics")
        session = vault.editing_session()
        session.open(note.id)
        session.set_content("typed just before quitting")
        assert session.state is SessionState.PENDING_WRITE

        await vault.close()

        assert session.state is SessionState.IDLE
        assert session.note_id is None
        async with Vault(store_dir) as reopened:
            assert reopened.get(note.id).content == "typed just before quitting"
