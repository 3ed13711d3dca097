"""
CLI interface for the notes vault.

Usage:
    mindvault list --by-subject
    mindvault new --title "Optics" "Snell's law relates ..."
    mindvault edit <id> --content -
    mindvault organize
"""

import asyncio
import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer
from typing_extensions import Annotated

from .errors import MindVaultError, log_exception
from .logging_config import configure_quiet_mode, enable_debug_mode
from .types import DEFAULT_SUBJECT, DEFAULT_TITLE, Note
from .vault import Vault

T = TypeVar("T")


# Configure quiet mode by default (suppress verbose library output)
# Set MINDVAULT_VERBOSE=1 to enable debug mode via environment
if os.environ.get("MINDVAULT_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from . import __version__
        print(f"mindvault {__version__}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="mindvault",
    help="Personal study notes with subjects, attachments, and an AI study assistant.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="MINDVAULT_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Personal study notes with subjects, attachments, and an AI study assistant."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def _run(command: str, fn: Callable[[Vault], Awaitable[T]]) -> T:
    """Open the vault, run ``fn`` against it, and close it again.

    Vault errors become a one-line message on stderr and exit code 1; the
    full traceback goes to the error log.
    """
    async def runner() -> T:
        async with Vault(_get_store_override()) as vault:
            return await fn(vault)

    try:
        return asyncio.run(runner())
    except MindVaultError as e:
        log_path = log_exception(e, context=f"mindvault {command}", store_path=_get_store_override())
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise typer.Exit(1)


def _local_date(ms: int) -> str:
    if not ms:
        return ""
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d")


def _note_json(note: Note, *, content: bool = False) -> dict[str, Any]:
    """Note fields for JSON output. Attachment payloads are left out."""
    d = note.to_dict()
    d["attachments"] = [
        {"id": a.id, "type": a.type, "name": a.name} for a in note.attachments
    ]
    if not content:
        d.pop("content")
    return d


def _note_line(note: Note) -> str:
    parts = [note.id, _local_date(note.updated_at), f"[{note.effective_subject}]", note.title]
    if note.attachments:
        parts.append(f"({len(note.attachments)} attachments)")
    return "  ".join(parts)


def _read_text(value: Optional[str]) -> Optional[str]:
    """'-' means read from stdin."""
    if value == "-":
        return sys.stdin.read()
    return value


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command("list")
def list_notes(
    search: Annotated[Optional[str], typer.Option(
        "--search", "-q",
        help="Only notes whose title, tags, or subject contain this text",
    )] = None,
    by_subject: Annotated[bool, typer.Option(
        "--by-subject", "-S",
        help="Group notes by subject",
    )] = False,
):
    """List notes, newest first."""
    async def go(vault: Vault):
        return vault.by_subject(search or "") if by_subject else vault.search(search or "")

    result = _run("list", go)
    if by_subject:
        if _get_json_output():
            typer.echo(json.dumps(
                {subject: [_note_json(n) for n in notes] for subject, notes in result.items()},
                indent=2,
            ))
            return
        for subject, notes in result.items():
            typer.echo(f"{subject} ({len(notes)})")
            for note in notes:
                typer.echo(f"  {_note_line(note)}")
        return

    if _get_json_output():
        typer.echo(json.dumps([_note_json(n) for n in result], indent=2))
        return
    for note in result:
        typer.echo(_note_line(note))


@app.command()
def show(
    id: Annotated[str, typer.Argument(help="Note ID")],
):
    """Show a note."""
    async def go(vault: Vault):
        return vault.get(id)

    note = _run("show", go)
    if _get_json_output():
        typer.echo(json.dumps(_note_json(note, content=True), indent=2))
        return
    typer.echo(f"# {note.title}")
    typer.echo(f"id: {note.id}")
    typer.echo(f"subject: {note.effective_subject}")
    if note.tags:
        typer.echo(f"tags: {', '.join(note.tags)}")
    typer.echo(f"created: {_local_date(note.created_at)}  updated: {_local_date(note.updated_at)}")
    for att in note.attachments:
        typer.echo(f"attachment: {att.id}  {att.type}  {att.name}")
    typer.echo("")
    typer.echo(note.content)


@app.command()
def new(
    content: Annotated[Optional[str], typer.Argument(
        help="Markdown content ('-' reads stdin)",
    )] = None,
    title: Annotated[str, typer.Option("--title", "-t", help="Note title")] = DEFAULT_TITLE,
    subject: Annotated[str, typer.Option("--subject", help="Subject label")] = DEFAULT_SUBJECT,
    tags: Annotated[Optional[list[str]], typer.Option(
        "--tag", help="Tag (repeatable)",
    )] = None,
):
    """Create a note."""
    body = _read_text(content) or ""

    async def go(vault: Vault):
        return await vault.create_note(title=title, content=body, tags=tags or (), subject=subject)

    note = _run("new", go)
    if _get_json_output():
        typer.echo(json.dumps(_note_json(note), indent=2))
    else:
        typer.echo(note.id)


@app.command()
def edit(
    id: Annotated[str, typer.Argument(help="Note ID")],
    title: Annotated[Optional[str], typer.Option("--title", "-t", help="New title")] = None,
    content: Annotated[Optional[str], typer.Option(
        "--content", "-c", help="Replace content ('-' reads stdin)",
    )] = None,
    append: Annotated[Optional[str], typer.Option(
        "--append", "-a", help="Append to content ('-' reads stdin)",
    )] = None,
):
    """Change a note's title or content."""
    if content is not None and append is not None:
        typer.echo("Error: use either --content or --append, not both", err=True)
        raise typer.Exit(1)
    new_content = _read_text(content)
    extra = _read_text(append)

    async def go(vault: Vault):
        body = new_content
        if extra is not None:
            body = vault.get(id).content + extra
        return await vault.edit(id, title=title, content=body)

    note = _run("edit", go)
    typer.echo(note.id)


@app.command()
def rm(
    id: Annotated[str, typer.Argument(help="Note ID")],
):
    """Delete a note."""
    async def go(vault: Vault):
        return await vault.delete_note(id)

    if not _run("rm", go):
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Deleted {id}")


@app.command()
def attach(
    id: Annotated[str, typer.Argument(help="Note ID")],
    path: Annotated[Path, typer.Argument(help="PDF, image, markdown, or text file", exists=True,
                                         dir_okay=False)],
):
    """Attach a file to a note (text files are appended to the body)."""
    async def go(vault: Vault):
        return await vault.attach(id, path)

    attachment = _run("attach", go)
    if attachment is None:
        typer.echo(f"Appended {path.name} to {id}")
    else:
        typer.echo(attachment.id)


@app.command()
def detach(
    id: Annotated[str, typer.Argument(help="Note ID")],
    attachment_id: Annotated[str, typer.Argument(help="Attachment ID")],
):
    """Remove an attachment from a note."""
    async def go(vault: Vault):
        return await vault.detach(id, attachment_id)

    if not _run("detach", go):
        typer.echo(f"No attachment {attachment_id} on {id}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Removed {attachment_id}")


@app.command("export")
def export_cmd(
    path: Annotated[Optional[Path], typer.Argument(
        help="Output file (default: mindvault_backup_<date>.json)",
    )] = None,
):
    """Export every note to a JSON backup."""
    async def go(vault: Vault):
        return await vault.export(path)

    typer.echo(str(_run("export", go)))


@app.command("import")
def import_cmd(
    path: Annotated[Path, typer.Argument(help="JSON backup file", exists=True, dir_okay=False)],
):
    """Import notes from a JSON backup (existing ids are replaced)."""
    async def go(vault: Vault):
        return await vault.import_file(path)

    imported = _run("import", go)
    typer.echo(f"Imported {len(imported)} notes")


@app.command()
def organize(
    rename_all: Annotated[bool, typer.Option(
        "--rename-all", help="Retitle every note, not just untitled ones",
    )] = False,
):
    """Classify notes into subjects and retitle untitled notes."""
    def progress(result) -> None:
        status = "skipped" if result.skipped else ("failed" if result.error else "ok")
        typer.echo(f"[{round(result.progress * 100):3d}%] {result.note.id} {status}", err=True)

    async def go(vault: Vault):
        return await vault.organize(rename_all=rename_all or None, on_progress=progress)

    report = _run("organize", go)
    if _get_json_output():
        typer.echo(json.dumps(report.__dict__, indent=2))
        return
    typer.echo(
        f"Organized {report.total} notes: {report.updated} updated, "
        f"{report.unchanged} unchanged, {report.skipped} skipped, {report.failed} failed"
    )


@app.command()
def summarize(
    id: Annotated[str, typer.Argument(help="Note ID")],
):
    """Summarize a note."""
    async def go(vault: Vault):
        return await vault.summarize(id)

    typer.echo(_run("summarize", go))


@app.command()
def quiz(
    id: Annotated[str, typer.Argument(help="Note ID")],
):
    """Generate quiz questions from a note."""
    async def go(vault: Vault):
        return await vault.quiz(id)

    questions = _run("quiz", go)
    if _get_json_output():
        typer.echo(json.dumps([q.model_dump(by_alias=True) for q in questions], indent=2))
        return
    if not questions:
        typer.echo("No quiz questions could be generated.", err=True)
        raise typer.Exit(1)
    for n, q in enumerate(questions, 1):
        typer.echo(f"{n}. {q.question}")
        for i, option in enumerate(q.options):
            typer.echo(f"   {'ABCD'[i]}) {option}")
        typer.echo(f"   Answer: {'ABCD'[q.correct_answer]}. {q.explanation}")
        typer.echo("")


@app.command()
def ask(
    id: Annotated[str, typer.Argument(help="Note ID")],
    question: Annotated[str, typer.Argument(help="Question about the note")],
):
    """Ask the study assistant about a note."""
    async def go(vault: Vault):
        return await vault.ask(id, question)

    typer.echo(_run("ask", go))


@app.command()
def config():
    """Show the store configuration."""
    async def go(vault: Vault):
        return vault.config

    cfg = _run("config", go)
    data = {
        "path": str(cfg.path),
        "config_file": str(cfg.config_path),
        "database": str(cfg.db_path),
        "debounce_seconds": cfg.debounce_seconds,
        "on_switch": cfg.on_switch,
        "max_attachment_bytes": cfg.max_attachment_bytes,
        "min_content_length": cfg.min_content_length,
        "rename_all": cfg.rename_all,
        "text_provider": cfg.text.name,
    }
    if _get_json_output():
        typer.echo(json.dumps(data, indent=2))
        return
    for key, value in data.items():
        typer.echo(f"{key}: {value}")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        log_path = log_exception(e, context="mindvault CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
