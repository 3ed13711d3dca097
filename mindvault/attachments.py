"""
File ingestion for note attachments.

PDFs and images become inline attachments (base64 data URLs). Images are
also referenced from the note body so they show up in the rendered
markdown. Markdown and plain-text files are appended to the body instead
of being attached.
"""

import base64
import logging
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import DEFAULT_MAX_ATTACHMENT_BYTES
from .errors import AttachmentTooLarge, UnsupportedAttachment
from .types import Attachment

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = (".md", ".markdown", ".txt")


@dataclass(frozen=True)
class IngestResult:
    """What a file contributes to a note."""
    attachment: Optional[Attachment] = None
    content_append: str = ""


def check_size(name: str, size: int, limit: int = DEFAULT_MAX_ATTACHMENT_BYTES) -> None:
    """
    Raises:
        AttachmentTooLarge: If ``size`` exceeds ``limit`` bytes
    """
    if size > limit:
        raise AttachmentTooLarge(name, size, limit)


def guess_content_type(name: str) -> str:
    content_type, _ = mimetypes.guess_type(name)
    if content_type is None and name.lower().endswith((".md", ".markdown")):
        return "text/markdown"
    return content_type or "application/octet-stream"


def to_data_url(data: bytes, content_type: str) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def decode_data_url(data: str) -> bytes:
    """Inverse of to_data_url(); also accepts bare base64."""
    if "base64," in data:
        data = data.split("base64,", 1)[1]
    return base64.b64decode(data)


def ingest_file(path: Path, max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES) -> IngestResult:
    """
    Turn a file into an attachment or a body fragment.

    The size ceiling is checked from the file's metadata before any of
    its bytes are read.

    Raises:
        FileNotFoundError: If ``path`` does not exist
        AttachmentTooLarge: If the file exceeds ``max_bytes``
        UnsupportedAttachment: If the file is not a PDF, image, or text file
    """
    path = Path(path)
    size = path.stat().st_size
    check_size(path.name, size, max_bytes)
    return ingest_bytes(path.name, path.read_bytes(), guess_content_type(path.name),
                        max_bytes=max_bytes)


def ingest_bytes(
    name: str,
    data: bytes,
    content_type: Optional[str] = None,
    *,
    max_bytes: int = DEFAULT_MAX_ATTACHMENT_BYTES,
) -> IngestResult:
    """
    Same as ingest_file() for an in-memory payload.

    Raises:
        AttachmentTooLarge: If ``data`` exceeds ``max_bytes``
        UnsupportedAttachment: If the payload is not a PDF, image, or text
    """
    check_size(name, len(data), max_bytes)
    content_type = content_type or guess_content_type(name)

    if content_type == "application/pdf":
        attachment = Attachment(
            id=str(uuid.uuid4()),
            type="pdf",
            name=name,
            data=to_data_url(data, content_type),
        )
        return IngestResult(attachment=attachment)

    if content_type.startswith("image/"):
        data_url = to_data_url(data, content_type)
        attachment = Attachment(id=str(uuid.uuid4()), type="image", name=name, data=data_url)
        return IngestResult(
            attachment=attachment,
            content_append=f"\n\n![{name}]({data_url})\n\n",
        )

    if content_type in ("text/plain", "text/markdown") or name.lower().endswith(TEXT_EXTENSIONS):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UnsupportedAttachment(f"{name} is not UTF-8 text") from e
        return IngestResult(content_append=f"\n\n{text}\n\n")

    raise UnsupportedAttachment(f"Unsupported file type: {name} ({content_type})")
