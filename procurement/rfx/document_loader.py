#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Document loader: extract plain text from an uploaded proposal file.

Supports PDF (via pypdf), DOCX (via python-docx), and plain text. Works on
in-memory bytes; nothing is written to disk. A decoder failure is reported
as DocumentDecodeError, distinct from a file that legitimately has no text.
load_text() never raises: on PDF/DOCX failure it degrades to best-effort
raw-byte decoding.
"""

import io
import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

from docx import Document
from pypdf import PdfReader

logger = logging.getLogger("procurement.rfx.document_loader")

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class DocumentDecodeError(ValueError):
    """A decoder could not read the document."""


@dataclass(frozen=True)
class LoadedText:
    text: str
    decoder: str                 # pdf | docx | text | raw_fallback
    error: Optional[str] = None


# ── text extraction ────────────────────────────────────────────────────────────

def _extract_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as e:
        raise DocumentDecodeError(f"PDF extraction error: {e}") from e
    return "\n\n".join(pages)


def _extract_docx(data: bytes) -> str:
    try:
        doc = Document(io.BytesIO(data))
    except Exception as e:
        raise DocumentDecodeError(f"DOCX extraction error: {e}") from e
    paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text.strip()]
            if cells:
                paragraphs.append(" | ".join(cells))
    return "\n".join(paragraphs)


def _extract_plain(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _raw_fallback(data: bytes) -> str:
    """Printable text salvaged from arbitrary bytes."""
    text = data.decode("utf-8", errors="ignore")
    text = _CONTROL_CHARS.sub(" ", text)
    return re.sub(r"[ \t]{2,}", " ", text)


def detect_kind(mime_type: str = "", file_name: str = "") -> str:
    suffix = PurePath(file_name or "").suffix.lower()
    mime_type = (mime_type or "").lower()
    if suffix == ".pdf" or "pdf" in mime_type:
        return "pdf"
    if suffix == ".docx" or "wordprocessingml" in mime_type:
        return "docx"
    return "text"


def decode(data: bytes, mime_type: str = "", file_name: str = "") -> str:
    """Decode a document by declared MIME type / extension. Raises DocumentDecodeError."""
    kind = detect_kind(mime_type, file_name)
    if kind == "pdf":
        return _extract_pdf(data)
    if kind == "docx":
        return _extract_docx(data)
    return _extract_plain(data)


def load_text(data: bytes, mime_type: str = "", file_name: str = "") -> LoadedText:
    """Decode ``data`` to text, degrading to raw-byte decoding on failure."""
    data = data or b""
    kind = detect_kind(mime_type, file_name)
    try:
        return LoadedText(text=decode(data, mime_type, file_name), decoder=kind)
    except DocumentDecodeError as e:
        logger.warning("Decoder %s failed for %s: %s; using raw fallback", kind, file_name, e)
        return LoadedText(text=_raw_fallback(data), decoder="raw_fallback", error=str(e))


def meaningful_chars(text: str) -> int:
    """Count of alphanumeric characters (replacement chars and markup excluded)."""
    return sum(1 for c in text or "" if c.isalnum())


def guess_mime(file_name: str) -> str:
    ext = PurePath(file_name or "").suffix.lower()
    return {
        ".pdf": "application/pdf",
        ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ".doc": "application/msword",
        ".txt": "text/plain",
        ".md": "text/markdown",
        ".eml": "message/rfc822",
        ".csv": "text/csv",
    }.get(ext, "application/octet-stream")
