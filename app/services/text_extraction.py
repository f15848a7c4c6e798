"""Plain-text extraction from PDF and Word documents."""

from __future__ import annotations

import io
from enum import Enum
from typing import Optional

from docx import Document
from pypdf import PdfReader

from app.services.exceptions import ExtractionFailure


class DocumentFormat(str, Enum):
    PDF = "pdf"
    DOCX = "docx"


def detect_format(filename: str) -> Optional[DocumentFormat]:
    """Map a filename to a supported format by extension, or ``None``."""
    lowered = (filename or "").lower()
    for fmt in DocumentFormat:
        if lowered.endswith(f".{fmt.value}"):
            return fmt
    return None


def is_supported(filename: str) -> bool:
    return detect_format(filename) is not None


def extract_pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except Exception as exc:
        raise ExtractionFailure(DocumentFormat.PDF.value, str(exc)) from exc


def extract_docx_text(data: bytes) -> str:
    try:
        document = Document(io.BytesIO(data))
        parts = [paragraph.text for paragraph in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                parts.append("\t".join(cell.text for cell in row.cells))
    except Exception as exc:
        raise ExtractionFailure(DocumentFormat.DOCX.value, str(exc)) from exc
    return "\n".join(parts)


def extract_text(filename: str, data: bytes) -> str:
    """Extract text from ``data`` using the format implied by ``filename``.

    Raises:
        ExtractionFailure: If the format is unsupported or the document
            cannot be parsed. ``format`` names the parser that failed.
    """
    fmt = detect_format(filename)
    if fmt is DocumentFormat.PDF:
        return extract_pdf_text(data)
    if fmt is DocumentFormat.DOCX:
        return extract_docx_text(data)
    raise ExtractionFailure("unsupported", f"no extractor for '{filename}'")
