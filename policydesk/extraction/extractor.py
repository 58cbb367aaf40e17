# policydesk/extraction/extractor.py

"""
Format-dispatching text extraction for uploaded documents.

Supports:
- PDF (text layer only, via pypdf)
- DOCX (paragraphs and table cells, via python-docx)
- TXT (UTF-8)

Dispatch is driven by the declared format string, never by sniffing
file contents. Output is returned as decoded; whitespace normalization
and truncation are left to callers.
"""

import asyncio
import logging
import os
from typing import Callable, Dict, Union

import docx
from pypdf import PdfReader

from policydesk.exceptions import ExtractionError, UnsupportedFormatError
from policydesk.models import DocumentFormat

logger = logging.getLogger(__name__)


# ============================================================
# PDF
# ============================================================

def load_pdf_text(file_path: str) -> str:

    reader = PdfReader(file_path)

    parts = []

    for page in reader.pages:

        text = page.extract_text()

        if text:
            parts.append(text)

    return "\n".join(parts)


# ============================================================
# DOCX
# ============================================================

def load_docx_text(file_path: str) -> str:

    document = docx.Document(file_path)

    parts = [paragraph.text for paragraph in document.paragraphs]

    for table in document.tables:
        for row in table.rows:
            cells = [cell.text for cell in row.cells if cell.text]
            if cells:
                parts.append("\t".join(cells))

    return "\n".join(parts)


# ============================================================
# TXT
# ============================================================

def load_txt_text(file_path: str) -> str:

    with open(file_path, "r", encoding="utf-8") as f:
        return f.read()


_LOADERS: Dict[DocumentFormat, Callable[[str], str]] = {
    DocumentFormat.PDF: load_pdf_text,
    DocumentFormat.DOCX: load_docx_text,
    DocumentFormat.TXT: load_txt_text,
}


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def extract_text(file_path: str, file_format: Union[str, DocumentFormat]) -> str:
    """
    Extract the full text of a document.

    Raises:
        FileNotFoundError: file_path does not exist at call time
        UnsupportedFormatError: file_format is not pdf, docx or txt
        ExtractionError: the decoder failed (original error chained)
    """

    if not os.path.exists(file_path):
        raise FileNotFoundError(f"File not found: {file_path}")

    fmt = (
        file_format if isinstance(file_format, DocumentFormat)
        else DocumentFormat.parse(file_format)
    )

    try:

        text = _LOADERS[fmt](file_path)

    except Exception as e:

        logger.error(
            "Text extraction failed",
            extra={
                "file_path": file_path,
                "file_format": fmt.value,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )

        raise ExtractionError(
            f"Failed to extract text from {fmt.value.upper()}: {e}",
            file_format=fmt.value,
        ) from e

    logger.info(
        "Text extracted",
        extra={
            "file_format": fmt.value,
            "characters": len(text),
        },
    )

    return text


async def extract_text_async(file_path: str, file_format: Union[str, DocumentFormat]) -> str:
    """Run extract_text in a worker thread so the event loop is not blocked."""

    return await asyncio.to_thread(extract_text, file_path, file_format)


def detect_format(filename: str) -> DocumentFormat:
    """Derive the document format from a file name's extension."""

    _, ext = os.path.splitext(filename or "")

    if not ext:
        raise UnsupportedFormatError("")

    return DocumentFormat.parse(ext[1:])
