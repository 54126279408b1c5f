from __future__ import annotations

import io
from typing import Protocol

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from docqa.services.qa.errors import QAError

PDF_MAGIC = b"%PDF"


class ExtractionError(QAError):
    pass


class TextExtractor(Protocol):
    def extract_text(self, data: bytes, *, file_name: str | None = None) -> str: ...


class DocumentTextExtractor:
    """Extracts plain text from PDF bytes; anything else is read as UTF-8 text."""

    def extract_text(self, data: bytes, *, file_name: str | None = None) -> str:
        is_pdf = data.startswith(PDF_MAGIC) or (file_name or "").lower().endswith(".pdf")
        if not is_pdf:
            return data.decode("utf-8", errors="replace")

        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except (PyPdfError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ExtractionError(f"Failed to extract text from {file_name or 'PDF'}: {exc}") from exc

        return "\n".join(pages)
