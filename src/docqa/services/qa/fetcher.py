from __future__ import annotations

from docqa.services.qa.extractor import TextExtractor
from docqa.services.qa.retry import read_with_retry
from docqa.services.qa.storage import ObjectStorage
from docqa.services.qa.types import Document


class DocumentTextFetcher:
    """Reads a catalog document from storage and returns its extracted text."""

    def __init__(self, storage: ObjectStorage, extractor: TextExtractor) -> None:
        self._storage = storage
        self._extractor = extractor

    def __call__(self, document: Document) -> str:
        data = read_with_retry(
            lambda: self._storage.get(document.storage_key),
            description=document.storage_key,
        )
        return self._extractor.extract_text(data, file_name=document.file_name)
