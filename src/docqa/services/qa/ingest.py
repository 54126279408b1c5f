from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone
import logging
from pathlib import PurePosixPath
from urllib.parse import unquote_plus

from docqa.services.qa.catalog import DocumentCatalog
from docqa.services.qa.chunker import chunk_text
from docqa.services.qa.errors import CollaboratorUnavailable, QAError
from docqa.services.qa.extractor import TextExtractor
from docqa.services.qa.retry import read_with_retry
from docqa.services.qa.sqlite_index import SearchIndex
from docqa.services.qa.storage import ObjectStorage
from docqa.services.qa.types import (
    STATUS_ERROR,
    STATUS_PROCESSED,
    Document,
    IngestionOutcome,
    IngestionReport,
)

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "uploads"


def document_id_for_key(key: str) -> str:
    return PurePosixPath(key).name.split(".")[0]


def owner_for_key(key: str) -> str | None:
    parts = key.split("/")
    if len(parts) >= 3 and parts[0] == UPLOADS_PREFIX and parts[1]:
        return parts[1]
    return None


def _failed_outcome(document: Document, exc: Exception) -> IngestionOutcome:
    return IngestionOutcome(
        key=document.storage_key,
        document_id=document.id,
        ok=False,
        error=str(exc),
    )


class DocumentIngestor:
    """Turns stored objects into processed catalog records.

    Every record yields an IngestionOutcome; one failing object never stops
    the rest of a batch.
    """

    def __init__(
        self,
        *,
        storage: ObjectStorage,
        catalog: DocumentCatalog,
        extractor: TextExtractor,
        search_index: SearchIndex | None = None,
        chunk_size: int = 1000,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self._storage = storage
        self._catalog = catalog
        self._extractor = extractor
        self._search_index = search_index
        self._chunk_size = chunk_size

    def handle_notification(self, records: Iterable[tuple[str, str]]) -> IngestionReport:
        outcomes = [self.ingest(bucket, key) for bucket, key in records]
        report = IngestionReport(outcomes=outcomes)
        logger.info(
            "ingestion batch finished records=%d succeeded=%d failed=%d",
            len(outcomes),
            report.succeeded,
            report.failed,
        )
        return report

    def ingest(self, bucket: str, key: str) -> IngestionOutcome:
        key = unquote_plus(key)
        document_id = document_id_for_key(key)

        try:
            existing = read_with_retry(
                lambda: self._catalog.get(document_id), description=f"catalog:{document_id}"
            )
            text = self._read_text(key, file_name=PurePosixPath(key).name)
            chunks = chunk_text(text, self._chunk_size)
            document = Document(
                id=document_id,
                storage_key=key,
                owner_id=(existing.owner_id if existing else None) or owner_for_key(key),
                document_type=existing.document_type if existing else None,
                file_name=(existing.file_name if existing else None) or PurePosixPath(key).name,
                uploaded_at=(existing.uploaded_at if existing else None)
                or datetime.now(timezone.utc),
                text_length=len(text),
                chunk_count=len(chunks),
                status=STATUS_PROCESSED,
            )
            self._catalog.put(document)
        except QAError as exc:
            logger.warning(
                "ingestion failed bucket=%s key=%s document_id=%s error=%s",
                bucket,
                key,
                document_id,
                exc,
            )
            self._mark_error(document_id, key)
            return IngestionOutcome(key=key, document_id=document_id, ok=False, error=str(exc))
        except Exception as exc:
            logger.exception(
                "ingestion failed unexpectedly bucket=%s key=%r document_id=%r",
                bucket,
                key,
                document_id,
            )
            self._mark_error(document_id, key)
            return IngestionOutcome(key=key, document_id=document_id, ok=False, error=str(exc))

        indexed = self._index(document, chunks)
        logger.info(
            "document processed document_id=%s text_length=%d chunks=%d indexed=%s",
            document_id,
            document.text_length,
            document.chunk_count,
            indexed,
        )
        return IngestionOutcome(
            key=key,
            document_id=document_id,
            ok=True,
            text_length=document.text_length,
            chunk_count=document.chunk_count,
            indexed=indexed,
        )

    def reindex_all(self) -> IngestionReport:
        if self._search_index is None:
            raise ValueError("search index is not configured")

        documents = read_with_retry(self._catalog.scan, description="catalog:scan")
        logger.info("reindexing documents=%d", len(documents))

        outcomes: list[IngestionOutcome] = []
        for document in documents:
            try:
                text = self._read_text(document.storage_key, file_name=document.file_name)
            except QAError as exc:
                logger.warning("reindex failed document_id=%s error=%s", document.id, exc)
                outcomes.append(_failed_outcome(document, exc))
                continue
            except Exception as exc:
                logger.exception("reindex failed unexpectedly document_id=%s", document.id)
                outcomes.append(_failed_outcome(document, exc))
                continue

            chunks = chunk_text(text, self._chunk_size)
            indexed = self._index(document, chunks)
            outcomes.append(
                IngestionOutcome(
                    key=document.storage_key,
                    document_id=document.id,
                    ok=indexed,
                    text_length=len(text),
                    chunk_count=len(chunks),
                    indexed=indexed,
                    error=None if indexed else "indexing failed",
                )
            )

        return IngestionReport(outcomes=outcomes)

    def _read_text(self, key: str, *, file_name: str | None) -> str:
        data = read_with_retry(lambda: self._storage.get(key), description=key)
        return self._extractor.extract_text(data, file_name=file_name)

    def _index(self, document: Document, chunks: list[str]) -> bool:
        if self._search_index is None:
            return False
        try:
            self._search_index.index(document, chunks)
        except CollaboratorUnavailable as exc:
            logger.warning("indexing failed document_id=%s error=%s", document.id, exc)
            return False
        return True

    def _mark_error(self, document_id: str, key: str) -> None:
        try:
            existing = self._catalog.get(document_id)
            base = existing or Document(
                id=document_id,
                storage_key=key,
                owner_id=owner_for_key(key),
                file_name=PurePosixPath(key).name,
            )
            self._catalog.put(replace(base, storage_key=key, status=STATUS_ERROR))
        except CollaboratorUnavailable as exc:
            logger.warning("could not mark document_id=%r as error: %s", document_id, exc)
        except Exception:
            logger.exception("could not mark document_id=%r as error", document_id)
