from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from docqa.models import DocumentRecord
from docqa.services.qa.errors import CatalogUnavailable
from docqa.services.qa.types import Document


class DocumentCatalog(Protocol):
    def put(self, document: Document) -> None: ...

    def get(self, document_id: str) -> Document | None: ...

    def scan(self, *, status: str | None = None) -> list[Document]: ...

    def query_by_owner(self, owner_id: str) -> list[Document]: ...

    def search_by_file_name(self, fragment: str) -> list[Document]: ...


def _to_document(record: DocumentRecord) -> Document:
    return Document(
        id=record.id,
        storage_key=record.storage_key,
        owner_id=record.owner_id,
        document_type=record.document_type,
        file_name=record.file_name,
        uploaded_at=record.uploaded_at,
        text_length=record.text_length,
        chunk_count=record.chunk_count,
        status=record.status,
    )


class SqlDocumentCatalog:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def put(self, document: Document) -> None:
        record = DocumentRecord(
            id=document.id,
            storage_key=document.storage_key,
            owner_id=document.owner_id,
            document_type=document.document_type,
            file_name=document.file_name,
            uploaded_at=document.uploaded_at or datetime.now(timezone.utc),
            text_length=document.text_length,
            chunk_count=document.chunk_count,
            status=document.status,
        )
        try:
            with Session(self._engine) as session:
                # merge() overwrites an existing row: last write wins
                session.merge(record)
                session.commit()
        except SQLAlchemyError as exc:
            raise CatalogUnavailable(f"Failed to write document {document.id}: {exc}") from exc

    def get(self, document_id: str) -> Document | None:
        try:
            with Session(self._engine) as session:
                record = session.get(DocumentRecord, document_id)
                return _to_document(record) if record is not None else None
        except SQLAlchemyError as exc:
            raise CatalogUnavailable(f"Failed to read document {document_id}: {exc}") from exc

    def scan(self, *, status: str | None = None) -> list[Document]:
        stmt = select(DocumentRecord)
        if status is not None:
            stmt = stmt.where(DocumentRecord.status == status)
        return self._select(stmt)

    def query_by_owner(self, owner_id: str) -> list[Document]:
        return self._select(select(DocumentRecord).where(DocumentRecord.owner_id == owner_id))

    def search_by_file_name(self, fragment: str) -> list[Document]:
        # % and _ in the fragment match literally
        return self._select(
            select(DocumentRecord).where(
                DocumentRecord.file_name.icontains(fragment, autoescape=True)
            )
        )

    def _select(self, stmt) -> list[Document]:
        try:
            with Session(self._engine) as session:
                records = session.scalars(
                    stmt.order_by(DocumentRecord.uploaded_at.asc(), DocumentRecord.id.asc())
                ).all()
                return [_to_document(record) for record in records]
        except SQLAlchemyError as exc:
            raise CatalogUnavailable(f"Catalog query failed: {exc}") from exc
