from __future__ import annotations

import hashlib
from collections.abc import Collection
from pathlib import Path
import sqlite3
from typing import Protocol

from docqa.services.qa.errors import SearchIndexError
from docqa.services.qa.normalize import normalize_query
from docqa.services.qa.types import Document, IndexExcerpt


class SearchIndex(Protocol):
    def index(self, document: Document, chunks: list[str]) -> None: ...

    def query(
        self, text: str, top_k: int, *, document_ids: Collection[str] | None = None
    ) -> list[IndexExcerpt]: ...


def _content_hash(chunks: list[str]) -> str:
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk.encode("utf-8"))
    return digest.hexdigest()


def _ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(
        """
        PRAGMA foreign_keys = ON;

        CREATE TABLE IF NOT EXISTS documents (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            owner_id TEXT,
            document_type TEXT,
            content_hash TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS chunks (
            id TEXT PRIMARY KEY,
            doc_id TEXT NOT NULL,
            chunk_index INTEGER NOT NULL,
            text TEXT NOT NULL,
            text_lower TEXT NOT NULL,
            FOREIGN KEY (doc_id) REFERENCES documents(id) ON DELETE CASCADE,
            UNIQUE (doc_id, chunk_index)
        );

        CREATE INDEX IF NOT EXISTS idx_chunks_doc_id ON chunks(doc_id);
        """
    )


class SqliteSearchIndex:
    """Local chunk index ranking by how often the query terms occur.

    Re-indexing a document replaces all of its previous chunks.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys = ON")
        return connection

    def index(self, document: Document, chunks: list[str]) -> None:
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as connection:
                _ensure_schema(connection)
                connection.execute("DELETE FROM documents WHERE id = ?", (document.id,))
                connection.execute(
                    """
                    INSERT INTO documents (id, title, owner_id, document_type, content_hash)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        document.id,
                        document.title,
                        document.owner_id or "unknown",
                        document.document_type or "unknown",
                        _content_hash(chunks),
                    ),
                )
                connection.executemany(
                    """
                    INSERT INTO chunks (id, doc_id, chunk_index, text, text_lower)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    [
                        (f"{document.id}-{index:04d}", document.id, index, chunk, chunk.lower())
                        for index, chunk in enumerate(chunks)
                    ],
                )
        except (sqlite3.Error, OSError) as exc:
            raise SearchIndexError(f"Failed to index document {document.id}: {exc}") from exc

    def query(
        self, text: str, top_k: int, *, document_ids: Collection[str] | None = None
    ) -> list[IndexExcerpt]:
        if not self._db_path.exists():
            raise SearchIndexError(f"Search index not found: {self._db_path}")

        terms = normalize_query(text)
        if not terms:
            return []

        try:
            with self._connect() as connection:
                rows = connection.execute(
                    """
                    SELECT c.doc_id, d.title, c.text, c.text_lower
                    FROM chunks c
                    JOIN documents d ON d.id = c.doc_id
                    ORDER BY c.doc_id, c.chunk_index
                    """
                ).fetchall()
        except sqlite3.Error as exc:
            raise SearchIndexError(f"Search index query failed: {exc}") from exc

        scored: list[tuple[float, int, IndexExcerpt]] = []
        for position, (doc_id, title, chunk_text, chunk_lower) in enumerate(rows):
            score = float(sum(chunk_lower.count(term) for term in terms))
            if score <= 0 or (document_ids is not None and doc_id not in document_ids):
                continue
            scored.append(
                (
                    score,
                    position,
                    IndexExcerpt(document_id=doc_id, title=title, text=chunk_text, score=score),
                )
            )

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [excerpt for _, _, excerpt in scored[: max(1, top_k)]]
