from __future__ import annotations

from collections.abc import Sequence
import logging

from docqa.services.qa.errors import CollaboratorUnavailable, RetrievalUnavailable
from docqa.services.qa.sqlite_index import SearchIndex
from docqa.services.qa.types import Document, Query, RetrievalHit, RetrievalResult

logger = logging.getLogger(__name__)


class IndexedRetriever:
    """Delegates ranking to a search index and keeps its order."""

    def __init__(self, search_index: SearchIndex, *, top_k: int = 5) -> None:
        if top_k <= 0:
            raise ValueError("top_k must be > 0")
        self._search_index = search_index
        self._top_k = top_k

    def retrieve(
        self,
        query: Query,
        documents: Sequence[Document] = (),
        *,
        top_k: int | None = None,
    ) -> RetrievalResult:
        limit = top_k if top_k is not None else self._top_k
        document_ids = {document.id for document in documents} or None
        try:
            excerpts = self._search_index.query(query.text, limit, document_ids=document_ids)
        except CollaboratorUnavailable as exc:
            raise RetrievalUnavailable(f"Search index unavailable: {exc}") from exc

        hits = [
            RetrievalHit(document_id=excerpt.document_id, excerpt=excerpt.text, rank=rank)
            for rank, excerpt in enumerate(excerpts, start=1)
        ]
        logger.info("indexed retrieval top_k=%d hits=%d", limit, len(hits))

        return RetrievalResult(
            hits=hits,
            sources=[excerpt.title for excerpt in excerpts],
            documents_searched=len(documents),
        )
