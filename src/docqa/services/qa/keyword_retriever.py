from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
import logging

from docqa.services.qa.normalize import normalize_query
from docqa.services.qa.types import Document, Query, RetrievalHit, RetrievalResult

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 600

TextFetcher = Callable[[Document], str]


def extract_window(text: str, index: int, *, radius: int = DEFAULT_WINDOW) -> str:
    start = max(0, index - radius)
    end = min(len(text), index + radius)
    return text[start:end]


class KeywordRetriever:
    """Scans the full text of every catalog document for the question's terms.

    Each document contributes at most one window: the first term (in
    question order) found anywhere in the text decides where it is cut.
    Documents are scanned on a bounded thread pool and merged back in
    catalog order.
    """

    def __init__(
        self,
        fetch_text: TextFetcher | None = None,
        *,
        window: int = DEFAULT_WINDOW,
        max_workers: int = 4,
    ) -> None:
        if window <= 0:
            raise ValueError("window must be > 0")
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self._fetch_text = fetch_text
        self._window = window
        self._max_workers = max_workers

    def retrieve(
        self,
        query: Query,
        documents: Sequence[Document],
        fetch_text: TextFetcher | None = None,
    ) -> RetrievalResult:
        fetch_text = fetch_text or self._fetch_text
        if fetch_text is None:
            raise ValueError("fetch_text must be provided")

        terms = normalize_query(query.text)
        if not terms:
            logger.info("keyword retrieval skipped: no search terms in query=%r", query.text)
            return RetrievalResult(hits=[], sources=[], documents_searched=len(documents))

        logger.info(
            "keyword retrieval terms=%s documents=%d", ",".join(terms), len(documents)
        )

        if self._max_workers == 1 or len(documents) <= 1:
            scanned = [self._scan(document, terms, fetch_text) for document in documents]
        else:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                # map() yields in input order regardless of completion order
                scanned = list(
                    executor.map(lambda document: self._scan(document, terms, fetch_text), documents)
                )

        hits: list[RetrievalHit] = []
        sources: list[str] = []
        for hit in scanned:
            if hit is None:
                continue
            hits.append(hit)
            if hit.document_id not in sources:
                sources.append(hit.document_id)

        if not hits:
            return RetrievalResult(
                hits=[],
                sources=_unique([document.id for document in documents]),
                documents_searched=len(documents),
            )

        return RetrievalResult(hits=hits, sources=sources, documents_searched=len(documents))

    def _scan(
        self,
        document: Document,
        terms: list[str],
        fetch_text: TextFetcher,
    ) -> RetrievalHit | None:
        try:
            text = fetch_text(document)
        except Exception:
            logger.warning("keyword retrieval skipped document_id=%s", document.id, exc_info=True)
            return None

        text_lower = text.lower()
        for term in terms:
            index = text_lower.find(term)
            if index < 0:
                continue
            logger.debug("found term=%r in document_id=%s at=%d", term, document.id, index)
            return RetrievalHit(
                document_id=document.id,
                excerpt=extract_window(text, index, radius=self._window),
                matched_term=term,
            )
        return None


def _unique(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
