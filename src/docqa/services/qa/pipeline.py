from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum
import logging
from pathlib import Path
from uuid import uuid4

from sqlalchemy.engine import Engine

from docqa.config import Settings
from docqa.llm import GenerativeClient, OllamaChatClient
from docqa.services.qa.aggregator import aggregate
from docqa.services.qa.catalog import DocumentCatalog, SqlDocumentCatalog
from docqa.services.qa.errors import (
    CollaboratorUnavailable,
    DocumentNotFound,
    InputError,
    RetrievalUnavailable,
)
from docqa.services.qa.extractor import DocumentTextExtractor
from docqa.services.qa.fetcher import DocumentTextFetcher
from docqa.services.qa.indexed_retriever import IndexedRetriever
from docqa.services.qa.ingest import DocumentIngestor
from docqa.services.qa.keyword_retriever import KeywordRetriever
from docqa.services.qa.normalize import normalize_query
from docqa.services.qa.retriever import Retriever
from docqa.services.qa.retry import read_with_retry
from docqa.services.qa.sqlite_index import SqliteSearchIndex
from docqa.services.qa.storage import LocalObjectStorage
from docqa.services.qa.synthesizer import AnswerSynthesizer
from docqa.services.qa.types import (
    AnswerMethod,
    Document,
    DocumentPreview,
    IngestionReport,
    QAResponse,
    Query,
    RetrievalResult,
)

logger = logging.getLogger(__name__)

NO_DOCUMENTS_MESSAGE = "No documents found. Please upload documents first."
COMPARE_PREVIEW_CHARS = 2000
COMPARE_MAX_TOKENS = 2000
PREVIEW_CHARS = 2000

class RequestState(str, Enum):
    RECEIVED = "received"
    RETRIEVING = "retrieving"
    AGGREGATING = "aggregating"
    SYNTHESIZING = "synthesizing"
    RESPONDED = "responded"
    FAILED = "failed"


class _RequestTrace:
    def __init__(self) -> None:
        self.request_id = uuid4().hex[:12]
        self.state = RequestState.RECEIVED
        self.history = [self.state]

    def move(self, state: RequestState) -> None:
        logger.info(
            "request_id=%s state %s -> %s", self.request_id, self.state.value, state.value
        )
        self.state = state
        self.history.append(state)


def no_match_message(documents_searched: int, question: str) -> str:
    return (
        f'I searched through {documents_searched} documents for "{question}" '
        "but couldn't find any matches. The terms may not be present in your uploaded documents."
    )


def build_compare_prompt(first: str, second: str) -> str:
    return f"""Compare these two documents and highlight key differences:

Document 1:
{first[:COMPARE_PREVIEW_CHARS]}...

Document 2:
{second[:COMPARE_PREVIEW_CHARS]}...

Provide a structured comparison focusing on:
1. Key differences in implementation requirements
2. Missing sections or requirements
3. Compliance gaps between the two documents
4. Recommended actions for alignment"""


class QAPipeline:
    """Answers questions over the catalog and drives ingestion.

    Retrieval and synthesis problems never escape ``answer``: they come
    back as a degraded QAResponse. Only a blank question raises.
    """

    def __init__(
        self,
        *,
        catalog: DocumentCatalog,
        fetcher: DocumentTextFetcher,
        client: GenerativeClient,
        synthesizer: AnswerSynthesizer,
        keyword_retriever: Retriever,
        indexed_retriever: Retriever | None = None,
        ingestor: DocumentIngestor | None = None,
        strategy: str = "keyword",
        max_context_length: int = 12000,
    ) -> None:
        if strategy == "indexed" and indexed_retriever is None:
            raise ValueError("indexed strategy requires an indexed retriever")
        self._catalog = catalog
        self._fetcher = fetcher
        self._client = client
        self._synthesizer = synthesizer
        self._keyword_retriever = keyword_retriever
        self._indexed_retriever = indexed_retriever
        self._ingestor = ingestor
        self._strategy = strategy
        self._max_context_length = max_context_length

    def answer(self, question: str, *, partner_id: str | None = None) -> QAResponse:
        trace = _RequestTrace()
        question = (question or "").strip()
        if not question:
            trace.move(RequestState.FAILED)
            raise InputError("question must not be empty")

        query = Query(text=question, requester_id=partner_id)
        trace.move(RequestState.RETRIEVING)

        try:
            documents = self._load_documents(partner_id)
        except CollaboratorUnavailable as exc:
            logger.error("catalog scan failed request_id=%s error=%s", trace.request_id, exc)
            trace.move(RequestState.RESPONDED)
            return QAResponse(
                answer=f"Error processing your question: {exc}",
                sources=[],
                method=AnswerMethod.ERROR,
            )

        if not documents:
            trace.move(RequestState.RESPONDED)
            return QAResponse(
                answer=NO_DOCUMENTS_MESSAGE,
                sources=[],
                method=AnswerMethod.NO_MATCH,
                documents_searched=0,
            )

        try:
            result = self._retrieve(query, documents)
            if result.is_empty:
                trace.move(RequestState.RESPONDED)
                return QAResponse(
                    answer=no_match_message(len(documents), question),
                    sources=result.sources,
                    method=AnswerMethod.NO_MATCH,
                    documents_searched=len(documents),
                )

            trace.move(RequestState.AGGREGATING)
            context = aggregate(result, self._max_context_length)

            trace.move(RequestState.SYNTHESIZING)
            answer = self._synthesizer.synthesize(question, context.text, context.sources)
        except Exception as exc:
            logger.exception("question failed request_id=%s", trace.request_id)
            trace.move(RequestState.RESPONDED)
            return QAResponse(
                answer=f"Error processing your question: {exc}",
                sources=[],
                method=AnswerMethod.ERROR,
            )

        trace.move(RequestState.RESPONDED)
        return QAResponse(
            answer=answer.text,
            sources=answer.sources,
            method=answer.method,
            documents_searched=len(documents),
        )

    def fetch_text(self, document: Document) -> str:
        return self._fetcher(document)

    def compare(self, first_id: str, second_id: str) -> str:
        first = self.fetch_text(self._get_document(first_id))
        second = self.fetch_text(self._get_document(second_id))
        return self._client.invoke(
            build_compare_prompt(first, second),
            max_tokens=COMPARE_MAX_TOKENS,
        )

    def preview(self, document_id: str, terms: Sequence[str] = ()) -> DocumentPreview:
        """First characters of a document's extracted text, plus which terms occur in it."""
        document = self._get_document(document_id)
        text = self.fetch_text(document)
        text_lower = text.lower()
        return DocumentPreview(
            document_id=document.id,
            storage_key=document.storage_key,
            text_length=len(text),
            preview=text[:PREVIEW_CHARS],
            term_hits={term: term in text_lower for term in _preview_terms(terms)},
        )

    def list_documents(self, owner_id: str | None = None) -> list[Document]:
        return self._load_documents(owner_id)

    def search_documents(self, fragment: str, *, owner_id: str | None = None) -> list[Document]:
        fragment = fragment.strip()
        if not fragment:
            raise InputError("search text must not be empty")
        documents = read_with_retry(
            lambda: self._catalog.search_by_file_name(fragment),
            description=f"catalog:search:{fragment}",
        )
        if owner_id:
            documents = [document for document in documents if document.owner_id == owner_id]
        return documents

    def ingest_notification(self, records: Iterable[tuple[str, str]]) -> IngestionReport:
        return self._require_ingestor().handle_notification(records)

    def reindex(self) -> IngestionReport:
        return self._require_ingestor().reindex_all()

    def _require_ingestor(self) -> DocumentIngestor:
        if self._ingestor is None:
            raise ValueError("ingestion is not configured")
        return self._ingestor

    def _load_documents(self, owner_id: str | None) -> list[Document]:
        if owner_id:
            return read_with_retry(
                lambda: self._catalog.query_by_owner(owner_id),
                description=f"catalog:owner:{owner_id}",
            )
        return read_with_retry(self._catalog.scan, description="catalog:scan")

    def _retrieve(self, query: Query, documents: list[Document]) -> RetrievalResult:
        if self._strategy == "indexed" and self._indexed_retriever is not None:
            try:
                return self._indexed_retriever.retrieve(query, documents)
            except RetrievalUnavailable as exc:
                logger.warning("indexed retrieval unavailable, scanning documents: %s", exc)
        return self._keyword_retriever.retrieve(query, documents)

    def _get_document(self, document_id: str) -> Document:
        document = read_with_retry(
            lambda: self._catalog.get(document_id),
            description=f"catalog:{document_id}",
        )
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found")
        return document


def _preview_terms(terms: Sequence[str]) -> list[str]:
    selected: list[str] = []
    for term in terms:
        for token in normalize_query(term):
            if token not in selected:
                selected.append(token)
    return selected


def build_pipeline(
    settings: Settings,
    *,
    engine: Engine,
    client: GenerativeClient | None = None,
) -> QAPipeline:
    catalog = SqlDocumentCatalog(engine)
    storage = LocalObjectStorage(Path(settings.storage_dir))
    extractor = DocumentTextExtractor()
    fetcher = DocumentTextFetcher(storage, extractor)
    search_index = SqliteSearchIndex(Path(settings.index_path))

    if client is None:
        client = OllamaChatClient(
            base_url=settings.ollama_base_url,
            default_model=settings.ollama_model,
            fallback_model=settings.ollama_fallback_model,
            timeout_seconds=settings.ollama_timeout_seconds,
        )

    return QAPipeline(
        catalog=catalog,
        fetcher=fetcher,
        client=client,
        synthesizer=AnswerSynthesizer(
            client,
            max_tokens=settings.max_output_tokens,
            fallback_max_length=settings.fallback_max_length,
            max_prompt_context=settings.max_context_length,
        ),
        keyword_retriever=KeywordRetriever(
            fetcher,
            window=settings.context_window,
            max_workers=settings.retrieval_workers,
        ),
        indexed_retriever=IndexedRetriever(search_index, top_k=settings.index_top_k),
        ingestor=DocumentIngestor(
            storage=storage,
            catalog=catalog,
            extractor=extractor,
            search_index=search_index,
            chunk_size=settings.chunk_size,
        ),
        strategy=settings.retrieval_strategy,
        max_context_length=settings.max_context_length,
    )
