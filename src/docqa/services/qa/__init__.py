from docqa.services.qa.aggregator import aggregate
from docqa.services.qa.chunker import chunk_text
from docqa.services.qa.normalize import normalize_query
from docqa.services.qa.types import (
    AggregatedContext,
    Answer,
    AnswerMethod,
    Document,
    IngestionOutcome,
    IngestionReport,
    QAResponse,
    Query,
    RetrievalHit,
    RetrievalResult,
)

__all__ = [
    "AggregatedContext",
    "Answer",
    "AnswerMethod",
    "Document",
    "IngestionOutcome",
    "IngestionReport",
    "QAResponse",
    "Query",
    "RetrievalHit",
    "RetrievalResult",
    "aggregate",
    "chunk_text",
    "normalize_query",
]
