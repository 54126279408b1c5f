from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

STATUS_UPLOADED = "uploaded"
STATUS_PROCESSED = "processed"
STATUS_ERROR = "error"


class AnswerMethod(str, Enum):
    AI_SYNTHESIS = "ai-synthesis"
    MANUAL_FALLBACK = "manual-fallback"
    NO_MATCH = "no-match"
    ERROR = "error"


@dataclass(frozen=True)
class Document:
    id: str
    storage_key: str
    owner_id: str | None = None
    document_type: str | None = None
    file_name: str | None = None
    uploaded_at: datetime | None = None
    text_length: int = 0
    chunk_count: int = 0
    status: str = STATUS_UPLOADED

    @property
    def title(self) -> str:
        return self.file_name or self.id


@dataclass(frozen=True)
class Query:
    text: str
    requester_id: str | None = None


@dataclass(frozen=True)
class RetrievalHit:
    document_id: str
    excerpt: str
    matched_term: str | None = None
    rank: int | None = None


@dataclass(frozen=True)
class RetrievalResult:
    hits: list[RetrievalHit] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    documents_searched: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.hits


@dataclass(frozen=True)
class IndexExcerpt:
    document_id: str
    title: str
    text: str
    score: float


@dataclass(frozen=True)
class AggregatedContext:
    text: str
    sources: list[str]


@dataclass(frozen=True)
class Answer:
    text: str
    sources: list[str]
    method: AnswerMethod


@dataclass(frozen=True)
class QAResponse:
    answer: str
    sources: list[str]
    method: AnswerMethod
    documents_searched: int | None = None


@dataclass(frozen=True)
class IngestionOutcome:
    key: str
    document_id: str
    ok: bool
    text_length: int = 0
    chunk_count: int = 0
    indexed: bool = False
    error: str | None = None


@dataclass(frozen=True)
class IngestionReport:
    outcomes: list[IngestionOutcome]

    @property
    def succeeded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded


@dataclass(frozen=True)
class DocumentPreview:
    document_id: str
    storage_key: str
    text_length: int
    preview: str
    term_hits: dict[str, bool] = field(default_factory=dict)
