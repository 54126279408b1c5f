from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from docqa.services.qa.types import Document, Query, RetrievalResult


@runtime_checkable
class Retriever(Protocol):
    """Anything that turns a query and the candidate documents into ranked hits."""

    def retrieve(self, query: Query, documents: Sequence[Document]) -> RetrievalResult: ...
