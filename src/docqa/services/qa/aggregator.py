from __future__ import annotations

import logging
import re

from docqa.services.qa.types import AggregatedContext, RetrievalResult

logger = logging.getLogger(__name__)

WINDOW_SEPARATOR = "\n\n"
DOCUMENT_MARKER_RE = re.compile(r"^From document [^\n]*:\n?", re.MULTILINE)


def document_marker(document_id: str) -> str:
    return f"From document {document_id}:"


def strip_markers(context: str) -> str:
    return DOCUMENT_MARKER_RE.sub("", context)


def aggregate(result: RetrievalResult, max_context_length: int) -> AggregatedContext:
    """Join retrieval hits into one marked-up context bounded by max_context_length.

    Windows are kept whole: once the next window would overflow the limit,
    it and everything after it are dropped. Only a first window that is
    longer than the limit on its own gets cut.
    """
    if max_context_length <= 0:
        raise ValueError("max_context_length must be > 0")

    windows: list[str] = []
    sources: list[str] = []
    length = 0

    for hit in result.hits:
        window = f"{document_marker(hit.document_id)}\n{hit.excerpt}"
        added = len(window) + (len(WINDOW_SEPARATOR) if windows else 0)

        if length + added > max_context_length:
            if not windows:
                windows.append(window[:max_context_length])
                sources.append(hit.document_id)
            logger.info(
                "context truncated kept=%d dropped=%d max_context_length=%d",
                len(windows),
                len(result.hits) - len(windows),
                max_context_length,
            )
            break

        windows.append(window)
        length += added
        if hit.document_id not in sources:
            sources.append(hit.document_id)

    return AggregatedContext(text=WINDOW_SEPARATOR.join(windows), sources=sources)
