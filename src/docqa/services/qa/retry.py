from __future__ import annotations

from collections.abc import Callable
import logging
from typing import TypeVar

from docqa.services.qa.errors import CollaboratorUnavailable, DocumentNotFound, ObjectNotFound

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_with_retry(read: Callable[[], T], *, description: str, attempts: int = 2) -> T:
    """Run an idempotent read, retrying once when the collaborator is unavailable.

    Missing objects are not retried.
    """
    attempt = 1
    while True:
        try:
            return read()
        except (ObjectNotFound, DocumentNotFound):
            raise
        except CollaboratorUnavailable as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "read failed attempt=%d/%d target=%s error=%s; retrying",
                attempt,
                attempts,
                description,
                exc,
            )
            attempt += 1
