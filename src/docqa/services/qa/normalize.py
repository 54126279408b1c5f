from __future__ import annotations

import string

MIN_TOKEN_LENGTH = 3

STOP_WORDS = frozenset(
    {
        # articles
        "a",
        "an",
        "the",
        # prepositions
        "about",
        "above",
        "after",
        "at",
        "before",
        "by",
        "for",
        "from",
        "in",
        "into",
        "of",
        "off",
        "on",
        "over",
        "to",
        "under",
        "with",
        "within",
        "without",
        # conjunctions
        "and",
        "but",
        "nor",
        "or",
        "so",
        "yet",
        # conversational filler
        "are",
        "can",
        "could",
        "does",
        "explain",
        "give",
        "how",
        "is",
        "me",
        "please",
        "show",
        "tell",
        "that",
        "this",
        "title",
        "was",
        "what",
        "which",
        "who",
        "you",
    }
)


def normalize_query(text: str) -> list[str]:
    """Return the distinct search terms of a question, in question order."""
    tokens: list[str] = []
    for raw in text.lower().split():
        token = raw.strip(string.punctuation)
        if len(token) < MIN_TOKEN_LENGTH or token in STOP_WORDS or token in tokens:
            continue
        tokens.append(token)
    return tokens
