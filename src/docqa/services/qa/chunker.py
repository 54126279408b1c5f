from __future__ import annotations


def chunk_text(text: str, max_length: int) -> list[str]:
    """Split text into contiguous, non-overlapping segments of at most max_length.

    Joining the result gives back the original text; only the last segment
    may be shorter than max_length.
    """
    if max_length <= 0:
        raise ValueError("max_length must be > 0")

    chunks: list[str] = []
    cursor = 0
    text_length = len(text)

    while cursor < text_length:
        end = min(text_length, cursor + max_length)
        chunks.append(text[cursor:end])
        cursor = end

    return chunks


def chunk_count(text_length: int, max_length: int) -> int:
    if max_length <= 0:
        raise ValueError("max_length must be > 0")
    return -(-max(0, text_length) // max_length)
