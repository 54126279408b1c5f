from __future__ import annotations

from collections.abc import Sequence
import logging

from docqa.llm import GenerativeClient
from docqa.services.qa.aggregator import strip_markers
from docqa.services.qa.errors import SynthesisUnavailable
from docqa.services.qa.types import Answer, AnswerMethod

logger = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "No documents matched the query."
FALLBACK_PREFIX = "Based on your documents:\n\n"
ELLIPSIS = "..."

ANSWER_INSTRUCTIONS = """\
- Provide a clean, professional response
- Use clear headings and bullet points where appropriate
- Structure the information logically (Title, Purpose, Key Features, etc.)
- Only include information that is actually in the documents
- Make it easy to read and understand
- Don't include unnecessary technical details or raw text"""


def build_prompt(question: str, context: str, *, max_context_chars: int | None = None) -> str:
    if max_context_chars is not None and len(context) > max_context_chars:
        context = context[:max_context_chars]

    return f"""You are a professional document analyst. Based on the following document content, provide a clear, well-structured answer to the user's question.

Document Content:
{context}

User Question: {question}

Instructions:
{ANSWER_INSTRUCTIONS}

Answer:"""


def manual_summary(context: str, *, max_length: int) -> str:
    cleaned = strip_markers(context).strip()
    if len(cleaned) > max_length:
        return cleaned[:max_length] + ELLIPSIS
    return cleaned


class AnswerSynthesizer:
    def __init__(
        self,
        client: GenerativeClient,
        *,
        max_tokens: int = 1000,
        fallback_max_length: int = 1000,
        max_prompt_context: int = 20000,
    ) -> None:
        self._client = client
        self._max_tokens = max_tokens
        self._fallback_max_length = fallback_max_length
        self._max_prompt_context = max_prompt_context

    def synthesize(self, question: str, context: str, sources: Sequence[str] = ()) -> Answer:
        """Answer the question from the context; never raises.

        Falls back to an extractive summary of the context when the model
        call fails, and to an error answer if even that cannot be built.
        """
        if not context.strip():
            return Answer(text=NO_MATCH_MESSAGE, sources=[], method=AnswerMethod.NO_MATCH)

        try:
            prompt = build_prompt(question, context, max_context_chars=self._max_prompt_context)
            text = self._client.invoke(prompt, max_tokens=self._max_tokens)
        except SynthesisUnavailable as exc:
            logger.warning(
                "synthesis unavailable kind=%s error=%s; using manual summary",
                getattr(exc, "kind", "unknown"),
                exc,
            )
            return self._fallback(context, sources)
        except Exception:
            logger.exception("synthesis failed unexpectedly; using manual summary")
            return self._fallback(context, sources)

        logger.info("synthesis completed chars=%d sources=%d", len(text), len(sources))
        return Answer(text=text, sources=list(sources), method=AnswerMethod.AI_SYNTHESIS)

    def _fallback(self, context: str, sources: Sequence[str]) -> Answer:
        try:
            summary = manual_summary(context, max_length=self._fallback_max_length)
            return Answer(
                text=FALLBACK_PREFIX + summary,
                sources=list(sources),
                method=AnswerMethod.MANUAL_FALLBACK,
            )
        except Exception as exc:
            logger.exception("manual summary failed")
            return Answer(
                text=f"Error processing your question: {exc}",
                sources=[],
                method=AnswerMethod.ERROR,
            )
