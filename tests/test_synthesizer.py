import pytest

from docqa.llm import GENERATION_QUOTA, GENERATION_TIMEOUT, GenerationError
from docqa.services.qa import synthesizer as synthesizer_module
from docqa.services.qa.aggregator import aggregate
from docqa.services.qa.synthesizer import (
    ELLIPSIS,
    FALLBACK_PREFIX,
    NO_MATCH_MESSAGE,
    AnswerSynthesizer,
    build_prompt,
)
from docqa.services.qa.types import AnswerMethod, RetrievalHit, RetrievalResult


class FakeClient:
    def __init__(self, answer: str = "structured answer") -> None:
        self.answer = answer
        self.calls: list[tuple[str, int]] = []

    def invoke(self, prompt: str, *, max_tokens: int) -> str:
        self.calls.append((prompt, max_tokens))
        return self.answer


class FailingClient:
    def __init__(self, kind: str = GENERATION_TIMEOUT) -> None:
        self.kind = kind
        self.calls = 0

    def invoke(self, prompt: str, *, max_tokens: int) -> str:
        self.calls += 1
        raise GenerationError("model unavailable", kind=self.kind)


def _context(*excerpts: str) -> str:
    result = RetrievalResult(
        hits=[
            RetrievalHit(document_id=f"doc-{index}", excerpt=excerpt)
            for index, excerpt in enumerate(excerpts, start=1)
        ]
    )
    return aggregate(result, 100_000).text


def test_empty_context_returns_no_match_without_calling_model() -> None:
    client = FakeClient()

    answer = AnswerSynthesizer(client).synthesize("what is hectronic", "   ", ["doc-1"])

    assert answer.method == AnswerMethod.NO_MATCH
    assert answer.text == NO_MATCH_MESSAGE
    assert answer.sources == []
    assert client.calls == []


def test_successful_synthesis_returns_model_output_and_sources() -> None:
    client = FakeClient()
    context = _context("Hectronic builds forecourt controllers.")

    answer = AnswerSynthesizer(client, max_tokens=321).synthesize(
        "what is hectronic", context, ["doc-1"]
    )

    assert answer.method == AnswerMethod.AI_SYNTHESIS
    assert answer.text == "structured answer"
    assert answer.sources == ["doc-1"]
    prompt, max_tokens = client.calls[0]
    assert max_tokens == 321
    assert "Hectronic builds forecourt controllers." in prompt
    assert "User Question: what is hectronic" in prompt
    assert "Only include information that is actually in the documents" in prompt


@pytest.mark.parametrize("kind", [GENERATION_TIMEOUT, GENERATION_QUOTA])
def test_fallback_strips_markers_and_bounds_length(kind: str) -> None:
    context = _context("a" * 700, "b" * 700)
    synthesizer = AnswerSynthesizer(FailingClient(kind), fallback_max_length=1000)

    first = synthesizer.synthesize("question", context, ["doc-1", "doc-2"])
    second = synthesizer.synthesize("question", context, ["doc-1", "doc-2"])

    assert first == second
    assert first.method == AnswerMethod.MANUAL_FALLBACK
    assert first.sources == ["doc-1", "doc-2"]
    assert first.text.startswith(FALLBACK_PREFIX)
    assert "From document" not in first.text
    summary = first.text[len(FALLBACK_PREFIX) :]
    assert summary.endswith(ELLIPSIS)
    assert len(summary) <= 1000 + len(ELLIPSIS)


def test_fallback_keeps_short_context_whole() -> None:
    context = _context("  Hectronic OPTI terminal  ")

    answer = AnswerSynthesizer(FailingClient()).synthesize("question", context, ["doc-1"])

    assert answer.text == FALLBACK_PREFIX + "Hectronic OPTI terminal"


def test_unexpected_client_error_also_falls_back() -> None:
    class BrokenClient:
        def invoke(self, prompt: str, *, max_tokens: int) -> str:
            raise KeyError("content")

    answer = AnswerSynthesizer(BrokenClient()).synthesize("q", _context("pump"), ["doc-1"])

    assert answer.method == AnswerMethod.MANUAL_FALLBACK


def test_failing_fallback_degrades_to_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_summary(context: str, *, max_length: int) -> str:
        raise RuntimeError("summary exploded")

    monkeypatch.setattr(synthesizer_module, "manual_summary", broken_summary)

    answer = AnswerSynthesizer(FailingClient()).synthesize("q", _context("pump"), ["doc-1"])

    assert answer.method == AnswerMethod.ERROR
    assert answer.sources == []
    assert "summary exploded" in answer.text


def test_build_prompt_bounds_context() -> None:
    prompt = build_prompt("question", "x" * 500, max_context_chars=100)

    assert "x" * 100 in prompt
    assert "x" * 101 not in prompt
