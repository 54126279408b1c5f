from __future__ import annotations

import logging
from typing import Protocol

import httpx

from docqa.services.qa.errors import SynthesisUnavailable

logger = logging.getLogger(__name__)

GENERATION_TIMEOUT = "timeout"
GENERATION_QUOTA = "quota"
GENERATION_MALFORMED = "malformed"
GENERATION_UNAVAILABLE = "unavailable"


class GenerationError(SynthesisUnavailable):
    def __init__(self, message: str, *, kind: str = GENERATION_UNAVAILABLE) -> None:
        super().__init__(message)
        self.kind = kind


class GenerativeClient(Protocol):
    def invoke(self, prompt: str, *, max_tokens: int) -> str: ...


def _classify(exc: Exception) -> str:
    if isinstance(exc, httpx.TimeoutException):
        return GENERATION_TIMEOUT
    if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 429:
        return GENERATION_QUOTA
    if isinstance(exc, ValueError):
        return GENERATION_MALFORMED
    return GENERATION_UNAVAILABLE


class OllamaChatClient:
    def __init__(
        self,
        *,
        base_url: str,
        default_model: str,
        fallback_model: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._default_model = default_model
        self._fallback_model = fallback_model
        self._timeout_seconds = timeout_seconds

    def invoke(self, prompt: str, *, max_tokens: int) -> str:
        for model, used_fallback in self._model_candidates():
            try:
                return self._chat_completion(model=model, prompt=prompt, max_tokens=max_tokens)
            except (httpx.HTTPError, ValueError) as exc:
                kind = _classify(exc)
                logger.warning("generation failed model=%s kind=%s error=%s", model, kind, exc)
                if used_fallback or len(self._model_candidates()) == 1:
                    raise GenerationError(str(exc), kind=kind) from exc
                continue

        raise GenerationError("No model candidates configured")

    def _model_candidates(self) -> list[tuple[str, bool]]:
        candidates: list[tuple[str, bool]] = [(self._default_model, False)]
        if self._fallback_model and self._fallback_model != self._default_model:
            candidates.append((self._fallback_model, True))
        return candidates

    def _chat_completion(self, *, model: str, prompt: str, max_tokens: int) -> str:
        response = httpx.post(
            f"{self._base_url}/chat/completions",
            json={
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": 0,
            },
            timeout=self._timeout_seconds,
        )
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Invalid chat completion payload: expected a JSON object")

        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ValueError("Invalid chat completion payload: missing choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise ValueError("Invalid chat completion payload: missing assistant content")

        return content.strip()
