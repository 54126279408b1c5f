from pathlib import Path

from fastapi.testclient import TestClient

from docqa.config import get_settings
from docqa.db import get_engine
from docqa.llm import GenerationError
from docqa.main import app, get_pipeline
from docqa.services.qa.pipeline import NO_DOCUMENTS_MESSAGE, build_pipeline


class FakeClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int]] = []

    def invoke(self, prompt: str, *, max_tokens: int) -> str:
        self.calls.append((prompt, max_tokens))
        return "mocked answer"


class FailingClient:
    def invoke(self, prompt: str, *, max_tokens: int) -> str:
        raise GenerationError("simulated failure")


def _use_client(fake_client) -> None:
    app.dependency_overrides[get_pipeline] = lambda: build_pipeline(
        get_settings(), engine=get_engine(), client=fake_client
    )


def _upload(client: TestClient, tmp_path: Path, key: str, text: str) -> None:
    path = tmp_path / "documents" / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    response = client.post("/documents/ingest", json={"bucket": "documents", "key": key})
    assert response.status_code == 200
    assert response.json()["failed"] == 0


def test_ask_returns_answer_sources_and_method(client: TestClient, tmp_path: Path) -> None:
    fake_client = FakeClient()
    _use_client(fake_client)
    _upload(client, tmp_path, "uploads/acme/opti.txt", "Hectronic OPTI payment terminal")

    response = client.post("/ask", json={"question": "What is Hectronic?"})

    assert response.status_code == 200
    assert response.json() == {
        "answer": "mocked answer",
        "sources": ["opti"],
        "method": "ai-synthesis",
        "documentsSearched": 1,
    }
    assert len(fake_client.calls) == 1


def test_ask_falls_back_when_model_fails(client: TestClient, tmp_path: Path) -> None:
    _use_client(FailingClient())
    _upload(client, tmp_path, "uploads/acme/opti.txt", "Hectronic OPTI payment terminal")

    response = client.post("/ask", json={"question": "hectronic"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["method"] == "manual-fallback"
    assert payload["answer"].startswith("Based on your documents:")
    assert payload["sources"] == ["opti"]


def test_ask_without_documents_reports_empty_catalog(client: TestClient) -> None:
    _use_client(FakeClient())

    response = client.post("/ask", json={"question": "hectronic"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["method"] == "no-match"
    assert payload["answer"] == NO_DOCUMENTS_MESSAGE
    assert payload["documentsSearched"] == 0


def test_ask_scopes_to_partner(client: TestClient, tmp_path: Path) -> None:
    _use_client(FakeClient())
    _upload(client, tmp_path, "uploads/acme/opti.txt", "Hectronic OPTI")
    _upload(client, tmp_path, "uploads/globex/tank.txt", "Tank gauge")

    response = client.post("/ask", json={"question": "hectronic", "partnerId": "globex"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["method"] == "no-match"
    assert payload["sources"] == ["tank"]
    assert payload["documentsSearched"] == 1


def test_ask_rejects_missing_question(client: TestClient) -> None:
    _use_client(FakeClient())

    response = client.post("/ask", json={"partnerId": "acme"})

    assert response.status_code == 422


def test_ask_rejects_blank_question(client: TestClient) -> None:
    _use_client(FakeClient())

    response = client.post("/ask", json={"question": "   "})

    assert response.status_code == 400
