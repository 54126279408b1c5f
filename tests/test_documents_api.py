from pathlib import Path

from fastapi.testclient import TestClient

from docqa.config import get_settings
from docqa.db import get_engine
from docqa.llm import GenerationError
from docqa.main import app, get_pipeline
from docqa.services.qa.pipeline import build_pipeline


class FakeClient:
    def invoke(self, prompt: str, *, max_tokens: int) -> str:
        return "comparison text"


class FailingClient:
    def invoke(self, prompt: str, *, max_tokens: int) -> str:
        raise GenerationError("simulated failure")


def _use_client(fake_client) -> None:
    app.dependency_overrides[get_pipeline] = lambda: build_pipeline(
        get_settings(), engine=get_engine(), client=fake_client
    )


def _store(tmp_path: Path, key: str, text: str) -> None:
    path = tmp_path / "documents" / key
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_ingest_notification_reports_each_record(client: TestClient, tmp_path: Path) -> None:
    _use_client(FakeClient())
    _store(tmp_path, "uploads/acme/opti.txt", "Hectronic OPTI")

    response = client.post(
        "/documents/ingest",
        json={
            "Records": [
                {"bucket": "documents", "key": "uploads/acme/opti.txt"},
                {"bucket": "documents", "key": "uploads/acme/missing.txt"},
            ]
        },
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["processed"] == 1
    assert payload["failed"] == 1
    first, second = payload["outcomes"]
    assert first["documentId"] == "opti"
    assert first["ok"] is True
    assert first["indexed"] is True
    assert second["ok"] is False


def test_ingest_without_records_is_rejected(client: TestClient) -> None:
    _use_client(FakeClient())

    response = client.post("/documents/ingest", json={})

    assert response.status_code == 400


def test_list_documents_filters_by_owner(client: TestClient, tmp_path: Path) -> None:
    _use_client(FakeClient())
    _store(tmp_path, "uploads/acme/opti.txt", "Hectronic OPTI")
    _store(tmp_path, "uploads/globex/tank.txt", "Tank gauge")
    client.post(
        "/documents/ingest",
        json={
            "Records": [
                {"key": "uploads/acme/opti.txt"},
                {"key": "uploads/globex/tank.txt"},
            ]
        },
    )

    everything = client.get("/documents")
    acme_only = client.get("/documents", params={"owner_id": "acme"})

    assert everything.status_code == 200
    assert sorted(item["documentId"] for item in everything.json()) == ["opti", "tank"]
    assert [item["documentId"] for item in acme_only.json()] == ["opti"]
    assert acme_only.json()[0]["status"] == "processed"
    assert acme_only.json()[0]["textLength"] == len("Hectronic OPTI")


def test_reindex_rebuilds_search_index(client: TestClient, tmp_path: Path) -> None:
    _use_client(FakeClient())
    _store(tmp_path, "uploads/acme/opti.txt", "Hectronic OPTI")
    client.post("/documents/ingest", json={"key": "uploads/acme/opti.txt"})

    response = client.post("/documents/reindex")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["message"] == "Reindexed 1 of 1 documents"
    assert payload["outcomes"][0]["indexed"] is True


def test_compare_returns_model_output(client: TestClient, tmp_path: Path) -> None:
    _use_client(FakeClient())
    _store(tmp_path, "uploads/acme/v1.txt", "Version one")
    _store(tmp_path, "uploads/acme/v2.txt", "Version two")
    client.post(
        "/documents/ingest",
        json={"Records": [{"key": "uploads/acme/v1.txt"}, {"key": "uploads/acme/v2.txt"}]},
    )

    response = client.post(
        "/documents/compare", json={"documentId1": "v1", "documentId2": "v2"}
    )

    assert response.status_code == 200
    assert response.json() == {"comparison": "comparison text"}


def test_compare_unknown_document_is_404(client: TestClient) -> None:
    _use_client(FakeClient())

    response = client.post(
        "/documents/compare", json={"documentId1": "v1", "documentId2": "v2"}
    )

    assert response.status_code == 404


def test_compare_model_failure_is_502(client: TestClient, tmp_path: Path) -> None:
    _use_client(FailingClient())
    _store(tmp_path, "uploads/acme/v1.txt", "Version one")
    _store(tmp_path, "uploads/acme/v2.txt", "Version two")
    client.post(
        "/documents/ingest",
        json={"Records": [{"key": "uploads/acme/v1.txt"}, {"key": "uploads/acme/v2.txt"}]},
    )

    response = client.post(
        "/documents/compare", json={"documentId1": "v1", "documentId2": "v2"}
    )

    assert response.status_code == 502


def test_search_documents_by_file_name(client: TestClient, tmp_path: Path) -> None:
    _use_client(FakeClient())
    _store(tmp_path, "uploads/acme/Hectronic-OPTI.txt", "terminal")
    _store(tmp_path, "uploads/acme/pumps.txt", "pumps")
    client.post(
        "/documents/ingest",
        json={
            "Records": [
                {"key": "uploads/acme/Hectronic-OPTI.txt"},
                {"key": "uploads/acme/pumps.txt"},
            ]
        },
    )

    response = client.get("/documents/search", params={"q": "hectronic"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["query"] == "hectronic"
    assert [item["documentId"] for item in payload["results"]] == ["Hectronic-OPTI"]


def test_search_requires_query_text(client: TestClient) -> None:
    _use_client(FakeClient())

    assert client.get("/documents/search").status_code == 422
    assert client.get("/documents/search", params={"q": "   "}).status_code == 400


def test_preview_shows_extracted_text(client: TestClient, tmp_path: Path) -> None:
    _use_client(FakeClient())
    _store(tmp_path, "uploads/acme/opti.txt", "Hectronic OPTI terminal")
    client.post("/documents/ingest", json={"key": "uploads/acme/opti.txt"})

    response = client.get(
        "/documents/opti/preview", params=[("terms", "hectronic"), ("terms", "bugbot")]
    )

    assert response.status_code == 200
    assert response.json() == {
        "documentId": "opti",
        "storageKey": "uploads/acme/opti.txt",
        "textLength": len("Hectronic OPTI terminal"),
        "preview": "Hectronic OPTI terminal",
        "termHits": {"hectronic": True, "bugbot": False},
    }


def test_preview_unknown_document_is_404(client: TestClient) -> None:
    _use_client(FakeClient())

    assert client.get("/documents/missing/preview").status_code == 404
