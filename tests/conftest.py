from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from docqa.config import get_settings
from docqa.db import get_engine, init_schema
from docqa.main import app


@pytest.fixture(autouse=True)
def reset_api_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_engine.cache_clear()
    yield
    get_settings.cache_clear()
    get_engine.cache_clear()


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'catalog.db'}")
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[TestClient]:
    sqlite_db_path = tmp_path / "api-tests.db"
    monkeypatch.setenv("DOCQA_DATABASE_URL", f"sqlite+pysqlite:///{sqlite_db_path}")
    monkeypatch.setenv("DOCQA_DB_ECHO", "false")
    monkeypatch.setenv("DOCQA_STORAGE_DIR", str(tmp_path / "documents"))
    monkeypatch.setenv("DOCQA_INDEX_PATH", str(tmp_path / "search_index" / "index.db"))

    engine = get_engine()
    init_schema(engine)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    engine.dispose()
