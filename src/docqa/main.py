from datetime import datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from docqa.config import configure_logging, get_settings
from docqa.db import get_engine, init_schema
from docqa.services.qa.errors import (
    CollaboratorUnavailable,
    DocumentNotFound,
    InputError,
    SynthesisUnavailable,
)
from docqa.services.qa.extractor import ExtractionError
from docqa.services.qa.pipeline import QAPipeline, build_pipeline
from docqa.services.qa.types import Document, IngestionOutcome, IngestionReport

app = FastAPI(title="Document Q&A API", version="0.1.0")


class AskRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    question: str = Field(min_length=1)
    partner_id: str | None = Field(default=None, alias="partnerId")


class StoredObject(BaseModel):
    bucket: str = ""
    key: str = Field(min_length=1)


class IngestRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    records: list[StoredObject] | None = Field(default=None, alias="Records")
    bucket: str | None = None
    key: str | None = None

    def stored_objects(self) -> list[tuple[str, str]]:
        if self.records:
            return [(record.bucket, record.key) for record in self.records]
        if self.key:
            return [(self.bucket or "", self.key)]
        return []


class CompareRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    document_id_1: str = Field(min_length=1, alias="documentId1")
    document_id_2: str = Field(min_length=1, alias="documentId2")


@app.on_event("startup")
def startup() -> None:
    configure_logging()
    init_schema(get_engine())


def get_pipeline() -> QAPipeline:
    return build_pipeline(get_settings(), engine=get_engine())


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _document_summary(document: Document) -> dict[str, Any]:
    return {
        "documentId": document.id,
        "storageKey": document.storage_key,
        "ownerId": document.owner_id,
        "documentType": document.document_type,
        "fileName": document.file_name,
        "uploadedAt": _to_iso(document.uploaded_at),
        "textLength": document.text_length,
        "chunkCount": document.chunk_count,
        "status": document.status,
    }


def _outcome_summary(outcome: IngestionOutcome) -> dict[str, Any]:
    return {
        "key": outcome.key,
        "documentId": outcome.document_id,
        "ok": outcome.ok,
        "textLength": outcome.text_length,
        "chunkCount": outcome.chunk_count,
        "indexed": outcome.indexed,
        "error": outcome.error,
    }


def _report_summary(report: IngestionReport) -> dict[str, Any]:
    return {
        "processed": report.succeeded,
        "failed": report.failed,
        "outcomes": [_outcome_summary(outcome) for outcome in report.outcomes],
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/ask")
def ask(
    request: AskRequest,
    pipeline: Annotated[QAPipeline, Depends(get_pipeline)],
) -> dict[str, Any]:
    try:
        response = pipeline.answer(request.question, partner_id=request.partner_id)
    except InputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    body: dict[str, Any] = {
        "answer": response.answer,
        "sources": response.sources,
        "method": response.method.value,
    }
    if response.documents_searched is not None:
        body["documentsSearched"] = response.documents_searched
    return body


@app.get("/documents")
def list_documents(
    pipeline: Annotated[QAPipeline, Depends(get_pipeline)],
    owner_id: str | None = Query(default=None),
) -> list[dict[str, Any]]:
    try:
        documents = pipeline.list_documents(owner_id)
    except CollaboratorUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return [_document_summary(document) for document in documents]


@app.get("/documents/search")
def search_documents(
    pipeline: Annotated[QAPipeline, Depends(get_pipeline)],
    q: str = Query(min_length=1),
    owner_id: str | None = Query(default=None),
) -> dict[str, Any]:
    try:
        documents = pipeline.search_documents(q, owner_id=owner_id)
    except InputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CollaboratorUnavailable as exc:
        raise HTTPException(status_code=503, detail=f"Search failed: {exc}") from exc
    return {"query": q, "results": [_document_summary(document) for document in documents]}


@app.get("/documents/{document_id}/preview")
def preview_document(
    document_id: str,
    pipeline: Annotated[QAPipeline, Depends(get_pipeline)],
    terms: list[str] = Query(default=[]),
) -> dict[str, Any]:
    try:
        preview = pipeline.preview(document_id, terms)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ExtractionError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except CollaboratorUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return {
        "documentId": preview.document_id,
        "storageKey": preview.storage_key,
        "textLength": preview.text_length,
        "preview": preview.preview,
        "termHits": preview.term_hits,
    }


@app.post("/documents/ingest")
def ingest_documents(
    request: IngestRequest,
    pipeline: Annotated[QAPipeline, Depends(get_pipeline)],
) -> dict[str, Any]:
    stored_objects = request.stored_objects()
    if not stored_objects:
        raise HTTPException(status_code=400, detail="no stored objects in notification")
    return _report_summary(pipeline.ingest_notification(stored_objects))


@app.post("/documents/reindex")
def reindex_documents(
    pipeline: Annotated[QAPipeline, Depends(get_pipeline)],
) -> dict[str, Any]:
    try:
        report = pipeline.reindex()
    except CollaboratorUnavailable as exc:
        raise HTTPException(status_code=503, detail=f"Reindexing failed: {exc}") from exc

    body = _report_summary(report)
    body["message"] = f"Reindexed {report.succeeded} of {len(report.outcomes)} documents"
    body["success"] = report.failed == 0
    return body


@app.post("/documents/compare")
def compare_documents(
    request: CompareRequest,
    pipeline: Annotated[QAPipeline, Depends(get_pipeline)],
) -> dict[str, str]:
    try:
        comparison = pipeline.compare(request.document_id_1, request.document_id_2)
    except DocumentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ExtractionError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except SynthesisUnavailable as exc:
        raise HTTPException(status_code=502, detail=f"Comparison failed: {exc}") from exc
    except CollaboratorUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return {"comparison": comparison}


def run() -> None:
    import uvicorn

    uvicorn.run("docqa.main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
