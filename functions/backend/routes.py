"""
HTTP routes for documents, the AI assistant, OCR, ingestion jobs and admin settings.
"""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from backend.auth import get_current_user
from backend.config import Settings, get_settings
from backend.db import DbClient, IngestJobRecord
from backend.dependencies import (
    get_data_source,
    get_db_client,
    get_dify_client,
    get_document_store,
    get_queue_client,
    get_settings_store,
    get_storage_client,
)
from backend.dify import DifyClient
from backend.documents import (
    DocumentStore,
    DocumentStoreError,
    filter_documents,
    resolve_related,
)
from backend.queue import IngestQueue
from backend.schemas import (
    AppSettingsModel,
    AskRequest,
    AskResponse,
    CreateDocumentResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdateRequest,
    ExtractTextRequest,
    ExtractTextResponse,
    FileUrlResponse,
    HealthResponse,
    IngestJobResponse,
    SuccessResponse,
)
from backend.settings_store import (
    SettingsStore,
    app_settings_from_json,
    app_settings_to_json,
)
from backend.storage import StorageClient
from backend.uploads import (
    PDF_CONTENT_TYPE,
    file_type_label,
    format_file_size,
    make_storage_path,
    read_upload,
)
from import_pipeline import pdf_text
from models import gemini
from shared.constants import DEFAULT_AVATAR_URL, DEFAULT_PREVIEW_URL, NO_ANSWER_MESSAGE
from shared.types import AuthenticatedUser

logger = logging.getLogger(__name__)

health_router = APIRouter()
router = APIRouter()


def ingest_job_response(job: IngestJobRecord) -> IngestJobResponse:
    return IngestJobResponse(
        jobId=job.job_id,
        status=job.status.name,
        stage=job.stage,
        progressPercent=job.progress_percent,
        datasetId=job.dataset_id,
        filename=job.filename,
        documentId=job.document_id,
        method=job.method,
        chunkCount=job.chunk_count,
        pageCount=job.page_count,
        difyDocumentId=job.dify_document_id,
        difyBatch=job.dify_batch,
        error=job.error,
    )


def _parse_tags(raw: Optional[str]) -> list[str]:
    return [tag.strip() for tag in (raw or "").split(",") if tag.strip()]


def _get_document_or_404(store: DocumentStore, document_id: str) -> dict:
    document = store.get_document(document_id)
    if document is None:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


@health_router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse()


@router.get("/documents", response_model=DocumentListResponse)
def list_documents(
    building: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    q: Optional[str] = Query(None),
    store: DocumentStore = Depends(get_document_store),
):
    documents = filter_documents(
        store.list_documents(), building=building, tag=tag, query=q
    )
    return DocumentListResponse(documents=documents)


@router.post("/documents", response_model=CreateDocumentResponse, status_code=201)
async def create_document(
    file: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    building: Optional[str] = Form(None),
    description: str = Form(""),
    tags: Optional[str] = Form(None),
    dataset_id: Optional[str] = Form(None),
    store: DocumentStore = Depends(get_document_store),
    storage: StorageClient = Depends(get_storage_client),
    settings_store: SettingsStore = Depends(get_settings_store),
    db: DbClient = Depends(get_db_client),
    queue: IngestQueue = Depends(get_queue_client),
    data_source: str = Depends(get_data_source),
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
):
    """
    Uploads a building document, stores the file and creates its record.

    When dataset_id is given, the PDF is also queued for knowledge-base
    ingestion and the job id is returned as ingestJobId.
    """
    if not title or not title.strip():
        raise HTTPException(status_code=400, detail="title is required")
    if not building or not building.strip():
        raise HTTPException(status_code=400, detail="building is required")

    app_settings = settings_store.get_app_settings()
    data, content_type = await read_upload(file, app_settings)
    if dataset_id and content_type != PDF_CONTENT_TYPE:
        raise HTTPException(
            status_code=400, detail="Only PDF documents can be ingested"
        )

    if content_type == PDF_CONTENT_TYPE:
        try:
            pages = pdf_text.count_pages(data)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        pages = 1

    storage_path = make_storage_path("documents", file.filename)
    await run_in_threadpool(storage.upload_bytes, storage_path, data, content_type)

    record = {
        "title": title.strip(),
        "building": building.strip(),
        "type": file_type_label(content_type),
        "tags": _parse_tags(tags),
        "description": description,
        "fileSize": format_file_size(len(data)),
        "pages": pages,
        "previewUrl": DEFAULT_PREVIEW_URL,
        "storagePath": storage_path,
        "relatedDocuments": [],
    }
    if user:
        record["uploadedBy"] = {
            "name": user.display_name,
            "avatar": user.picture or DEFAULT_AVATAR_URL,
            "initials": user.initials,
        }
    try:
        document_id = store.add_document(record)
    except DocumentStoreError:
        logger.warning("Removing %s after failed document create", storage_path)
        await run_in_threadpool(storage.delete, storage_path)
        raise
    logger.info("Created document %s (%s, %d pages)", document_id, record["type"], pages)

    ingest_job_id = None
    if dataset_id:
        job = db.create_ingest_job(
            dataset_id=dataset_id,
            filename=file.filename,
            storage_path=storage_path,
            document_id=document_id,
            data_source=data_source,
        )
        ingest_job_id = job.job_id
        if queue.enqueue(job.job_id):
            logger.info("Queued ingestion job %s for document %s", job.job_id, document_id)

    return CreateDocumentResponse(
        document=store.get_document(document_id), ingestJobId=ingest_job_id
    )


@router.get("/documents/{document_id}", response_model=DocumentResponse)
def get_document(document_id: str, store: DocumentStore = Depends(get_document_store)):
    return DocumentResponse(document=_get_document_or_404(store, document_id))


@router.patch("/documents/{document_id}", response_model=DocumentResponse)
def update_document(
    document_id: str,
    payload: DocumentUpdateRequest,
    store: DocumentStore = Depends(get_document_store),
):
    existing = _get_document_or_404(store, document_id)
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if "relatedDocuments" not in changes:
        # Partial updates keep the current related documents.
        changes["relatedDocuments"] = existing["relatedDocuments"]
    if not store.update_document(document_id, changes):
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentResponse(document=_get_document_or_404(store, document_id))


@router.delete("/documents/{document_id}", response_model=SuccessResponse)
def delete_document(
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
    storage: StorageClient = Depends(get_storage_client),
):
    document = _get_document_or_404(store, document_id)
    if document.get("storagePath"):
        storage.delete(document["storagePath"])
    if not store.delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return SuccessResponse()


@router.get("/documents/{document_id}/related", response_model=DocumentListResponse)
def get_related_documents(
    document_id: str, store: DocumentStore = Depends(get_document_store)
):
    document = _get_document_or_404(store, document_id)
    return DocumentListResponse(documents=resolve_related(document, store))


@router.get("/documents/{document_id}/file-url", response_model=FileUrlResponse)
def get_document_file_url(
    document_id: str,
    expires_in: int = Query(3600, ge=60, le=86400),
    store: DocumentStore = Depends(get_document_store),
    storage: StorageClient = Depends(get_storage_client),
):
    document = _get_document_or_404(store, document_id)
    if not document.get("storagePath"):
        raise HTTPException(status_code=404, detail="Document has no stored file")
    return FileUrlResponse(
        url=storage.signed_url(document["storagePath"], expires_in=expires_in)
    )


@router.post("/ai", response_model=AskResponse)
def ask_assistant(
    payload: AskRequest,
    dify: DifyClient = Depends(get_dify_client),
    settings_store: SettingsStore = Depends(get_settings_store),
):
    """Answers a building-management question through the Dify chat app."""
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="query must not be empty")
    if not settings_store.get_app_settings().ai_features.enabled:
        raise HTTPException(status_code=403, detail="AI features are disabled")

    result = dify.send_chat_message(query, conversation_id=payload.conversationId)
    answer = (
        result.get("answer")
        or result.get("text")
        or result.get("message")
        or NO_ANSWER_MESSAGE
    )
    return AskResponse(
        answer=answer,
        conversationId=result.get("conversation_id") or payload.conversationId,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.post("/gemini/extract-text", response_model=ExtractTextResponse)
def extract_text(
    payload: ExtractTextRequest, settings: Settings = Depends(get_settings)
):
    """OCRs one base64-encoded page image into Markdown."""
    if not settings.gemini_api_key:
        raise gemini.GeminiNotConfiguredError("Gemini API key is not configured")
    if not payload.imageBase64:
        raise HTTPException(status_code=400, detail="imageBase64 is required")

    encoded = payload.imageBase64
    if encoded.startswith("data:") and "," in encoded:
        encoded = encoded.split(",", 1)[1]
    try:
        image_bytes = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="imageBase64 is not valid base64")

    markdown = gemini.ocr_page_to_markdown(
        image_bytes,
        api_key=settings.gemini_api_key,
        model=settings.gemini_ocr_model,
        mime_type=payload.mimeType,
    )
    return ExtractTextResponse(markdown=markdown)


@router.get("/ingest-jobs/{job_id}", response_model=IngestJobResponse)
def ingest_job_status(job_id: str, db: DbClient = Depends(get_db_client)):
    job = db.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return ingest_job_response(job)


@router.get("/admin/settings", response_model=AppSettingsModel)
def get_app_settings(settings_store: SettingsStore = Depends(get_settings_store)):
    return AppSettingsModel(**app_settings_to_json(settings_store.get_app_settings()))


@router.put("/admin/settings", response_model=AppSettingsModel)
def put_app_settings(
    payload: AppSettingsModel,
    settings_store: SettingsStore = Depends(get_settings_store),
):
    app_settings = app_settings_from_json(payload.model_dump())
    settings_store.save_app_settings(app_settings)
    logger.info("Updated app settings")
    return AppSettingsModel(**app_settings_to_json(app_settings))
