"""
Knowledge-base routes: a thin proxy over the Dify datasets API, plus
metadata suggestions and PDF ingestion jobs.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from starlette.concurrency import run_in_threadpool

from backend.config import Settings, get_settings
from backend.db import DbClient
from backend.dependencies import (
    get_data_source,
    get_db_client,
    get_dify_client,
    get_queue_client,
    get_settings_store,
    get_storage_client,
)
from backend.dify import DifyClient, DifyNotConfiguredError
from backend.queue import IngestQueue
from backend.routes import ingest_job_response
from backend.schemas import (
    AnalyzeResponse,
    CreateDatasetRequest,
    CreateTextDocumentRequest,
    DatasetSearchRequest,
    IngestJobResponse,
    SearchRequest,
    SuccessResponse,
    SuggestedMetadata,
)
from backend.settings_store import SettingsStore
from backend.storage import StorageClient
from backend.uploads import PDF_CONTENT_TYPE, make_storage_path, read_upload
from import_pipeline import pdf_text
from models import prompts
from shared.constants import (
    CHUNK_SEPARATOR,
    DATASET_PERMISSIONS,
    INDEXING_TECHNIQUES,
    SEARCH_METHODS,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/knowledge")

ANALYZER_USER = "document-analyzer"
UNTITLED_DOCUMENT_NAME = "Untitled document"
# Segment size for raw file uploads; pipeline ingestion uses its own rule.
UPLOAD_SEGMENT_MAX_TOKENS = 500

_JSON_BLOCK_PATTERN = re.compile(r"```json\s*([\s\S]*?)\s*```")
SUGGESTED_METADATA_KEYS = ("title", "building", "buildingName", "description")


def _check_choice(name: str, value: str, allowed) -> None:
    if value not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"{name} must be one of: {', '.join(allowed)}",
        )


def make_upload_process_rule() -> dict:
    return {
        "mode": "custom",
        "rules": {
            "pre_processing_rules": [
                {"id": "remove_extra_spaces", "enabled": True},
                {"id": "remove_urls_emails", "enabled": True},
            ],
            "segmentation": {
                "separator": CHUNK_SEPARATOR,
                "max_tokens": UPLOAD_SEGMENT_MAX_TOKENS,
            },
        },
    }


def parse_suggested_metadata(answer: Optional[str]) -> dict:
    """Pulls the ```json block out of a completion answer; {} when absent or invalid."""
    if not answer:
        return {}
    match = _JSON_BLOCK_PATTERN.search(answer)
    if not match:
        logger.warning("No JSON block in analysis answer: %.200s", answer)
        return {}
    try:
        parsed = json.loads(match.group(1))
    except json.JSONDecodeError as e:
        logger.warning("Could not parse analysis JSON: %s", e)
        return {}
    if not isinstance(parsed, dict):
        return {}
    invalid = [
        key
        for key in SUGGESTED_METADATA_KEYS
        if parsed.get(key) is not None and not isinstance(parsed[key], str)
    ]
    if invalid:
        logger.warning("Dropping non-string analysis fields: %s", invalid)
    return {key: value for key, value in parsed.items() if key not in invalid}


def _extract_analysis_text(data: bytes, content_type: str) -> str:
    if content_type != PDF_CONTENT_TYPE:
        return ""
    try:
        text = pdf_text.page_texts_to_markdown(pdf_text.extract_page_texts(data))
    except ValueError as e:
        logger.warning("Could not extract text for analysis: %s", e)
        return ""
    # pdfminer copes with some layouts pypdf returns nothing for.
    return text or pdf_text.extract_first_page_text(data)


@router.get("")
def list_datasets(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    dify: DifyClient = Depends(get_dify_client),
):
    return dify.list_datasets(page=page, limit=limit)


@router.post("")
def create_dataset(
    payload: CreateDatasetRequest, dify: DifyClient = Depends(get_dify_client)
):
    if not payload.name or not payload.name.strip():
        raise HTTPException(status_code=400, detail="name is required")
    _check_choice("permission", payload.permission, DATASET_PERMISSIONS)
    _check_choice("indexingTechnique", payload.indexingTechnique, INDEXING_TECHNIQUES)
    return dify.create_dataset(
        payload.name.strip(),
        description=payload.description,
        permission=payload.permission,
        indexing_technique=payload.indexingTechnique,
    )


@router.post("/search")
def search_default_dataset(
    payload: SearchRequest,
    dify: DifyClient = Depends(get_dify_client),
    settings: Settings = Depends(get_settings),
):
    """Searches the portal's default knowledge base."""
    if not settings.dify_dataset_id:
        raise DifyNotConfiguredError("DIFY_DATASET_ID is not configured")
    if not payload.query or not payload.query.strip():
        raise HTTPException(status_code=400, detail="query is required")
    _check_choice("searchMethod", payload.searchMethod, SEARCH_METHODS)
    return dify.retrieve(
        settings.dify_dataset_id,
        payload.query.strip(),
        top_k=payload.topK,
        search_method=payload.searchMethod,
    )


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_document(
    file: Optional[UploadFile] = File(None),
    dify: DifyClient = Depends(get_dify_client),
    settings_store: SettingsStore = Depends(get_settings_store),
):
    """
    Suggests title, building and description for an uploaded document.

    The text of a PDF is sent to the Dify completion app together with the
    list of buildings. An answer without a parsable ```json block yields
    empty metadata rather than an error.
    """
    app_settings = settings_store.get_app_settings()
    if not app_settings.features.ai_suggestions:
        raise HTTPException(status_code=403, detail="AI suggestions are disabled")
    data, content_type = await read_upload(file, app_settings)
    logger.info(
        "Analyzing %s (%s, %d bytes)", file.filename, content_type, len(data)
    )

    text = await run_in_threadpool(_extract_analysis_text, data, content_type)
    prompt = prompts.make_analyze_document_prompt(text, file.filename)
    result = await run_in_threadpool(
        dify.send_completion_message, prompt, {}, ANALYZER_USER
    )
    metadata = parse_suggested_metadata(result.get("answer"))
    return AnalyzeResponse(
        metadata=SuggestedMetadata(**metadata), rawResponse=result
    )


@router.delete("/{dataset_id}", response_model=SuccessResponse)
def delete_dataset(dataset_id: str, dify: DifyClient = Depends(get_dify_client)):
    dify.delete_dataset(dataset_id)
    return SuccessResponse()


@router.get("/{dataset_id}/document")
def list_dataset_documents(
    dataset_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    keyword: Optional[str] = Query(None),
    dify: DifyClient = Depends(get_dify_client),
):
    return dify.list_documents(dataset_id, page=page, limit=limit, keyword=keyword)


@router.post("/{dataset_id}/document")
def create_text_document(
    dataset_id: str,
    payload: CreateTextDocumentRequest,
    dify: DifyClient = Depends(get_dify_client),
):
    if not payload.text or not payload.text.strip():
        raise HTTPException(status_code=400, detail="text is required")
    _check_choice("indexingTechnique", payload.indexingTechnique, INDEXING_TECHNIQUES)
    name = (
        payload.name
        or (payload.metadata or {}).get("title")
        or UNTITLED_DOCUMENT_NAME
    )
    return dify.create_document_by_text(
        dataset_id,
        name=name,
        text=payload.text,
        indexing_technique=payload.indexingTechnique,
    )


@router.post("/{dataset_id}/document/file")
async def create_file_document(
    dataset_id: str,
    file: Optional[UploadFile] = File(None),
    indexingTechnique: str = Form("high_quality"),
    dify: DifyClient = Depends(get_dify_client),
    settings_store: SettingsStore = Depends(get_settings_store),
):
    _check_choice("indexingTechnique", indexingTechnique, INDEXING_TECHNIQUES)
    data, content_type = await read_upload(file, settings_store.get_app_settings())
    return await run_in_threadpool(
        dify.create_document_by_file,
        dataset_id,
        file.filename,
        data,
        content_type,
        {
            "indexing_technique": indexingTechnique,
            "process_rule": {"mode": "automatic"},
        },
    )


@router.delete("/{dataset_id}/document/{document_id}", response_model=SuccessResponse)
def delete_dataset_document(
    dataset_id: str, document_id: str, dify: DifyClient = Depends(get_dify_client)
):
    dify.delete_document(dataset_id, document_id)
    return SuccessResponse()


@router.get("/{dataset_id}/document/{document_id}/status/{batch}")
def indexing_status(
    dataset_id: str,
    document_id: str,
    batch: str,
    dify: DifyClient = Depends(get_dify_client),
):
    # Dify looks indexing status up by batch; document_id only scopes the URL.
    return dify.get_indexing_status(dataset_id, batch)


@router.post("/{dataset_id}/search")
def search_dataset(
    dataset_id: str,
    payload: DatasetSearchRequest,
    dify: DifyClient = Depends(get_dify_client),
):
    _check_choice("searchMethod", payload.searchMethod, SEARCH_METHODS)
    return dify.retrieve(
        dataset_id,
        payload.query or "",
        top_k=payload.topK,
        search_method=payload.searchMethod,
    )


@router.post("/{dataset_id}/upload")
async def upload_file_document(
    dataset_id: str,
    file: Optional[UploadFile] = File(None),
    metadata: Optional[str] = Form(None),
    dify: DifyClient = Depends(get_dify_client),
    settings_store: SettingsStore = Depends(get_settings_store),
):
    """Uploads a file with the portal's custom segmentation rule and optional metadata."""
    data, content_type = await read_upload(file, settings_store.get_app_settings())
    logger.info(
        "Uploading %s (%s, %d bytes) to dataset %s",
        file.filename,
        content_type,
        len(data),
        dataset_id,
    )
    data_config = {
        "indexing_technique": "high_quality",
        "process_rule": make_upload_process_rule(),
    }
    if metadata:
        try:
            data_config["metadata"] = json.loads(metadata)
        except json.JSONDecodeError as e:
            logger.warning("Ignoring unparsable metadata for %s: %s", file.filename, e)
    return await run_in_threadpool(
        dify.create_document_by_file,
        dataset_id,
        file.filename,
        data,
        content_type,
        data_config,
    )


@router.post("/{dataset_id}/ingest", response_model=IngestJobResponse, status_code=202)
async def ingest_pdf_document(
    dataset_id: str,
    file: Optional[UploadFile] = File(None),
    document_id: Optional[str] = Form(None),
    db: DbClient = Depends(get_db_client),
    queue: IngestQueue = Depends(get_queue_client),
    storage: StorageClient = Depends(get_storage_client),
    settings_store: SettingsStore = Depends(get_settings_store),
    data_source: str = Depends(get_data_source),
):
    """
    Queues a PDF for the ingestion pipeline (text extraction or OCR, then
    chunked upload). Poll /ingest-jobs/{jobId} for progress.
    """
    data, _ = await read_upload(
        file, settings_store.get_app_settings(), allowed_types=[PDF_CONTENT_TYPE]
    )
    storage_path = make_storage_path(f"ingest/{dataset_id}", file.filename)
    await run_in_threadpool(storage.upload_bytes, storage_path, data, PDF_CONTENT_TYPE)

    job = db.create_ingest_job(
        dataset_id=dataset_id,
        filename=file.filename,
        storage_path=storage_path,
        document_id=document_id,
        data_source=data_source,
    )
    if queue.enqueue(job.job_id):
        logger.info("Queued ingestion job %s for %s", job.job_id, file.filename)
    return ingest_job_response(job)
