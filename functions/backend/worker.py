"""
Worker loop that runs queued knowledge-base ingestion jobs.

Each job reads a stored PDF, converts it to Markdown chunks (text extraction
or OCR fallback) and uploads the chunks to a Dify dataset.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from backend.config import get_settings
from backend.db import DbClient, IngestJobRecord
from backend.dependencies import (
    get_db_client,
    get_dify_client,
    get_document_store_for,
    get_ocr_page,
    get_queue_client,
    get_settings_store,
    get_storage_client,
)
from backend.dify import DifyApiError, DifyClient, DifyNotConfiguredError
from backend.queue import IngestQueue
from backend.settings_store import SettingsStore
from backend.storage import StorageClient
from import_pipeline import import_pipeline
from shared.types import IngestStatus

logger = logging.getLogger(__name__)

STAGE_FETCH_PDF = "FETCH_PDF"
STALE_LOCK_SECONDS = 900

# Share of the progress bar before the pipeline starts.
_FETCH_PROGRESS = 0.05


def _status_for_error(exc: Exception) -> IngestStatus:
    if isinstance(exc, import_pipeline.NoExtractableTextError):
        return IngestStatus.ERROR_NO_TEXT
    if isinstance(exc, (DifyApiError, DifyNotConfiguredError)):
        return IngestStatus.ERROR_KNOWLEDGE_BASE
    return IngestStatus.ERROR


def _record_on_document(job: IngestJobRecord, result: import_pipeline.IngestResult) -> None:
    store = get_document_store_for(job.data_source or get_settings().default_data_source)
    document = store.get_document(job.document_id)
    if document is None:
        logger.warning(
            "[%s] Document %s no longer exists; skipping knowledgeBase update",
            job.job_id,
            job.document_id,
        )
        return
    store.update_document(
        job.document_id,
        {
            "knowledgeBase": {
                "datasetId": result.dataset_id,
                "documentId": result.dify_document_id,
                "batch": result.batch,
                "status": IngestStatus.SUCCESS.value,
            },
            "relatedDocuments": document["relatedDocuments"],
        },
    )


def process_job(
    job: IngestJobRecord,
    db: DbClient,
    *,
    storage: Optional[StorageClient] = None,
    dify: Optional[DifyClient] = None,
    settings_store: Optional[SettingsStore] = None,
    ocr_page: Optional[Callable[[bytes], str]] = None,
) -> None:
    """
    Process a single ingestion job and record its outcome.

    Failures are recorded on the job rather than raised:
    NoExtractableTextError maps to ERROR_NO_TEXT, Dify failures to
    ERROR_KNOWLEDGE_BASE and anything else to ERROR.
    """
    settings = get_settings()
    storage = storage or get_storage_client()
    dify = dify or get_dify_client()
    settings_store = settings_store or get_settings_store()
    ocr_page = ocr_page or get_ocr_page()

    def on_stage(stage: str) -> None:
        logger.info("[%s] Stage %s", job.job_id, stage)
        db.update_job_progress(job.job_id, status=IngestStatus[stage], stage=stage)

    def on_progress(percent: float) -> None:
        db.update_job_progress(
            job.job_id,
            progress_percent=_FETCH_PROGRESS + percent / 100 * (1 - _FETCH_PROGRESS),
        )

    try:
        db.update_job_progress(
            job.job_id,
            status=IngestStatus.EXTRACTING,
            stage=STAGE_FETCH_PDF,
            progress_percent=0.0,
        )
        pdf_bytes = storage.get_bytes(job.storage_path)
        db.update_job_progress(job.job_id, progress_percent=_FETCH_PROGRESS)

        app_settings = settings_store.get_app_settings()
        result = import_pipeline.ingest_pdf(
            pdf_bytes,
            dataset_id=job.dataset_id,
            name=job.filename,
            dify_client=dify,
            ocr_page=ocr_page,
            ocr_enabled=app_settings.features.ocr,
            render_scale=settings.ocr_render_scale,
            progress_callback=on_progress,
            stage_callback=on_stage,
        )
    except Exception as exc:
        status = _status_for_error(exc)
        logger.exception("[%s] Ingestion failed (%s): %s", job.job_id, status.name, exc)
        db.update_job_progress(
            job.job_id,
            status=status,
            stage=status.name,
            error=str(exc),
        )
        return

    db.update_job_progress(
        job.job_id,
        status=IngestStatus.SUCCESS,
        stage=IngestStatus.SUCCESS.name,
        progress_percent=1.0,
        method=result.method.value,
        chunk_count=result.chunk_count,
        page_count=result.page_count,
        dify_document_id=result.dify_document_id,
        dify_batch=result.batch,
    )
    logger.info(
        "[%s] Ingested %s: %d chunks via %s (skipped pages: %s)",
        job.job_id,
        job.filename,
        result.chunk_count,
        result.method.value,
        result.skipped_pages or "none",
    )

    if job.document_id:
        try:
            _record_on_document(job, result)
        except Exception:
            # The knowledge-base upload already succeeded.
            logger.exception(
                "[%s] Failed to record knowledgeBase on document %s",
                job.job_id,
                job.document_id,
            )


def process_next(
    *,
    db: Optional[DbClient] = None,
    queue: Optional[IngestQueue] = None,
    block: bool = True,
    timeout: Optional[int] = None,
    **job_kwargs,
) -> bool:
    """
    Fetch and process one job from the queue (or DB fallback). Returns True if processed.
    """
    db = db or get_db_client()
    queue = queue or get_queue_client()

    job_id = queue.dequeue(block=block, timeout=timeout) if queue else None
    job: Optional[IngestJobRecord] = None

    if job_id:
        job = db.claim_job(job_id)
        if not job:
            logger.warning(
                "Job %s from queue is missing or already claimed", job_id
            )
            return False
    else:
        # Fallback for WAITING jobs that were never queued.
        job = db.claim_next_waiting_job()
        if not job:
            return False

    process_job(job, db, **job_kwargs)
    return True


def run_loop(poll_interval_seconds: float = 2.0) -> None:
    """
    Polling loop that blocks on the queue. Intended to be run under systemd/supervisor.
    """
    db = get_db_client()
    queue = get_queue_client()
    logger.info(
        "Ingestion worker started (%s, %s, %d queued)",
        type(db).__name__,
        type(queue).__name__,
        queue.pending(),
    )
    while True:
        try:
            requeued = db.requeue_stale_locks(lock_timeout_seconds=STALE_LOCK_SECONDS)
            if requeued:
                logger.info("Requeued %d stale jobs", requeued)
        except Exception:
            logger.exception("Failed to requeue stale locks")
        processed = process_next(
            db=db, queue=queue, block=True, timeout=int(poll_interval_seconds)
        )
        if not processed:
            time.sleep(poll_interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)
    run_loop()
