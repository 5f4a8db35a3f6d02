"""
Ingestion job records: SQLAlchemy implementation and an in-memory test implementation.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, fields
from typing import Dict, Optional, Protocol

from sqlalchemy import Column, Float, Integer, String, Text, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from shared.types import IngestStatus

STAGE_WAITING = "WAITING"
STAGE_CLAIMED = "CLAIMED"

# Statuses a worker can hold a lock in.
ACTIVE_STATUS_VALUES = tuple(s.value for s in IngestStatus if not s.is_terminal)


@dataclass
class IngestJobRecord:
    job_id: str
    dataset_id: str
    filename: str
    storage_path: str
    status: IngestStatus = IngestStatus.WAITING
    stage: str = STAGE_WAITING
    progress_percent: float = 0.0
    document_id: Optional[str] = None
    data_source: Optional[str] = None
    method: Optional[str] = None
    chunk_count: Optional[int] = None
    page_count: Optional[int] = None
    dify_document_id: Optional[str] = None
    dify_batch: Optional[str] = None
    error: Optional[str] = None
    locked_at: Optional[float] = None
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["status"] = self.status.name
        result.pop("locked_at")
        return result


# Result fields the worker may set alongside status/stage/progress.
RESULT_FIELDS = (
    "method",
    "chunk_count",
    "page_count",
    "dify_document_id",
    "dify_batch",
    "error",
)


class DbClient(Protocol):
    """Interface for ingestion job storage."""

    def create_ingest_job(
        self,
        dataset_id: str,
        filename: str,
        storage_path: str,
        document_id: str | None = None,
        data_source: str | None = None,
    ) -> IngestJobRecord:
        ...

    def get_job(self, job_id: str) -> Optional[IngestJobRecord]:
        ...

    def claim_job(self, job_id: str) -> Optional[IngestJobRecord]:
        ...

    def claim_next_waiting_job(self) -> Optional[IngestJobRecord]:
        ...

    def update_job_progress(
        self,
        job_id: str,
        *,
        status: Optional[IngestStatus] = None,
        stage: Optional[str] = None,
        progress_percent: Optional[float] = None,
        **results,
    ) -> None:
        ...

    def requeue_stale_locks(self, lock_timeout_seconds: float = 900) -> int:
        ...


def _check_result_fields(results: dict) -> None:
    unknown = set(results) - set(RESULT_FIELDS)
    if unknown:
        raise ValueError(f"Unknown job fields: {sorted(unknown)}")


class InMemoryDbClient:
    """Simple in-memory job store for development and tests."""

    def __init__(self):
        self.jobs: Dict[str, IngestJobRecord] = {}

    def create_ingest_job(
        self,
        dataset_id: str,
        filename: str,
        storage_path: str,
        document_id: str | None = None,
        data_source: str | None = None,
    ) -> IngestJobRecord:
        record = IngestJobRecord(
            job_id=uuid.uuid4().hex,
            dataset_id=dataset_id,
            filename=filename,
            storage_path=storage_path,
            document_id=document_id,
            data_source=data_source,
        )
        self.jobs[record.job_id] = record
        return record

    def get_job(self, job_id: str) -> Optional[IngestJobRecord]:
        return self.jobs.get(job_id)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.jobs.clear()

    def _claim(self, job: IngestJobRecord) -> IngestJobRecord:
        job.stage = STAGE_CLAIMED
        job.locked_at = time.time()
        job.updated_at = job.locked_at
        return job

    def claim_job(self, job_id: str) -> Optional[IngestJobRecord]:
        job = self.jobs.get(job_id)
        if not job or job.status != IngestStatus.WAITING or job.locked_at:
            return None
        return self._claim(job)

    def claim_next_waiting_job(self) -> Optional[IngestJobRecord]:
        waiting = [
            job
            for job in self.jobs.values()
            if job.status == IngestStatus.WAITING and not job.locked_at
        ]
        if not waiting:
            return None
        return self._claim(min(waiting, key=lambda job: job.created_at))

    def update_job_progress(
        self,
        job_id: str,
        *,
        status: Optional[IngestStatus] = None,
        stage: Optional[str] = None,
        progress_percent: Optional[float] = None,
        **results,
    ) -> None:
        _check_result_fields(results)
        job = self.jobs.get(job_id)
        if not job:
            return
        if status:
            job.status = status
        if stage:
            job.stage = stage
        if progress_percent is not None:
            job.progress_percent = progress_percent
        for key, value in results.items():
            setattr(job, key, value)
        job.updated_at = time.time()

    def requeue_stale_locks(self, lock_timeout_seconds: float = 900) -> int:
        now = time.time()
        requeued = 0
        for job in self.jobs.values():
            if (
                not job.status.is_terminal
                and job.locked_at
                and now - job.locked_at > lock_timeout_seconds
            ):
                job.status = IngestStatus.WAITING
                job.stage = STAGE_WAITING
                job.progress_percent = 0.0
                job.locked_at = None
                job.updated_at = now
                requeued += 1
        return requeued


Base = declarative_base()


class IngestJobRow(Base):
    __tablename__ = "ingest_jobs"

    job_id = Column(String, primary_key=True)
    dataset_id = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=False)
    storage_path = Column(String, nullable=False)
    document_id = Column(String, nullable=True)
    data_source = Column(String, nullable=True)
    status = Column(String, nullable=False, index=True)
    stage = Column(String, nullable=False, default=STAGE_WAITING)
    progress_percent = Column(Float, nullable=False, default=0.0)
    method = Column(String, nullable=True)
    chunk_count = Column(Integer, nullable=True)
    page_count = Column(Integer, nullable=True)
    dify_document_id = Column(String, nullable=True)
    dify_batch = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    locked_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class SqlDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        engine_kwargs = {"future": True, "pool_pre_ping": True}
        if not database_url.startswith("sqlite"):
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_record(self, row: IngestJobRow) -> IngestJobRecord:
        return IngestJobRecord(
            job_id=row.job_id,
            dataset_id=row.dataset_id,
            filename=row.filename,
            storage_path=row.storage_path,
            document_id=row.document_id,
            data_source=row.data_source,
            status=IngestStatus(row.status),
            stage=row.stage,
            progress_percent=row.progress_percent,
            method=row.method,
            chunk_count=row.chunk_count,
            page_count=row.page_count,
            dify_document_id=row.dify_document_id,
            dify_batch=row.dify_batch,
            error=row.error,
            locked_at=row.locked_at,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def create_ingest_job(
        self,
        dataset_id: str,
        filename: str,
        storage_path: str,
        document_id: str | None = None,
        data_source: str | None = None,
    ) -> IngestJobRecord:
        now = time.time()
        with self.Session() as session:
            row = IngestJobRow(
                job_id=uuid.uuid4().hex,
                dataset_id=dataset_id,
                filename=filename,
                storage_path=storage_path,
                document_id=document_id,
                data_source=data_source,
                status=IngestStatus.WAITING.value,
                stage=STAGE_WAITING,
                progress_percent=0.0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def get_job(self, job_id: str) -> Optional[IngestJobRecord]:
        with self.Session() as session:
            row = session.get(IngestJobRow, job_id)
            if not row:
                return None
            return self._to_record(row)

    def _claim_row(self, session: Session, row: IngestJobRow) -> IngestJobRecord:
        now = time.time()
        row.stage = STAGE_CLAIMED
        row.locked_at = now
        row.updated_at = now
        session.commit()
        session.refresh(row)
        return self._to_record(row)

    def claim_job(self, job_id: str) -> Optional[IngestJobRecord]:
        with self.Session() as session:
            stmt = (
                select(IngestJobRow)
                .where(
                    IngestJobRow.job_id == job_id,
                    IngestJobRow.status == IngestStatus.WAITING.value,
                    IngestJobRow.locked_at.is_(None),
                )
                .with_for_update(skip_locked=True)
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return self._claim_row(session, row)

    def claim_next_waiting_job(self) -> Optional[IngestJobRecord]:
        with self.Session() as session:
            stmt = (
                select(IngestJobRow)
                .where(
                    IngestJobRow.status == IngestStatus.WAITING.value,
                    IngestJobRow.locked_at.is_(None),
                )
                .order_by(IngestJobRow.created_at.asc())
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            row = session.execute(stmt).scalar_one_or_none()
            if not row:
                return None
            return self._claim_row(session, row)

    def update_job_progress(
        self,
        job_id: str,
        *,
        status: Optional[IngestStatus] = None,
        stage: Optional[str] = None,
        progress_percent: Optional[float] = None,
        **results,
    ) -> None:
        _check_result_fields(results)
        with self.Session() as session:
            row = session.get(IngestJobRow, job_id)
            if not row:
                return
            if status:
                row.status = status.value
            if stage:
                row.stage = stage
            if progress_percent is not None:
                row.progress_percent = progress_percent
            for key, value in results.items():
                setattr(row, key, value)
            row.updated_at = time.time()
            session.commit()

    def requeue_stale_locks(self, lock_timeout_seconds: float = 900) -> int:
        cutoff = time.time() - lock_timeout_seconds
        with self.Session() as session:
            updated = (
                session.query(IngestJobRow)
                .filter(
                    IngestJobRow.status.in_(ACTIVE_STATUS_VALUES),
                    IngestJobRow.locked_at.isnot(None),
                    IngestJobRow.locked_at < cutoff,
                )
                .update(
                    {
                        IngestJobRow.status: IngestStatus.WAITING.value,
                        IngestJobRow.stage: STAGE_WAITING,
                        IngestJobRow.progress_percent: 0.0,
                        IngestJobRow.locked_at: None,
                        IngestJobRow.updated_at: time.time(),
                    },
                    synchronize_session=False,
                )
            )
            session.commit()
            return updated or 0
