"""
Wake-up queue for the ingestion worker.

The ingest_jobs table is the record of pending work; the queue only carries
job ids so an idle worker wakes up immediately. A job whose id never reaches
the queue is still picked up by the worker's claim_next_waiting_job fallback,
so a failed push is logged rather than failing the upload request.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional, Protocol

import redis
from redis import exceptions as redis_exceptions

logger = logging.getLogger(__name__)


class IngestQueue(Protocol):
    """Carries ingest job ids from the API to the worker."""

    def enqueue(self, job_id: str) -> bool:
        """Pushes a job id. Returns False when the id could not be queued."""
        ...

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        ...

    def pending(self) -> int:
        ...


@dataclass
class InMemoryIngestQueue:
    """FIFO for tests and single-process runs; ids already waiting are not pushed twice."""

    items: Deque[str] = field(default_factory=deque)

    def enqueue(self, job_id: str) -> bool:
        if job_id not in self.items:
            self.items.append(job_id)
        return True

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        return self.items.popleft() if self.items else None

    def pending(self) -> int:
        return len(self.items)


@dataclass
class RedisIngestQueue:
    """Redis list of job ids: RPUSH from the API, BLPOP in the worker."""

    url: str
    queue_key: str = "condo:ingest-jobs"

    def __post_init__(self):
        self._connect()

    def _connect(self) -> None:
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def enqueue(self, job_id: str) -> bool:
        try:
            self.client.rpush(self.queue_key, job_id)
        except redis_exceptions.ConnectionError as e:
            logger.warning("Could not queue ingest job %s: %s", job_id, e)
            self._connect()
            return False
        return True

    def dequeue(self, *, block: bool = True, timeout: int | None = None) -> Optional[str]:
        try:
            if not block:
                return self.client.lpop(self.queue_key)
            result = self.client.blpop(self.queue_key, timeout=timeout or 0)
        except redis_exceptions.ConnectionError as e:
            # Treated as an empty queue; the worker loop retries.
            logger.warning("Redis connection lost, reconnecting: %s", e)
            self._connect()
            return None
        if result is None:
            return None
        _, job_id = result
        return job_id

    def pending(self) -> int:
        try:
            return self.client.llen(self.queue_key)
        except redis_exceptions.ConnectionError as e:
            logger.warning("Could not read ingest queue length: %s", e)
            self._connect()
            return 0
