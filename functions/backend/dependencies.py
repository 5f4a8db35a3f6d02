"""
Dependency wiring for the FastAPI app and the ingestion worker.
"""

from __future__ import annotations

import functools
from typing import Callable

from fastapi import Depends, Request
from firebase_admin import firestore

from backend.config import get_settings
from backend.db import DbClient, InMemoryDbClient, SqlDbClient
from backend.dify import DifyClient
from backend.documents import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    make_mock_document_store,
)
from backend.firebase import get_firebase_app
from backend.queue import InMemoryIngestQueue, IngestQueue, RedisIngestQueue
from backend.settings_store import (
    FirestoreSettingsStore,
    InMemorySettingsStore,
    SettingsStore,
)
from backend.storage import FirebaseStorageClient, InMemoryStorageClient, StorageClient
from models import gemini
from shared.constants import DATA_SOURCE_MOCK, DATA_SOURCES

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_queue_client: IngestQueue | None = None
_dify_client: DifyClient | None = None
_document_stores: dict[str, DocumentStore] = {}
_settings_store: SettingsStore | None = None


def reset_backends() -> None:
    """Drop cached clients so the next call rebuilds them from settings."""
    global _db_client, _storage_client, _queue_client, _dify_client, _settings_store
    _db_client = None
    _storage_client = None
    _queue_client = None
    _dify_client = None
    _settings_store = None
    _document_stores.clear()


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so job/status state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = SqlDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = FirebaseStorageClient(
            bucket_name=settings.firebase_storage_bucket,
            app=get_firebase_app(settings),
        )
    return _storage_client


def get_queue_client() -> IngestQueue:
    """
    Return a singleton queue client for dispatching jobs to workers.
    """
    global _queue_client
    if _queue_client:
        return _queue_client

    settings = get_settings()
    if settings.redis_url:
        _queue_client = RedisIngestQueue(
            url=settings.redis_url,
            queue_key=settings.redis_queue_key,
        )
    else:
        _queue_client = InMemoryIngestQueue()
    return _queue_client


def get_dify_client() -> DifyClient:
    global _dify_client
    if _dify_client:
        return _dify_client

    settings = get_settings()
    _dify_client = DifyClient(
        endpoint=settings.dify_api_endpoint,
        api_key=settings.dify_api_key,
        app_api_key=settings.dify_app_key,
        user=settings.dify_user,
    )
    return _dify_client


def get_data_source(request: Request) -> str:
    """The data source chosen by the request middleware."""
    data_source = getattr(request.state, "data_source", None)
    if data_source in DATA_SOURCES:
        return data_source
    return get_settings().default_data_source


def get_document_store_for(data_source: str) -> DocumentStore:
    store = _document_stores.get(data_source)
    if store:
        return store

    settings = get_settings()
    if data_source == DATA_SOURCE_MOCK:
        store = make_mock_document_store()
    elif settings.use_in_memory_backends:
        store = InMemoryDocumentStore()
    else:
        store = FirestoreDocumentStore(
            client=firestore.client(get_firebase_app(settings))
        )
    _document_stores[data_source] = store
    return store


def get_document_store(data_source: str = Depends(get_data_source)) -> DocumentStore:
    return get_document_store_for(data_source)


def get_settings_store() -> SettingsStore:
    global _settings_store
    if _settings_store:
        return _settings_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _settings_store = InMemorySettingsStore()
    else:
        _settings_store = FirestoreSettingsStore(
            client=firestore.client(get_firebase_app(settings))
        )
    return _settings_store


def get_ocr_page() -> Callable[[bytes], str]:
    """The page OCR callable used by the ingestion pipeline."""
    settings = get_settings()
    return functools.partial(
        gemini.ocr_page_to_markdown,
        api_key=settings.gemini_api_key,
        model=settings.gemini_ocr_model,
    )
