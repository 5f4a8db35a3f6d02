"""
Document store for building documents: Firestore and an in-memory implementation.

The "mock" data source is an in-memory store seeded with the sample documents.
Every document read from a store goes through normalize_document.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Protocol

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from shared.constants import DOCUMENTS_COLLECTION
from shared.sample_data import SAMPLE_DOCUMENTS

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    pass


class DocumentStore(Protocol):
    """Operations the API needs from a document store."""

    def list_documents(self) -> List[dict]:
        ...

    def get_document(self, document_id: str) -> Optional[dict]:
        ...

    def add_document(self, data: dict) -> str:
        ...

    def update_document(self, document_id: str, data: dict) -> bool:
        ...

    def delete_document(self, document_id: str) -> bool:
        ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_document(doc: dict) -> dict:
    """Coerces the id to str and guarantees a well-formed relatedDocuments list."""
    normalized = dict(doc)
    normalized["id"] = str(doc.get("id", ""))
    if isinstance(doc.get("uploadedAt"), datetime):
        # Firestore timestamps come back as datetimes.
        normalized["uploadedAt"] = doc["uploadedAt"].isoformat()
    related = doc.get("relatedDocuments")
    if isinstance(related, list):
        normalized["relatedDocuments"] = [
            {
                "id": str(entry.get("id")) if entry.get("id") is not None else "",
                "title": entry.get("title") or "",
            }
            for entry in related
            if isinstance(entry, dict)
        ]
    else:
        normalized["relatedDocuments"] = []
    return normalized


def _prepare_new_document(data: dict) -> dict:
    prepared = dict(data)
    prepared.pop("id", None)
    prepared["relatedDocuments"] = prepared.get("relatedDocuments") or []
    prepared["uploadedAt"] = prepared.get("uploadedAt") or _now_iso()
    return prepared


def _prepare_update(data: dict) -> dict:
    prepared = dict(data)
    prepared.pop("id", None)
    if prepared.get("relatedDocuments") is None:
        prepared["relatedDocuments"] = []
    return prepared


def filter_documents(
    documents: Iterable[dict],
    building: Optional[str] = None,
    tag: Optional[str] = None,
    query: Optional[str] = None,
) -> List[dict]:
    """
    Filters documents by building, tag and a free-text query.

    The query is a case-insensitive substring match over title, description,
    tags and building.
    """
    needle = (query or "").strip().lower()
    results = []
    for doc in documents:
        if building and doc.get("building") != building:
            continue
        tags = doc.get("tags") or []
        if tag and tag not in tags:
            continue
        if needle:
            haystack = [
                doc.get("title") or "",
                doc.get("description") or "",
                doc.get("building") or "",
                *tags,
            ]
            if not any(needle in str(value).lower() for value in haystack):
                continue
        results.append(doc)
    return results


def resolve_related(doc: dict, store: DocumentStore) -> List[dict]:
    """Loads the documents referenced by doc; missing references are skipped."""
    resolved = []
    for entry in doc.get("relatedDocuments") or []:
        related_id = entry.get("id")
        if not related_id:
            continue
        related = store.get_document(related_id)
        if related is None:
            logger.info(
                "Related document %s of %s not found", related_id, doc.get("id")
            )
            continue
        resolved.append(related)
    return resolved


class InMemoryDocumentStore:
    """Dict-backed store for development, tests and the mock data source."""

    def __init__(self, documents: Optional[Iterable[dict]] = None):
        self.documents: Dict[str, dict] = {}
        for doc in documents or []:
            self.documents[str(doc["id"])] = copy.deepcopy(doc)

    def _next_id(self) -> str:
        numeric = [int(key) for key in self.documents if key.isdigit()]
        if len(numeric) == len(self.documents) and numeric:
            return str(max(numeric) + 1)
        return uuid.uuid4().hex

    def list_documents(self) -> List[dict]:
        return [normalize_document(doc) for doc in self.documents.values()]

    def get_document(self, document_id: str) -> Optional[dict]:
        doc = self.documents.get(str(document_id))
        return normalize_document(doc) if doc is not None else None

    def add_document(self, data: dict) -> str:
        document_id = self._next_id()
        prepared = _prepare_new_document(data)
        prepared["id"] = document_id
        self.documents[document_id] = prepared
        return document_id

    def update_document(self, document_id: str, data: dict) -> bool:
        doc = self.documents.get(str(document_id))
        if doc is None:
            return False
        doc.update(_prepare_update(data))
        return True

    def delete_document(self, document_id: str) -> bool:
        return self.documents.pop(str(document_id), None) is not None

    def reset(self) -> None:
        self.documents.clear()


def make_mock_document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(SAMPLE_DOCUMENTS)


class FirestoreDocumentStore:
    """
    Firestore-backed store over the `documents` collection.
    """

    def __init__(self, client=None, collection: str = DOCUMENTS_COLLECTION):
        self.client = client or firestore.client()
        self.collection = collection

    def _collection(self):
        return self.client.collection(self.collection)

    def list_documents(self) -> List[dict]:
        try:
            snapshots = self._collection().stream()
            return [
                normalize_document({**(snap.to_dict() or {}), "id": snap.id})
                for snap in snapshots
            ]
        except google_exceptions.GoogleAPIError as e:
            logger.exception("Failed to list documents: %s", e)
            raise DocumentStoreError("Failed to list documents") from e

    def get_document(self, document_id: str) -> Optional[dict]:
        try:
            snap = self._collection().document(document_id).get()
        except google_exceptions.GoogleAPIError as e:
            logger.exception("Failed to get document %s: %s", document_id, e)
            raise DocumentStoreError("Failed to get document") from e
        if not snap.exists:
            return None
        return normalize_document({**(snap.to_dict() or {}), "id": snap.id})

    def add_document(self, data: dict) -> str:
        try:
            _, doc_ref = self._collection().add(_prepare_new_document(data))
        except google_exceptions.GoogleAPIError as e:
            logger.exception("Failed to add document: %s", e)
            raise DocumentStoreError("Failed to add document") from e
        return doc_ref.id

    def update_document(self, document_id: str, data: dict) -> bool:
        try:
            self._collection().document(document_id).update(_prepare_update(data))
        except google_exceptions.NotFound:
            return False
        except google_exceptions.GoogleAPIError as e:
            logger.exception("Failed to update document %s: %s", document_id, e)
            raise DocumentStoreError("Failed to update document") from e
        return True

    def delete_document(self, document_id: str) -> bool:
        try:
            doc_ref = self._collection().document(document_id)
            if not doc_ref.get().exists:
                return False
            doc_ref.delete()
        except google_exceptions.GoogleAPIError as e:
            logger.exception("Failed to delete document %s: %s", document_id, e)
            raise DocumentStoreError("Failed to delete document") from e
        return True
