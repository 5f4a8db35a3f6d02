"""
Storage abstraction for Firebase Storage and in-memory testing.
"""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Protocol

from firebase_admin import storage


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        ...

    def get_bytes(self, path: str) -> bytes:
        ...

    def signed_url(self, path: str, expires_in: int = 3600) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = field(default_factory=dict)
    content_types: dict = field(default_factory=dict)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self.stored_objects[path] = bytes(data)
        self.content_types[path] = content_type

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored

    def signed_url(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?expires={expires_in}"

    def delete(self, path: str) -> None:
        self.stored_objects.pop(path, None)
        self.content_types.pop(path, None)


class FirebaseStorageClient:
    """
    Firebase Storage (Cloud Storage bucket) client.
    """

    def __init__(self, bucket_name: str | None = None, app=None):
        self._bucket = storage.bucket(bucket_name, app=app)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        blob = self._bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)

    def get_bytes(self, path: str) -> bytes:
        blob = self._bucket.blob(path)
        if not blob.exists():
            raise FileNotFoundError(path)
        return blob.download_as_bytes()

    def signed_url(self, path: str, expires_in: int = 3600) -> str:
        blob = self._bucket.blob(path)
        return blob.generate_signed_url(
            version="v4",
            expiration=datetime.timedelta(seconds=expires_in),
            method="GET",
        )

    def delete(self, path: str) -> None:
        blob = self._bucket.blob(path)
        if blob.exists():
            blob.delete()
