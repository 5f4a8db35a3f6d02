"""
Persistence for portal-wide AppSettings (Firestore `settings/app` or in-memory).
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Optional, Protocol

from dacite import Config, from_dict
from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from backend.documents import DocumentStoreError
from shared.constants import APP_SETTINGS_DOCUMENT_ID, SETTINGS_COLLECTION
from shared.json_utils import convert_keys
from shared.types import AppSettings

logger = logging.getLogger(__name__)


class SettingsStore(Protocol):
    def get_app_settings(self) -> AppSettings:
        ...

    def save_app_settings(self, app_settings: AppSettings) -> None:
        ...


def app_settings_from_json(data: Optional[dict]) -> AppSettings:
    """Builds AppSettings from stored camelCase JSON; missing fields take defaults."""
    if not data:
        return AppSettings()
    return from_dict(
        data_class=AppSettings,
        data=convert_keys(data, "camel_to_snake"),
        config=Config(check_types=False),
    )


def app_settings_to_json(app_settings: AppSettings) -> dict:
    return convert_keys(asdict(app_settings), "snake_to_camel")


class InMemorySettingsStore:
    def __init__(self, app_settings: Optional[AppSettings] = None):
        self.app_settings = app_settings or AppSettings()

    def get_app_settings(self) -> AppSettings:
        return self.app_settings

    def save_app_settings(self, app_settings: AppSettings) -> None:
        self.app_settings = app_settings


class FirestoreSettingsStore:
    def __init__(
        self,
        client=None,
        collection: str = SETTINGS_COLLECTION,
        document_id: str = APP_SETTINGS_DOCUMENT_ID,
    ):
        self.client = client or firestore.client()
        self.collection = collection
        self.document_id = document_id

    def _doc_ref(self):
        return self.client.collection(self.collection).document(self.document_id)

    def get_app_settings(self) -> AppSettings:
        try:
            snap = self._doc_ref().get()
        except google_exceptions.GoogleAPIError as e:
            logger.exception("Failed to load app settings: %s", e)
            raise DocumentStoreError("Failed to load app settings") from e
        if not snap.exists:
            return AppSettings()
        return app_settings_from_json(snap.to_dict())

    def save_app_settings(self, app_settings: AppSettings) -> None:
        try:
            self._doc_ref().set(app_settings_to_json(app_settings))
        except google_exceptions.GoogleAPIError as e:
            logger.exception("Failed to save app settings: %s", e)
            raise DocumentStoreError("Failed to save app settings") from e
