"""
Firebase Admin SDK initialization shared by the document store, storage and auth.
"""

from __future__ import annotations

import json
import logging

import firebase_admin
from firebase_admin import credentials

from backend.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _make_credential(settings: Settings):
    if settings.firebase_service_account_key:
        service_account = json.loads(settings.firebase_service_account_key)
        return credentials.Certificate(service_account)
    if (
        settings.firebase_project_id
        and settings.firebase_client_email
        and settings.firebase_private_key
    ):
        # Private keys from env vars carry literal "\n" sequences.
        private_key = settings.firebase_private_key.replace("\\n", "\n")
        return credentials.Certificate(
            {
                "type": "service_account",
                "project_id": settings.firebase_project_id,
                "client_email": settings.firebase_client_email,
                "private_key": private_key,
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        )
    return credentials.ApplicationDefault()


def get_firebase_app(settings: Settings | None = None) -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    settings = settings or get_settings()
    options = {}
    if settings.firebase_database_url:
        options["databaseURL"] = settings.firebase_database_url
    if settings.firebase_storage_bucket:
        options["storageBucket"] = settings.firebase_storage_bucket
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id

    app = firebase_admin.initialize_app(_make_credential(settings), options or None)
    logger.info("Initialized Firebase app for project %s", app.project_id)
    return app
