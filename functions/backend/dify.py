"""
Dify HTTP client for the datasets (knowledge base) and app (chat/completion) APIs.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import requests

from shared.constants import DEFAULT_SEARCH_METHOD, DEFAULT_SEARCH_TOP_K

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60


class DifyApiError(Exception):
    """A non-2xx response from Dify."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DifyNotConfiguredError(Exception):
    pass


def _error_message(response: requests.Response) -> str:
    fallback = f"Dify API error: {response.status_code}"
    try:
        payload = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return f"{fallback} - {text[:100]}" if text else fallback
    if isinstance(payload, dict):
        return payload.get("message") or payload.get("error") or fallback
    return fallback


class DifyClient:
    """
    Thin wrapper over the Dify REST API.

    Dataset calls use api_key; chat and completion calls use app_api_key,
    falling back to api_key.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str],
        app_api_key: Optional[str] = None,
        user: str = "condo-docs",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.api_key = api_key
        self.app_api_key = app_api_key or api_key
        self.user = user
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(
        self,
        method: str,
        path: str,
        *,
        api_key: Optional[str],
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
    ) -> dict:
        if not api_key:
            raise DifyNotConfiguredError("Dify API key is not configured")

        url = f"{self.endpoint}{path}"
        logger.debug("Dify %s %s", method, url)
        response = self.session.request(
            method,
            url,
            headers={"Authorization": f"Bearer {api_key}"},
            params=params,
            json=json_body,
            data=data,
            files=files,
            timeout=self.timeout,
        )
        if not response.ok:
            message = _error_message(response)
            logger.error("Dify %s %s failed (%d): %s", method, path, response.status_code, message)
            raise DifyApiError(message, response.status_code)

        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise DifyApiError(
                "Unexpected non-JSON response from Dify", response.status_code
            ) from e

    def _datasets(self, method: str, path: str, **kwargs) -> dict:
        return self._request(method, path, api_key=self.api_key, **kwargs)

    def _app(self, method: str, path: str, **kwargs) -> dict:
        return self._request(method, path, api_key=self.app_api_key, **kwargs)

    # Datasets

    def list_datasets(self, page: int = 1, limit: int = 20) -> dict:
        return self._datasets("GET", "/datasets", params={"page": page, "limit": limit})

    def create_dataset(
        self,
        name: str,
        description: Optional[str] = None,
        permission: str = "only_me",
        indexing_technique: str = "high_quality",
    ) -> dict:
        body = {
            "name": name,
            "permission": permission,
            "indexing_technique": indexing_technique,
        }
        if description:
            body["description"] = description
        return self._datasets("POST", "/datasets", json_body=body)

    def delete_dataset(self, dataset_id: str) -> dict:
        return self._datasets("DELETE", f"/datasets/{dataset_id}")

    def list_documents(
        self,
        dataset_id: str,
        page: int = 1,
        limit: int = 20,
        keyword: Optional[str] = None,
    ) -> dict:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if keyword:
            params["keyword"] = keyword
        return self._datasets(
            "GET", f"/datasets/{dataset_id}/documents", params=params
        )

    def create_document_by_text(
        self,
        dataset_id: str,
        name: str,
        text: str,
        indexing_technique: str = "high_quality",
        process_rule: Optional[dict] = None,
    ) -> dict:
        body = {
            "name": name,
            "text": text,
            "indexing_technique": indexing_technique,
            "process_rule": process_rule or {"mode": "automatic"},
            "doc_form": "text_model",
        }
        return self._datasets(
            "POST", f"/datasets/{dataset_id}/document/create-by-text", json_body=body
        )

    def create_document_by_file(
        self,
        dataset_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
        data: Optional[dict] = None,
    ) -> dict:
        """
        Uploads a file as a new document.

        Args:
            dataset_id (str): The dataset to add to.
            filename (str): File name shown in Dify.
            content (bytes): The file body.
            content_type (str): MIME type of the file.
            data (dict): Dify "data" field (indexing technique, process rule,
                metadata). Defaults to high-quality automatic processing.
        """
        data = data or {
            "indexing_technique": "high_quality",
            "process_rule": {"mode": "automatic"},
        }
        files = {
            "file": (filename, content, content_type or "application/octet-stream"),
        }
        return self._datasets(
            "POST",
            f"/datasets/{dataset_id}/document/create-by-file",
            data={"data": json.dumps(data)},
            files=files,
        )

    def delete_document(self, dataset_id: str, document_id: str) -> dict:
        return self._datasets(
            "DELETE", f"/datasets/{dataset_id}/documents/{document_id}"
        )

    def get_indexing_status(self, dataset_id: str, batch: str) -> dict:
        return self._datasets(
            "GET", f"/datasets/{dataset_id}/documents/{batch}/indexing-status"
        )

    def retrieve(
        self,
        dataset_id: str,
        query: str,
        top_k: int = DEFAULT_SEARCH_TOP_K,
        search_method: str = DEFAULT_SEARCH_METHOD,
    ) -> dict:
        body = {
            "query": query,
            "retrieval_model": {
                "search_method": search_method,
                "reranking_enable": False,
                "top_k": top_k,
                "score_threshold_enabled": False,
            },
        }
        return self._datasets(
            "POST", f"/datasets/{dataset_id}/retrieve", json_body=body
        )

    # App

    def send_chat_message(
        self,
        query: str,
        conversation_id: Optional[str] = None,
        user: Optional[str] = None,
    ) -> dict:
        body: dict[str, Any] = {
            "inputs": {"question": query},
            "query": query,
            "response_mode": "blocking",
            "user": user or self.user,
        }
        if conversation_id:
            body["conversation_id"] = conversation_id
        return self._app("POST", "/chat-messages", json_body=body)

    def send_completion_message(
        self,
        query: str,
        inputs: Optional[dict] = None,
        user: Optional[str] = None,
    ) -> dict:
        body = {
            "query": query,
            "inputs": inputs or {},
            "response_mode": "blocking",
            "user": user or self.user,
        }
        return self._app("POST", "/completion-messages", json_body=body)
