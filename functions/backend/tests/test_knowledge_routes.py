import json
import os
import unittest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import get_settings
from backend.dependencies import (
    get_db_client,
    get_dify_client,
    get_queue_client,
    get_settings_store,
    get_storage_client,
    reset_backends,
)
from backend.dify import DifyApiError, DifyClient
from backend.knowledge_routes import ANALYZER_USER, parse_suggested_metadata
from import_pipeline.pdf_test_utils import MINUTES_PAGE, make_pdf

TEST_ENV = {
    "USE_IN_MEMORY_BACKENDS": "true",
    "REQUIRE_AUTH": "false",
    "DATABASE_URL": "",
    "REDIS_URL": "",
    "DIFY_API_KEY": "dify-key",
    "DIFY_DATASET_ID": "default-dataset",
}

ANALYSIS_ANSWER = """Here is my analysis.
```json
{"title": "FY2023 Assembly Minutes", "building": "building1", "buildingName": "Grand Palace Tokyo", "description": "Repair plan and budget."}
```"""


class KnowledgeApiTestCase(unittest.TestCase):

    def setUp(self):
        env_patcher = patch.dict(os.environ, TEST_ENV)
        env_patcher.start()
        self.addCleanup(env_patcher.stop)
        get_settings.cache_clear()
        reset_backends()
        self.addCleanup(get_settings.cache_clear)
        self.addCleanup(reset_backends)

        self.dify = MagicMock(spec=DifyClient)
        app = create_app()
        app.dependency_overrides[get_dify_client] = lambda: self.dify
        self.client = TestClient(app)


class DatasetRouteTests(KnowledgeApiTestCase):

    def test_list_datasets(self):
        self.dify.list_datasets.return_value = {"data": [{"id": "ds-1"}], "has_more": False}

        response = self.client.get("/api/knowledge", params={"page": 2})

        self.assertEqual(response.json()["data"], [{"id": "ds-1"}])
        self.dify.list_datasets.assert_called_once_with(page=2, limit=20)

    def test_create_dataset(self):
        self.dify.create_dataset.return_value = {"id": "ds-new", "name": "Minutes"}

        response = self.client.post("/api/knowledge", json={"name": " Minutes "})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["id"], "ds-new")
        self.dify.create_dataset.assert_called_once_with(
            "Minutes",
            description=None,
            permission="only_me",
            indexing_technique="high_quality",
        )

    def test_create_dataset_validation(self):
        self.assertEqual(self.client.post("/api/knowledge", json={}).status_code, 400)
        response = self.client.post(
            "/api/knowledge", json={"name": "x", "permission": "everyone"}
        )
        self.assertEqual(response.status_code, 400)
        self.dify.create_dataset.assert_not_called()

    def test_delete_dataset(self):
        response = self.client.delete("/api/knowledge/ds-1")
        self.assertEqual(response.json(), {"success": True})
        self.dify.delete_dataset.assert_called_once_with("ds-1")

    def test_search_default_dataset(self):
        self.dify.retrieve.return_value = {"records": []}

        response = self.client.post(
            "/api/knowledge/search",
            json={"query": " repair plan ", "searchMethod": "semantic_search"},
        )

        self.assertEqual(response.status_code, 200)
        self.dify.retrieve.assert_called_once_with(
            "default-dataset",
            "repair plan",
            top_k=3,
            search_method="semantic_search",
        )

    def test_search_default_dataset_validation(self):
        self.assertEqual(
            self.client.post("/api/knowledge/search", json={"query": " "}).status_code,
            400,
        )
        response = self.client.post(
            "/api/knowledge/search", json={"query": "q", "searchMethod": "fuzzy"}
        )
        self.assertEqual(response.status_code, 400)
        response = self.client.post(
            "/api/knowledge/search", json={"query": "q", "topK": 0}
        )
        self.assertEqual(response.status_code, 400)

    def test_search_without_default_dataset_is_a_server_error(self):
        with patch.dict(os.environ, {"DIFY_DATASET_ID": ""}):
            get_settings.cache_clear()
            response = self.client.post("/api/knowledge/search", json={"query": "q"})
        self.assertEqual(response.status_code, 500)
        self.assertIn("DIFY_DATASET_ID", response.json()["error"])

    def test_search_dataset_allows_null_query(self):
        self.dify.retrieve.return_value = {"records": []}

        response = self.client.post(
            "/api/knowledge/ds-1/search", json={"query": None, "topK": 5}
        )

        self.assertEqual(response.status_code, 200)
        self.dify.retrieve.assert_called_once_with(
            "ds-1", "", top_k=5, search_method="hybrid_search"
        )

    def test_search_dataset_requires_query_key(self):
        response = self.client.post("/api/knowledge/ds-1/search", json={"topK": 5})
        self.assertEqual(response.status_code, 400)

    def test_list_dataset_documents(self):
        self.dify.list_documents.return_value = {"data": []}
        self.client.get("/api/knowledge/ds-1/document", params={"keyword": "minutes"})
        self.dify.list_documents.assert_called_once_with(
            "ds-1", page=1, limit=20, keyword="minutes"
        )

    def test_create_text_document_names(self):
        self.dify.create_document_by_text.return_value = {"document": {"id": "d"}}

        self.client.post(
            "/api/knowledge/ds-1/document",
            json={"text": "body", "metadata": {"title": "From metadata"}},
        )
        self.client.post("/api/knowledge/ds-1/document", json={"text": "body"})

        names = [
            call.kwargs["name"]
            for call in self.dify.create_document_by_text.call_args_list
        ]
        self.assertEqual(names, ["From metadata", "Untitled document"])

    def test_create_text_document_requires_text(self):
        response = self.client.post(
            "/api/knowledge/ds-1/document", json={"name": "n", "text": "  "}
        )
        self.assertEqual(response.status_code, 400)

    def test_create_file_document(self):
        self.dify.create_document_by_file.return_value = {"batch": "b1"}

        response = self.client.post(
            "/api/knowledge/ds-1/document/file",
            data={"indexingTechnique": "economy"},
            files={"file": ("plan.png", b"\x89PNG fake", "image/png")},
        )

        self.assertEqual(response.json(), {"batch": "b1"})
        self.dify.create_document_by_file.assert_called_once_with(
            "ds-1",
            "plan.png",
            b"\x89PNG fake",
            "image/png",
            {"indexing_technique": "economy", "process_rule": {"mode": "automatic"}},
        )

    def test_delete_dataset_document(self):
        response = self.client.delete("/api/knowledge/ds-1/document/doc-1")
        self.assertEqual(response.json(), {"success": True})
        self.dify.delete_document.assert_called_once_with("ds-1", "doc-1")

    def test_indexing_status(self):
        self.dify.get_indexing_status.return_value = {"data": [{"indexing_status": "completed"}]}

        response = self.client.get("/api/knowledge/ds-1/document/doc-1/status/batch-1")

        self.assertEqual(response.json()["data"][0]["indexing_status"], "completed")
        self.dify.get_indexing_status.assert_called_once_with("ds-1", "batch-1")

    def test_upload_with_metadata_uses_custom_rule(self):
        self.dify.create_document_by_file.return_value = {"batch": "b1"}

        self.client.post(
            "/api/knowledge/ds-1/upload",
            data={"metadata": json.dumps({"building": "building1"})},
            files={"file": ("minutes.pdf", make_pdf([MINUTES_PAGE]), "application/pdf")},
        )

        args = self.dify.create_document_by_file.call_args.args
        data_config = args[4]
        self.assertEqual(data_config["metadata"], {"building": "building1"})
        segmentation = data_config["process_rule"]["rules"]["segmentation"]
        self.assertEqual(segmentation, {"separator": "###", "max_tokens": 500})

    def test_upload_ignores_invalid_metadata(self):
        self.dify.create_document_by_file.return_value = {}

        response = self.client.post(
            "/api/knowledge/ds-1/upload",
            data={"metadata": "{not json"},
            files={"file": ("minutes.pdf", make_pdf([MINUTES_PAGE]), "application/pdf")},
        )

        self.assertEqual(response.status_code, 200)
        data_config = self.dify.create_document_by_file.call_args.args[4]
        self.assertNotIn("metadata", data_config)

    def test_dify_errors_map_to_500(self):
        self.dify.delete_dataset.side_effect = DifyApiError("dataset not found", 404)
        response = self.client.delete("/api/knowledge/missing")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "dataset not found"})

    def test_ingest_queues_job(self):
        response = self.client.post(
            "/api/knowledge/ds-1/ingest",
            data={"document_id": "doc-9"},
            files={"file": ("minutes.pdf", make_pdf([MINUTES_PAGE]), "application/pdf")},
        )

        self.assertEqual(response.status_code, 202)
        body = response.json()
        self.assertEqual(body["status"], "WAITING")
        self.assertEqual(body["documentId"], "doc-9")
        self.assertIn(body["jobId"], get_queue_client().items)
        job = get_db_client().get_job(body["jobId"])
        self.assertTrue(job.storage_path.startswith("ingest/ds-1/"))
        self.assertIn(job.storage_path, get_storage_client().stored_objects)

    def test_ingest_requires_pdf(self):
        response = self.client.post(
            "/api/knowledge/ds-1/ingest",
            files={"file": ("plan.png", b"\x89PNG fake", "image/png")},
        )
        self.assertEqual(response.status_code, 415)


class AnalyzeRouteTests(KnowledgeApiTestCase):
    """Metadata suggestions through the Dify completion app."""

    def test_analyze_suggests_metadata(self):
        self.dify.send_completion_message.return_value = {"answer": ANALYSIS_ANSWER}

        response = self.client.post(
            "/api/knowledge/analyze",
            files={"file": ("minutes.pdf", make_pdf([MINUTES_PAGE]), "application/pdf")},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["metadata"]["title"], "FY2023 Assembly Minutes")
        self.assertEqual(body["metadata"]["building"], "building1")
        prompt, inputs, user = self.dify.send_completion_message.call_args.args
        self.assertIn("owners association", prompt)
        self.assertIn("minutes.pdf", prompt)
        self.assertEqual(user, ANALYZER_USER)

    def test_analyze_without_json_returns_empty_metadata(self):
        self.dify.send_completion_message.return_value = {"answer": "I cannot tell."}

        response = self.client.post(
            "/api/knowledge/analyze",
            files={"file": ("plan.png", b"\x89PNG fake", "image/png")},
        )

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json()["metadata"]["title"])

    def test_analyze_ignores_non_string_fields(self):
        self.dify.send_completion_message.return_value = {
            "answer": '```json\n{"title": "Minutes", "building": 1}\n```'
        }

        response = self.client.post(
            "/api/knowledge/analyze",
            files={"file": ("plan.png", b"\x89PNG fake", "image/png")},
        )

        self.assertEqual(response.status_code, 200)
        metadata = response.json()["metadata"]
        self.assertEqual(metadata["title"], "Minutes")
        self.assertIsNone(metadata["building"])

    def test_analyze_disabled(self):
        get_settings_store().get_app_settings().features.ai_suggestions = False
        response = self.client.post(
            "/api/knowledge/analyze",
            files={"file": ("plan.png", b"\x89PNG fake", "image/png")},
        )
        self.assertEqual(response.status_code, 403)

    def test_analyze_requires_file(self):
        self.assertEqual(self.client.post("/api/knowledge/analyze").status_code, 400)


class ParseSuggestedMetadataTest(unittest.TestCase):

    def test_parses_json_block(self):
        self.assertEqual(
            parse_suggested_metadata(ANALYSIS_ANSWER)["buildingName"],
            "Grand Palace Tokyo",
        )

    def test_invalid_answers_give_empty_dict(self):
        self.assertEqual(parse_suggested_metadata(None), {})
        self.assertEqual(parse_suggested_metadata("no block"), {})
        self.assertEqual(parse_suggested_metadata("```json\n{broken\n```"), {})
        self.assertEqual(parse_suggested_metadata("```json\n[1, 2]\n```"), {})

    def test_non_string_known_fields_are_dropped(self):
        parsed = parse_suggested_metadata(
            '```json\n{"title": "Minutes", "building": 1, "description": null}\n```'
        )
        self.assertEqual(parsed, {"title": "Minutes", "description": None})


if __name__ == "__main__":
    unittest.main()
