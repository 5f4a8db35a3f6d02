import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from google.api_core import exceptions as google_exceptions

from backend.documents import (
    DocumentStoreError,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    filter_documents,
    make_mock_document_store,
    normalize_document,
    resolve_related,
)
from backend.settings_store import (
    FirestoreSettingsStore,
    app_settings_from_json,
    app_settings_to_json,
)
from shared.types import AppSettings


class NormalizeDocumentTests(unittest.TestCase):

    def test_coerces_ids_and_related_entries(self):
        doc = normalize_document(
            {
                "id": 7,
                "relatedDocuments": [{"id": 2, "title": "Estimate"}, {"title": None}, "junk"],
            }
        )
        self.assertEqual(doc["id"], "7")
        self.assertEqual(
            doc["relatedDocuments"],
            [{"id": "2", "title": "Estimate"}, {"id": "", "title": ""}],
        )

    def test_missing_or_invalid_related_becomes_empty(self):
        self.assertEqual(normalize_document({"id": "a"})["relatedDocuments"], [])
        self.assertEqual(
            normalize_document({"id": "a", "relatedDocuments": "x"})["relatedDocuments"],
            [],
        )

    def test_timestamp_becomes_iso_string(self):
        uploaded = datetime(2024, 1, 2, 3, 4, tzinfo=timezone.utc)
        doc = normalize_document({"id": "a", "uploadedAt": uploaded})
        self.assertEqual(doc["uploadedAt"], "2024-01-02T03:04:00+00:00")


class FilterAndRelatedTests(unittest.TestCase):

    def setUp(self):
        self.store = make_mock_document_store()

    def test_filter_by_building_tag_and_query(self):
        docs = self.store.list_documents()
        self.assertEqual(
            [d["id"] for d in filter_documents(docs, building="Sunshine Mansion")], ["2"]
        )
        self.assertEqual(
            [d["id"] for d in filter_documents(docs, tag="elevator")], ["5"]
        )
        self.assertEqual(
            [d["id"] for d in filter_documents(docs, building="Sunshine Mansion", tag="elevator")],
            [],
        )
        self.assertIn("1", [d["id"] for d in filter_documents(docs, query="assembly")])
        self.assertEqual(len(filter_documents(docs, query="  ")), len(docs))

    def test_resolve_related_skips_missing(self):
        doc = {
            "id": "x",
            "relatedDocuments": [
                {"id": "2", "title": "Estimate"},
                {"id": "404", "title": "Gone"},
                {"id": "", "title": "Blank"},
            ],
        }
        self.assertEqual([d["id"] for d in resolve_related(doc, self.store)], ["2"])


class InMemoryDocumentStoreTests(unittest.TestCase):

    def test_add_assigns_next_numeric_id(self):
        store = make_mock_document_store()
        new_id = store.add_document({"id": "ignored", "title": "New"})
        self.assertEqual(new_id, "6")
        doc = store.get_document(new_id)
        self.assertEqual(doc["relatedDocuments"], [])
        self.assertTrue(doc["uploadedAt"])

    def test_empty_store_uses_generated_ids(self):
        store = InMemoryDocumentStore()
        first = store.add_document({"title": "A"})
        self.assertEqual(len(first), 32)

    def test_update_and_delete(self):
        store = make_mock_document_store()
        self.assertTrue(store.update_document("1", {"title": "Renamed", "relatedDocuments": None}))
        doc = store.get_document("1")
        self.assertEqual(doc["title"], "Renamed")
        self.assertEqual(doc["relatedDocuments"], [])

        self.assertFalse(store.update_document("999", {"title": "x"}))
        self.assertTrue(store.delete_document("1"))
        self.assertFalse(store.delete_document("1"))
        self.assertIsNone(store.get_document("1"))

    def test_seed_data_is_copied(self):
        first = make_mock_document_store()
        first.update_document("1", {"title": "Changed"})
        self.assertNotEqual(make_mock_document_store().get_document("1")["title"], "Changed")


def _snapshot(doc_id, data, exists=True):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


class FirestoreDocumentStoreTests(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.collection = self.client.collection.return_value
        self.store = FirestoreDocumentStore(client=self.client)

    def test_list_normalizes_snapshots(self):
        self.collection.stream.return_value = [
            _snapshot("abc", {"title": "Minutes", "relatedDocuments": [{"id": 1, "title": "t"}]})
        ]
        docs = self.store.list_documents()
        self.client.collection.assert_called_with("documents")
        self.assertEqual(docs[0]["id"], "abc")
        self.assertEqual(docs[0]["relatedDocuments"], [{"id": "1", "title": "t"}])

    def test_get_missing_document(self):
        self.collection.document.return_value.get.return_value = _snapshot("x", None, exists=False)
        self.assertIsNone(self.store.get_document("x"))

    def test_add_returns_new_id(self):
        doc_ref = MagicMock(id="new-id")
        self.collection.add.return_value = (None, doc_ref)

        self.assertEqual(self.store.add_document({"id": "drop", "title": "T"}), "new-id")

        stored = self.collection.add.call_args.args[0]
        self.assertNotIn("id", stored)
        self.assertEqual(stored["relatedDocuments"], [])

    def test_update_missing_document_returns_false(self):
        self.collection.document.return_value.update.side_effect = google_exceptions.NotFound("gone")
        self.assertFalse(self.store.update_document("x", {"title": "T"}))

    def test_delete_checks_existence(self):
        doc_ref = self.collection.document.return_value
        doc_ref.get.return_value = _snapshot("x", None, exists=False)
        self.assertFalse(self.store.delete_document("x"))
        doc_ref.delete.assert_not_called()

        doc_ref.get.return_value = _snapshot("x", {})
        self.assertTrue(self.store.delete_document("x"))
        doc_ref.delete.assert_called_once_with()

    def test_api_errors_are_wrapped(self):
        self.collection.stream.side_effect = google_exceptions.ServiceUnavailable("down")
        with self.assertRaises(DocumentStoreError):
            self.store.list_documents()


class AppSettingsTests(unittest.TestCase):

    def test_partial_json_takes_defaults(self):
        app_settings = app_settings_from_json({"storage": {"maxFileSize": 20}})
        self.assertEqual(app_settings.storage.max_file_size, 20)
        self.assertEqual(app_settings.storage.allowed_types, list(AppSettings().storage.allowed_types))
        self.assertTrue(app_settings.features.ai_suggestions)
        self.assertEqual(app_settings.max_file_size_bytes, 20 * 1024 * 1024)

    def test_empty_json_is_default(self):
        self.assertEqual(app_settings_from_json(None), AppSettings())

    def test_json_uses_camel_case(self):
        data = app_settings_to_json(AppSettings())
        self.assertEqual(data["aiFeatures"]["maxTokens"], 4000)
        self.assertIn("aiSuggestions", data["features"])

    def test_firestore_settings_store(self):
        client = MagicMock()
        doc_ref = client.collection.return_value.document.return_value
        doc_ref.get.return_value = _snapshot("app", {"features": {"ocr": False}})
        store = FirestoreSettingsStore(client=client)

        self.assertFalse(store.get_app_settings().features.ocr)
        client.collection.assert_called_with("settings")
        client.collection.return_value.document.assert_called_with("app")

        store.save_app_settings(AppSettings())
        self.assertEqual(doc_ref.set.call_args.args[0]["storage"]["maxFileSize"], 10)

        doc_ref.get.side_effect = google_exceptions.InternalServerError("boom")
        with self.assertRaises(DocumentStoreError):
            store.get_app_settings()


if __name__ == "__main__":
    unittest.main()
