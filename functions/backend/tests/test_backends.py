import unittest
from unittest.mock import MagicMock, patch

from fastapi import HTTPException
from firebase_admin import auth as firebase_auth
from redis import exceptions as redis_exceptions

from backend.auth import verify_bearer_token
from backend.config import Settings
from backend.queue import InMemoryIngestQueue, RedisIngestQueue
from backend.storage import FirebaseStorageClient, InMemoryStorageClient
from backend.uploads import format_file_size, make_storage_path, safe_filename
from shared.types import AuthenticatedUser


class StorageTests(unittest.TestCase):

    def test_in_memory_storage(self):
        storage = InMemoryStorageClient()
        storage.upload_bytes("documents/a.pdf", b"%PDF", "application/pdf")

        self.assertEqual(storage.get_bytes("documents/a.pdf"), b"%PDF")
        self.assertIn("documents/a.pdf?expires=60", storage.signed_url("documents/a.pdf", 60))

        storage.delete("documents/a.pdf")
        with self.assertRaises(FileNotFoundError):
            storage.get_bytes("documents/a.pdf")

    @patch("backend.storage.storage.bucket")
    def test_firebase_storage_uses_bucket_blobs(self, mock_bucket):
        blob = mock_bucket.return_value.blob.return_value
        blob.exists.return_value = True
        blob.download_as_bytes.return_value = b"%PDF"
        app = MagicMock()
        client = FirebaseStorageClient(bucket_name="condo-docs", app=app)

        client.upload_bytes("documents/a.pdf", b"%PDF", "application/pdf")
        self.assertEqual(client.get_bytes("documents/a.pdf"), b"%PDF")
        client.signed_url("documents/a.pdf", expires_in=120)
        client.delete("documents/a.pdf")

        mock_bucket.assert_called_once_with("condo-docs", app=app)
        blob.upload_from_string.assert_called_once_with(b"%PDF", content_type="application/pdf")
        self.assertEqual(blob.generate_signed_url.call_args.kwargs["version"], "v4")
        blob.delete.assert_called_once_with()

        blob.exists.return_value = False
        with self.assertRaises(FileNotFoundError):
            client.get_bytes("documents/missing.pdf")


class QueueTests(unittest.TestCase):

    def test_in_memory_queue_is_fifo(self):
        queue = InMemoryIngestQueue()
        self.assertTrue(queue.enqueue("a"))
        queue.enqueue("b")
        queue.enqueue("a")
        self.assertEqual(queue.pending(), 2)
        self.assertEqual(queue.dequeue(block=False), "a")
        self.assertEqual(queue.dequeue(), "b")
        self.assertIsNone(queue.dequeue())

    @patch("backend.queue.redis.Redis.from_url")
    def test_redis_queue(self, mock_from_url):
        client = mock_from_url.return_value
        client.blpop.return_value = ("condo:ingest-jobs", "job-1")
        client.lpop.return_value = None
        client.llen.return_value = 3
        queue = RedisIngestQueue(url="redis://localhost:6379/0")

        self.assertTrue(queue.enqueue("job-1"))
        mock_from_url.assert_called_once_with(
            "redis://localhost:6379/0", decode_responses=True
        )
        client.rpush.assert_called_once_with("condo:ingest-jobs", "job-1")
        self.assertEqual(queue.dequeue(timeout=2), "job-1")
        client.blpop.assert_called_once_with("condo:ingest-jobs", timeout=2)
        self.assertIsNone(queue.dequeue(block=False))
        self.assertEqual(queue.pending(), 3)

    @patch("backend.queue.redis.Redis.from_url")
    def test_redis_connection_loss_reconnects(self, mock_from_url):
        mock_from_url.return_value.blpop.side_effect = redis_exceptions.ConnectionError("gone")
        queue = RedisIngestQueue(url="redis://localhost:6379/0")

        self.assertIsNone(queue.dequeue())
        self.assertEqual(mock_from_url.call_count, 2)

    @patch("backend.queue.redis.Redis.from_url")
    def test_failed_push_is_reported_not_raised(self, mock_from_url):
        mock_from_url.return_value.rpush.side_effect = redis_exceptions.ConnectionError("gone")
        queue = RedisIngestQueue(url="redis://localhost:6379/0")

        self.assertFalse(queue.enqueue("job-1"))
        self.assertEqual(mock_from_url.call_count, 2)


class AuthTests(unittest.TestCase):

    def test_malformed_headers_are_401(self):
        for header in (None, "", "Token abc", "Bearer   "):
            with self.assertRaises(HTTPException) as ctx:
                verify_bearer_token(header)
            self.assertEqual(ctx.exception.status_code, 401)

    @patch("backend.auth.get_firebase_app")
    @patch("backend.auth.auth.verify_id_token")
    def test_token_errors(self, mock_verify, _mock_app):
        mock_verify.side_effect = firebase_auth.ExpiredIdTokenError("expired", cause=None)
        with self.assertRaises(HTTPException) as ctx:
            verify_bearer_token("Bearer t")
        self.assertEqual(ctx.exception.status_code, 403)

        mock_verify.side_effect = RuntimeError("network")
        with self.assertRaises(HTTPException) as ctx:
            verify_bearer_token("Bearer t")
        self.assertEqual(ctx.exception.status_code, 500)

    @patch("backend.auth.get_firebase_app")
    @patch("backend.auth.auth.verify_id_token")
    def test_valid_token(self, mock_verify, _mock_app):
        mock_verify.return_value = {"uid": "u-1", "email": "kenji@example.com"}

        user = verify_bearer_token("Bearer t")

        self.assertEqual(user.uid, "u-1")
        self.assertEqual(user.display_name, "kenji@example.com")
        self.assertEqual(user.initials, "KE")

    def test_initials(self):
        self.assertEqual(AuthenticatedUser("u", name="Taro Tanaka").initials, "TT")
        self.assertEqual(AuthenticatedUser("u", name="Admin").initials, "AD")
        self.assertEqual(AuthenticatedUser("u").initials, "??")


class SettingsTests(unittest.TestCase):

    def test_app_key_falls_back_to_dataset_key(self):
        settings = Settings(_env_file=None, dify_api_key="datasets")
        self.assertEqual(settings.dify_app_key, "datasets")
        settings = Settings(_env_file=None, dify_api_key="datasets", dify_app_api_key="app")
        self.assertEqual(settings.dify_app_key, "app")

    def test_missing_server_keys(self):
        settings = Settings(_env_file=None, dify_api_key=None, gemini_api_key=None)
        self.assertEqual(settings.missing_server_keys(), ["DIFY_API_KEY", "GEMINI_API_KEY"])


class UploadHelperTests(unittest.TestCase):

    def test_safe_filename(self):
        self.assertEqual(safe_filename("../../etc/passwd"), "passwd")
        self.assertEqual(safe_filename("総会 議事録.pdf"), "総会_議事録.pdf")
        self.assertEqual(safe_filename(None), "upload")

    def test_storage_path(self):
        prefix, token, name = make_storage_path("documents", "a b.pdf").split("/")
        self.assertEqual(prefix, "documents")
        self.assertEqual(len(token), 32)
        self.assertEqual(name, "a_b.pdf")

    def test_format_file_size(self):
        self.assertEqual(format_file_size(512), "512 B")
        self.assertEqual(format_file_size(2048), "2.0 KB")
        self.assertEqual(format_file_size(1258291), "1.2 MB")


if __name__ == "__main__":
    unittest.main()
