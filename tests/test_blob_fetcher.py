"""
Tests for blob downloads and their retry policy.
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

from archive.fetcher import BlobFetcher
from concurrency.retry import fetch_retry, is_retryable
from core.errors import TransientNetworkError


def http_response(status: int, content: bytes = b"") -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = content
    response.url = "https://cdn.test/blob"
    return response


class TestIsRetryable(unittest.TestCase):

    def test_server_errors_and_throttling(self):
        for status in (429, 500, 503):
            error = requests.HTTPError(response=http_response(status))
            self.assertTrue(is_retryable(error), status)

    def test_client_errors(self):
        for status in (403, 404):
            error = requests.HTTPError(response=http_response(status))
            self.assertFalse(is_retryable(error), status)

    def test_connection_problems(self):
        self.assertTrue(is_retryable(requests.ConnectionError("reset")))
        self.assertTrue(is_retryable(requests.Timeout("slow")))

    def test_malformed_url(self):
        self.assertFalse(is_retryable(requests.exceptions.InvalidURL("bad")))


class TestFetchRetry(unittest.TestCase):
    """Backoff schedule and final error type."""

    def setUp(self):
        self.sleeps = []

    def test_retries_then_succeeds(self):
        calls = []

        @fetch_retry(max_retries=3, initial_delay=1.0, backoff_multiplier=2.0, sleep=self.sleeps.append)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise requests.ConnectionError("reset")
            return b"ok"

        self.assertEqual(flaky(), b"ok")
        self.assertEqual(self.sleeps, [1.0, 2.0])

    def test_gives_up_after_max_retries(self):
        @fetch_retry(max_retries=2, initial_delay=0.5, sleep=self.sleeps.append)
        def always_down():
            raise requests.Timeout("slow")

        with self.assertRaises(TransientNetworkError) as ctx:
            always_down()
        self.assertIsInstance(ctx.exception.__cause__, requests.Timeout)
        self.assertEqual(len(self.sleeps), 2)

    def test_delay_is_capped(self):
        @fetch_retry(max_retries=3, initial_delay=10.0, backoff_multiplier=10.0, max_delay=15.0,
                     sleep=self.sleeps.append)
        def always_down():
            raise requests.ConnectionError("reset")

        with self.assertRaises(TransientNetworkError):
            always_down()
        self.assertEqual(self.sleeps, [10.0, 15.0, 15.0])


class TestBlobFetcher(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)
        self.http = MagicMock(spec=requests.Session)
        self.http.headers = {}
        self.sleeps = []
        self.fetcher = BlobFetcher(timeout=5, max_retries=2, http=self.http, sleep=self.sleeps.append)

    def tearDown(self):
        self._tmp.cleanup()

    def test_fetch_returns_exact_bytes(self):
        self.http.get.return_value = http_response(200, b"\x00\x01audio")

        self.assertEqual(self.fetcher.fetch("https://cdn.test/a.m4a"), b"\x00\x01audio")
        self.http.get.assert_called_once_with("https://cdn.test/a.m4a", timeout=5)

    def test_sets_user_agent(self):
        self.assertIn("User-Agent", self.http.headers)

    def test_not_found_is_not_retried(self):
        self.http.get.return_value = http_response(404)

        with self.assertRaises(TransientNetworkError):
            self.fetcher.fetch("https://cdn.test/missing.m4a")
        self.assertEqual(self.http.get.call_count, 1)
        self.assertEqual(self.sleeps, [])

    def test_server_error_is_retried(self):
        self.http.get.side_effect = [http_response(503), http_response(200, b"ok")]

        self.assertEqual(self.fetcher.fetch("https://cdn.test/a.m4a"), b"ok")
        self.assertEqual(self.http.get.call_count, 2)

    def test_fetch_to_writes_file(self):
        self.http.get.return_value = http_response(200, b"cover")
        target = self.dir / "book" / "cover.png"

        self.fetcher.fetch_to("https://img.test/cover.png", target)

        self.assertEqual(target.read_bytes(), b"cover")
        self.assertEqual([p.name for p in target.parent.iterdir()], ["cover.png"])

    def test_fetch_to_leaves_nothing_on_failure(self):
        self.http.get.return_value = http_response(403)
        target = self.dir / "book" / "cover.png"

        with self.assertRaises(TransientNetworkError):
            self.fetcher.fetch_to("https://img.test/cover.png", target)
        self.assertFalse(target.exists())

    def test_failed_write_removes_partial_file(self):
        self.http.get.return_value = http_response(200, b"audio")
        target = self.dir / "book" / "Summary.m4a"

        with patch("archive.fetcher.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                self.fetcher.fetch_to("https://cdn.test/summary.m4a", target)

        self.assertEqual(list(target.parent.iterdir()), [])

    def test_close_closes_session(self):
        self.fetcher.close()
        self.http.close.assert_called_once_with()


if __name__ == '__main__':
    unittest.main()
