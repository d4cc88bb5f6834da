"""
Tests for cookie persistence in the browser engine.

No real browser: the engine is marked initialized and given a mock context.
"""

import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock

from playwright.async_api import Error as PlaywrightError

from browser.engine import BrowserEngine

COOKIES = [{"name": "session", "value": "abc", "domain": ".blinkist.com", "path": "/"}]


class TestCookiePersistence(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = BrowserEngine(Path(self._tmp.name), "blinkist", headless=True)
        self.context = AsyncMock()
        self.engine._context = self.context
        self.engine._initialized = True

    def tearDown(self):
        self._tmp.cleanup()

    async def test_save_then_load(self):
        self.context.cookies.return_value = COOKIES

        self.assertTrue(await self.engine.save_session())
        self.assertEqual(json.loads(self.engine.cookies_path.read_text(encoding="utf-8")), COOKIES)

        self.assertTrue(await self.engine.load_session())
        self.context.add_cookies.assert_awaited_once_with(COOKIES)

    async def test_load_without_saved_session(self):
        self.assertFalse(await self.engine.load_session())
        self.context.add_cookies.assert_not_awaited()

    async def test_corrupt_cookie_file(self):
        self.engine.cookies_path.parent.mkdir(parents=True)
        self.engine.cookies_path.write_text("{not json", encoding="utf-8")

        self.assertFalse(await self.engine.load_session())

    async def test_save_failure_is_reported(self):
        self.context.cookies.side_effect = PlaywrightError("Target closed")

        self.assertFalse(await self.engine.save_session())
        self.assertFalse(self.engine.cookies_path.exists())

    async def test_save_before_start(self):
        engine = BrowserEngine(Path(self._tmp.name), "blinkist")
        self.assertFalse(await engine.save_session())


if __name__ == '__main__':
    unittest.main()
