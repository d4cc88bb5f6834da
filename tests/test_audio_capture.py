"""
Tests for audio URL capture.
"""

import unittest

from archive.audio import AudioCapture, is_audio_response

from fakes import FakeElement, FakeSession

AUDIO_A = "https://cdn.test/audio/book/intro.m4a?sig=1"
AUDIO_B = "https://cdn.test/audio/book/intro.m4a?sig=2"


class TestAudioHeuristic(unittest.TestCase):
    """Which responses count as chapter audio."""

    def test_extensions_and_paths(self):
        self.assertTrue(is_audio_response("https://cdn.test/x/chapter.m4a"))
        self.assertTrue(is_audio_response("https://cdn.test/x/chapter.mp3?token=1"))
        self.assertTrue(is_audio_response("https://cdn.test/x/chapter.aac"))
        self.assertTrue(is_audio_response("https://cdn.test/audio/123"))
        self.assertTrue(is_audio_response("https://cdn.test/media/123"))

    def test_content_type(self):
        self.assertTrue(is_audio_response("https://cdn.test/stream/123", "audio/mp4"))
        self.assertTrue(is_audio_response("https://cdn.test/stream/123", "Audio/MPEG"))

    def test_blob_urls_are_ignored(self):
        self.assertFalse(is_audio_response("blob:https://www.blinkist.com/1234", "audio/mp4"))

    def test_other_responses(self):
        self.assertFalse(is_audio_response("https://www.blinkist.com/en/nc/reader/x", "text/html"))
        self.assertFalse(is_audio_response("https://cdn.test/cover.png", "image/png"))
        self.assertFalse(is_audio_response(""))


class TestAudioScope(unittest.IsolatedAsyncioTestCase):
    """Per-chapter buffers."""

    def setUp(self):
        self.session = FakeSession()
        self.capture = AudioCapture(self.session)

    async def test_keeps_most_recent_candidate(self):
        scope = self.capture.open_scope()
        self.session.emit_response(AUDIO_A, "audio/mp4")
        self.session.emit_response("https://www.blinkist.com/api/x", "application/json")
        self.session.emit_response(AUDIO_B, "audio/mp4")
        self.assertEqual(scope.latest(), AUDIO_B)

    async def test_latest_is_stable_after_draining(self):
        scope = self.capture.open_scope()
        self.session.emit_response(AUDIO_A, "audio/mp4")
        self.assertEqual(scope.latest(), AUDIO_A)
        self.assertEqual(scope.latest(), AUDIO_A)

    async def test_closed_scope_ignores_later_responses(self):
        scope = self.capture.open_scope()
        scope.close()
        self.session.emit_response(AUDIO_A, "audio/mp4")
        self.assertIsNone(scope.latest())
        self.assertEqual(self.session.handlers, [])

    async def test_scopes_are_independent(self):
        """An asset arriving after the next scope opened is seen by it."""
        first = self.capture.open_scope("first")
        self.session.emit_response(AUDIO_A, "audio/mp4")
        second = self.capture.open_scope("second")
        first.close()
        self.session.emit_response(AUDIO_B, "audio/mp4")

        self.assertEqual(first.latest(), AUDIO_A)
        self.assertEqual(second.latest(), AUDIO_B)

    async def test_context_manager_closes(self):
        with self.capture.open_scope() as scope:
            pass
        self.assertTrue(scope.closed)


class TestResolveForChapter(unittest.IsolatedAsyncioTestCase):
    """Passive capture first, then the play control."""

    def setUp(self):
        self.session = FakeSession()
        self.capture = AudioCapture(self.session)

    async def test_passive_candidate_wins_without_clicking(self):
        play = FakeElement(on_click=lambda: self.session.emit_response(AUDIO_B, "audio/mp4"))
        self.session.dom['button[aria-label*="Play"]'] = [play]
        scope = self.capture.open_scope()
        self.session.emit_response(AUDIO_A, "audio/mp4")

        self.assertEqual(await self.capture.resolve_for_chapter(scope), AUDIO_A)
        self.assertEqual(play.clicks, 0)

    async def test_most_recent_observation_is_recorded(self):
        """Two passive observations before resolution: the later one is used."""
        scope = self.capture.open_scope()
        self.session.emit_response(AUDIO_A, "audio/mp4")
        self.session.emit_response(AUDIO_B, "audio/mp4")

        self.assertEqual(await self.capture.resolve_for_chapter(scope), AUDIO_B)

    async def test_play_control_triggers_capture(self):
        play = FakeElement(on_click=lambda: self.session.emit_response(AUDIO_B, "audio/mp4"))
        self.session.dom['[data-test-id*="play"]'] = [play]
        scope = self.capture.open_scope()

        self.assertEqual(await self.capture.resolve_for_chapter(scope), AUDIO_B)
        self.assertEqual(play.clicks, 1)

    async def test_hidden_play_control_is_skipped(self):
        hidden = FakeElement(visible=False)
        visible = FakeElement(on_click=lambda: self.session.emit_response(AUDIO_A, "audio/mp4"))
        self.session.dom['button[aria-label*="Play"]'] = [hidden]
        self.session.dom['button[aria-label*="Abspielen"]'] = [visible]
        scope = self.capture.open_scope()

        self.assertEqual(await self.capture.resolve_for_chapter(scope), AUDIO_A)
        self.assertEqual(hidden.clicks, 0)

    async def test_nothing_captured(self):
        scope = self.capture.open_scope()
        self.assertIsNone(await self.capture.resolve_for_chapter(scope))


if __name__ == '__main__':
    unittest.main()
