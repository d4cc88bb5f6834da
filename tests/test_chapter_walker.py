"""
Tests for the chapter-by-chapter reader walk.
"""

import unittest

from playwright.async_api import Error as PlaywrightError

from archive.audio import AudioCapture
from archive.walker import ChapterWalker

from fakes import FakeSession, ReaderSite

import config

BOOK = "deep-work-en"
READER = f"{config.READER_URL}/{BOOK}"

THREE_CHAPTERS = [
    ("Introduction", "What's in it for me?", "<p>intro</p>", "https://cdn.test/audio/intro.m4a"),
    ("Key idea 1 of 1", "Focus is rare", "<p>idea</p>", "https://cdn.test/audio/idea1.m4a"),
    ("Summary", "Final summary", "<p>summary</p>", "https://cdn.test/audio/summary.m4a"),
]


class RecordingSink:
    def __init__(self, fail_names=()):
        self.calls = []
        self.fail_names = set(fail_names)

    async def __call__(self, name, url):
        self.calls.append((name, url))
        if name in self.fail_names:
            return None
        return name + ".m4a"


class WalkerTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.session = FakeSession()
        self.capture = AudioCapture(self.session)
        self.sink = RecordingSink()

    def walker(self, **kwargs):
        return ChapterWalker(
            self.session, ReaderSite.CONTENT_SELECTOR,
            audio=kwargs.pop("audio", self.capture),
            asset_sink=kwargs.pop("asset_sink", self.sink),
            **kwargs,
        )


class TestWalk(WalkerTestCase):
    """One Chapter per visited position, in order."""

    async def test_walks_every_chapter(self):
        ReaderSite(self.session, BOOK, THREE_CHAPTERS)
        scope = self.capture.open_scope("load")
        await self.session.navigate(READER)

        result = await self.walker().walk(scope)

        self.assertTrue(result.complete)
        self.assertEqual([c.name for c in result.chapters], ["Introduction", "Key idea 1 of 1", "Summary"])
        self.assertEqual([c.title for c in result.chapters],
                         ["What's in it for me?", "Focus is rare", "Final summary"])
        self.assertEqual(result.chapters[1].text, "<p>idea</p>")
        self.assertEqual(result.original_chapter, "Introduction")

    async def test_audio_lands_in_its_own_chapter(self):
        """Audio loaded by the page change belongs to the chapter it loads for."""
        ReaderSite(self.session, BOOK, THREE_CHAPTERS)
        scope = self.capture.open_scope("load")
        await self.session.navigate(READER)

        result = await self.walker().walk(scope)

        self.assertEqual(self.sink.calls, [(name, audio) for name, _, _, audio in THREE_CHAPTERS])
        self.assertEqual([c.audio for c in result.chapters],
                         ["Introduction.m4a", "Key idea 1 of 1.m4a", "Summary.m4a"])
        self.assertEqual(self.session.handlers, [], "All scopes closed after the walk")

    async def test_failed_download_leaves_chapter_without_audio(self):
        ReaderSite(self.session, BOOK, THREE_CHAPTERS)
        self.sink = RecordingSink(fail_names={"Summary"})
        await self.session.navigate(READER)

        result = await self.walker().walk()

        self.assertIsNone(result.chapters[-1].audio)
        self.assertEqual(len(result.chapters), 3)

    async def test_without_audio_capture(self):
        ReaderSite(self.session, BOOK, THREE_CHAPTERS)
        await self.session.navigate(READER)

        result = await self.walker(audio=None, asset_sink=None).walk()

        self.assertEqual(len(result.chapters), 3)
        self.assertTrue(all(c.audio is None for c in result.chapters))
        self.assertEqual(self.session.handlers, [])

    async def test_single_summary_page(self):
        """A book that is only a summary: no indicator, no next button."""
        ReaderSite(self.session, BOOK, [("Summary", "Summary", "<p>s</p>", None)], chapters_list=False)
        await self.session.navigate(READER)

        result = await self.walker().walk()

        self.assertEqual([c.name for c in result.chapters], ["Summary"])
        self.assertEqual(result.original_chapter, "Summary")

    async def test_missing_title_reads_untitled(self):
        ReaderSite(self.session, BOOK, [("Introduction", "", "<p>x</p>", None)])
        await self.session.navigate(READER)

        result = await self.walker().walk()

        self.assertEqual(result.chapters[0].title, "Untitled")

    async def test_chapter_limit(self):
        ReaderSite(self.session, BOOK, THREE_CHAPTERS)
        await self.session.navigate(READER)

        result = await self.walker(max_chapters=2).walk()

        self.assertEqual(len(result.chapters), 2)
        self.assertFalse(result.complete)

    async def test_browser_error_keeps_partial_chapters(self):
        site = ReaderSite(self.session, BOOK, THREE_CHAPTERS)
        await self.session.navigate(READER)

        def broken_next():
            site.index += 1
            site.render()
            # Reader content vanishes on the second chapter
            self.session.dom.pop(ReaderSite.CONTENT_SELECTOR)
        self.session.dom[config.NEXT_CHAPTER_SELECTOR][0].on_click = broken_next

        result = await self.walker().walk()

        self.assertFalse(result.complete)
        self.assertEqual([c.name for c in result.chapters], ["Introduction"])

    async def test_disabled_next_control_ends_walk(self):
        ReaderSite(self.session, BOOK, THREE_CHAPTERS)
        await self.session.navigate(READER)
        self.session.dom[config.NEXT_CHAPTER_SELECTOR][0].enabled = False

        result = await self.walker().walk()

        self.assertEqual(len(result.chapters), 1)
        self.assertTrue(result.complete)


class TestReset(WalkerTestCase):
    """Best-effort position reset and restore."""

    async def test_reset_from_middle_and_restore(self):
        site = ReaderSite(self.session, BOOK, THREE_CHAPTERS, start_index=1)
        await self.session.navigate(READER)

        result = await self.walker().walk()

        self.assertEqual(result.original_chapter, "Key idea 1 of 1")
        self.assertEqual([c.name for c in result.chapters], ["Introduction", "Key idea 1 of 1", "Summary"])
        self.assertIn("ArrowDown", self.session.keys)
        self.assertIn("Enter", self.session.keys)
        # The fake can only jump to the first chapter, so restoring gives up there
        self.assertEqual(result.final_chapter, "Introduction")
        self.assertEqual(site.visits[:2], [1, 0])

    async def test_audio_buffer_restarts_after_reset(self):
        """Audio of the chapter the reader opened on is not credited to the Introduction."""
        ReaderSite(self.session, BOOK, THREE_CHAPTERS, start_index=1,
                   audio_on_load=False, play_button=True)
        scope = self.capture.open_scope("load")
        await self.session.navigate(READER)
        self.session.emit_response("https://cdn.test/audio/idea1.m4a", "audio/mp4")

        await self.walker().walk(scope)

        self.assertEqual(self.sink.calls, [(name, audio) for name, _, _, audio in THREE_CHAPTERS])
        self.assertEqual(self.session.handlers, [])

    async def test_reset_is_not_guaranteed(self):
        """When keyboard navigation does nothing, the walk starts where the reader is."""
        ReaderSite(self.session, BOOK, THREE_CHAPTERS, start_index=1, jump_to=None)
        await self.session.navigate(READER)

        walker = self.walker(reset_attempts=2)
        position = await walker.reset()
        self.assertEqual(position, "Key idea 1 of 1")
        self.assertEqual(self.session.keys, ["ArrowDown", "Enter", "ArrowDown", "Enter"])

        result = await walker.walk()
        self.assertEqual([c.name for c in result.chapters], ["Key idea 1 of 1", "Summary"])

    async def test_reset_without_chapters_list(self):
        ReaderSite(self.session, BOOK, THREE_CHAPTERS, start_index=2, chapters_list=False)
        await self.session.navigate(READER)

        position = await self.walker().reset()

        self.assertEqual(position, "Summary")
        self.assertEqual(self.session.keys, [])

    async def test_reset_swallows_browser_errors(self):
        ReaderSite(self.session, BOOK, THREE_CHAPTERS, start_index=1)
        await self.session.navigate(READER)

        async def broken_send_key(key):
            raise PlaywrightError("Target closed")
        self.session.send_key = broken_send_key

        self.assertEqual(await self.walker().reset(), "Key idea 1 of 1")


if __name__ == '__main__':
    unittest.main()
