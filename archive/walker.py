"""
Library Mirror - Chapter Walker

Walks a book in the reader one chapter at a time:

    reset to the first chapter (best effort)
    loop:
        read position name, heading and body markup
        resolve the chapter's audio and hand it to the asset sink
        press "next chapter"; stop when there is none
    move back to where the reader was before (best effort)

The position indicator shows "Introduction", "Key idea 1", ... but
disappears on the final summary page, so a missing indicator reads as
"Summary". Chapters collected before a failure are kept.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from playwright.async_api import Error as PlaywrightError

from archive.audio import AudioCapture, AudioScope
from catalog.models import Chapter
from core.logger import log_info, log_detail, log_success, log_warning

import config

# (chapter name, audio URL) -> stored file name, or None if the download failed
AssetSink = Callable[[str, str], Awaitable[Optional[str]]]


@dataclass
class WalkResult:
    """Outcome of a walk."""
    chapters: List[Chapter] = field(default_factory=list)
    original_chapter: Optional[str] = None
    final_chapter: Optional[str] = None
    complete: bool = True   # False if the walk stopped early


class ChapterWalker:
    """
    Finite-state traversal of the reader; one state per chapter.

    The walker never raises for page problems. Browser errors end the
    walk and are reported through WalkResult.complete.
    """

    def __init__(
        self,
        session,
        content_selector: str,
        audio: Optional[AudioCapture] = None,
        asset_sink: Optional[AssetSink] = None,
        max_chapters: int = config.MAX_CHAPTERS,
        settle_ms: int = config.CHAPTER_SETTLE_MS,
        extra_settle_ms: int = config.CHAPTER_EXTRA_SETTLE_MS,
        reset_attempts: int = config.RESET_ATTEMPTS,
        key_wait_ms: int = config.RESET_KEY_WAIT_MS,
        select_wait_ms: int = config.RESET_SELECT_WAIT_MS
    ):
        self._session = session
        self._content_selector = content_selector
        self._audio = audio
        self._asset_sink = asset_sink
        self._max_chapters = max_chapters
        self._settle_ms = settle_ms
        self._extra_settle_ms = extra_settle_ms
        self._reset_attempts = reset_attempts
        self._key_wait_ms = key_wait_ms
        self._select_wait_ms = select_wait_ms

    # =========================================================================
    # POSITION
    # =========================================================================

    async def current_position(self) -> str:
        """Name of the chapter shown, or "Summary" when there is no indicator."""
        indicator = self._session.locate(config.CHAPTER_NUMBER_SELECTOR).first
        try:
            name = await indicator.inner_text(timeout=config.POSITION_TIMEOUT_MS)
        except PlaywrightError:
            return config.TERMINAL_CHAPTER_NAME
        return name.strip() or config.TERMINAL_CHAPTER_NAME

    @staticmethod
    def _at_goal(position: str, target: Optional[str]) -> bool:
        if target is None:
            return position in config.FIRST_CHAPTER_NAMES
        return position == target

    async def reset(self, target: Optional[str] = None) -> str:
        """
        Try to move the reader to target (default: the first chapter).

        Uses keyboard navigation in the chapters list. This is a
        heuristic: it gives up after a few attempts and may leave the
        reader somewhere else. Never raises.

        Returns:
            The position the reader ended up at
        """
        try:
            return await self._reset(target)
        except PlaywrightError as e:
            log_warning(f"Resetting reader position failed: {e.message}")
            return await self.current_position()

    async def _reset(self, target: Optional[str]) -> str:
        goal = target or "first chapter"
        position = await self.current_position()
        if self._at_goal(position, target):
            log_detail(f"Already at {position}")
            return position

        log_info(f"Currently at: {position}, trying to navigate to {goal}")
        chapters_list = self._session.locate(config.CHAPTERS_LIST_SELECTOR)
        if not await chapters_list.count():
            log_detail("No chapters list container found")
            return position

        try:
            await chapters_list.first.focus(timeout=1000)
        except PlaywrightError:
            pass

        for _ in range(self._reset_attempts):
            await self._session.send_key("ArrowDown")
            await self._session.wait(self._key_wait_ms)
            await self._session.send_key("Enter")
            await self._session.wait(self._select_wait_ms)

            moved_to = await self.current_position()
            if moved_to != position:
                log_detail(f"Navigated via keyboard from {position} to {moved_to}")
            position = moved_to
            if self._at_goal(position, target):
                break

        if not self._at_goal(position, target):
            log_warning(f"Could not reach {goal}, staying at {position}")
        return position

    # =========================================================================
    # TRAVERSAL
    # =========================================================================

    async def _title(self) -> str:
        heading = self._session.locate(config.CHAPTER_TITLE_SELECTOR).first
        try:
            return (await heading.inner_text(timeout=config.TITLE_TIMEOUT_MS)).strip()
        except PlaywrightError:
            return ""

    async def advance(self, previous_title: str = "") -> bool:
        """
        Press "next chapter".

        Returns:
            False when there is no visible, enabled next control (last chapter)
        """
        button = self._session.locate(config.NEXT_CHAPTER_SELECTOR).first
        try:
            await button.wait_for(state="visible", timeout=config.NEXT_CHAPTER_TIMEOUT_MS)
        except PlaywrightError:
            return False
        if not await button.is_enabled():
            return False

        await button.click()
        await self._session.wait(self._settle_ms)
        # Slow renders keep the old heading for a moment
        if await self._title() == previous_title:
            await self._session.wait(self._extra_settle_ms)
        return True

    async def _read_chapter(self, scope: Optional[AudioScope]) -> Chapter:
        name = await self.current_position()
        title = await self._title() or "Untitled"
        text = await self._session.locate(self._content_selector).first.inner_html(
            timeout=config.STRATEGY_TIMEOUT_MS
        )
        log_info(f"{name}: {title}", prefix="📄")

        audio_file = None
        if self._audio is not None and scope is not None:
            url = await self._audio.resolve_for_chapter(scope)
            if url and self._asset_sink is not None:
                audio_file = await self._asset_sink(name, url)

        return Chapter(name=name, title=title, text=text, audio=audio_file)

    def _open_scope(self, label: str) -> Optional[AudioScope]:
        if self._audio is None:
            return None
        return self._audio.open_scope(label)

    async def walk(self, first_scope: Optional[AudioScope] = None) -> WalkResult:
        """
        Visit every chapter from the first to the last.

        Args:
            first_scope: Audio scope opened before the reader was loaded, so
                         audio requested during page load is not missed

        Returns:
            WalkResult with one Chapter per visited position
        """
        result = WalkResult()
        result.original_chapter = await self.current_position()
        log_info(f"Original chapter: {result.original_chapter}")

        scope = first_scope if first_scope is not None else self._open_scope("start")
        try:
            # Audio loaded for the chapter the reader opened on must not be
            # credited to the first chapter after a reset
            reset_scope = self._open_scope("after reset")
            position = await self.reset()
            if position != result.original_chapter:
                stale, scope = scope, reset_scope
            else:
                stale = reset_scope
            if stale is not None:
                stale.close()

            while True:
                if len(result.chapters) >= self._max_chapters:
                    log_warning(f"Stopping after {self._max_chapters} chapters")
                    result.complete = False
                    break

                chapter = await self._read_chapter(scope)
                result.chapters.append(chapter)

                # Open the next scope before moving, so audio requested by
                # the page change is collected for the next chapter
                next_scope = self._open_scope(f"after {chapter.name}")
                try:
                    advanced = await self.advance(chapter.title)
                finally:
                    if scope is not None:
                        scope.close()
                    scope = next_scope

                if not advanced:
                    log_detail("No more next button, reached end")
                    break

        except PlaywrightError as e:
            result.complete = False
            log_warning(
                f"Chapter walk stopped after {len(result.chapters)} chapters: "
                f"{e.message.splitlines()[0] if e.message else e}"
            )
        finally:
            if scope is not None:
                scope.close()
            result.final_chapter = await self.reset(result.original_chapter)

        if result.complete:
            log_success(f"Walked {len(result.chapters)} chapters")
        return result
