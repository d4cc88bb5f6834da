"""
Library Mirror - Audio Capture

The reader's player fetches each chapter's audio from a short-lived URL
and then hands the browser a blob: URL, so the real address only ever
appears on the wire. AudioCapture listens to network responses and keeps
the audio-looking ones.

Each chapter gets its own AudioScope with its own queue. The scope for
the next chapter is opened before the navigation that loads it, and the
previous scope is closed afterwards, so an asset that starts loading
right at the boundary lands in the chapter it belongs to instead of
being wiped by a reset.
"""

import asyncio
from typing import Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from archive.strategies import PLAY_CONTROL_SELECTORS
from core.logger import log_info, log_detail, log_success, log_warning

import config

# URL fragments that mark a media download
AUDIO_URL_MARKERS = (".m4a", ".mp3", ".aac", "/audio/", "/media/")


def is_audio_response(url: str, content_type: str = "") -> bool:
    """
    Decide whether a network response carries chapter audio.

    blob: URLs are never candidates; they only live inside the page.
    """
    if not url or url.startswith("blob:"):
        return False
    if any(marker in url for marker in AUDIO_URL_MARKERS):
        return True
    return (content_type or "").lower().startswith("audio/")


def _short(url: str, limit: int = 80) -> str:
    return url if len(url) <= limit else url[:limit] + "..."


class AudioScope:
    """
    Audio candidates observed while one chapter is open.

    Subscribes on creation; close() unsubscribes and drops anything that
    still arrives. Usable as a context manager.
    """

    def __init__(self, session, label: str = ""):
        self.label = label
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._latest: Optional[str] = None
        self._closed = False
        self._subscription = session.intercept_responses(self._on_response)

    def _on_response(self, response) -> None:
        if self._closed:
            return
        url = response.url
        content_type = response.headers.get("content-type", "")
        if is_audio_response(url, content_type):
            log_detail(f"  Captured audio URL: {_short(url)}")
            self._queue.put_nowait(url)

    @property
    def closed(self) -> bool:
        return self._closed

    def latest(self) -> Optional[str]:
        """Most recently observed candidate so far, or None."""
        while True:
            try:
                self._latest = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        return self._latest

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._subscription.cancel()

    def __enter__(self) -> "AudioScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class AudioCapture:
    """
    Resolves the audio URL for the chapter currently shown in the reader.

    Passive first: whatever the page already loaded. If nothing was seen,
    the play control is pressed to make the player request its audio, and
    the scope is checked once more. Best effort; None is a normal result.
    """

    def __init__(
        self,
        session,
        play_selectors: Sequence[str] = PLAY_CONTROL_SELECTORS,
        trigger_wait_ms: int = config.PLAY_TRIGGER_WAIT_MS,
        visible_timeout_ms: int = config.PLAY_VISIBLE_TIMEOUT_MS,
        click_timeout_ms: int = config.PLAY_CLICK_TIMEOUT_MS
    ):
        self._session = session
        self._play_selectors = tuple(play_selectors)
        self._trigger_wait_ms = trigger_wait_ms
        self._visible_timeout_ms = visible_timeout_ms
        self._click_timeout_ms = click_timeout_ms

    def open_scope(self, label: str = "") -> AudioScope:
        """Start collecting candidates for the next chapter."""
        return AudioScope(self._session, label)

    async def resolve_for_chapter(self, scope: AudioScope) -> Optional[str]:
        """
        Audio URL for the chapter bound to scope.

        Returns:
            The most recently observed candidate, or None
        """
        url = scope.latest()
        if url:
            log_success(f"Using pre-loaded audio URL: {_short(url)}", prefix="🎧")
            return url

        log_detail("  Trying to trigger audio load...")
        await self.trigger_playback()

        url = scope.latest()
        if url:
            log_success(f"Captured audio after play: {_short(url)}", prefix="🎧")
        else:
            log_warning("  No audio captured from network for this chapter")
        return url

    async def trigger_playback(self) -> bool:
        """
        Click the first visible play control.

        Returns:
            True if a control was clicked
        """
        for selector in self._play_selectors:
            button = self._session.locate(selector).first
            try:
                await button.wait_for(state="visible", timeout=self._visible_timeout_ms)
            except PlaywrightError:
                continue

            log_info(f"  Clicking play button: {selector}")
            try:
                await button.click(timeout=self._click_timeout_ms)
            except PlaywrightError as e:
                log_detail(f"  Could not click: {e.message.splitlines()[0] if e.message else e}")
                continue

            # Give the player time to request the audio
            await self._session.wait(self._trigger_wait_ms)
            return True

        return False
