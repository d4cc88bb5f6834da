"""
Library Mirror - Content Archiver

Builds one bundle per catalog book that doesn't have one yet:

    books/<list>/<id>/book.json      - metadata, chapters, download date
    books/<list>/<id>/cover.png      - cover image
    books/<list>/<id>/<chapter>.m4a  - chapter audio (when captured)

book.json is written last. Its presence is the only "already archived"
marker: a directory without it (crash, interrupt) is archived again on the
next run, and a book with book.json is never touched again, even if some
audio is missing.

Everything optional degrades instead of failing: a missing details panel
falls back to the catalog fields, an unreadable reader yields zero
chapters, and failed downloads are logged. Only failures that block the
book page itself abort the run.
"""

import asyncio
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from archive.audio import AudioCapture
from archive.fetcher import BlobFetcher
from archive.strategies import DETAILS_STRATEGIES, READER_STRATEGIES, recognize
from archive.walker import AssetSink, ChapterWalker, WalkResult
from browser.auth import ensure_human_verified
from catalog.models import ArchiveBundle, CatalogItem, FINISHED, SAVED
from catalog.store import CatalogStore
from core.errors import TransientNetworkError
from core.fileio import write_json_atomic
from core.logger import (
    log_info,
    log_detail,
    log_error,
    log_section,
    log_status,
    log_success,
    log_warning,
)

import config

# Archive status of a book, with its console style
STATUS_EXISTS = "exists"
STATUS_AUDIO_MISSING = "audio missing"
STATUS_INCOMPLETE = "incomplete"
STATUS_NEW = "download"

_STATUS_STYLES = {
    STATUS_EXISTS: "success",
    STATUS_AUDIO_MISSING: "warning",
    STATUS_INCOMPLETE: "error",
    STATUS_NEW: "warning",
}

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def safe_filename(name: str) -> str:
    """Turn a chapter name into a file name ("Key idea 1/7" -> "Key idea 1_7")."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(" .")
    return cleaned or "chapter"


@dataclass
class ArchiveReport:
    """What archive_list() did for one list."""
    list_name: str
    archived: List[str] = field(default_factory=list)
    skipped: int = 0
    chapters: int = 0
    audio_files: int = 0


class ContentArchiver:
    """
    Archives every book of a list that has no bundle yet.

    One book at a time, on the single browser session it was given.
    """

    def __init__(
        self,
        session,
        store: CatalogStore,
        fetcher: BlobFetcher,
        books_dir: Path = config.BOOKS_DIR,
        download_audio: bool = True,
        content_state_timeout: float = config.CONTENT_STATE_TIMEOUT_SECONDS,
        walker_options: Optional[Dict[str, Any]] = None
    ):
        self._session = session
        self._store = store
        self._fetcher = fetcher
        self._books_dir = Path(books_dir)
        self._download_audio = download_audio
        self._content_state_timeout = content_state_timeout
        self._walker_options = walker_options or {}

    # =========================================================================
    # BUNDLE LOCATION
    # =========================================================================

    def book_dir(self, list_name: str, item: CatalogItem) -> Path:
        return self._books_dir / list_name / item.id

    def bundle_path(self, list_name: str, item: CatalogItem) -> Path:
        return self.book_dir(list_name, item) / config.BUNDLE_FILENAME

    def is_archived(self, list_name: str, item: CatalogItem) -> bool:
        return self.bundle_path(list_name, item).exists()

    def status(self, list_name: str, item: CatalogItem) -> str:
        """Archive status of a book: exists, audio missing, incomplete or download."""
        book_dir = self.book_dir(list_name, item)
        if not book_dir.exists():
            return STATUS_NEW
        if not self.is_archived(list_name, item):
            return STATUS_INCOMPLETE
        summary_audio = book_dir / (config.TERMINAL_CHAPTER_NAME + config.AUDIO_EXTENSION)
        if not summary_audio.exists():
            return STATUS_AUDIO_MISSING
        return STATUS_EXISTS

    # =========================================================================
    # LIST PROCESSING
    # =========================================================================

    async def archive_list(self, list_name: str) -> ArchiveReport:
        """
        Archive every book of a list that lacks a bundle.

        Books on "finished" that are also on "saved" are skipped; they
        are archived under "saved".
        """
        items = self._store.get(list_name)
        saved_ids = set(self._store.ids(SAVED)) if list_name == FINISHED else set()
        report = ArchiveReport(list_name=list_name)

        log_section(f"Check/download new books: {list_name}", "📥")
        log_info(f"{list_name} books in catalog: {len(items)}")

        for index, item in enumerate(items, 1):
            if item.id in saved_ids:
                log_detail(f"Book {index}: {item.id} is archived under {SAVED}")
                report.skipped += 1
                continue

            status = self.status(list_name, item)
            log_status(f"Book {index}: {item.id}", status, _STATUS_STYLES[status])
            if status in (STATUS_EXISTS, STATUS_AUDIO_MISSING):
                report.skipped += 1
                continue

            log_info(f"Downloading book ({len(items) - index} left): {item.url}", prefix="⬇️")
            bundle = await self.archive_item(list_name, item)
            report.archived.append(item.id)
            report.chapters += len(bundle.chapters)
            report.audio_files += len(bundle.audio_files)

        log_info(
            f"{list_name}: archived {len(report.archived)}, skipped {report.skipped}, "
            f"{report.chapters} chapters, {report.audio_files} audio files"
        )
        return report

    async def archive_item(self, list_name: str, item: CatalogItem) -> ArchiveBundle:
        """
        Scrape one book and write its bundle.

        Raises:
            TransientNetworkError: If the book or reader page could not be loaded
            AuthRequiredError: If a verification challenge blocks the page
        """
        book_dir = self.book_dir(list_name, item)
        book_dir.mkdir(parents=True, exist_ok=True)

        bundle = ArchiveBundle.baseline(item)
        bundle.content_state = await self._open_book_page(item)
        await ensure_human_verified(self._session)
        await self._read_details(bundle)
        log_detail(
            f"Details: categories={bundle.categories}, ratings={bundle.ratings}, "
            f"duration={bundle.duration_detail}"
        )

        walk = await self._walk_reader(item, book_dir)
        bundle.chapters = walk.chapters
        bundle.original_chapter = walk.original_chapter

        if item.img:
            await self._download(item.img, book_dir / config.COVER_FILENAME, "cover")

        bundle.archived_at = datetime.now()
        write_json_atomic(self.bundle_path(list_name, item), bundle.to_dict())

        log_success(f"Downloaded book with {len(bundle.chapters)} chapters")
        if not bundle.chapters:
            log_warning("No chapters were downloaded. The book content may not be available.")
        elif self._download_audio:
            log_info(
                f"Audio files: {len(bundle.audio_files)} of {len(bundle.chapters)} chapters have audio"
            )
            if not bundle.audio_files:
                log_warning("No audio was captured for any chapter")
        return bundle

    # =========================================================================
    # BOOK PAGE
    # =========================================================================

    async def _open_book_page(self, item: CatalogItem) -> Optional[Dict[str, Any]]:
        """
        Navigate to the book page, listening for the backend's content state.

        Returns:
            The user's content state for this book, or None if not captured
        """
        captured: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_response(response) -> None:
            if captured.done():
                return
            if response.url == config.GRAPHQL_URL and response.request.method == "POST":
                captured.set_result(response)

        subscription = self._session.intercept_responses(on_response)
        try:
            await self._session.navigate(f"{config.BOOK_URL}/{item.id}")
            return await self._read_content_state(captured)
        finally:
            subscription.cancel()
            if not captured.done():
                captured.cancel()

    async def _read_content_state(self, captured: asyncio.Future) -> Optional[Dict[str, Any]]:
        try:
            response = await asyncio.wait_for(captured, timeout=self._content_state_timeout)
            payload = await response.json()
        except asyncio.TimeoutError:
            log_warning("Could not get contentState from GraphQL: no response")
            return None
        except (PlaywrightError, ValueError) as e:
            log_warning(f"Could not get contentState from GraphQL: {e}")
            return None

        user = ((payload or {}).get("data") or {}).get("user") or {}
        state = user.get("contentStateByContentTypeAndId")
        if state is None:
            log_detail("GraphQL response had no contentState")
        return state

    async def _read_details(self, bundle: ArchiveBundle) -> None:
        """Fill categories, long description, author bio, ratings and duration."""
        recognition = await recognize(self._session, DETAILS_STRATEGIES, "details box")

        if recognition is None:
            log_warning("Could not find details box, using basic metadata from library")
        else:
            try:
                divs = await recognition.locator.locator("div").all()
                log_detail(f"Found {len(divs)} detail divs")
                if len(divs) >= 2:
                    bundle.categories = await self._link_texts(divs[1])
                if len(divs) >= 3:
                    bundle.description_long = await self._soft_html(divs[2], bundle.description_long)
                if len(divs) >= 4:
                    bundle.author_details = await self._soft_html(divs[3], bundle.author_details)
            except PlaywrightError as e:
                log_warning(f"Error extracting details from details box: {e.message}")

        bundle.ratings = await self._snippet(config.RATINGS_SELECTOR)
        bundle.duration_detail = await self._snippet(config.DURATION_SELECTOR)

    async def _link_texts(self, locator) -> List[str]:
        try:
            links = await locator.locator("a").all()
            return [(await link.inner_text()).strip() for link in links]
        except PlaywrightError:
            return []

    async def _soft_html(self, locator, fallback: str) -> str:
        try:
            return await locator.inner_html()
        except PlaywrightError:
            return fallback

    async def _snippet(self, selector: str) -> Optional[str]:
        """Short text from anywhere on the page; None if it isn't there quickly."""
        try:
            return (await self._session.locate(selector).first.inner_text(
                timeout=config.SNIPPET_TIMEOUT_MS
            )).strip()
        except PlaywrightError:
            return None

    # =========================================================================
    # READER
    # =========================================================================

    async def _walk_reader(self, item: CatalogItem, book_dir: Path) -> WalkResult:
        audio = AudioCapture(self._session) if self._download_audio else None
        # Listen before navigating: the first chapter's audio may load with the page
        first_scope = audio.open_scope("reader load") if audio else None
        try:
            status = await self._session.navigate(f"{config.READER_URL}/{item.id}")
            log_detail(f"Reader response status: {status}")
            if status == 404:
                log_warning(f"Reader not found (404): {item.id}")
                return WalkResult(complete=False)

            recognition = await recognize(self._session, READER_STRATEGIES, "reader content")
            if recognition is None:
                await self._log_reader_diagnostics(item)
                return WalkResult(complete=False)

            walker = ChapterWalker(
                self._session,
                recognition.selector,
                audio=audio,
                asset_sink=self._audio_sink(book_dir) if audio else None,
                **self._walker_options,
            )
            return await walker.walk(first_scope)
        finally:
            if first_scope is not None:
                first_scope.close()

    async def _log_reader_diagnostics(self, item: CatalogItem) -> None:
        log_error(f"Reader content did not load with any known selector: {item.id}", prefix="⚠️")
        log_info(f"Current URL: {self._session.url}")
        try:
            body_classes = await self._session.locate("body").first.get_attribute(
                "class", timeout=config.SNIPPET_TIMEOUT_MS
            )
        except PlaywrightError:
            body_classes = "N/A"
        log_info(f"Body classes: {body_classes}")
        try:
            main_elements = await self._session.locate('main, article, [role="main"]').count()
        except PlaywrightError:
            main_elements = 0
        log_info(f"Main/article elements found: {main_elements}")
        if "/reader/" not in self._session.url:
            log_info("Page was redirected away from reader")

    # =========================================================================
    # DOWNLOADS
    # =========================================================================

    def _audio_sink(self, book_dir: Path) -> AssetSink:
        """Download a chapter's audio as soon as its URL is known."""
        async def sink(chapter_name: str, url: str) -> Optional[str]:
            filename = safe_filename(chapter_name) + config.AUDIO_EXTENSION
            log_info(f"  Downloading audio for: {chapter_name}")
            if await self._download(url, book_dir / filename, f"audio for {chapter_name}"):
                return filename
            return None
        return sink

    async def _download(self, url: str, path: Path, label: str) -> bool:
        try:
            await asyncio.to_thread(self._fetcher.fetch_to, url, path)
            return True
        except (TransientNetworkError, OSError) as e:
            log_warning(f"Could not download {label}: {e}")
            return False
