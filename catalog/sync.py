"""
Library Mirror - Library Sync
Pages through a library list and appends newly discovered books.

The site lists books most recently added first. Because of that, the
first already-known book on a page means everything after it is known
too, and the crawl stops there unless a full rescan was requested.
New books are collected newest-first and appended reversed, so every
list in the catalog stays ordered oldest-first.
"""

import re
from typing import List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from catalog.models import CatalogItem, FINISHED, SAVED, slug_to_id
from catalog.store import CatalogStore
from core.errors import HardAssertionError, StructuralMismatchError
from core.logger import log_info, log_detail, log_section

import config

_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")


def parse_card_meta(text: str) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse the caption under a book card.

    The caption reads "15 min" on the first line and the rating on the
    second. Anything unreadable comes back as None.

    Returns:
        (duration in minutes, rating)
    """
    values: List[Optional[float]] = []
    for line in (text or "").split("\n")[:2]:
        match = _NUMBER.search(line)
        values.append(float(match.group(0).replace(",", ".")) if match else None)
    while len(values) < 2:
        values.append(None)
    return values[0], values[1]


class LibrarySync:
    """
    Crawls one library list into the CatalogStore.

    Card fields that identify a book (href, title, cover) are required:
    a card without them aborts the run instead of being skipped, since a
    silently skipped book would never be picked up again.
    """

    def __init__(
        self,
        session,
        store: CatalogStore,
        page_change_timeout: float = config.PAGE_CHANGE_TIMEOUT_SECONDS,
        poll_interval: float = config.PAGE_CHANGE_POLL_SECONDS,
        field_timeout_ms: int = config.CARD_FIELD_TIMEOUT_MS
    ):
        self._session = session
        self._store = store
        self._page_change_timeout = page_change_timeout
        self._poll_interval = poll_interval
        self._field_timeout_ms = field_timeout_ms

    async def crawl(self, list_name: str, allow_rescan: bool = False) -> List[CatalogItem]:
        """
        Sync one list.

        Args:
            list_name: "saved" or "finished"
            allow_rescan: Keep scanning past known books instead of stopping

        Returns:
            The newly appended items, oldest first

        Raises:
            StructuralMismatchError: A card lacks a required field
            TransientNetworkError: Navigation failed or a page never loaded
        """
        known_ids = set(self._store.ids(list_name))
        saved_ids = set(self._store.ids(SAVED)) if list_name == FINISHED else set()

        url = f"{config.LIBRARY_URL}/{list_name}"
        log_section(f"Updating library: {list_name}", "🔄")
        log_info(f"{list_name} books in catalog: {len(known_ids)}")
        await self._session.navigate(url)

        next_button = self._session.locate(config.NEXT_PAGE_SELECTOR)
        new_items: List[CatalogItem] = []
        seen_this_run = set()
        page_number = 0
        stopped = False

        while not stopped:
            page_number += 1
            signature = await self._page_signature(list_name)
            log_info(f"Page {page_number}: {signature[0] or '(no page label)'}")

            for card in await self._session.locate(config.BOOK_CARD_SELECTOR).all():
                item = await self.read_card(card)

                if item.id in known_ids:
                    if not allow_rescan:
                        log_info(f"Stopping at book already in catalog: {item.id}")
                        stopped = True
                        break
                    log_detail(f"Book already in catalog: {item.id}")
                elif item.id in saved_ids:
                    # Reading a saved book also puts it on "finished"; it's
                    # archived under "saved" already
                    log_detail(f"Skipping book already in saved list: {item.id}")
                elif item.id in seen_this_run:
                    log_detail(f"Book listed twice during this crawl: {item.id}")
                else:
                    log_info(f"New book: {item.id} ({item.title})", prefix="➕")
                    seen_this_run.add(item.id)
                    new_items.append(item)

            if stopped:
                break

            # The enabled-button check can't be done after clicking, since
            # the click itself may disable it on the last page
            if not await next_button.count():
                break
            await next_button.first.click()
            await self._wait_for_page_change(list_name, signature)

        appended = list(reversed(new_items))
        self._store.append(list_name, appended)
        self._store.persist()
        log_info(f"New books in {list_name}: {len(appended)}")
        return appended

    async def read_card(self, card) -> CatalogItem:
        """
        Extract a CatalogItem from a book card.

        Raises:
            StructuralMismatchError: If href, title or cover is missing
        """
        slug = await self._required_attribute(card, "href", "href")
        item_id = slug_to_id(slug)
        title = await self._required_attribute(card, "aria-label", "title / aria-label", item_id)
        img = await self._required_attribute(card.locator("img").first, "src", "img src", item_id)

        author = await self._soft_text(card.locator(config.CARD_SUBTITLE_SELECTOR).first)
        description = await self._soft_text(card.locator(config.CARD_DESCRIPTION_SELECTOR).first)
        meta = await self._soft_text(card.locator(config.CARD_META_SELECTOR).last)
        duration, rating = parse_card_meta(meta)

        url = slug if slug.startswith("http") else config.SITE_ROOT + slug
        return CatalogItem(
            id=item_id,
            title=title,
            author=author,
            description=description,
            duration=duration,
            rating=rating,
            url=url,
            img=img,
        )

    async def _required_attribute(self, locator, name: str, label: str, item_id: str = "") -> str:
        try:
            value = await locator.get_attribute(name, timeout=self._field_timeout_ms)
        except PlaywrightTimeoutError:
            value = None
        except PlaywrightError as e:
            raise HardAssertionError(f"Book card attribute unreadable: {label}", e.message) from e

        if not value:
            raise StructuralMismatchError(f"Book has no {label} attribute!", item_id or None)
        return value

    async def _soft_text(self, locator) -> str:
        try:
            return (await locator.inner_text(timeout=self._field_timeout_ms)).strip()
        except PlaywrightError:
            return ""

    async def _page_signature(self, list_name: str) -> Tuple[str, str]:
        """Pagination label plus the first card's href; changes when a new page renders."""
        label_locator = self._session.locate(config.PAGE_SIGNATURE_TEMPLATE.format(list=list_name))
        label = await self._soft_text(label_locator.first)
        try:
            first_href = await self._session.locate(config.BOOK_CARD_SELECTOR).first.get_attribute(
                "href", timeout=self._field_timeout_ms
            )
        except PlaywrightError:
            first_href = None
        return label, first_href or ""

    async def _wait_for_page_change(self, list_name: str, previous: Tuple[str, str]) -> None:
        async def changed() -> bool:
            return await self._page_signature(list_name) != previous

        await self._session.wait_for_condition(
            changed,
            timeout=self._page_change_timeout,
            interval=self._poll_interval,
            description=f"next {list_name} page to load",
        )
