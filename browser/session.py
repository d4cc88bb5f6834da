"""
Library Mirror - Browser Session

The narrow browsing interface the catalog sync and the archiver work
against. Wraps a single Playwright Page:

    navigate(url)                    - Go to a URL, return the HTTP status
    locate(selector)                 - Playwright Locator for a selector
    wait(ms)                         - Fixed settle delay
    wait_for_condition(pred, ...)    - Bounded poll of an async predicate
    intercept_responses(handler)     - Subscribe to network responses
    send_key(key)                    - Keyboard press
    inject_cookies(cookies)          - Add cookies to the browser context
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from core.errors import TransientNetworkError
from core.logger import log_detail

import config


async def poll_until(
    predicate: Callable[[], Awaitable[bool]],
    timeout: float,
    interval: float = 0.5,
    description: str = "condition"
) -> None:
    """
    Poll an async predicate until it returns True.

    Args:
        predicate: Async callable checked once per interval
        timeout: Seconds before giving up
        interval: Seconds between checks
        description: What is being waited for (used in the error)

    Raises:
        TransientNetworkError: If the predicate never became True in time
    """
    deadline = time.monotonic() + timeout
    attempts = 0

    while True:
        attempts += 1
        if await predicate():
            return
        if time.monotonic() >= deadline:
            raise TransientNetworkError(
                f"Timed out waiting for {description}",
                f"{attempts} checks over {timeout:.1f}s"
            )
        await asyncio.sleep(interval)


class ResponseSubscription:
    """
    A registered network response listener.

    Cancelling is idempotent; the handler never fires after cancel().
    """

    def __init__(self, page, handler: Callable[[Any], None]):
        self._page = page
        self._handler = handler
        self._active = True
        page.on("response", handler)

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._page.remove_listener("response", self._handler)


class BrowserSession:
    """
    Authenticated browsing context handed to the core components.

    Created by BrowserEngine once login succeeded. Every navigation
    failure is raised as TransientNetworkError; element lookups return
    plain Playwright locators so callers keep Playwright's wait semantics.
    """

    def __init__(self, page, headless: bool = False):
        self._page = page
        self.headless = headless

    @property
    def url(self) -> str:
        return self._page.url

    async def navigate(self, url: str, timeout_ms: int = config.NAVIGATION_TIMEOUT_MS) -> Optional[int]:
        """
        Navigate to a URL.

        Returns:
            HTTP status of the main response, or None for same-document
            navigations that produce no response

        Raises:
            TransientNetworkError: If the navigation itself failed
        """
        log_detail(f"Navigating to {url}")
        try:
            response = await self._page.goto(url, timeout=timeout_ms)
        except PlaywrightError as e:
            raise TransientNetworkError(f"Navigation failed: {e.message}", url) from e
        return response.status if response else None

    def locate(self, selector: str):
        """Get a Playwright Locator for a selector."""
        return self._page.locator(selector)

    async def wait(self, ms: float) -> None:
        """Let the page settle for a fixed time."""
        await self._page.wait_for_timeout(ms)

    async def wait_for_condition(
        self,
        predicate: Callable[[], Awaitable[bool]],
        timeout: float,
        interval: float = 0.5,
        description: str = "condition"
    ) -> None:
        """Bounded poll; see poll_until()."""
        await poll_until(predicate, timeout, interval, description)

    def intercept_responses(self, handler: Callable[[Any], None]) -> ResponseSubscription:
        """
        Subscribe to every network response of the page.

        The handler runs synchronously on the event loop and must not
        block. Call cancel() on the returned subscription to stop.
        """
        return ResponseSubscription(self._page, handler)

    async def send_key(self, key: str) -> None:
        """Press a key on the page's keyboard."""
        await self._page.keyboard.press(key)

    async def inject_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        """Add cookies to the page's browser context."""
        await self._page.context.add_cookies(cookies)
