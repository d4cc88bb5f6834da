"""
Library Mirror - Browser Engine

Manages the Playwright browser lifecycle for a mirror run:
- Lazy initialization (browser only starts when the session is opened)
- Headless or headed operation (headed lets a human solve verification)
- Per-service session persistence (cookies survive across runs, so the
  login only has to happen once)
- Clean shutdown at the end of the run, successful or not

Usage:
    async with BrowserEngine(sessions_dir, "blinkist", headless=False) as engine:
        session = await engine.open_session()
        await session.navigate("https://www.blinkist.com/en/app/library/saved")
"""

import json
from pathlib import Path
from typing import Optional

from playwright.async_api import Error as PlaywrightError, async_playwright

from browser.auth import authenticate, ensure_human_verified
from browser.session import BrowserSession
from core.fileio import write_json_atomic
from core.logger import log_info, log_detail, log_warning, log_error

import config


class BrowserEngine:
    """
    Manages a single Playwright browser instance for one run.

    Acts as the session provider: it owns cookies, consent, login and the
    verification check, and hands the core an authenticated BrowserSession.
    """

    def __init__(self, sessions_dir: Path, service: str, headless: bool = False):
        """
        Initialize the browser engine.

        Args:
            sessions_dir: Directory for per-service session persistence.
                          Each service gets a subdirectory with cookies.json.
            service: Service name used as the session subdirectory
            headless: Run without a visible window
        """
        self._sessions_dir = sessions_dir
        self._service = service
        self._headless = headless
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._session: Optional[BrowserSession] = None
        self._initialized = False

    async def __aenter__(self) -> "BrowserEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _ensure_initialized(self) -> None:
        """Lazy-initialize Playwright and browser on first use."""
        if self._initialized:
            return

        mode = "headless" if self._headless else "headed"
        log_info(f"Starting {mode} browser", prefix="🌐")

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self._headless,
            args=[
                "--disable-blink-features=AutomationControlled",
            ]
        )

        self._context = await self._browser.new_context(
            viewport=config.BROWSER_VIEWPORT,
            user_agent=(
                "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
            ),
        )

        self._page = await self._context.new_page()
        self._initialized = True

        log_info("Browser ready", prefix="🌐")

    async def open_session(self) -> BrowserSession:
        """
        Start the browser and return an authenticated session.

        Restores saved cookies, accepts the cookie banner up front, waits
        for login if needed and checks for a verification challenge.

        Raises:
            AuthRequiredError: If login or verification could not complete
        """
        if self._session is not None:
            return self._session

        await self._ensure_initialized()
        self._session = BrowserSession(self._page, headless=self._headless)

        await self.load_session()
        await self._session.inject_cookies([config.COOKIE_CONSENT])

        await authenticate(self._session)
        await ensure_human_verified(self._session)

        # Logged in; keep the cookies even if the run fails later
        await self.save_session()
        return self._session

    # =========================================================================
    # SESSION PERSISTENCE
    # =========================================================================

    @property
    def cookies_path(self) -> Path:
        return self._sessions_dir / self._service / "cookies.json"

    async def load_session(self) -> bool:
        """
        Restore cookies saved by an earlier run.

        A missing or unreadable cookie file just means logging in again.

        Returns:
            True if cookies were restored
        """
        await self._ensure_initialized()

        if not self.cookies_path.exists():
            log_info(f"No saved session for '{self._service}'", prefix="🌐")
            return False

        try:
            cookies = json.loads(self.cookies_path.read_text(encoding="utf-8"))
            if not cookies:
                return False
            await self._context.add_cookies(cookies)
        except (OSError, ValueError, PlaywrightError) as e:
            log_warning(f"Failed to load session for '{self._service}': {e}")
            return False

        log_info(f"Loaded session for '{self._service}' ({len(cookies)} cookies)", prefix="🌐")
        return True

    async def save_session(self) -> bool:
        """
        Write the context's cookies for the next run.

        Returns:
            True if the cookies were written
        """
        if not self._initialized or not self._context:
            return False

        try:
            cookies = await self._context.cookies()
            write_json_atomic(self.cookies_path, cookies)
        except (OSError, PlaywrightError) as e:
            log_warning(f"Failed to save session for '{self._service}': {e}")
            return False

        log_detail(f"Saved session for '{self._service}' ({len(cookies)} cookies)", prefix="🌐")
        return True

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def close(self) -> None:
        """
        Save cookies (if a session was opened) and shut the browser down.

        Safe to call more than once.
        """
        if not self._initialized:
            return

        if self._session is not None:
            await self.save_session()

        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
            log_info("Browser shut down", prefix="🌐")
        except PlaywrightError as e:
            log_error(f"Error closing browser: {e}")
        finally:
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None
            self._session = None
            self._initialized = False
