"""
Library Mirror - Login and Verification Checks

Both checks pause for a human when the browser is visible and fail fast
when it is headless, since nobody can type a password or solve a
challenge in a window that doesn't exist.
"""

import re

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from browser.session import BrowserSession
from core.errors import AuthRequiredError
from core.logger import log_info, log_warning, log_error, log_success

import config


def _on_login_page(session: BrowserSession) -> bool:
    return re.match(config.LOGIN_URL_PATTERN, session.url) is not None


async def authenticate(session: BrowserSession) -> None:
    """
    Make sure the session is logged in.

    Opens the saved list. Logged-out sessions get redirected to the login
    page; in that case the user gets LOGIN_WAIT_SECONDS to log in by hand.

    Raises:
        AuthRequiredError: If the library never became reachable
    """
    library_url = f"{config.LIBRARY_URL}/saved"
    await session.navigate(library_url)
    header = session.locate(config.LIBRARY_HEADER_SELECTOR)

    if not _on_login_page(session):
        try:
            await header.wait_for(timeout=config.HEADER_PROBE_TIMEOUT_MS)
            log_success("Logged in")
            return
        except PlaywrightTimeoutError:
            if not _on_login_page(session):
                raise AuthRequiredError("Library page did not load", session.url)

    if session.headless:
        raise AuthRequiredError(
            "Not logged in and running headless; run once with a visible browser to log in",
            session.url
        )

    log_error(f"Not logged in! Will wait for {config.LOGIN_WAIT_SECONDS}s for you to log in...")
    try:
        await header.wait_for(timeout=config.LOGIN_WAIT_SECONDS * 1000)
    except PlaywrightTimeoutError:
        raise AuthRequiredError("Login was not completed in time", session.url)

    log_success("Logged in")


async def ensure_human_verified(session: BrowserSession) -> None:
    """
    Pause for a human-verification challenge if one is showing.

    Raises:
        AuthRequiredError: If a challenge is showing in headless mode, or
                           was not solved within VERIFICATION_WAIT_SECONDS
    """
    challenge = session.locate(config.VERIFICATION_SELECTOR)
    if not await challenge.is_visible():
        return

    log_error("Verify you are human by completing the action below.")
    if session.headless:
        raise AuthRequiredError("Can not solve human verification in headless mode")

    log_warning(f"Waiting up to {config.VERIFICATION_WAIT_SECONDS}s for the challenge to be solved...")
    try:
        await challenge.wait_for(state="hidden", timeout=config.VERIFICATION_WAIT_SECONDS * 1000)
    except PlaywrightTimeoutError:
        raise AuthRequiredError("Human verification was not completed in time", session.url)

    log_info("Verification passed")
