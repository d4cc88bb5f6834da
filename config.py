"""
Library Mirror - Configuration
Paths, site endpoints, selectors, timeouts and run flags
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# =============================================================================
# PATHS
# =============================================================================
PROJECT_ROOT = Path(__file__).parent
BOOKS_DIR = Path(os.getenv("BOOKS_DIR", str(PROJECT_ROOT / "books")))
CATALOG_PATH = BOOKS_DIR / "db.json"
DATA_DIR = PROJECT_ROOT / "data"
LOGS_DIR = PROJECT_ROOT / "logs"
DIAGNOSTIC_LOG_PATH = LOGS_DIR / "diagnostic.log"

# File names inside a book directory
BUNDLE_FILENAME = "book.json"
COVER_FILENAME = "cover.png"
AUDIO_EXTENSION = ".m4a"

# =============================================================================
# VERSION
# =============================================================================
VERSION = "0.1.0"
PROJECT_NAME = "Library Mirror"

# =============================================================================
# SITE
# =============================================================================
SITE_DOMAIN = "www.blinkist.com"
SITE_ROOT = f"https://{SITE_DOMAIN}"
LIBRARY_URL = f"{SITE_ROOT}/en/app/library"
BOOK_URL = f"{SITE_ROOT}/en/app/books"
READER_URL = f"{SITE_ROOT}/en/nc/reader"
GRAPHQL_URL = "https://gql-gateway.blinkist.com/graphql"
LOGIN_URL_PATTERN = r".*login.*"

# Lists mirrored, in processing order. "saved" must come first so that
# books moved to "finished" after reading are not archived twice.
LIBRARY_LISTS = ("saved", "finished")

# Consent cookie injected before the first navigation. The consent banner
# overlays the page and blocks clicks otherwise.
COOKIE_CONSENT = {
    "name": "CookieConsent",
    "value": (
        '{"stamp":"V2Zm11G30yff5ZZ8WLu8h+BPe03juzWMZGOyPF4bExMdyYwlFj+3Hw==",'
        '"necessary":true,"preferences":true,"statistics":true,"marketing":true,'
        '"method":"explicit","ver":1,"utc":1716329838000,"region":"de"}'
    ),
    "domain": SITE_DOMAIN,
    "path": "/",
}

# =============================================================================
# SELECTORS
# =============================================================================
# Library listing
LIBRARY_HEADER_SELECTOR = 'h3:has-text("Saved")'
BOOK_CARD_SELECTOR = 'a[data-test-id="book-card"]'
CARD_SUBTITLE_SELECTOR = '[data-test-id="subtitle"]'
CARD_DESCRIPTION_SELECTOR = '[data-test-id="description"]'
CARD_META_SELECTOR = "div.text-mid-grey.text-caption.mt-2"
NEXT_PAGE_SELECTOR = 'button:has-text("Next"):not([disabled])'
# Pagination label ("1-12 of 40 saved"), used to detect that a page changed
PAGE_SIGNATURE_TEMPLATE = 'div:has-text("{list}") p'

# Detail page
RATINGS_SELECTOR = 'span:has-text(" ratings)")'
DURATION_SELECTOR = 'span:has-text(" mins")'

# Reader
CHAPTER_NUMBER_SELECTOR = '[data-test-id="currentChapterNumber"]'
CHAPTER_TITLE_SELECTOR = "h2"
CHAPTERS_LIST_SELECTOR = '[data-test-id="chapters-list"]'
NEXT_CHAPTER_SELECTOR = '[data-test-id="nextChapter"]'
FIRST_CHAPTER_NAMES = ("Introduction", "Einleitung")
# The last chapter (summary) has no position indicator
TERMINAL_CHAPTER_NAME = "Summary"

# Human verification
VERIFICATION_SELECTOR = 'h2:has-text("Verify you are human by completing the action below.")'

# =============================================================================
# TIMEOUTS (milliseconds unless noted)
# =============================================================================
NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", "30000"))
LOGIN_WAIT_SECONDS = int(os.getenv("LOGIN_WAIT_SECONDS", "120"))
VERIFICATION_WAIT_SECONDS = int(os.getenv("VERIFICATION_WAIT_SECONDS", "30"))
HEADER_PROBE_TIMEOUT_MS = 10000   # Library header before checking for a login redirect

CARD_FIELD_TIMEOUT_MS = 2000
PAGE_CHANGE_TIMEOUT_SECONDS = float(os.getenv("PAGE_CHANGE_TIMEOUT_SECONDS", "30"))
PAGE_CHANGE_POLL_SECONDS = 0.5

STRATEGY_TIMEOUT_MS = 3000
SNIPPET_TIMEOUT_MS = 200
CONTENT_STATE_TIMEOUT_SECONDS = 10.0

POSITION_TIMEOUT_MS = 200
TITLE_TIMEOUT_MS = 1000
NEXT_CHAPTER_TIMEOUT_MS = 1000
CHAPTER_SETTLE_MS = 800
CHAPTER_EXTRA_SETTLE_MS = 500
RESET_ATTEMPTS = 3
RESET_KEY_WAIT_MS = 300
RESET_SELECT_WAIT_MS = 800
MAX_CHAPTERS = 200

PLAY_VISIBLE_TIMEOUT_MS = 500
PLAY_CLICK_TIMEOUT_MS = 1000
PLAY_TRIGGER_WAIT_MS = 1500

# =============================================================================
# BLOB FETCHER
# =============================================================================
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "60"))
FETCH_MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", "3"))
FETCH_RETRY_INITIAL_DELAY = 1.0
FETCH_RETRY_BACKOFF_MULTIPLIER = 2.0

# =============================================================================
# BROWSER
# =============================================================================
# Requires: pip install playwright && playwright install chromium
BROWSER_SESSIONS_DIR = DATA_DIR / "browser_sessions"   # Per-service cookie persistence
BROWSER_SERVICE_NAME = "blinkist"
BROWSER_VIEWPORT = {"width": 1280, "height": 900}

# =============================================================================
# RUN FLAGS (defaults; main.py flags override)
# =============================================================================
CHECKALL = _env_flag("CHECKALL", False)    # Rescan whole lists instead of stopping at the first known book
UPDATE = _env_flag("UPDATE", True)         # Sync the catalog from the library lists
DOWNLOAD = _env_flag("DOWNLOAD", True)     # Archive books that have no bundle yet
AUDIO = _env_flag("AUDIO", True)           # Download per-chapter audio
HEADLESS = _env_flag("HEADLESS", False)    # Human verification can't be solved headless

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = True
LOG_TO_CONSOLE = True
