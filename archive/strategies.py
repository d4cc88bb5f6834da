"""
Library Mirror - Recognition Strategies

The site's markup changes often. Instead of one hard-coded selector per
page region, each region has an ordered chain of strategies; the first
one that shows up within its timeout wins. New guesses are added to a
chain without touching the code that uses it.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from core.logger import log_info, log_detail

import config


@dataclass(frozen=True)
class RecognitionStrategy:
    """
    One way of finding a page region.

    Attributes:
        selector: Playwright selector for the region
        timeout_ms: How long to wait for it to become visible
        pick: "first" or "last" match when the selector is ambiguous
    """
    selector: str
    timeout_ms: int = config.STRATEGY_TIMEOUT_MS
    pick: str = "first"

    def target(self, session):
        """Locator for the element this strategy points at."""
        locator = session.locate(self.selector)
        return locator.last if self.pick == "last" else locator.first


@dataclass
class Recognition:
    """Result of a successful strategy: which one matched and its locator."""
    strategy: RecognitionStrategy
    locator: object

    @property
    def selector(self) -> str:
        return self.strategy.selector


# Details panel on the book page (categories, long description, author bio).
# The panel is the last matching container on the page.
DETAILS_STRATEGIES = (
    RecognitionStrategy('div:has(h4)', pick="last"),
    RecognitionStrategy('[data-test-id="book-details"]', pick="last"),
    RecognitionStrategy('section:has(h4)', pick="last"),
    RecognitionStrategy('div[class*="details"]', pick="last"),
)

# Chapter text in the reader
READER_STRATEGIES = (
    RecognitionStrategy('.reader-content__text'),
    RecognitionStrategy('[class*="reader-content"]'),
    RecognitionStrategy('[class*="ReaderContent"]'),
    RecognitionStrategy('article'),
    RecognitionStrategy('[data-test-id*="reader"]'),
)

# Play controls, tried in order to make the player request its audio
PLAY_CONTROL_SELECTORS = (
    'button[aria-label*="Play"]',
    'button[aria-label*="Abspielen"]',
    '[data-test-id*="play"]',
    'button:has([data-icon="play"])',
)


async def recognize(
    session,
    strategies: Sequence[RecognitionStrategy],
    label: str
) -> Optional[Recognition]:
    """
    Try each strategy in order until one becomes visible.

    Args:
        session: BrowserSession (or anything with locate())
        strategies: Ordered strategy chain
        label: Name of the region, for logging

    Returns:
        The first successful Recognition, or None if every strategy failed
    """
    for strategy in strategies:
        locator = strategy.target(session)
        try:
            await locator.wait_for(timeout=strategy.timeout_ms)
        except PlaywrightError:
            log_detail(f"No {label} with selector: {strategy.selector}")
            continue

        log_info(f"Found {label} with selector: {strategy.selector}")
        return Recognition(strategy=strategy, locator=locator)

    return None
