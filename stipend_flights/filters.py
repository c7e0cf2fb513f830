"""Airline-alliance filter on the results page"""

import re
from typing import List

from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import (
    FILTER_BACKOFF_MULTIPLIER,
    FILTER_INITIAL_BACKOFF,
    FILTER_MAX_ATTEMPTS,
    FILTER_MAX_BACKOFF,
    FILTER_OPTIONS_TIMEOUT_MS,
    FILTER_RELOAD_AFTER,
    NAVIGATION_TIMEOUT_MS,
    PROGRESS_APPEAR_TIMEOUT_MS,
    PROGRESS_SETTLE_TIMEOUT_MS,
)
from .exceptions import ElementNotFoundError, FilterVerificationError, StipendFlightsError
from .locators import LocatorChain, by_selectors, by_text, click_layered
from .retry import retry_with_backoff

FILTER_BUTTON_SELECTORS = (
    'div[jscontroller="aDULAf"][data-chiptype="1"][data-filtertype="6"] button',
    'button[aria-label="Airlines, Not selected"]',
    ".wpMGDb.Vz4hIc.cwYgqc button",
)
ALLIANCES = ("Oneworld", "SkyTeam", "Star Alliance")
OPTIONS_SELECTOR = 'input[type="checkbox"], [role="checkbox"], :text-is("Alliances")'
ANY_CHECKBOX = 'input[type="checkbox"], [role="checkbox"]'
PROGRESS_BAR = '[role="progressbar"]'
APPLIED_CHIP_SELECTORS = (
    '[data-filtertype="6"] [aria-pressed="true"]',
    '[data-filtertype="6"][aria-pressed="true"]',
    '[data-filtertype="6"] [aria-selected="true"]',
)
UNSELECTED_CHIP = 'button[aria-label="Airlines, Not selected"]'


def filter_button_chain() -> LocatorChain:
    return LocatorChain(
        "airlines filter",
        [
            by_selectors(FILTER_BUTTON_SELECTORS),
            by_text(re.compile(r"airline", re.IGNORECASE)),
        ],
    )


def _alliance_selectors(name: str) -> List[str]:
    return [
        f'[role="checkbox"][aria-label*="{name}"]',
        f'input[type="checkbox"][aria-label*="{name}"]',
        f'label:has-text("{name}") input[type="checkbox"]',
    ]


async def alliance_checkboxes(page) -> list:
    found = []
    for name in ALLIANCES:
        for selector in _alliance_selectors(name):
            matches = await page.query_selector_all(selector)
            if matches:
                found.extend(matches)
                break
    return found


async def _open_filter_panel(page) -> None:
    if await filter_button_chain().click(page) is None:
        raise ElementNotFoundError("airlines filter")
    try:
        await page.wait_for_selector(OPTIONS_SELECTOR, timeout=FILTER_OPTIONS_TIMEOUT_MS)
    except PlaywrightTimeoutError as e:
        raise FilterVerificationError("Filter options did not render") from e


async def _check_boxes(page) -> int:
    """Check alliance boxes, or every box on the panel when none are labelled"""
    boxes = await alliance_checkboxes(page)
    if not boxes:
        logger.debug("No alliance checkboxes, checking every checkbox on the panel")
        boxes = await page.query_selector_all(ANY_CHECKBOX)

    clicked = 0
    for box in boxes:
        try:
            if await box.is_checked():
                continue
        except PlaywrightError:
            pass
        if await click_layered(page, box):
            clicked += 1
    logger.debug(f"Checked {clicked} of {len(boxes)} filter boxes")
    return clicked


async def wait_for_results_refresh(page) -> None:
    """Let the progress bar appear and settle; both waits are optional"""
    try:
        await page.wait_for_selector(PROGRESS_BAR, state="visible", timeout=PROGRESS_APPEAR_TIMEOUT_MS)
        await page.wait_for_selector(PROGRESS_BAR, state="hidden", timeout=PROGRESS_SETTLE_TIMEOUT_MS)
    except PlaywrightTimeoutError:
        logger.debug("Progress bar did not cycle, continuing")
    await page.wait_for_timeout(2000)


async def verify_alliance_filter(page) -> bool:
    """True when the DOM shows an active alliance/airline filter"""
    for box in await alliance_checkboxes(page):
        try:
            if await box.is_checked():
                return True
        except PlaywrightError:
            continue
    for selector in APPLIED_CHIP_SELECTORS:
        if await page.query_selector(selector) is not None:
            return True
    chip = await page.query_selector('[data-filtertype="6"]')
    unselected = await page.query_selector(UNSELECTED_CHIP)
    return chip is not None and unselected is None


async def _apply_once(page) -> None:
    await _open_filter_panel(page)
    await _check_boxes(page)
    await wait_for_results_refresh(page)
    if not await verify_alliance_filter(page):
        raise FilterVerificationError("Alliance filter not shown as applied")
    await page.keyboard.press("Escape")


async def apply_alliance_filters(page) -> bool:
    """
    Restrict results to alliance carriers, verifying the filter took effect.

    Each attempt opens the airlines panel, checks the alliance boxes, waits for
    the results to refresh and inspects the DOM. Failed attempts are retried
    with backoff, reloading the page once FILTER_RELOAD_AFTER attempts have
    failed.

    Returns:
        True if verified, False when every attempt failed (search continues
        without the filter)
    """

    async def before_retry(attempt: int, error: Exception) -> None:
        if attempt >= FILTER_RELOAD_AFTER:
            logger.info(f"🔄 Reloading results page before filter attempt {attempt + 1}")
            try:
                await page.reload(wait_until="networkidle", timeout=NAVIGATION_TIMEOUT_MS)
            except PlaywrightError as e:
                logger.warning(f"⚠️ Reload failed: {e}")

    try:
        await retry_with_backoff(
            _apply_once,
            page,
            max_retries=FILTER_MAX_ATTEMPTS - 1,
            initial_backoff=FILTER_INITIAL_BACKOFF,
            max_backoff=FILTER_MAX_BACKOFF,
            backoff_multiplier=FILTER_BACKOFF_MULTIPLIER,
            jitter=None,
            retry_on=(StipendFlightsError, PlaywrightError),
            on_retry=before_retry,
        )
    except (StipendFlightsError, PlaywrightError) as e:
        logger.warning(f"⚠️ Alliance filter not applied, continuing unfiltered: {e}")
        return False

    logger.success("✓ Alliance filter applied")
    return True
