"""Origin / destination text inputs"""

import re

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from loguru import logger

from .config import ORIGIN_FIELD_TIMEOUT_MS, SUGGESTIONS_TIMEOUT_MS, TYPE_DELAY_MS
from .exceptions import LocationInputError
from .locators import LocatorChain, by_nth, by_selectors, by_text

ORIGIN_SELECTORS = (
    '[aria-label^="Where from?"]',
    'input[placeholder="Where from?"]',
    '[data-placeholder="Where from?"]',
    'input[aria-label*="Origin"]',
    '[role="combobox"][aria-label*="Origin"]',
)
DESTINATION_SELECTORS = (
    '[placeholder="Where to?"]',
    '[aria-label="Where to? "]',
    '[aria-label^="Where to?"]',
    '[data-placeholder="Where to?"]',
    'input[aria-label*="Destination"]',
    '[role="combobox"][aria-label*="Destination"]',
)
TEXT_FIELDS = 'input, [role="combobox"], [contenteditable="true"]'
ORIGIN_LABEL = re.compile(r"where from|origin|departure", re.IGNORECASE)
DESTINATION_LABEL = re.compile(r"where to|destination|arrival", re.IGNORECASE)
SUGGESTION_SELECTOR = '[role="listbox"], [role="option"], .suggestions-list'
BACKSPACE_REPEAT = 20

_VALUE_JS = "el => ((el.value !== undefined ? el.value : el.textContent) || '').trim()"
_ASSIGN_EMPTY_JS = """
el => {
    if (el.isContentEditable) {
        el.textContent = '';
    } else {
        el.value = '';
    }
    el.dispatchEvent(new Event('input', {bubbles: true}));
}
"""


async def _assign_empty(page, element):
    await element.evaluate(_ASSIGN_EMPTY_JS)


async def _triple_click_delete(page, element):
    await element.click(click_count=3)
    await page.keyboard.press("Backspace")


async def _select_all_delete(page, element):
    await element.focus()
    await page.keyboard.press("Control+A")
    await page.keyboard.press("Backspace")


async def _repeat_backspace(page, element):
    await element.focus()
    for _ in range(BACKSPACE_REPEAT):
        await page.keyboard.press("Backspace")


CLEAR_METHODS = (
    ("value assignment", _assign_empty),
    ("triple-click", _triple_click_delete),
    ("select-all", _select_all_delete),
    ("backspace", _repeat_backspace),
)


async def input_value(element) -> str:
    return await element.evaluate(_VALUE_JS)


async def clear_input(page, element) -> bool:
    """
    Empty a text field, escalating through CLEAR_METHODS until it reads empty.

    Returns:
        True once the field is empty, False if every method left text behind
    """
    for name, method in CLEAR_METHODS:
        try:
            await method(page, element)
            if await input_value(element) == "":
                logger.debug(f"Input cleared by {name}")
                return True
        except PlaywrightError as e:
            logger.debug(f"Clear by {name} failed: {e}")
    logger.warning("⚠️ Input still has text after every clear method")
    return False


async def wait_for_suggestions(page, timeout_ms: int = SUGGESTIONS_TIMEOUT_MS) -> bool:
    try:
        await page.wait_for_selector(SUGGESTION_SELECTOR, timeout=timeout_ms, state="visible")
        return True
    except PlaywrightTimeoutError:
        return False


def location_chain(field: str) -> LocatorChain:
    """Selectors, then a label match, then the first (origin) or second text field"""
    if field == "origin":
        selectors, label, position = ORIGIN_SELECTORS, ORIGIN_LABEL, 0
    else:
        selectors, label, position = DESTINATION_SELECTORS, DESTINATION_LABEL, 1
    return LocatorChain(
        f"{field} field",
        [
            by_selectors(selectors),
            by_text(label, candidates=TEXT_FIELDS),
            by_nth(TEXT_FIELDS, position),
        ],
    )


async def set_location(page, field: str, text: str) -> None:
    """
    Type a city into the origin or destination box and commit it.

    Args:
        page: Playwright page on Google Flights
        field: "origin" or "destination"
        text: City name; commas are dropped before typing

    Raises:
        LocationInputError: If no strategy finds the field or it cannot be typed into
    """
    selectors = ORIGIN_SELECTORS if field == "origin" else DESTINATION_SELECTORS
    value = " ".join(text.replace(",", " ").split())
    logger.info(f"Setting {field}: {value}")

    try:
        await page.wait_for_selector(
            ", ".join(selectors), timeout=ORIGIN_FIELD_TIMEOUT_MS, state="visible"
        )
    except PlaywrightTimeoutError:
        logger.warning(f"⚠️ Known {field} selectors did not appear, trying fallbacks")

    chain = location_chain(field)
    element = await chain.resolve(page)
    if element is None:
        raise LocationInputError(f"{field} field not found")

    try:
        await element.click()
        await clear_input(page, element)
        await page.keyboard.type(value, delay=TYPE_DELAY_MS)
    except PlaywrightError as e:
        raise LocationInputError(f"Could not type {field} '{value}': {e}") from e

    if await wait_for_suggestions(page):
        logger.debug(f"Suggestions shown for {value!r}")
    else:
        logger.warning(f"⚠️ No suggestion list for {field} {value!r}, committing anyway")

    await page.keyboard.press("Enter")
    await page.wait_for_timeout(500)
    logger.success(f"✓ {field.capitalize()} set: {value}")
