"""Calendar widget: open, page through months, click day cells"""

import re
from datetime import date
from typing import Optional, Tuple

from loguru import logger

from .config import (
    CALENDAR_OPEN_DELAY_MS,
    MAX_MONTH_TURNS,
    MONTH_PAGE_DELAY_MS,
    RETURN_DATE_DELAY_MS,
)
from .exceptions import DateSelectionError
from .locators import LocatorChain, by_selectors, by_text, click_layered, first_visible

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
CALENDAR_OPENERS = ('[aria-label*="Departure"]', '[placeholder*="Departure"]')
MONTH_SECTION = 'div[role="rowgroup"]'
DAY_CELL = 'div[role="button"]'
MONTH_HEADING = 'div[role="heading"]'
MONTH_HEADING_PATTERN = re.compile(r"([A-Za-z]{3,9})\s+(\d{4})")
DONE_SELECTORS = (
    'button[aria-label*="Done"]',
    'div[role="dialog"] button[jsname="McfNlf"]',
)
DONE_TEXT = re.compile(r"\bdone\b", re.IGNORECASE)


def parse_month_heading(text: str) -> Optional[Tuple[int, int]]:
    """'March 2025' -> (2025, 3); None when the text holds no month heading"""
    match = MONTH_HEADING_PATTERN.search(text)
    if not match:
        return None
    word = match.group(1).lower()
    for index, name in enumerate(MONTH_NAMES, start=1):
        if name.lower().startswith(word):
            return int(match.group(2)), index
    return None


async def displayed_month(page) -> Optional[Tuple[int, int]]:
    """(year, month) of the first month shown by the calendar"""
    for heading in await page.query_selector_all(MONTH_HEADING):
        parsed = parse_month_heading(await heading.inner_text())
        if parsed:
            return parsed
    return None


def _day_in_sections(target: date):
    month_name = MONTH_NAMES[target.month - 1]
    day_text = str(target.day)

    async def find(page):
        for section in await page.query_selector_all(MONTH_SECTION):
            text = (await section.inner_text()).strip()
            header = text.splitlines()[0] if text else ""
            if month_name not in header:
                continue
            years = re.findall(r"\b\d{4}\b", header)
            if years and str(target.year) not in years:
                continue
            for cell in await section.query_selector_all(DAY_CELL):
                label = await cell.query_selector("div")
                if label is None:
                    continue
                if (await label.inner_text()).strip() == day_text:
                    return cell
        return None

    return "month sections", find


def day_cell_chain(target: date) -> LocatorChain:
    month_name = MONTH_NAMES[target.month - 1]
    return LocatorChain(
        f"day {target.isoformat()}",
        [
            by_selectors(
                (
                    f'[data-iso="{target.isoformat()}"] {DAY_CELL}',
                    f'{DAY_CELL}[data-iso="{target.isoformat()}"]',
                    f'{DAY_CELL}[aria-label*="{month_name} {target.day}, {target.year}"]',
                )
            ),
            _day_in_sections(target),
        ],
        warn=False,
    )


async def open_calendar(page) -> None:
    opener = await first_visible(page, CALENDAR_OPENERS)
    if opener is None:
        raise DateSelectionError("Departure date field not found")
    if await click_layered(page, opener) is None:
        raise DateSelectionError("Could not open the calendar")
    await page.wait_for_timeout(CALENDAR_OPEN_DELAY_MS)


async def select_date(page, target: date) -> None:
    """
    Click the day cell for target, paging the calendar when needed.

    Raises:
        DateSelectionError: If the day is still not clickable after
            MAX_MONTH_TURNS page turns
    """
    chain = day_cell_chain(target)
    wanted = (target.year, target.month)

    for turn in range(MAX_MONTH_TURNS + 1):
        cell = await chain.resolve(page)
        if cell is not None and await click_layered(page, cell):
            logger.success(f"✓ Selected {target.isoformat()} (after {turn} page turns)")
            return

        if turn == MAX_MONTH_TURNS:
            break

        current = await displayed_month(page)
        direction = "Previous month" if current is not None and current > wanted else "Next month"
        button = await first_visible(
            page,
            (
                f'div[aria-label="{direction}"]',
                f'button[aria-label="{direction}"]',
                f'[role="button"][aria-label="{direction}"]',
            ),
        )
        if button is None:
            logger.warning(f"⚠️ '{direction}' button not found")
            break
        logger.debug(f"Calendar at {current}, paging: {direction}")
        await click_layered(page, button)
        await page.wait_for_timeout(MONTH_PAGE_DELAY_MS)

    raise DateSelectionError(f"Could not select {target.isoformat()} in the calendar")


async def click_done(page) -> bool:
    chain = LocatorChain("done button", [by_selectors(DONE_SELECTORS), by_text(DONE_TEXT)])
    tier = await chain.click(page)
    if tier is None:
        await page.keyboard.press("Escape")
        return False
    return True


async def select_dates(page, outbound: date, return_date: Optional[date] = None) -> None:
    """Pick departure (and return) dates, then close the picker"""
    logger.info(f"Selecting dates: {outbound.isoformat()} → {return_date.isoformat() if return_date else 'one-way'}")
    await open_calendar(page)
    await select_date(page, outbound)
    if return_date is not None:
        await page.wait_for_timeout(RETURN_DATE_DELAY_MS)
        await select_date(page, return_date)
    if not await click_done(page):
        logger.warning("⚠️ Done button not found, dismissed calendar with Escape")
