"""Search orchestrator: one Google Flights query, step by step"""

import asyncio
import re
from typing import List, Optional, Tuple

from loguru import logger
from playwright.async_api import Error as PlaywrightError

from .artifacts import ArtifactStore
from .config import RESULTS_SIGNAL_TIMEOUT_MS
from .date_picker import select_dates
from .date_utils import parse_iso_date
from .exceptions import ExtractionError, StipendFlightsError
from .extractor import extract_flights
from .filters import apply_alliance_filters
from .inputs import set_location
from .locators import click_layered, first_visible, search_button_chain
from .models import FlightRecord, Query, SearchState

RESULTS_CONTAINER_SELECTORS = (
    '[role="main"]',
    'ul[role="list"] li',
    '[jsname="IWWDBc"]',
    'span[aria-label*="US dollars"]',
)
RESULTS_URL_PATTERN = re.compile(r"search|flights/search|results")
SUBMIT_BUTTON = 'button[type="submit"]'


class SearchOrchestrator:
    """
    Drives one query through the Google Flights UI on an already opened page.

    States advance INIT → ORIGIN_SET → DESTINATION_SET → DATES_SET →
    SUBMITTED → FILTERS_APPLIED → RESULTS_READY; any fatal step moves to
    FAILED and re-raises. Submit and filter problems are logged and the search
    continues, so only input, date and page errors are fatal.
    """

    def __init__(self, page, query: Query, artifacts: Optional[ArtifactStore] = None):
        self.page = page
        self.query = query.normalized()
        self.artifacts = artifacts
        self.filters_verified: Optional[bool] = None
        self.history: List[Tuple[SearchState, SearchState]] = []
        self._state = SearchState.INIT

    @property
    def state(self) -> SearchState:
        return self._state

    def _advance(self, new_state: SearchState) -> None:
        old_state = self._state
        self.history.append((old_state, new_state))
        self._state = new_state
        logger.debug(f"Search state: {old_state.value} → {new_state.value}")

    async def _set_dates(self) -> None:
        outbound = parse_iso_date(self.query.outbound_date)
        return_date = parse_iso_date(self.query.return_date) if self.query.return_date else None
        await select_dates(self.page, outbound, return_date)

    async def _wait_for_results(self) -> Optional[str]:
        """Race the completion signals; returns the winner's name or None on timeout"""
        page = self.page
        waits = {
            "navigation": page.wait_for_event("framenavigated", timeout=RESULTS_SIGNAL_TIMEOUT_MS),
            "url": page.wait_for_url(RESULTS_URL_PATTERN, timeout=RESULTS_SIGNAL_TIMEOUT_MS),
        }
        for selector in RESULTS_CONTAINER_SELECTORS:
            waits[selector] = page.wait_for_selector(selector, timeout=RESULTS_SIGNAL_TIMEOUT_MS)

        tasks = {asyncio.ensure_future(coro): name for name, coro in waits.items()}
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task.exception() is None:
                        return tasks[task]
            return None
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def _submit(self) -> None:
        tier = await search_button_chain().click(self.page)
        if tier is None:
            logger.warning("⚠️ Search button not found, pressing Enter")
            await self.page.keyboard.press("Enter")
        else:
            logger.debug(f"Search clicked ({tier})")

        submit = await first_visible(self.page, (SUBMIT_BUTTON,))
        if submit is not None:
            await click_layered(self.page, submit)

        signal = await self._wait_for_results()
        if signal:
            logger.info(f"Results signal: {signal}")
        else:
            logger.warning("⚠️ No results signal within timeout, continuing")

    async def _apply_filters(self) -> None:
        if self.query.include_budget:
            logger.info("Budget carriers included, skipping alliance filter")
            self.filters_verified = None
            return
        self.filters_verified = await apply_alliance_filters(self.page)

    async def _extract(self) -> List[FlightRecord]:
        html = await self.page.content()
        if not html or not html.strip():
            raise ExtractionError("Results page has no content")
        records = extract_flights(html)
        if self.artifacts is not None:
            await self.artifacts.screenshot(self.page, "results")
            await self.artifacts.save_html(html, "results")
            await self.artifacts.save_records(records)
        return records

    async def run(self) -> List[FlightRecord]:
        """
        Execute every step in order.

        Returns:
            Extracted flight records (possibly empty)

        Raises:
            LocationInputError, DateSelectionError, ExtractionError or a
            Playwright error when a step that the rest of the search depends
            on fails
        """
        q = self.query
        logger.info(f"🛫 Searching {q.origin} → {q.destination} ({q.outbound_date} / {q.return_date})")

        try:
            await set_location(self.page, "origin", q.origin)
            self._advance(SearchState.ORIGIN_SET)

            await set_location(self.page, "destination", q.destination)
            self._advance(SearchState.DESTINATION_SET)

            await self._set_dates()
            self._advance(SearchState.DATES_SET)

            await self._submit()
            self._advance(SearchState.SUBMITTED)

            await self._apply_filters()
            self._advance(SearchState.FILTERS_APPLIED)

            records = await self._extract()
            self._advance(SearchState.RESULTS_READY)
        except (StipendFlightsError, PlaywrightError, ValueError) as e:
            failed_at = self._state
            self._advance(SearchState.FAILED)
            logger.error(f"❌ Search failed after {failed_at.value}: {e}")
            if self.artifacts is not None:
                await self.artifacts.capture_failure(self.page, f"failed-{failed_at.value}")
            raise

        logger.success(f"✓ Search complete: {len(records)} flights")
        return records
