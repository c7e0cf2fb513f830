import datetime
from pathlib import Path

import pytest

import stipend_flights.search as search
from stipend_flights.artifacts import ArtifactStore
from stipend_flights.exceptions import DateSelectionError, ExtractionError, LocationInputError
from stipend_flights.models import FlightRecord, Query, SearchState

QUERY = Query("Seoul, South Korea", "Tokyo", "2025-03-10", "2025-03-15")


class FakeKeyboard:
    def __init__(self):
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)


class FakePage:
    def __init__(self, html="<html><body></body></html>"):
        self.html = html
        self.keyboard = FakeKeyboard()
        self.screenshots = []

    async def content(self):
        return self.html

    async def screenshot(self, path, full_page=True):
        self.screenshots.append(path)
        Path(path).write_bytes(b"png")


class FakeChain:
    def __init__(self, tier):
        self.tier = tier

    async def click(self, page):
        return self.tier


@pytest.fixture
def steps(monkeypatch):
    """Replace every browser step with a recording fake"""
    calls = []

    async def fake_set_location(page, field, city):
        calls.append(("location", field, city))

    async def fake_select_dates(page, outbound, return_date):
        calls.append(("dates", outbound, return_date))

    async def fake_filters(page):
        calls.append(("filters",))
        return True

    async def fake_wait(self):
        calls.append(("wait",))
        return "url"

    async def no_submit_button(page, selectors):
        return None

    monkeypatch.setattr(search, "set_location", fake_set_location)
    monkeypatch.setattr(search, "select_dates", fake_select_dates)
    monkeypatch.setattr(search, "apply_alliance_filters", fake_filters)
    monkeypatch.setattr(search, "search_button_chain", lambda: FakeChain("native"))
    monkeypatch.setattr(search, "first_visible", no_submit_button)
    monkeypatch.setattr(search.SearchOrchestrator, "_wait_for_results", fake_wait)
    monkeypatch.setattr(search, "extract_flights", lambda html: [FlightRecord(price=300, is_top_flight=True)])
    return calls


@pytest.mark.asyncio
async def test_full_run_walks_every_state(steps):
    orchestrator = search.SearchOrchestrator(FakePage(), QUERY)
    records = await orchestrator.run()

    assert [r.price for r in records] == [300]
    assert orchestrator.state == SearchState.RESULTS_READY
    assert [new for _, new in orchestrator.history] == [
        SearchState.ORIGIN_SET,
        SearchState.DESTINATION_SET,
        SearchState.DATES_SET,
        SearchState.SUBMITTED,
        SearchState.FILTERS_APPLIED,
        SearchState.RESULTS_READY,
    ]
    assert orchestrator.filters_verified is True
    assert steps[0] == ("location", "origin", "Seoul South Korea")
    assert steps[1] == ("location", "destination", "Tokyo")
    assert steps[2] == ("dates", datetime.date(2025, 3, 10), datetime.date(2025, 3, 15))


@pytest.mark.asyncio
async def test_budget_search_skips_alliance_filter(steps):
    query = Query("Seoul", "Tokyo", "2025-03-10", "2025-03-15", include_budget=True)
    orchestrator = search.SearchOrchestrator(FakePage(), query)
    await orchestrator.run()

    assert ("filters",) not in steps
    assert orchestrator.filters_verified is None
    assert orchestrator.state == SearchState.RESULTS_READY


@pytest.mark.asyncio
async def test_missing_search_button_presses_enter(steps, monkeypatch):
    monkeypatch.setattr(search, "search_button_chain", lambda: FakeChain(None))
    page = FakePage()
    await search.SearchOrchestrator(page, QUERY).run()
    assert page.keyboard.pressed == ["Enter"]


@pytest.mark.asyncio
async def test_unapplied_filter_is_not_fatal(steps, monkeypatch):
    async def filter_fails(page):
        return False

    monkeypatch.setattr(search, "apply_alliance_filters", filter_fails)
    orchestrator = search.SearchOrchestrator(FakePage(), QUERY)
    await orchestrator.run()
    assert orchestrator.filters_verified is False
    assert orchestrator.state == SearchState.RESULTS_READY


@pytest.mark.asyncio
async def test_location_error_fails_search(steps, monkeypatch, tmp_path: Path):
    async def bad_destination(page, field, city):
        if field == "destination":
            raise LocationInputError("no suggestion for Tokyo")

    monkeypatch.setattr(search, "set_location", bad_destination)
    page = FakePage()
    artifacts = ArtifactStore(tmp_path, QUERY)
    orchestrator = search.SearchOrchestrator(page, QUERY, artifacts)

    with pytest.raises(LocationInputError):
        await orchestrator.run()

    assert orchestrator.state == SearchState.FAILED
    assert orchestrator.history[-1] == (SearchState.ORIGIN_SET, SearchState.FAILED)
    assert len(page.screenshots) == 1
    assert "failed-origin-set" in page.screenshots[0]
    assert list(tmp_path.glob("*failed-origin-set.html"))


@pytest.mark.asyncio
async def test_date_error_fails_search(steps, monkeypatch):
    async def bad_dates(page, outbound, return_date):
        raise DateSelectionError("March 2025 never appeared")

    monkeypatch.setattr(search, "select_dates", bad_dates)
    orchestrator = search.SearchOrchestrator(FakePage(), QUERY)
    with pytest.raises(DateSelectionError):
        await orchestrator.run()
    assert orchestrator.history[-1] == (SearchState.DESTINATION_SET, SearchState.FAILED)


@pytest.mark.asyncio
async def test_results_are_saved_as_artifacts(steps, tmp_path: Path):
    page = FakePage()
    await search.SearchOrchestrator(page, QUERY, ArtifactStore(tmp_path, QUERY)).run()
    assert len(page.screenshots) == 1
    assert list(tmp_path.glob("*_results.html"))
    assert list(tmp_path.glob("*_flights.json"))


@pytest.mark.asyncio
async def test_blank_results_page_fails_search(steps):
    orchestrator = search.SearchOrchestrator(FakePage(html="  "), QUERY)
    with pytest.raises(ExtractionError):
        await orchestrator.run()
    assert orchestrator.history[-1] == (SearchState.FILTERS_APPLIED, SearchState.FAILED)


@pytest.mark.asyncio
async def test_unwritable_artifact_dir_keeps_records(steps, monkeypatch, tmp_path: Path):
    monkeypatch.setattr(search, "extract_flights", lambda html: [FlightRecord(price=500, is_top_flight=True)])
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    page = FakePage()
    orchestrator = search.SearchOrchestrator(page, QUERY, ArtifactStore(blocker / "d", QUERY))

    records = await orchestrator.run()

    assert [r.price for r in records] == [500]
    assert orchestrator.state == SearchState.RESULTS_READY
    assert page.screenshots == []
