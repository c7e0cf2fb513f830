from datetime import date

import pytest

from stipend_flights.date_picker import MONTH_NAMES, parse_month_heading, select_date, select_dates
from stipend_flights.exceptions import DateSelectionError


@pytest.mark.parametrize(
    "text,expected",
    [
        ("March 2025", (2025, 3)),
        ("Sep 2026", (2026, 9)),
        ("  December 2024 ", (2024, 12)),
        ("Departure", None),
        ("Smarch 2025", None),
    ],
)
def test_parse_month_heading(text, expected):
    assert parse_month_heading(text) == expected


class FakeNode:
    def __init__(self, text="", on_click=None):
        self.text = text
        self.on_click = on_click
        self.clicked = 0

    async def is_visible(self):
        return True

    async def inner_text(self):
        return self.text

    async def click(self, **kwargs):
        self.clicked += 1
        if self.on_click:
            self.on_click()


class FakeKeyboard:
    def __init__(self):
        self.pressed = []

    async def press(self, key):
        self.pressed.append(key)


class FakeCalendarPage:
    """A calendar that shows one month at a time and pages on Next/Previous"""

    def __init__(self, year, month, with_done=True):
        self.year = year
        self.month = month
        self.with_done = with_done
        self.selected = []
        self.keyboard = FakeKeyboard()

    def _turn(self, step):
        index = self.year * 12 + (self.month - 1) + step
        self.year, self.month = divmod(index, 12)
        self.month += 1

    async def wait_for_timeout(self, ms):
        return None

    async def query_selector_all(self, selector):
        if selector.startswith("[data-iso="):
            iso = selector.split('"')[1]
            target = date.fromisoformat(iso)
            if (target.year, target.month) == (self.year, self.month):
                return [FakeNode(str(target.day), on_click=lambda: self.selected.append(iso))]
            return []
        if selector == 'div[role="heading"]':
            return [FakeNode(f"{MONTH_NAMES[self.month - 1]} {self.year}")]
        if selector == 'div[aria-label="Next month"]':
            return [FakeNode(on_click=lambda: self._turn(1))]
        if selector == 'div[aria-label="Previous month"]':
            return [FakeNode(on_click=lambda: self._turn(-1))]
        if selector == '[aria-label*="Departure"]':
            return [FakeNode("Departure")]
        if selector == 'button[aria-label*="Done"]' and self.with_done:
            return [FakeNode("Done")]
        return []


@pytest.mark.asyncio
async def test_select_date_in_current_month():
    page = FakeCalendarPage(2025, 3)
    await select_date(page, date(2025, 3, 10))
    assert page.selected == ["2025-03-10"]


@pytest.mark.asyncio
async def test_select_date_pages_forward_across_year():
    page = FakeCalendarPage(2024, 11)
    await select_date(page, date(2025, 2, 3))
    assert page.selected == ["2025-02-03"]
    assert (page.year, page.month) == (2025, 2)


@pytest.mark.asyncio
async def test_select_date_pages_backward():
    page = FakeCalendarPage(2025, 6)
    await select_date(page, date(2025, 4, 30))
    assert page.selected == ["2025-04-30"]


@pytest.mark.asyncio
async def test_select_date_too_far_raises():
    page = FakeCalendarPage(2025, 1)
    with pytest.raises(DateSelectionError):
        await select_date(page, date(2030, 1, 1))
    assert page.selected == []


@pytest.mark.asyncio
async def test_select_dates_round_trip():
    page = FakeCalendarPage(2025, 3)
    await select_dates(page, date(2025, 3, 30), date(2025, 4, 3))
    assert page.selected == ["2025-03-30", "2025-04-03"]
    assert page.keyboard.pressed == []


@pytest.mark.asyncio
async def test_missing_done_button_escapes():
    page = FakeCalendarPage(2025, 3, with_done=False)
    await select_dates(page, date(2025, 3, 10))
    assert page.keyboard.pressed == ["Escape"]
