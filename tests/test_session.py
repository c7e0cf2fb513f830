import pytest

import stipend_flights.session as session_module
from stipend_flights.exceptions import BrowserLaunchError
from stipend_flights.session import BrowserSession


class FakePage:
    def __init__(self):
        self.visited = []
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append((url, wait_until))
        return "response"

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self):
        self.pages = []

    async def new_page(self, viewport=None, locale=None):
        page = FakePage()
        page.viewport = viewport
        page.locale = locale
        self.pages.append(page)
        return page


class FakeCamoufox:
    instances = []

    def __init__(self, headless=True, **kwargs):
        self.headless = headless
        self.browser = FakeBrowser()
        self.exited = False
        FakeCamoufox.instances.append(self)

    async def __aenter__(self):
        return self.browser

    async def __aexit__(self, exc_type, exc, tb):
        self.exited = True
        return False


class BrokenCamoufox(FakeCamoufox):
    async def __aenter__(self):
        raise RuntimeError("no display")


@pytest.fixture(autouse=True)
def fake_camoufox(monkeypatch):
    FakeCamoufox.instances = []
    monkeypatch.setattr(session_module, "AsyncCamoufox", FakeCamoufox)


@pytest.mark.asyncio
async def test_session_reuses_one_page_and_closes():
    async with BrowserSession(headless=True) as session:
        page = await session.new_page()
        assert await session.new_page() is page
        assert await session.navigate("https://www.google.com/travel/flights") == "response"

    camoufox = FakeCamoufox.instances[0]
    assert camoufox.headless is True
    assert camoufox.exited is True
    assert page.closed is True
    assert page.visited == [("https://www.google.com/travel/flights", "networkidle")]
    assert page.viewport["width"] > 0


@pytest.mark.asyncio
async def test_browser_closed_when_block_raises():
    with pytest.raises(ValueError):
        async with BrowserSession() as session:
            await session.new_page()
            raise ValueError("search step failed")
    assert FakeCamoufox.instances[0].exited is True


@pytest.mark.asyncio
async def test_close_is_idempotent():
    session = BrowserSession()
    await session.open()
    await session.close()
    await session.close()
    assert session.browser is None


@pytest.mark.asyncio
async def test_launch_failure(monkeypatch):
    monkeypatch.setattr(session_module, "AsyncCamoufox", BrokenCamoufox)
    with pytest.raises(BrowserLaunchError):
        async with BrowserSession():
            pass


@pytest.mark.asyncio
async def test_new_page_requires_open_session():
    with pytest.raises(BrowserLaunchError):
        await BrowserSession().new_page()
