"""Browser session controller: one Camoufox page per query"""

from contextlib import AsyncExitStack
from typing import Optional

from camoufox.async_api import AsyncCamoufox
from loguru import logger

from .config import BROWSER_LOCALE, NAVIGATION_TIMEOUT_MS, VIEWPORT
from .exceptions import BrowserLaunchError


class BrowserSession:
    """
    Owns the browser process and the single page a search runs on.

    Use as an async context manager; the browser is closed on every exit
    path, including exceptions raised inside the block:

        async with BrowserSession(headless=True) as session:
            page = await session.new_page()
            await session.navigate(GOOGLE_FLIGHTS_URL)
    """

    def __init__(
        self,
        headless: bool = True,
        viewport: Optional[dict] = None,
        locale: str = BROWSER_LOCALE,
    ):
        self.headless = headless
        self.viewport = viewport or dict(VIEWPORT)
        self.locale = locale
        self.browser = None
        self.page = None
        self._stack: Optional[AsyncExitStack] = None

    async def __aenter__(self) -> "BrowserSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def open(self) -> None:
        """Launch the browser; failures raise BrowserLaunchError"""
        if self.browser is not None:
            return
        stack = AsyncExitStack()
        try:
            logger.info(f"🦊 Launching browser (headless={self.headless})")
            self.browser = await stack.enter_async_context(
                AsyncCamoufox(headless=self.headless)
            )
        except Exception as e:
            await stack.aclose()
            self.browser = None
            raise BrowserLaunchError(f"Failed to launch browser: {e}") from e
        self._stack = stack

    async def new_page(self):
        """The session's page, created on first use"""
        if self.browser is None:
            raise BrowserLaunchError("Browser session is not open")
        if self.page is None:
            self.page = await self.browser.new_page(
                viewport=self.viewport, locale=self.locale
            )
            logger.debug(
                f"New page {self.viewport['width']}x{self.viewport['height']} ({self.locale})"
            )
        return self.page

    async def navigate(
        self,
        url: str,
        wait_until: str = "networkidle",
        timeout_ms: int = NAVIGATION_TIMEOUT_MS,
    ):
        page = await self.new_page()
        logger.info(f"Navigating to {url}")
        return await page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def close(self) -> None:
        """Close page and browser; safe to call more than once"""
        stack, self._stack = self._stack, None
        page, self.page = self.page, None
        self.browser = None

        if page is not None:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Page close failed: {e}")
        if stack is not None:
            try:
                await stack.aclose()
                logger.debug("Browser closed")
            except Exception as e:
                logger.warning(f"⚠️ Browser close failed: {e}")
