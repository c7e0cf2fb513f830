"""Locator strategy chains and layered click execution"""

import re
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Pattern, Sequence, Tuple

from loguru import logger

from .config import CLICK_DELAY_MS
from .exceptions import ElementNotFoundError

StrategyFunc = Callable[[Any], Awaitable[Optional[Any]]]
Strategy = Tuple[str, StrategyFunc]

CLICKABLE = 'button, [role="button"]'
POSITIONAL_CANDIDATES = 'button, [role="button"], a[href], [tabindex="0"]'

SEARCH_BUTTON_SELECTORS = (
    'button[jsname="vLv7Lb"]',
    'button[jsname="c6xFrd"]',
    'button[jscontroller="soHxf"]',
    "button.gws-flights__search-button",
    "button.gws-flights-form__search-button",
    'div[role="button"][jsname="vLv7Lb"]',
    'button[aria-label*="Search"]',
    "button.VfPpkd-LgbsSe",
    '[role="button"][aria-label*="Search"]',
    '[jsaction*="search"]',
    '[data-flt-ve="search_button"]',
)
# "go" must be a whole word so that e.g. "Google apps" does not qualify
SEARCH_SYNONYMS = re.compile(r"search|find|\bgo\b", re.IGNORECASE)

# Fires on the element, then on an enclosing or nested button when that is a
# different node, then submits an enclosing form.
_DISPATCH_CLICK_JS = """
el => {
    const fire = (target) => target && target.dispatchEvent(
        new MouseEvent('click', {bubbles: true, cancelable: true, view: window}));
    el.click();
    const parent = el.parentElement && el.parentElement.closest('button');
    const child = el.querySelector('button');
    if (parent && parent !== el) fire(parent);
    if (child && child !== el) fire(child);
    const form = el.closest('form');
    if (form) {
        if (form.requestSubmit) form.requestSubmit(); else form.submit();
    }
    return true;
}
"""


async def _safe_visible(element) -> bool:
    try:
        return await element.is_visible()
    except Exception:
        return False


async def first_visible(page, selectors: Iterable[str]):
    """First visible element matching any selector, in selector order"""
    for selector in selectors:
        try:
            elements = await page.query_selector_all(selector)
        except Exception as e:
            logger.debug(f"Selector {selector!r} failed: {e}")
            continue
        for element in elements:
            if await _safe_visible(element):
                logger.debug(f"Matched selector {selector!r}")
                return element
    return None


async def element_label(element) -> str:
    """Visible text plus aria-label, for text matching"""
    text = ""
    label = ""
    try:
        text = await element.inner_text() or ""
    except Exception:
        pass
    try:
        label = await element.get_attribute("aria-label") or ""
    except Exception:
        pass
    return f"{text} {label}".strip()


def by_selectors(selectors: Sequence[str]) -> Strategy:
    async def find(page):
        return await first_visible(page, selectors)

    return "selectors", find


def by_text(pattern: Pattern, candidates: str = CLICKABLE) -> Strategy:
    """Case-insensitive match of text or aria-label against button-like elements"""

    async def find(page):
        for element in await page.query_selector_all(candidates):
            if not await _safe_visible(element):
                continue
            label = await element_label(element)
            if label and pattern.search(label):
                logger.debug(f"Text match: {label[:60]!r}")
                return element
        return None

    return "text", find


def by_position(candidates: str = POSITIONAL_CANDIDATES) -> Strategy:
    """Visible element whose center is closest to the viewport's bottom-right corner"""

    async def find(page):
        viewport = page.viewport_size or {"width": 1280, "height": 800}
        corner_x, corner_y = viewport["width"], viewport["height"]
        best = None
        best_distance = None
        for element in await page.query_selector_all(candidates):
            if not await _safe_visible(element):
                continue
            box = await element.bounding_box()
            if not box or box["width"] <= 0 or box["height"] <= 0:
                continue
            cx = box["x"] + box["width"] / 2
            cy = box["y"] + box["height"] / 2
            distance = (corner_x - cx) ** 2 + (corner_y - cy) ** 2
            if best_distance is None or distance < best_distance:
                best, best_distance = element, distance
        return best

    return "position", find


def by_nth(candidates: str, index: int) -> Strategy:
    """The index-th visible element matching candidates, in document order"""

    async def find(page):
        visible = [e for e in await page.query_selector_all(candidates) if await _safe_visible(e)]
        if len(visible) > index:
            logger.debug(f"Positional match: element {index + 1} of {len(visible)}")
            return visible[index]
        return None

    return "nth", find


class LocatorChain:
    """
    Ordered strategies for one logical control.

    Strategies run in the given order and the first non-None element wins. A
    strategy that raises counts as "not found".
    """

    def __init__(self, target: str, strategies: Sequence[Strategy], warn: bool = True):
        self.target = target
        self.strategies: List[Strategy] = list(strategies)
        self.warn = warn
        self.last_strategy: Optional[str] = None

    async def resolve(self, page):
        self.last_strategy = None
        for name, find in self.strategies:
            try:
                element = await find(page)
            except Exception as e:
                logger.debug(f"[{self.target}] strategy '{name}' raised: {e}")
                continue
            if element is not None:
                self.last_strategy = name
                logger.debug(f"[{self.target}] resolved by '{name}'")
                return element
        if self.warn:
            logger.warning(f"⚠️ [{self.target}] no strategy matched")
        else:
            logger.debug(f"[{self.target}] no strategy matched")
        return None

    async def require(self, page):
        element = await self.resolve(page)
        if element is None:
            raise ElementNotFoundError(self.target)
        return element

    async def click(self, page) -> Optional[str]:
        """Resolve and click; returns the click tier used or None"""
        element = await self.resolve(page)
        if element is None:
            return None
        return await click_layered(page, element)


async def click_layered(page, element) -> Optional[str]:
    """
    Click an element, escalating only when the previous tier fails:
    native click, synthetic DOM dispatch, raw mouse click at the box center.

    Returns:
        "native", "dispatch", "mouse", or None when every tier failed
    """
    try:
        await element.click(delay=CLICK_DELAY_MS, timeout=5000)
        return "native"
    except Exception as e:
        logger.debug(f"Native click failed: {e}")

    try:
        await element.evaluate(_DISPATCH_CLICK_JS)
        return "dispatch"
    except Exception as e:
        logger.debug(f"Dispatched click failed: {e}")

    try:
        box = await element.bounding_box()
        if box:
            await page.mouse.click(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)
            return "mouse"
    except Exception as e:
        logger.debug(f"Mouse click failed: {e}")

    logger.warning("⚠️ All click tiers failed")
    return None


def search_button_chain() -> LocatorChain:
    return LocatorChain(
        "search button",
        [
            by_selectors(SEARCH_BUTTON_SELECTORS),
            by_text(SEARCH_SYNONYMS),
            by_position(),
        ],
    )
