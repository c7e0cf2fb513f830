"""Diagnostic artifacts written during a search (async I/O)"""

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

import aiofiles
import orjson
from loguru import logger

from .config import DEFAULT_ARTIFACT_DIR
from .models import FlightRecord, Query


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-") or "unknown"


class ArtifactStore:
    """
    Screenshots, HTML snapshots and extracted rows for one query.

    Artifacts are diagnostics only; a failure to write one is logged and never
    interrupts the search.
    """

    def __init__(self, base_dir: Path = DEFAULT_ARTIFACT_DIR, query: Optional[Query] = None):
        self.base_dir = Path(base_dir)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        if query is not None:
            self.prefix = (
                f"{_slug(query.origin)}_{_slug(query.destination)}_"
                f"{query.outbound_date}_{stamp}"
            )
        else:
            self.prefix = stamp

    def path_for(self, name: str, suffix: str) -> Path:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        return self.base_dir / f"{self.prefix}_{_slug(name)}{suffix}"

    async def screenshot(self, page, name: str) -> Optional[Path]:
        try:
            path = self.path_for(name, ".png")
            await page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            logger.debug(f"Screenshot '{name}' failed: {e}")
            return None
        logger.debug(f"📸 Screenshot saved: {path.name}")
        return path

    async def save_html(self, html: str, name: str) -> Optional[Path]:
        try:
            path = self.path_for(name, ".html")
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(html)
        except OSError as e:
            logger.debug(f"HTML snapshot '{name}' failed: {e}")
            return None
        logger.debug(f"💾 HTML snapshot saved: {path.name} ({len(html) / 1024:.1f}KB)")
        return path

    async def save_records(self, records: Iterable[FlightRecord], name: str = "flights") -> Optional[Path]:
        payload = [r.to_dict() for r in records]
        json_bytes = orjson.dumps(payload, option=orjson.OPT_INDENT_2)
        try:
            path = self.path_for(name, ".json")
            async with aiofiles.open(path, "wb") as f:
                await f.write(json_bytes)
        except OSError as e:
            logger.debug(f"Flight JSON '{name}' failed: {e}")
            return None
        logger.debug(f"💾 Saved {len(payload)} flights: {path.name}")
        return path

    async def capture_failure(self, page, name: str) -> None:
        """Screenshot plus HTML snapshot of the page as it is right now"""
        await self.screenshot(page, name)
        try:
            html = await page.content()
        except Exception as e:
            logger.debug(f"Could not read page content for '{name}': {e}")
            return
        await self.save_html(html, name)
