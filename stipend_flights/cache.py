"""Disk-backed JSON cache for scraped prices and cost-model entries"""

import hashlib
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import orjson
from loguru import logger

RESERVED_PREFIX = "_"


def create_hash_key(parts: Sequence[Any]) -> str:
    """
    Build a deterministic cache key from an ordered list of values.

    Callers include a version tag as the first part so that a format change
    invalidates older entries.
    """
    payload = orjson.dumps(list(parts))
    return hashlib.sha256(payload).hexdigest()


@dataclass
class CacheEntry:
    value: Any
    timestamp: int  # epoch milliseconds

    @property
    def age_seconds(self) -> float:
        return time.time() - self.timestamp / 1000.0


class PersistentCache:
    """
    Key -> {value, timestamp} store persisted as one JSON object.

    Every ``set`` rewrites the whole file through a temp file and
    ``os.replace``, so a reader never sees a half-written file. The cache is
    single-writer per key: two processes writing the same key race and the
    last one wins. A missing or unreadable file behaves as an empty cache.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._entries: Dict[str, Dict[str, Any]] = self._load()
        logger.debug(f"Cache loaded: {self.path} ({len(self._entries)} entries)")

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            logger.warning(f"⚠️ Ignoring unreadable cache file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"⚠️ Ignoring cache file {self.path}: top level is not an object")
            return {}
        return data

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(orjson.dumps(self._entries, option=orjson.OPT_INDENT_2))
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError) as e:
            logger.error(f"❌ Failed to write cache {self.path}: {e}")

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        raw = self._entries.get(key)
        if not isinstance(raw, dict) or "value" not in raw:
            return None
        try:
            timestamp = int(raw.get("timestamp", 0))
        except (TypeError, ValueError):
            timestamp = 0
        return CacheEntry(value=raw["value"], timestamp=timestamp)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss"""
        entry = self.get_entry(key)
        return entry.value if entry else None

    def has(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def set(self, key: str, value: Any) -> None:
        """Store value under key and write the cache file immediately"""
        self._entries[key] = {"value": value, "timestamp": int(time.time() * 1000)}
        self._save()

    def delete(self, key: str) -> bool:
        if key not in self._entries:
            return False
        del self._entries[key]
        self._save()
        return True

    def get_all_entries(self) -> Dict[str, CacheEntry]:
        """All real entries; reserved keys (leading underscore) are skipped"""
        entries = {}
        for key in self._entries:
            if key.startswith(RESERVED_PREFIX):
                continue
            entry = self.get_entry(key)
            if entry is not None:
                entries[key] = entry
        return entries

    def __len__(self) -> int:
        return len(self.get_all_entries())
