"""
File-backed JSON cache with per-entry timestamps.

Each key lives in its own file, so concurrent writers of different keys
never touch the same path.
"""
import hashlib
import json
import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from bidetmap.config import COORD_MATCH_PRECISION


def coordinate_key(prefix: str, lat: float, lng: float) -> str:
    """Cache key for a point, rounded so nearby lookups share an entry."""
    return f"{prefix}:{lat:.{COORD_MATCH_PRECISION}f},{lng:.{COORD_MATCH_PRECISION}f}"


class FileCache:
    def __init__(self, directory, clock: Callable[[], datetime] = datetime.now):
        self.directory = Path(directory)
        self._clock = clock

    def _path(self, key: str) -> Path:
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"

    def _read(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                entry = json.load(f)
            datetime.fromisoformat(entry["timestamp"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"⚠️ Ignoring unreadable cache entry for '{key}': {e}")
            return None
        if entry.get("key") != key or "data" not in entry:
            return None
        return entry

    def get(self, key: str, max_age: timedelta) -> Optional[Any]:
        """
        Cached value for `key`, or None if missing, corrupt, or older than `max_age`.
        """
        entry = self._read(key)
        if entry is None:
            return None
        age = self._clock() - datetime.fromisoformat(entry["timestamp"])
        if age > max_age:
            logger.debug(f"⏰ Cache entry for '{key}' expired ({age})")
            return None
        return entry["data"]

    def get_stale(self, key: str) -> Optional[Any]:
        """Cached value for `key` regardless of age."""
        entry = self._read(key)
        return entry["data"] if entry is not None else None

    def set(self, key: str, data: Any) -> None:
        """Write the entry to a temp file, then rename it into place."""
        self.directory.mkdir(parents=True, exist_ok=True)
        entry = {"key": key, "timestamp": self._clock().isoformat(), "data": data}
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entry, f, ensure_ascii=False)
            os.replace(tmp_path, self._path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
