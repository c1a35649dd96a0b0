"""File-based grounding cache keyed on (source, context key), preserving fetch time."""

from __future__ import annotations

import hashlib
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


class GroundingCache:
    """Stores the last good payload per source with its original ``fetched_at``.

    Entries older than ``max_age_hours`` are evicted. Younger entries may
    still be past their source TTL; callers decide whether to serve them.
    """

    def __init__(self, cache_dir: str | Path, max_age_hours: float = 168.0) -> None:
        self._dir = Path(cache_dir)
        self._max_age_hours = max_age_hours
        self._dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _make_key(source: str, context_key: str) -> str:
        raw = f"{source.strip().lower()}|{context_key.strip().lower()}"
        return hashlib.sha256(raw.encode()).hexdigest()

    def _path_for(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def get(
        self, source: str, context_key: str, *, now: datetime | None = None
    ) -> tuple[Any, str] | None:
        """Return (data, fetched_at) or None on miss / eviction / corruption."""
        path = self._path_for(self._make_key(source, context_key))
        if not path.exists():
            return None

        try:
            entry = json.loads(path.read_text(encoding="utf-8"))
            fetched = datetime.fromisoformat(entry["fetched_at"])
        except (json.JSONDecodeError, OSError, KeyError, ValueError):
            path.unlink(missing_ok=True)
            return None

        current = now or datetime.now(timezone.utc)
        if (current - fetched).total_seconds() / 3600.0 > self._max_age_hours:
            path.unlink(missing_ok=True)
            return None

        return entry.get("data"), entry["fetched_at"]

    def put(self, source: str, context_key: str, data: Any, fetched_at: str) -> None:
        path = self._path_for(self._make_key(source, context_key))
        payload = {
            "source": source,
            "context_key": context_key,
            "fetched_at": fetched_at,
            "data": data,
        }
        try:
            path.write_text(json.dumps(payload, default=str), encoding="utf-8")
        except OSError as e:
            print(f"WARNING: grounding cache write failed for {source}: {e}", file=sys.stderr)

    def clear(self) -> int:
        """Remove all cache files. Returns count of files removed."""
        count = 0
        for f in self._dir.glob("*.json"):
            f.unlink(missing_ok=True)
            count += 1
        return count
