"""GroundingEnvelope construction — provenance and staleness for fetched evidence."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from idea_committee.contracts import GroundingEnvelope


def _parse_ts(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def wrap_grounding(
    data: Any,
    *,
    source: str,
    fetched_at: str | datetime,
    ttl_hours: float,
    now: datetime | None = None,
) -> GroundingEnvelope:
    """Wrap raw source data with staleness derived from ``now - fetched_at``.

    ``is_stale`` is exactly ``staleness_hours > ttl_hours``. Envelopes are
    never updated in place; rewrap to refresh staleness.
    """
    fetched = _parse_ts(fetched_at)
    current = now or datetime.now(timezone.utc)
    staleness = max(0.0, (current - fetched).total_seconds() / 3600.0)
    staleness = round(staleness, 4)
    return GroundingEnvelope(
        data=data,
        source=source,
        fetched_at=fetched.isoformat(),
        ttl_hours=float(ttl_hours),
        staleness_hours=staleness,
        is_stale=staleness > ttl_hours,
    )


def stale_envelopes(envelopes: list[GroundingEnvelope]) -> list[GroundingEnvelope]:
    return [e for e in envelopes if e["is_stale"]]
