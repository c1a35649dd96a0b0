"""GroundingCollector — concurrent, failure-isolated evidence fetch."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from idea_committee.config import Settings
from idea_committee.contracts import (
    EvidenceItem,
    GroundingBundle,
    GroundingEnvelope,
    GroundingKind,
    GroundingSource,
    ProjectContext,
)
from idea_committee.errors import GroundingUnavailable
from idea_committee.grounding.cache import GroundingCache
from idea_committee.grounding.envelope import wrap_grounding
from idea_committee.scoring.breaker import (
    DEFAULT_POLICY,
    BreakerPolicy,
    BreakerRegistry,
    allow_request,
    initial_state,
    transition,
)

# Fixed order keeps the bundle and the evidence pool deterministic.
SOURCE_ORDER: tuple[str, ...] = (
    GroundingKind.MARKET.value,
    GroundingKind.TOKEN_SECURITY.value,
    GroundingKind.COMPETITIVE.value,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _context_key(context: ProjectContext) -> str:
    return f"{context.get('project_name', '')}|{context.get('token_address', '')}|{context.get('domain', '')}"


def _not_applicable(name: str, context: ProjectContext) -> str | None:
    """Reason a source cannot run for this idea, or None."""
    if name == GroundingKind.TOKEN_SECURITY.value and not context.get("token_address"):
        return "no token address supplied"
    return None


def build_evidence_pool(bundle: GroundingBundle) -> list[EvidenceItem]:
    """Evidence items for every envelope present in the bundle."""
    pool: list[EvidenceItem] = []
    market = bundle.get("market")
    if market is not None:
        pool.append(
            EvidenceItem(
                id="market_snapshot",
                source=market["source"],
                title="Market snapshot",
                url="",
                snippet=", ".join(f"{k}={v}" for k, v in sorted(market["data"].items())),
            )
        )
    token = bundle.get("token_security")
    if token is not None:
        pool.append(
            EvidenceItem(
                id="token_security",
                source=token["source"],
                title=f"Token security report {token['data'].get('mint', '')}",
                url="",
                snippet=f"valid={token['data'].get('valid')}",
            )
        )
    competitive = bundle.get("competitive")
    if competitive is not None:
        pool.extend(competitive["data"].get("evidence", []))
    return pool


class GroundingCollector:
    """Fetches every configured source concurrently, each with its own timeout.

    A failing source never aborts collection; it is listed in
    ``unavailable_sources``. When a cache is configured, a fresh cached
    entry short-circuits the fetch and a retained entry is served on
    failure (with its original fetch time, so it surfaces as stale).
    """

    def __init__(
        self,
        sources: dict[str, GroundingSource],
        *,
        timeout: float = 5.0,
        cache: GroundingCache | None = None,
        breakers: BreakerRegistry | None = None,
        breaker_policy: BreakerPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sources = sources
        self._timeout = timeout
        self._cache = cache
        self._breakers = breakers
        self._policy = breaker_policy
        self._clock = clock

    def _record(self, name: str, success: bool) -> None:
        if self._breakers is None:
            return
        prior = self._breakers.get(name, initial_state())
        self._breakers[name] = transition(prior, success, self._clock().timestamp(), self._policy)

    def _breaker_allows(self, name: str) -> bool:
        if self._breakers is None:
            return True
        state = self._breakers.get(name, initial_state())
        allowed, state = allow_request(state, self._clock().timestamp(), self._policy)
        self._breakers[name] = state
        return allowed

    def _cached(self, source: GroundingSource, key: str) -> GroundingEnvelope | None:
        if self._cache is None:
            return None
        hit = self._cache.get(source.name, key, now=self._clock())
        if hit is None:
            return None
        data, fetched_at = hit
        return wrap_grounding(
            data,
            source=source.name,
            fetched_at=fetched_at,
            ttl_hours=source.ttl_hours,
            now=self._clock(),
        )

    async def _fetch_one(self, name: str, context: ProjectContext) -> GroundingEnvelope:
        source = self._sources[name]
        reason = _not_applicable(name, context)
        if reason:
            raise GroundingUnavailable(name, reason)

        key = _context_key(context)
        cached = self._cached(source, key)
        if cached is not None and not cached["is_stale"]:
            return cached

        if not self._breaker_allows(name):
            if cached is not None:
                return cached
            raise GroundingUnavailable(name, "circuit open")

        try:
            data: Any = await asyncio.wait_for(source.fetch(context), timeout=self._timeout)
        except asyncio.TimeoutError:
            self._record(name, False)
            if cached is not None:
                return cached
            raise GroundingUnavailable(name, f"timed out after {self._timeout:.1f}s")
        except Exception as e:
            self._record(name, False)
            if cached is not None:
                return cached
            if isinstance(e, GroundingUnavailable):
                raise
            raise GroundingUnavailable(name, str(e) or type(e).__name__) from e

        self._record(name, True)
        fetched_at = self._clock()
        if self._cache is not None:
            self._cache.put(name, key, data, fetched_at.isoformat())
        return wrap_grounding(
            data, source=name, fetched_at=fetched_at, ttl_hours=source.ttl_hours, now=fetched_at
        )

    async def collect(self, context: ProjectContext) -> GroundingBundle:
        names = [n for n in SOURCE_ORDER if n in self._sources]
        names += sorted(n for n in self._sources if n not in SOURCE_ORDER)

        results = await asyncio.gather(
            *(self._fetch_one(name, context) for name in names),
            return_exceptions=True,
        )

        bundle = GroundingBundle(unavailable_sources=[], evidence_pool=[], claims=[])
        for name, outcome in zip(names, results):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, GroundingUnavailable):
                    print(f"WARNING: grounding source {name} failed: {outcome}", file=sys.stderr)
                bundle["unavailable_sources"].append(name)
                continue
            bundle[name] = outcome
            if outcome["is_stale"]:
                print(
                    f"WARNING: serving stale {name} grounding "
                    f"({outcome['staleness_hours']:.1f}h old, ttl {outcome['ttl_hours']:.0f}h)",
                    file=sys.stderr,
                )

        bundle["evidence_pool"] = build_evidence_pool(bundle)
        competitive = bundle.get("competitive")
        if competitive is not None:
            bundle["claims"] = list(competitive["data"].get("claims", []))
        return bundle


def build_sources(settings: Settings) -> dict[str, GroundingSource]:
    """Instantiate the registered production sources from settings."""
    import idea_committee.grounding.competitive  # noqa: F401
    import idea_committee.grounding.market  # noqa: F401
    import idea_committee.grounding.token_security  # noqa: F401

    from idea_committee.grounding import get_source

    return {
        "market": get_source(
            "market", base_url=settings.coingecko_url, ttl_hours=settings.market_ttl_hours
        ),
        "token_security": get_source(
            "token_security",
            rpc_url=settings.solana_rpc_url,
            ttl_hours=settings.token_ttl_hours,
        ),
        "competitive": get_source(
            "competitive",
            api_key=settings.tavily_api_key,
            defillama_url=settings.defillama_url,
            ttl_hours=settings.competitive_ttl_hours,
        ),
    }
