"""Market snapshot grounding from a CoinGecko-compatible API."""

from __future__ import annotations

import asyncio

import httpx

from idea_committee.contracts import MarketSnapshot, ProjectContext
from idea_committee.errors import GroundingUnavailable

from . import register_source

_DEFAULT_URL = "https://api.coingecko.com/api/v3"
_MAX_RETRIES = 2
_INITIAL_BACKOFF = 0.5


def _parse_snapshot(global_data: dict, price_data: dict) -> MarketSnapshot:
    data = global_data.get("data", {}) or {}
    btc_dominance = (data.get("market_cap_percentage") or {}).get("btc")
    total_volume = (data.get("total_volume") or {}).get("usd")

    alt_volume = None
    if total_volume is not None and btc_dominance is not None:
        alt_volume = round(total_volume * (1 - btc_dominance / 100.0), 2)

    sol_price = (price_data.get("solana") or {}).get("usd")
    return MarketSnapshot(
        btc_dominance=round(btc_dominance, 2) if btc_dominance is not None else None,
        sol_price_usd=sol_price,
        total_alt_volume_24h_usd=alt_volume,
    )


class MarketSource:
    """Market-wide context: BTC dominance, SOL price, alt volume."""

    name: str = "market"

    def __init__(self, *, base_url: str = _DEFAULT_URL, ttl_hours: float = 1.0) -> None:
        self.ttl_hours = ttl_hours
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"User-Agent": "idea-committee/0.1", "Accept": "application/json"},
            timeout=10.0,
        )

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        backoff = _INITIAL_BACKOFF
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.get(path, params=params)
                if resp.status_code == 429 and attempt < _MAX_RETRIES - 1:
                    await asyncio.sleep(backoff)
                    backoff *= 2
                    continue
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPError as e:
                raise GroundingUnavailable(self.name, f"{path}: {e}") from e
            except ValueError as e:
                raise GroundingUnavailable(self.name, f"{path}: invalid JSON") from e
        raise GroundingUnavailable(self.name, f"{path}: rate limited")

    async def fetch(self, context: ProjectContext) -> MarketSnapshot:
        global_data, price_data = await asyncio.gather(
            self._get_json("/global"),
            self._get_json("/simple/price", {"ids": "solana", "vs_currencies": "usd"}),
        )
        snapshot = _parse_snapshot(global_data, price_data)
        if snapshot["btc_dominance"] is None and snapshot["sol_price_usd"] is None:
            raise GroundingUnavailable(self.name, "empty market snapshot")
        return snapshot

    async def health_check(self) -> bool:
        try:
            resp = await self._client.get("/ping")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False


register_source("market", MarketSource)
