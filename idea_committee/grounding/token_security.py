"""Token-security grounding: SPL mint authority checks over Solana JSON-RPC."""

from __future__ import annotations

import httpx

from idea_committee.contracts import ProjectContext, TokenSecurityReport
from idea_committee.errors import GroundingUnavailable

from . import register_source

_DEFAULT_RPC = "https://api.mainnet-beta.solana.com"


def _parse_mint_account(mint: str, rpc_result: dict | None) -> TokenSecurityReport:
    """Build a report from a jsonParsed getAccountInfo result.

    Liquidity and holder distribution are not visible from the mint account
    and are left as None.
    """
    value = (rpc_result or {}).get("value")
    info: dict = {}
    if value:
        parsed = (value.get("data") or {}).get("parsed") or {}
        if parsed.get("type") == "mint":
            info = parsed.get("info") or {}

    valid = bool(info)
    return TokenSecurityReport(
        mint=mint,
        valid=valid,
        mint_authority_revoked=(info.get("mintAuthority") is None) if valid else None,
        freeze_authority_revoked=(info.get("freezeAuthority") is None) if valid else None,
        supply=info.get("supply") if valid else None,
        decimals=info.get("decimals") if valid else None,
        liquidity_locked=None,
        top10_holder_percentage=None,
        total_liquidity=None,
    )


class TokenSecuritySource:
    name: str = "token_security"

    def __init__(self, *, rpc_url: str = _DEFAULT_RPC, ttl_hours: float = 1.0) -> None:
        self.ttl_hours = ttl_hours
        self._rpc_url = rpc_url
        self._client = httpx.AsyncClient(timeout=10.0)

    async def _rpc(self, method: str, params: list) -> dict:
        body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            resp = await self._client.post(self._rpc_url, json=body)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise GroundingUnavailable(self.name, f"{method}: {e}") from e
        except ValueError as e:
            raise GroundingUnavailable(self.name, f"{method}: invalid JSON") from e

        if "error" in payload:
            message = (payload["error"] or {}).get("message", "unknown RPC error")
            raise GroundingUnavailable(self.name, f"{method}: {message}")
        return payload.get("result") or {}

    async def fetch(self, context: ProjectContext) -> TokenSecurityReport:
        mint = context.get("token_address", "").strip()
        if not mint:
            raise GroundingUnavailable(self.name, "no token address supplied")
        result = await self._rpc("getAccountInfo", [mint, {"encoding": "jsonParsed"}])
        return _parse_mint_account(mint, result)

    async def health_check(self) -> bool:
        try:
            await self._rpc("getHealth", [])
            return True
        except GroundingUnavailable:
            return False


register_source("token_security", TokenSecuritySource)
