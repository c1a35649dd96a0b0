"""Competitive-landscape memo from Tavily web search and DeFiLlama protocol data."""

from __future__ import annotations

import asyncio
import sys

import httpx

from idea_committee.contracts import (
    Claim,
    ClaimSupport,
    ClaimType,
    CompetitiveMemo,
    EvidenceItem,
    ProjectContext,
    ProjectDomain,
)
from idea_committee.errors import GroundingUnavailable

from . import register_source

_DEFILLAMA_URL = "https://api.llama.fi"
_MAX_RESULTS = 5
_MAX_PROTOCOLS = 5

_SEARCH_QUERIES: dict[ProjectDomain, str] = {
    ProjectDomain.CRYPTO_DEFI: "{name} DeFi protocol competitors {snippet}",
    ProjectDomain.MEMECOIN: "{name} memecoin launch community competitors {snippet}",
    ProjectDomain.AI_ML: "{name} AI startup competitors {snippet}",
    ProjectDomain.SAAS: "{name} SaaS alternatives {snippet}",
    ProjectDomain.CONSUMER: "{name} consumer app competitors {snippet}",
}
_DEFAULT_QUERY = "{name} competitors market landscape {snippet}"

# DeFiLlama category keyed by description keyword; first match wins.
_DEFILLAMA_CATEGORIES: list[tuple[str, str]] = [
    ("lend", "Lending"),
    ("borrow", "Lending"),
    ("dex", "Dexes"),
    ("swap", "Dexes"),
    ("amm", "Dexes"),
    ("perp", "Derivatives"),
    ("option", "Options"),
    ("yield", "Yield"),
    ("vault", "Yield"),
    ("staking", "Liquid Staking"),
    ("stablecoin", "CDP"),
    ("bridge", "Bridge"),
]
_DEFAULT_CATEGORY = "Yield"

_CATEGORY_LABELS: dict[ProjectDomain, str] = {
    ProjectDomain.CRYPTO_DEFI: "DeFi",
    ProjectDomain.MEMECOIN: "Memecoin",
    ProjectDomain.AI_ML: "AI",
    ProjectDomain.SAAS: "SaaS",
    ProjectDomain.CONSUMER: "Consumer",
    ProjectDomain.HARDWARE: "Hardware",
}


def _domain(context: ProjectContext) -> ProjectDomain:
    try:
        return ProjectDomain(context.get("domain", "other"))
    except ValueError:
        return ProjectDomain.OTHER


def _defillama_category(description: str) -> str:
    text = description.lower()
    for keyword, category in _DEFILLAMA_CATEGORIES:
        if keyword in text:
            return category
    return _DEFAULT_CATEGORY


def _crowdedness(protocol_count: int, search_hits: int) -> str:
    if protocol_count >= 50 or search_hits >= 5:
        return "high"
    if protocol_count >= 15 or search_hits >= 3:
        return "medium"
    return "low"


def _format_tvl(tvl: float) -> str:
    if tvl >= 1e9:
        return f"${tvl / 1e9:.1f}B"
    if tvl >= 1e6:
        return f"${tvl / 1e6:.1f}M"
    return f"${tvl:,.0f}"


def build_memo(
    *,
    domain: ProjectDomain,
    search_results: list[dict],
    protocols: list[dict],
    category: str | None,
    protocol_count: int,
    unavailable: list[str],
) -> CompetitiveMemo:
    """Assemble the memo and its evidence-bound claims from raw sub-source data."""
    evidence: list[EvidenceItem] = []
    claims: list[Claim] = []
    reference_projects: list[str] = []

    for i, proto in enumerate(protocols, start=1):
        eid = f"defillama-{i}"
        name = proto.get("name", "") or f"protocol-{i}"
        tvl = float(proto.get("tvl") or 0.0)
        reference_projects.append(name)
        evidence.append(
            EvidenceItem(
                id=eid,
                source="defillama",
                title=name,
                url=proto.get("url", "") or "",
                snippet=f"{proto.get('category', category)} protocol, TVL {_format_tvl(tvl)}",
            )
        )
        claims.append(
            Claim(
                text=f"{name} is an established {category} protocol with TVL {_format_tvl(tvl)}.",
                claim_type=ClaimType.FACT.value,
                evidence_ids=[eid],
                support=ClaimSupport.CORROBORATED.value,
            )
        )

    for i, item in enumerate(search_results, start=1):
        eid = f"tavily-{i}"
        title = item.get("title", "") or ""
        snippet = (item.get("content", "") or "")[:300]
        evidence.append(
            EvidenceItem(
                id=eid, source="tavily", title=title, url=item.get("url", "") or "", snippet=snippet
            )
        )
        if title and title not in reference_projects and len(reference_projects) < 8:
            reference_projects.append(title)
        claims.append(
            Claim(
                text=f"Existing coverage: {title}",
                claim_type=ClaimType.FACT.value,
                evidence_ids=[eid],
                support=ClaimSupport.CORROBORATED.value,
            )
        )

    crowdedness = _crowdedness(protocol_count, len(search_results))
    label = _CATEGORY_LABELS.get(domain, "General")
    if category:
        label = f"{label} / {category}"

    claims.append(
        Claim(
            text=f"The {label} landscape shows {crowdedness} crowdedness.",
            claim_type=ClaimType.INFERENCE.value,
            evidence_ids=[e["id"] for e in evidence[:3]],
            support=(
                ClaimSupport.CORROBORATED.value if evidence else ClaimSupport.UNCORROBORATED.value
            ),
        )
    )

    summary_parts = []
    if protocols:
        top = ", ".join(reference_projects[: min(3, len(protocols))])
        summary_parts.append(f"{protocol_count} tracked {category} protocols; leaders: {top}.")
    if search_results:
        summary_parts.append(f"{len(search_results)} web sources describe comparable projects.")
    if not summary_parts:
        summary_parts.append("No comparable projects found.")

    return CompetitiveMemo(
        category_label=label,
        crowdedness_level=crowdedness,
        short_landscape_summary=" ".join(summary_parts),
        reference_projects=reference_projects,
        evidence_count=len(evidence),
        unavailable_sources=unavailable,
        evidence=evidence,
        claims=claims,
    )


class CompetitiveSource:
    """Tavily search plus DeFiLlama TVL (DeFi ideas only)."""

    name: str = "competitive"

    def __init__(
        self,
        *,
        api_key: str = "",
        defillama_url: str = _DEFILLAMA_URL,
        ttl_hours: float = 72.0,
    ) -> None:
        self.api_key = api_key
        self.ttl_hours = ttl_hours
        self._client = None
        self._http = httpx.AsyncClient(base_url=defillama_url, timeout=10.0)

    def _get_client(self):
        if self._client is None:
            from tavily import TavilyClient

            self._client = TavilyClient(api_key=self.api_key)
        return self._client

    async def _search(self, context: ProjectContext) -> list[dict]:
        template = _SEARCH_QUERIES.get(_domain(context), _DEFAULT_QUERY)
        query = template.format(
            name=context.get("project_name", ""),
            snippet=context.get("description", "")[:120],
        ).strip()
        client = self._get_client()
        response = await asyncio.to_thread(
            client.search, query, max_results=_MAX_RESULTS, search_depth="basic"
        )
        return list(response.get("results", []))[:_MAX_RESULTS]

    async def _protocols(self, category: str) -> tuple[list[dict], int]:
        resp = await self._http.get("/protocols")
        resp.raise_for_status()
        rows = [p for p in resp.json() if p.get("category") == category]
        rows.sort(key=lambda p: float(p.get("tvl") or 0.0), reverse=True)
        return rows[:_MAX_PROTOCOLS], len(rows)

    async def fetch(self, context: ProjectContext) -> CompetitiveMemo:
        domain = _domain(context)
        unavailable: list[str] = []
        search_results: list[dict] = []
        protocols: list[dict] = []
        protocol_count = 0
        category = None

        if self.api_key:
            try:
                search_results = await self._search(context)
            except Exception as e:
                unavailable.append("tavily")
                print(f"WARNING: tavily search failed: {e}", file=sys.stderr)
        else:
            unavailable.append("tavily")

        if domain == ProjectDomain.CRYPTO_DEFI:
            category = _defillama_category(context.get("description", ""))
            try:
                protocols, protocol_count = await self._protocols(category)
            except (httpx.HTTPError, ValueError) as e:
                unavailable.append("defillama")
                print(f"WARNING: defillama lookup failed: {e}", file=sys.stderr)

        if not search_results and not protocols:
            raise GroundingUnavailable(self.name, f"no competitive data ({', '.join(unavailable)})")

        return build_memo(
            domain=domain,
            search_results=search_results,
            protocols=protocols,
            category=category,
            protocol_count=protocol_count,
            unavailable=unavailable,
        )

    async def health_check(self) -> bool:
        try:
            self._get_client()
            return bool(self.api_key)
        except Exception:
            return False


register_source("competitive", CompetitiveSource)
