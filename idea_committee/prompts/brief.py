"""Structured grounding brief and staleness warning for stage prompts."""

from __future__ import annotations

from idea_committee.contracts import GroundingBundle, GroundingEnvelope

BRIEF_TOKEN_BUDGET = 800
TRUNCATION_MARKER = "...[truncated to fit prompt token budget]"

# (bundle key, brief tag, fields rendered from envelope data)
_SECTIONS: list[tuple[str, str, list[str]]] = [
    ("market", "MARKET_SNAPSHOT", ["btc_dominance", "sol_price_usd", "total_alt_volume_24h_usd"]),
    (
        "token_security",
        "TOKEN_SECURITY",
        [
            "valid",
            "mint_authority_revoked",
            "freeze_authority_revoked",
            "liquidity_locked",
            "top10_holder_percentage",
            "total_liquidity",
        ],
    ),
    (
        "competitive",
        "COMPETITIVE_MEMO",
        [
            "category_label",
            "crowdedness_level",
            "short_landscape_summary",
            "reference_projects",
            "evidence_count",
            "unavailable_sources",
        ],
    ),
]


def estimate_tokens(text: str) -> int:
    return len(text) // 4


def _fmt_value(value) -> str:
    if value is None:
        return "unknown"
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, float):
        return f"{value:,.2f}"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) if value else "none"
    return str(value)


def _section(tag: str, envelope: GroundingEnvelope | None, fields: list[str]) -> list[str]:
    if envelope is None:
        return [f"[{tag}] source=unknown | freshness=unknown", "- data: unavailable"]

    status = "STALE" if envelope["is_stale"] else "FRESH"
    lines = [
        f"[{tag}] source={envelope['source']} | {status} "
        f"| age={envelope['staleness_hours']:.1f}h | ttl={envelope['ttl_hours']:.0f}h"
    ]
    data = envelope["data"] or {}
    for name in fields:
        lines.append(f"- {name}: {_fmt_value(data.get(name))}")
    return lines


def fit_to_budget(text: str, budget_tokens: int = BRIEF_TOKEN_BUDGET) -> str:
    if estimate_tokens(text) <= budget_tokens:
        return text
    max_chars = budget_tokens * 4 - len(TRUNCATION_MARKER) - 1
    return text[:max_chars].rstrip() + "\n" + TRUNCATION_MARKER


def render_grounding_brief(bundle: GroundingBundle) -> str:
    """One tagged section per source; missing sources still get their tag."""
    present = [key for key, _, _ in _SECTIONS if bundle.get(key) is not None]
    stale = [key for key in present if bundle[key]["is_stale"]]

    lines = [
        "GROUNDING BRIEF (structured, decision-relevant):",
        f"coverage: {len(present)}/{len(_SECTIONS)} sources",
        f"staleSources: {', '.join(stale) if stale else 'none'}",
    ]
    for key, tag, fields in _SECTIONS:
        lines.extend(_section(tag, bundle.get(key), fields))
    return fit_to_budget("\n".join(lines))


def staleness_note(bundle: GroundingBundle) -> str:
    envelopes = [(key, bundle.get(key)) for key, _, _ in _SECTIONS]
    envelopes = [(key, env) for key, env in envelopes if env is not None]
    stale = [(key, env) for key, env in envelopes if env["is_stale"]]
    if not stale:
        return ""

    lines = [
        f"DATA FRESHNESS WARNING: {len(stale)} of {len(envelopes)} data sources are beyond "
        "their expected freshness window."
    ]
    for key, env in stale:
        lines.append(
            f"- {key}: {env['staleness_hours']:.1f}h old (expected within {env['ttl_hours']:.0f}h)"
        )
    lines.append("Treat stale figures as directional and lower your certainty accordingly.")
    return "\n".join(lines)
