"""Keyword-based project domain classification."""

from __future__ import annotations

import re

from idea_committee.contracts import DomainClassification, EvaluationInput, ProjectDomain

DOMAIN_KEYWORDS: dict[ProjectDomain, list[str]] = {
    ProjectDomain.CRYPTO_DEFI: [
        "defi", "dex", "amm", "liquidity", "lending", "borrow", "yield", "vault",
        "staking", "perp", "perpetual", "stablecoin", "collateral", "tvl", "swap",
        "liquidation", "oracle", "protocol", "solana", "ethereum", "on-chain",
    ],
    ProjectDomain.MEMECOIN: [
        "memecoin", "meme coin", "meme", "pump.fun", "degen", "community token",
        "fair launch", "airdrop", "viral", "mascot", "dog coin", "frog",
    ],
    ProjectDomain.AI_ML: [
        "ai", "llm", "machine learning", "model", "agent", "inference", "fine-tune",
        "embedding", "neural", "gpt", "copilot", "rag", "dataset",
    ],
    ProjectDomain.SAAS: [
        "saas", "b2b", "subscription", "dashboard", "workflow", "crm", "api",
        "enterprise", "integration", "analytics", "seats",
    ],
    ProjectDomain.CONSUMER: [
        "consumer", "mobile app", "social", "creator", "marketplace", "game",
        "gaming", "fitness", "dating", "shopping", "users",
    ],
    ProjectDomain.HARDWARE: [
        "hardware", "device", "sensor", "iot", "wearable", "chip", "robot",
        "manufacturing", "firmware", "drone",
    ],
}

# project_type hints as submitted by users
_HINTS: dict[str, ProjectDomain] = {
    "defi": ProjectDomain.CRYPTO_DEFI,
    "crypto": ProjectDomain.CRYPTO_DEFI,
    "crypto_defi": ProjectDomain.CRYPTO_DEFI,
    "memecoin": ProjectDomain.MEMECOIN,
    "meme": ProjectDomain.MEMECOIN,
    "ai": ProjectDomain.AI_ML,
    "ai_ml": ProjectDomain.AI_ML,
    "saas": ProjectDomain.SAAS,
    "consumer": ProjectDomain.CONSUMER,
    "hardware": ProjectDomain.HARDWARE,
}

_HINT_BONUS = 3.0
_HINT_KEYWORD_WEIGHT = 1.2
_MEME_DEFI_BOOST = 0.75
_MIN_TOP_SCORE = 1.5


def _keyword_hit(keyword: str, text: str) -> bool:
    if " " in keyword or "." in keyword or "-" in keyword:
        return keyword in text
    return re.search(rf"\b{re.escape(keyword)}\b", text) is not None


def _hint_domain(project_type: str | None) -> ProjectDomain | None:
    if not project_type:
        return None
    return _HINTS.get(project_type.strip().lower())


def _idea_text(idea: EvaluationInput) -> str:
    parts = [
        idea.get("project_name", ""),
        idea.get("description", ""),
        idea.get("problem", ""),
        idea.get("target_users", ""),
    ]
    return " ".join(p for p in parts if p).lower()


def classify_domain(idea: EvaluationInput) -> DomainClassification:
    text = _idea_text(idea)
    hint = _hint_domain(idea.get("project_type"))

    scores: dict[ProjectDomain, float] = {}
    matched: list[str] = []
    for domain, keywords in DOMAIN_KEYWORDS.items():
        weight = _HINT_KEYWORD_WEIGHT if domain == hint else 1.0
        score = 0.0
        for kw in keywords:
            if _keyword_hit(kw, text):
                score += weight
                matched.append(kw)
        if domain == hint:
            score += _HINT_BONUS
        scores[domain] = round(score, 2)

    # Memecoin ideas nearly always mention DeFi vocabulary too.
    if scores[ProjectDomain.MEMECOIN] >= 2 and scores[ProjectDomain.CRYPTO_DEFI] > 0:
        scores[ProjectDomain.MEMECOIN] = round(scores[ProjectDomain.MEMECOIN] + _MEME_DEFI_BOOST, 2)

    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], list(DOMAIN_KEYWORDS).index(kv[0])))
    top_domain, top_score = ranked[0]
    runner_up = ranked[1][1] if len(ranked) > 1 else 0.0
    margin = top_score - runner_up

    if top_score < _MIN_TOP_SCORE:
        top_domain = hint or ProjectDomain.OTHER

    if top_score >= 5 and margin >= 1.5:
        confidence = "high"
    elif top_score >= 3 and margin >= 0.75:
        confidence = "medium"
    else:
        confidence = "low"

    return DomainClassification(
        domain=top_domain.value,
        confidence=confidence,
        scores={d.value: s for d, s in scores.items()},
        matched_keywords=sorted(set(matched)),
    )
