"""TrustScorer — evidence coverage, confidence, and committee disagreement.

All functions are pure and importable individually.
"""

from __future__ import annotations

import statistics
from typing import Any

from idea_committee.contracts import (
    BearAnalysis,
    BearVerdict,
    BullAnalysis,
    BullVerdict,
    Claim,
    ClaimType,
    CommitteeDisagreement,
    Confidence,
    ConfidenceLevel,
    ConfidenceSignals,
    DataFreshness,
    GroundingEnvelope,
    JudgeResult,
    SourceFreshness,
    VerifierStatus,
)

# --- Evidence coverage ---


def compute_evidence_coverage(claims: list[Claim]) -> float:
    """Share of fact claims carrying at least one evidence id.

    Inference claims are ignored. With no fact claims there is nothing
    unsupported, so coverage is 1.0.
    """
    facts = [c for c in claims if c.get("claim_type") == ClaimType.FACT.value]
    if not facts:
        return 1.0
    backed = sum(1 for c in facts if len(c.get("evidence_ids") or []) > 0)
    return round(backed / len(facts), 4)


# --- Confidence ---

HIGH_THRESHOLD = 0.75
MEDIUM_THRESHOLD = 0.45

VERIFIER_FACTORS: dict[VerifierStatus, float] = {
    VerifierStatus.PASS: 1.0,
    VerifierStatus.REPAIRED: 0.85,
    VerifierStatus.FAIL: 0.5,
}
_DEFAULT_VERIFIER_FACTOR = 0.5

FALLBACK_FACTOR = 0.85
NO_EXTERNAL_DATA_FACTOR = 0.7
TAVILY_MISSING_FACTOR = 0.85
DEFILLAMA_MISSING_FACTOR = 0.85
AGENT_FAILURE_FACTOR = 0.9
HIGH_DISAGREEMENT_FACTOR = 0.85


def classify_confidence(score: float) -> ConfidenceLevel:
    """Map a 0..1 confidence score to its level."""
    if score >= HIGH_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= MEDIUM_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _verifier_factor(status: str) -> float:
    try:
        return VERIFIER_FACTORS.get(VerifierStatus(status), _DEFAULT_VERIFIER_FACTOR)
    except ValueError:
        return _DEFAULT_VERIFIER_FACTOR


def derive_confidence(signals: ConfidenceSignals) -> Confidence:
    """Multiplicative confidence score in (0, 1].

    Every degrading signal multiplies by a factor below 1, and coverage
    enters through a strictly increasing term, so the score is monotone in
    each signal and stays strictly positive (no clamping ties). The level
    is capped at medium whenever a required external source is missing or
    any grounding is stale.
    """
    coverage = min(1.0, max(0.0, float(signals.get("evidence_coverage", 0.0))))
    score = 0.55 + 0.45 * coverage
    reasons = [f"evidence coverage {coverage:.0%}"]

    status = signals.get("verifier_status", VerifierStatus.FAIL.value)
    score *= _verifier_factor(status)
    if status != VerifierStatus.PASS.value:
        reasons.append(f"verifier status {status}")

    if signals.get("fallback_used"):
        score *= FALLBACK_FACTOR
        reasons.append("fallback model used")
    if not signals.get("external_data_available"):
        score *= NO_EXTERNAL_DATA_FACTOR
        reasons.append("no external grounding data")
    if not signals.get("tavily_available"):
        score *= TAVILY_MISSING_FACTOR
        reasons.append("web search unavailable")
    defillama_missing = signals.get("defillama_required") and not signals.get(
        "defillama_available"
    )
    if defillama_missing:
        score *= DEFILLAMA_MISSING_FACTOR
        reasons.append("DeFiLlama required but unavailable")

    failures = max(0, int(signals.get("agent_failures", 0)))
    if failures:
        score *= AGENT_FAILURE_FACTOR**failures
        reasons.append(f"{failures} agent failure(s)")

    if "overall_freshness" in signals:
        freshness = min(1.0, max(0.0, float(signals["overall_freshness"])))
        score *= 0.4 + 0.6 * freshness
        if freshness < 1.0:
            reasons.append(f"data freshness {freshness:.2f}")

    if signals.get("high_disagreement"):
        score *= HIGH_DISAGREEMENT_FACTOR
        reasons.append("high committee disagreement")

    score = round(score, 4)
    level = classify_confidence(score)

    stale = int(signals.get("stale_sources", 0))
    if level == ConfidenceLevel.HIGH and (
        not signals.get("tavily_available") or defillama_missing or stale > 0
    ):
        level = ConfidenceLevel.MEDIUM
        reasons.append("capped at medium: incomplete or stale external data")

    return Confidence(score=score, level=level.value, reasons=reasons)


# --- Debate disagreement ---

BEAR_VERDICT_VALUES: dict[BearVerdict, int] = {
    BearVerdict.KILL: 0,
    BearVerdict.AVOID: 20,
    BearVerdict.SHORT: 40,
}
_DEFAULT_BEAR_VALUE = 30

BULL_VERDICT_VALUES: dict[BullVerdict, int] = {
    BullVerdict.LONG: 60,
    BullVerdict.APE: 80,
    BullVerdict.ALL_IN: 100,
}
_DEFAULT_BULL_VALUE = 70


def _score100(value: Any, default: float = 50.0) -> float:
    if value is None:
        return default
    return max(0.0, min(100.0, float(value)))


def _verdict_value(verdict: str | None, table: dict, enum_cls, default: int) -> int:
    try:
        return table.get(enum_cls((verdict or "").strip().upper()), default)
    except ValueError:
        return default


def compute_debate_disagreement_index(bear: BearAnalysis, bull: BullAnalysis) -> int:
    """0..100 divergence between the Bear's risk and the Bull's upside framing.

    60% comes from the gap between risk and inverted upside, 40% from how
    far apart the two verdicts sit on a shared bearish-to-bullish scale.
    Scores are clamped to 0..100; missing ones count as neutral (50).
    """
    risk = _score100(bear.get("risk_score"))
    upside = _score100(bull.get("upside_score"))

    score_gap = abs(risk - (100.0 - upside))
    bear_v = _verdict_value(bear.get("verdict"), BEAR_VERDICT_VALUES, BearVerdict, _DEFAULT_BEAR_VALUE)
    bull_v = _verdict_value(bull.get("verdict"), BULL_VERDICT_VALUES, BullVerdict, _DEFAULT_BULL_VALUE)
    verdict_gap = abs(bear_v - bull_v)

    index = round(score_gap * 0.6 + verdict_gap * 0.4)
    return int(max(0, min(100, index)))


# --- Data freshness ---


def compute_data_freshness(envelopes: list[GroundingEnvelope]) -> DataFreshness:
    """Blend of average and worst per-source freshness. No data scores 0.3."""
    if not envelopes:
        return DataFreshness(
            overall_freshness=0.3,
            stale_source_count=0,
            total_source_count=0,
            worst_source=None,
            details=[],
        )

    details: list[SourceFreshness] = []
    for env in envelopes:
        ttl = env["ttl_hours"] if env["ttl_hours"] > 0 else 1.0
        freshness = max(0.3, 1.0 - 0.5 * env["staleness_hours"] / ttl)
        details.append(
            SourceFreshness(
                source=env["source"],
                staleness_hours=env["staleness_hours"],
                ttl_hours=env["ttl_hours"],
                is_stale=env["is_stale"],
                freshness_score=round(freshness, 3),
            )
        )

    scores = [d["freshness_score"] for d in details]
    worst = min(details, key=lambda d: d["freshness_score"])
    overall = 0.6 * (sum(scores) / len(scores)) + 0.4 * worst["freshness_score"]
    return DataFreshness(
        overall_freshness=round(overall, 3),
        stale_source_count=sum(1 for d in details if d["is_stale"]),
        total_source_count=len(details),
        worst_source=worst["source"],
        details=details,
    )


# --- Committee views ---

BEAR_WEIGHT = 0.3
BULL_WEIGHT = 0.3
JUDGE_WEIGHT = 0.4
HIGH_DISAGREEMENT_SIGMA = 2.0


def compute_weighted_committee_score(
    bear: BearAnalysis | None,
    bull: BullAnalysis | None,
    judge: JudgeResult | None,
) -> float | None:
    """Role-weighted committee score (0..100). Missing roles drop out."""
    parts: list[tuple[float, float]] = []
    if bear and bear.get("risk_score") is not None:
        parts.append((100.0 - _score100(bear["risk_score"]), BEAR_WEIGHT))
    if bull and bull.get("upside_score") is not None:
        parts.append((_score100(bull["upside_score"]), BULL_WEIGHT))
    if judge and judge.get("overall_score") is not None:
        parts.append((_score100(judge["overall_score"]), JUDGE_WEIGHT))
    if not parts:
        return None
    total_weight = sum(w for _, w in parts)
    return round(sum(s * w for s, w in parts) / total_weight, 1)


def compute_committee_disagreement(
    bear: BearAnalysis,
    bull: BullAnalysis,
    judge_dimensions: dict[str, float] | None = None,
    judge_overall: float | None = None,
) -> CommitteeDisagreement:
    """Spread of the three agents' views on a 0..10 scale.

    ``judge_dimensions`` holds the Judge's rubric sub-scores (0..10).
    """
    views = [
        (100.0 - _score100(bear.get("risk_score"))) / 10.0,
        _score100(bull.get("upside_score")) / 10.0,
    ]
    if judge_overall is not None:
        views.append(_score100(judge_overall) / 10.0)
    std_dev = statistics.pstdev(views) if len(views) > 1 else 0.0

    per_dimension: dict[str, list[float]] = {}
    for source in (bear.get("dimension_scores"), bull.get("dimension_scores"), judge_dimensions):
        for key, value in (source or {}).items():
            per_dimension.setdefault(key, []).append(float(value))

    spread = {
        key: round(max(vals) - min(vals), 2)
        for key, vals in sorted(per_dimension.items())
        if len(vals) > 1
    }
    top = max(spread, key=lambda k: (spread[k], k)) if spread else None

    std_dev = round(std_dev, 3)
    return CommitteeDisagreement(
        score_std_dev=std_dev,
        high_disagreement=std_dev > HIGH_DISAGREEMENT_SIGMA,
        dimension_spread=spread,
        top_dimension=top,
    )
