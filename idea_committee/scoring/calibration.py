"""Calibrator — map raw committee scores onto domain reference distributions.

Committee output runs systematically hot for some domains (memecoins, DeFi)
and close to neutral for others. Each domain anchor describes the raw score
distribution the committee produces and the reference distribution we want;
scores are moved by a z-score mapping between the two, then a small set of
numeric domain rules is applied. Only numeric fields change.
"""

from __future__ import annotations

import copy
import re
from typing import NamedTuple

from idea_committee.contracts import EvaluationInput, JudgeResult, ProjectDomain
from idea_committee.prompts.rubric import RUBRIC_DIMENSIONS
from idea_committee.verify.verifier import weighted_category_score


class Anchor(NamedTuple):
    raw_mean: float
    raw_std: float
    ref_mean: float
    ref_std: float


CALIBRATION_ANCHORS: dict[ProjectDomain, Anchor] = {
    ProjectDomain.CRYPTO_DEFI: Anchor(62.0, 14.0, 55.0, 15.0),
    ProjectDomain.MEMECOIN: Anchor(58.0, 16.0, 40.0, 18.0),
    ProjectDomain.AI_ML: Anchor(66.0, 12.0, 58.0, 14.0),
    ProjectDomain.SAAS: Anchor(64.0, 12.0, 60.0, 13.0),
    ProjectDomain.CONSUMER: Anchor(60.0, 14.0, 52.0, 15.0),
    ProjectDomain.HARDWARE: Anchor(55.0, 13.0, 50.0, 14.0),
}
DEFAULT_ANCHOR = Anchor(60.0, 15.0, 55.0, 15.0)

# (floor, cap) applied to overall_score after mapping
_DOMAIN_BOUNDS: dict[ProjectDomain, tuple[float, float]] = {
    ProjectDomain.MEMECOIN: (10.0, 90.0),
    ProjectDomain.CRYPTO_DEFI: (10.0, 95.0),
}
_DEFAULT_BOUNDS = (5.0, 100.0)

_SECURITY_TERMS = re.compile(r"\b(audit|audited|security|formal verification|bug bounty)\b", re.I)
_VAGUE_DESCRIPTION_CHARS = 100


def get_anchor(domain: ProjectDomain | str) -> Anchor:
    try:
        domain = ProjectDomain(domain)
    except ValueError:
        return DEFAULT_ANCHOR
    return CALIBRATION_ANCHORS.get(domain, DEFAULT_ANCHOR)


def map_score(raw: float, anchor: Anchor) -> float:
    mapped = anchor.ref_mean + (raw - anchor.raw_mean) * anchor.ref_std / anchor.raw_std
    return round(max(0.0, min(100.0, mapped)), 1)


def _score_paths() -> list[tuple[str | None, str]]:
    return [(None, "overall_score")] + [dim["judge_field"] for dim in RUBRIC_DIMENSIONS]


def _domain_rules(
    result: JudgeResult,
    domain: ProjectDomain,
    idea: EvaluationInput | None,
    tolerance: float | None = None,
) -> list[str]:
    """Numeric-only adjustments to overall_score. Mutates ``result``; returns notes.

    With ``tolerance`` set, overall_score is pulled back within that distance
    of the weighted category score before the domain bounds apply. Every
    domain's floor sits below 25 and its cap above 75, so the bounds never
    push a score back out of a 25-point envelope.
    """
    notes: list[str] = []
    score = result["overall_score"]
    description = (idea or {}).get("description", "")

    if (
        domain == ProjectDomain.CRYPTO_DEFI
        and str(result["execution"]["complexity_level"]).strip().lower() == "high"
        and not _SECURITY_TERMS.search(description + " " + result.get("structured_analysis", ""))
    ):
        score -= 5
        notes.append("DeFi: high complexity without security/audit plan (-5)")

    if (
        result["technical"]["feasibility_score"] >= 75
        and result["market"]["market_fit_score"] >= 75
        and result["tokenomics"]["token_needed"] is False
        and score < 60
    ):
        score = 60.0
        notes.append("Strong infrastructure without a token: floor 60")

    if idea is not None and len(description.strip()) < _VAGUE_DESCRIPTION_CHARS:
        score -= 5
        notes.append(f"Vague description (<{_VAGUE_DESCRIPTION_CHARS} chars) (-5)")

    if tolerance is not None:
        expected = weighted_category_score(result)
        if expected is not None and abs(score - expected) > tolerance:
            score = max(expected - tolerance, min(expected + tolerance, score))
            notes.append(
                f"Overall held within {tolerance:g} of weighted category score {expected:.1f}"
            )

    floor, cap = _DOMAIN_BOUNDS.get(domain, _DEFAULT_BOUNDS)
    bounded = max(floor, min(cap, score))
    if bounded != score:
        notes.append(f"{domain.value}: overall bounded to {floor:g}..{cap:g}")
    result["overall_score"] = round(bounded, 1)
    return notes


def calibrate_with_notes(
    judge: JudgeResult,
    domain: ProjectDomain | str,
    *,
    idea: EvaluationInput | None = None,
    tolerance: float | None = None,
) -> tuple[JudgeResult, list[str]]:
    try:
        domain = ProjectDomain(domain)
    except ValueError:
        domain = ProjectDomain.OTHER
    anchor = get_anchor(domain)
    calibrated: JudgeResult = copy.deepcopy(judge)

    for section, name in _score_paths():
        container = calibrated if section is None else calibrated[section]
        container[name] = map_score(float(container[name]), anchor)

    notes = [
        f"Anchor {domain.value}: raw {anchor.raw_mean:g}±{anchor.raw_std:g} "
        f"-> reference {anchor.ref_mean:g}±{anchor.ref_std:g}"
    ]
    notes += _domain_rules(calibrated, domain, idea, tolerance)
    return calibrated, notes


def calibrate(
    judge: JudgeResult,
    domain: ProjectDomain | str,
    *,
    idea: EvaluationInput | None = None,
    tolerance: float | None = None,
) -> JudgeResult:
    """Pure mapping from raw to calibrated scores; shape is unchanged."""
    return calibrate_with_notes(judge, domain, idea=idea, tolerance=tolerance)[0]
