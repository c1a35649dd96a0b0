"""Verifier — deterministic checks over the draft Judge report plus bounded repair.

Every pass runs the full check battery. A failing pass spends one unit of
the repair budget: deterministic patches are applied first (score clamping,
consistency envelope, evidence-id integrity, claim support), then, when a
``repair_fn`` is available and model-only failures remain (undecodable
output, missing fields, missing sections), the Judge is re-invoked with a
corrective instruction. Budget exhaustion is fatal; no default score is
ever substituted.
"""

from __future__ import annotations

import copy
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from idea_committee.committee.decode import Decoded, DecodeError, Ok
from idea_committee.contracts import (
    ClaimSupport,
    ClaimType,
    EvidenceItem,
    JudgeResult,
    VerifierResult,
    VerifierStatus,
)
from idea_committee.errors import VerificationFailure
from idea_committee.prompts.rubric import RUBRIC_DIMENSIONS
from idea_committee.verify.structured import parse_structured_analysis

RepairFn = Callable[[list[str]], Awaitable[Decoded[dict]]]

# Failures only a fresh model response can fix.
MODEL_ONLY_CHECKS = frozenset({"decode", "schema", "structured_sections"})

_NUMBER = (int, float)

# section -> {field: expected type}
_SCHEMA: dict[str, dict[str, Any]] = {
    "summary": {"title": str, "one_liner": str, "main_verdict": str},
    "technical": {
        "feasibility_score": _NUMBER,
        "key_risks": list,
        "required_components": list,
        "comments": str,
    },
    "tokenomics": {
        "token_needed": bool,
        "design_score": _NUMBER,
        "main_issues": list,
        "suggestions": list,
    },
    "market": {
        "market_fit_score": _NUMBER,
        "target_audience": list,
        "competitor_signals": list,
        "go_to_market_risks": list,
    },
    "execution": {
        "complexity_level": str,
        "execution_score": _NUMBER,
        "founder_readiness_flags": list,
        "estimated_timeline": str,
    },
    "recommendations": {
        "must_fix_before_build": list,
        "recommended_pivots": list,
        "nice_to_have_later": list,
    },
}
_TOP_LEVEL: dict[str, Any] = {
    "overall_score": _NUMBER,
    "reasoning_steps": list,
    "structured_analysis": str,
    "claims": list,
}

_CLAIM_TYPES = {t.value for t in ClaimType}
_CLAIM_SUPPORT = {s.value for s in ClaimSupport}


def _is_type(value: Any, expected: Any) -> bool:
    if expected is _NUMBER:
        return isinstance(value, _NUMBER) and not isinstance(value, bool)
    return isinstance(value, expected)


def _score_fields() -> list[tuple[str | None, str]]:
    fields: list[tuple[str | None, str]] = [(None, "overall_score")]
    fields += [dim["judge_field"] for dim in RUBRIC_DIMENSIONS]
    return fields


def _get_score(result: dict, section: str | None, name: str) -> float | None:
    container = result if section is None else result.get(section)
    if not isinstance(container, dict):
        return None
    value = container.get(name)
    return float(value) if _is_type(value, _NUMBER) else None


def weighted_category_score(result: dict) -> float | None:
    """Rubric-weighted average of category sub-scores.

    Tokenomics drops out when no token is needed; remaining weights are
    renormalized.
    """
    token_needed = (result.get("tokenomics") or {}).get("token_needed", True)
    total = 0.0
    weight_sum = 0.0
    for dim in RUBRIC_DIMENSIONS:
        section, name = dim["judge_field"]
        if section == "tokenomics" and token_needed is False:
            continue
        score = _get_score(result, section, name)
        if score is None:
            continue
        total += score * dim["weight"]
        weight_sum += dim["weight"]
    if weight_sum == 0:
        return None
    return total / weight_sum


# --- Individual checks (each returns failure messages) ---


def _check_schema(result: dict) -> list[str]:
    problems = []
    for name, expected in _TOP_LEVEL.items():
        if name not in result:
            problems.append(f"missing field '{name}'")
        elif not _is_type(result[name], expected):
            problems.append(f"field '{name}' has wrong type")
    if isinstance(result.get("reasoning_steps"), list) and not result["reasoning_steps"]:
        problems.append("reasoning_steps is empty")

    for section, fields in _SCHEMA.items():
        block = result.get(section)
        if not isinstance(block, dict):
            problems.append(f"missing section '{section}'")
            continue
        for name, expected in fields.items():
            if name not in block:
                problems.append(f"missing field '{section}.{name}'")
            elif not _is_type(block[name], expected):
                problems.append(f"field '{section}.{name}' has wrong type")

    claims = result.get("claims")
    for i, claim in enumerate(claims if isinstance(claims, list) else []):
        if not isinstance(claim, dict):
            problems.append(f"claims[{i}] is not an object")
            continue
        if not isinstance(claim.get("text"), str):
            problems.append(f"claims[{i}].text missing")
        if claim.get("claim_type") not in _CLAIM_TYPES:
            problems.append(f"claims[{i}].claim_type must be one of {sorted(_CLAIM_TYPES)}")
        if not isinstance(claim.get("evidence_ids"), list):
            problems.append(f"claims[{i}].evidence_ids must be a list")
        if claim.get("support") not in _CLAIM_SUPPORT:
            problems.append(f"claims[{i}].support must be one of {sorted(_CLAIM_SUPPORT)}")
    return problems


def _check_score_range(result: dict) -> list[str]:
    problems = []
    for section, name in _score_fields():
        score = _get_score(result, section, name)
        if score is not None and not 0 <= score <= 100:
            label = name if section is None else f"{section}.{name}"
            problems.append(f"{label}={score:g} outside 0..100")
    return problems


def _check_sections(result: dict) -> list[str]:
    text = result.get("structured_analysis")
    if not isinstance(text, str):
        return []  # reported by schema
    missing = parse_structured_analysis(text)["missing_sections"]
    return [f"structured_analysis missing '## {s}' section" for s in missing]


def _check_consistency(result: dict, tolerance: float) -> list[str]:
    overall = _get_score(result, None, "overall_score")
    expected = weighted_category_score(result)
    if overall is None or expected is None:
        return []
    if abs(overall - expected) > tolerance:
        return [
            f"overall_score={overall:g} deviates from weighted category score "
            f"{expected:.1f} by more than {tolerance:g}"
        ]
    return []


def _claims(result: dict) -> list[dict]:
    claims = result.get("claims")
    if not isinstance(claims, list):
        return []
    return [c for c in claims if isinstance(c, dict)]


def _check_evidence(result: dict, pool_ids: set[str]) -> list[str]:
    problems = []
    for i, claim in enumerate(_claims(result)):
        ids = claim.get("evidence_ids")
        if not isinstance(ids, list):
            continue
        unknown = [e for e in ids if e not in pool_ids]
        if unknown:
            problems.append(
                f"claims[{i}] ({claim.get('claim_type')}) references unknown evidence "
                f"{', '.join(map(str, unknown))}"
            )
    return problems


def _check_claim_support(result: dict) -> list[str]:
    problems = []
    for i, claim in enumerate(_claims(result)):
        if (
            claim.get("claim_type") == ClaimType.FACT.value
            and not claim.get("evidence_ids")
            and claim.get("support") == ClaimSupport.CORROBORATED.value
        ):
            problems.append(f"claims[{i}] is a fact marked corroborated without evidence")
    return problems


def run_checks(
    draft: Decoded[dict] | dict,
    pool_ids: set[str],
    *,
    tolerance: float = 25.0,
) -> tuple[list[VerificationFailure], int]:
    """Run the full battery. Returns (failures, number of checks executed).

    An undecodable draft stops after the decode check.
    """
    if isinstance(draft, DecodeError):
        return [VerificationFailure("decode", f"judge output undecodable: {draft.reason}")], 1
    result = draft.payload if isinstance(draft, Ok) else draft

    battery: list[tuple[str, Callable[[], list[str]]]] = [
        ("decode", lambda: []),
        ("schema", lambda: _check_schema(result)),
        ("score_range", lambda: _check_score_range(result)),
        ("structured_sections", lambda: _check_sections(result)),
        ("numeric_consistency", lambda: _check_consistency(result, tolerance)),
        ("evidence_integrity", lambda: _check_evidence(result, pool_ids)),
        ("claim_support", lambda: _check_claim_support(result)),
    ]
    failures = []
    for name, check in battery:
        failures.extend(VerificationFailure(name, msg) for msg in check())
    return failures, len(battery)


# --- Deterministic patches ---


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def patch_draft(result: dict, pool_ids: set[str], *, tolerance: float = 25.0) -> dict:
    """Apply every deterministic fix. Returns a new dict; input is untouched."""
    patched = copy.deepcopy(result)

    for section, name in _score_fields():
        score = _get_score(patched, section, name)
        if score is None:
            continue
        container = patched if section is None else patched[section]
        container[name] = round(_clamp(score), 1)

    for section, fields in _SCHEMA.items():
        block = patched.get(section)
        if not isinstance(block, dict):
            continue
        for name, expected in fields.items():
            if expected is list and name not in block:
                block[name] = []
    if "claims" not in patched:
        patched["claims"] = []

    overall = _get_score(patched, None, "overall_score")
    expected = weighted_category_score(patched)
    if overall is not None and expected is not None and abs(overall - expected) > tolerance:
        low, high = expected - tolerance, expected + tolerance
        patched["overall_score"] = round(_clamp(min(max(overall, low), high)), 1)

    for claim in _claims(patched):
        if isinstance(claim.get("claim_type"), str):
            claim["claim_type"] = claim["claim_type"].strip().lower()
        if isinstance(claim.get("support"), str):
            claim["support"] = claim["support"].strip().lower()
        ids = claim.get("evidence_ids")
        if isinstance(ids, list):
            kept = [e for e in ids if e in pool_ids]
            if len(kept) != len(ids):
                claim["evidence_ids"] = kept
                claim["support"] = ClaimSupport.UNCORROBORATED.value
        if claim.get("claim_type") == ClaimType.FACT.value and not claim.get("evidence_ids"):
            claim["support"] = ClaimSupport.UNCORROBORATED.value
    return patched


class Verifier:
    def __init__(self, *, max_repairs: int = 2, tolerance: float = 25.0) -> None:
        self.max_repairs = max_repairs
        self.tolerance = tolerance

    async def _repair(
        self,
        draft: Decoded[dict],
        failures: list[VerificationFailure],
        pool_ids: set[str],
        repair_fn: RepairFn | None,
    ) -> Decoded[dict]:
        current = draft
        if isinstance(current, Ok):
            current = Ok(patch_draft(current.payload, pool_ids, tolerance=self.tolerance))
            remaining, _ = run_checks(current, pool_ids, tolerance=self.tolerance)
        else:
            remaining = failures

        needs_model = [f for f in remaining if f.check in MODEL_ONLY_CHECKS]
        if not needs_model or repair_fn is None:
            return current

        try:
            fresh = await repair_fn([str(f) for f in remaining])
        except Exception as e:
            print(f"WARNING: judge repair call failed: {e}", file=sys.stderr)
            return current
        if isinstance(fresh, Ok):
            return Ok(patch_draft(fresh.payload, pool_ids, tolerance=self.tolerance))
        return fresh

    async def verify(
        self,
        draft: Decoded[dict] | JudgeResult,
        evidence_pool: list[EvidenceItem],
        *,
        repair_fn: RepairFn | None = None,
    ) -> VerifierResult:
        if not isinstance(draft, (Ok, DecodeError)):
            draft = Ok(draft)
        pool_ids = {e["id"] for e in evidence_pool}

        current: Decoded[dict] = draft
        issues: list[str] = []
        checks_failed = 0
        checks_run = 0
        repairs_used = 0

        while True:
            failures, ran = run_checks(current, pool_ids, tolerance=self.tolerance)
            checks_run += ran
            checks_failed += len({f.check for f in failures})
            for f in failures:
                if str(f) not in issues:
                    issues.append(str(f))
            if not failures or repairs_used >= self.max_repairs:
                break
            repairs_used += 1
            current = await self._repair(current, failures, pool_ids, repair_fn)

        if not failures and repairs_used == 0:
            status = VerifierStatus.PASS
        elif not failures:
            status = VerifierStatus.REPAIRED
        else:
            status = VerifierStatus.FAIL

        return VerifierResult(
            status=status.value,
            issues=issues,
            repaired=status == VerifierStatus.REPAIRED,
            result=current.payload if isinstance(current, Ok) else None,
            checks_run=checks_run,
            checks_failed=checks_failed,
            repairs_used=repairs_used,
            fatal_failure=status == VerifierStatus.FAIL,
        )
