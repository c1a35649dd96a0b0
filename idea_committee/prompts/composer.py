"""PromptComposer — deterministic system/user prompts per committee stage.

Same (stage, idea, prior outputs, grounding) always yields byte-identical
prompts: JSON is key-sorted and nothing reads the clock. Staleness figures
come from the envelopes themselves.
"""

from __future__ import annotations

import json
from typing import Any, TypedDict

from idea_committee.contracts import (
    BearAnalysis,
    BullAnalysis,
    EvaluationInput,
    GroundingBundle,
    ProjectDomain,
    Stage,
)
from idea_committee.prompts.brief import render_grounding_brief, staleness_note
from idea_committee.prompts.roles import OUTPUT_SCHEMAS, ROLES, render_role_brief
from idea_committee.prompts.rubric import RUBRIC_DIMENSIONS, composition_formula, render_rubric
from idea_committee.scoring.domain import classify_domain

REASONING_CHAIN = "evidence -> reasoning -> uncertainty -> sub-score"
EVIDENCE_TAGS = ("MARKET_SNAPSHOT", "TOKEN_SECURITY", "COMPETITIVE_MEMO")
MAX_SUMMARY_CLAIMS = 12


class StagePrompt(TypedDict):
    system: str
    user: str


class PriorOutputs(TypedDict, total=False):
    bear: BearAnalysis
    bull: BullAnalysis


def _dump(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, indent=2, ensure_ascii=False, default=str)


def structured_template() -> str:
    """Section-header template every stage must follow in structured_analysis."""
    lines = ["## EVIDENCE"]
    lines.extend(f"- [{tag}] what this source shows, or 'unavailable'" for tag in EVIDENCE_TAGS)
    for dim in RUBRIC_DIMENSIONS:
        lines += [
            "",
            f"## {dim['title']}",
            "Evidence: tagged facts relied on",
            "Reasoning: how the evidence moves the score",
            "Uncertainty: what could change the score",
            "Sub-score: X/10",
        ]
    lines += [
        "",
        "## OVERALL",
        f"Composition: {composition_formula()}",
        "Final score: X/100",
        "Confidence: HIGH|MEDIUM|LOW",
        "Top risk: one sentence",
    ]
    return "\n".join(lines)


def _system_prompt(stage: Stage) -> str:
    role = ROLES[stage]
    return "\n".join(
        [
            f"You are a member of an investment committee evaluating a project idea ({role['title']}).",
            "",
            f"Follow an {REASONING_CHAIN} chain in structured_analysis: for every rubric "
            "dimension, state the evidence, reason from it, name the uncertainty, and only "
            "then give the sub-score.",
            "structured_analysis MUST contain the '## EVIDENCE' and '## OVERALL' sections "
            "and one section per rubric dimension, exactly as in this template:",
            "",
            structured_template(),
            "",
            "Respond with a single JSON object and nothing else, matching this schema:",
            OUTPUT_SCHEMAS[stage],
        ]
    )


def _idea_block(idea: EvaluationInput) -> str:
    return _dump({k: v for k, v in idea.items() if v not in ("", None)})


def _base_user_sections(
    stage: Stage, idea: EvaluationInput, grounding: GroundingBundle, domain: ProjectDomain
) -> list[str]:
    sections: list[str] = ["Input data for evaluation."]
    note = staleness_note(grounding)
    if note:
        sections.append(note)
    sections += [
        f"Domain classification: {domain.value}",
        "",
        "--- SCORING RUBRIC ---",
        render_rubric(domain),
        "",
        "--- STRUCTURED GROUNDING BRIEF ---",
        render_grounding_brief(grounding),
        "",
        "--- IDEA ---",
        _idea_block(idea),
        "",
        "--- ROLE BRIEF ---",
        render_role_brief(stage, domain),
    ]
    return sections


def _claims_summary(grounding: GroundingBundle) -> list[str]:
    lines = []
    for i, claim in enumerate(grounding.get("claims", [])[:MAX_SUMMARY_CLAIMS], start=1):
        ids = ",".join(claim["evidence_ids"]) or "none"
        lines.append(f"{i}. [{claim['claim_type']}] {claim['support']} | ids={ids} | {claim['text']}")
    return lines or ["(no grounding claims)"]


def _judge_sections(prior: PriorOutputs, grounding: GroundingBundle) -> list[str]:
    if "bear" not in prior or "bull" not in prior:
        raise ValueError("Judge prompt requires both bear and bull outputs")

    pool = grounding.get("evidence_pool", [])
    evidence_lines = [f"- {e['id']} ({e['source']}): {e['title']}" for e in pool]
    unavailable = grounding.get("unavailable_sources", [])

    return [
        "",
        "--- COMMITTEE REPORTS ---",
        "Bear report:",
        _dump(prior["bear"]),
        "Bull report:",
        _dump(prior["bull"]),
        "",
        "--- EVIDENCE PACK ---",
        "Evidence ids:",
        *(evidence_lines or ["(none)"]),
        f"Unavailable sources: {', '.join(unavailable) if unavailable else 'none'}",
        "Grounding claims:",
        *_claims_summary(grounding),
        "",
        "--- INSTRUCTION ---",
        "Synthesize the committee into a final report. Use only evidence ids listed above "
        "in claims; claims without evidence must be 'inference' or 'uncorroborated'.",
    ]


def compose_stage_prompt(
    stage: Stage | str,
    idea: EvaluationInput,
    prior: PriorOutputs | None,
    grounding: GroundingBundle,
    *,
    domain: ProjectDomain | None = None,
) -> StagePrompt:
    stage = Stage(stage)
    if domain is None:
        domain = ProjectDomain(classify_domain(idea)["domain"])

    sections = _base_user_sections(stage, idea, grounding, domain)
    if stage == Stage.JUDGE:
        sections += _judge_sections(prior or {}, grounding)
    else:
        sections += ["", "--- INSTRUCTION ---", "Return your analysis as JSON."]

    return StagePrompt(system=_system_prompt(stage), user="\n".join(sections))
