"""Committee role briefs and per-stage output schemas."""

from __future__ import annotations

from typing import TypedDict

from idea_committee.contracts import ProjectDomain, Stage


class RoleBrief(TypedDict):
    title: str
    stance: str
    objectives: list[str]
    instructions: list[str]


ROLES: dict[Stage, RoleBrief] = {
    Stage.BEAR: RoleBrief(
        title="Adversarial Critic + Technical Risk Assessor",
        stance="You are the Bear. Your job is to find the reasons this idea fails.",
        objectives=[
            "Surface fatal flaws before capital is committed.",
            "Stress-test technical and token design assumptions.",
        ],
        instructions=[
            "Assume the founders are optimistic; look for what they missed.",
            "Rank flaws by how likely they are to kill the project.",
            "Do not invent facts; tag evidence or mark claims as inference.",
        ],
    ),
    Stage.BULL: RoleBrief(
        title="Market Opportunity + Growth Analyst",
        stance="You are the Bull. Your job is to make the strongest honest case for this idea.",
        objectives=[
            "Identify the asymmetric upside and the wedge into the market.",
            "Name the signals that would confirm the thesis early.",
        ],
        instructions=[
            "Argue from evidence; optimism is not a substitute for data.",
            "Acknowledge the biggest risk, then explain why it is survivable.",
        ],
    ),
    Stage.JUDGE: RoleBrief(
        title="Calibration Synthesizer + Decision Maker",
        stance="You are the Judge. Weigh the Bear and Bull reports against the evidence.",
        objectives=[
            "Produce a calibrated, evidence-bound score and report.",
            "Resolve disagreements between the Bear and the Bull explicitly.",
        ],
        instructions=[
            "Do not average the committee; decide which arguments the evidence supports.",
            "Every fact claim must list evidence ids from the EVIDENCE PACK.",
            "The overall score must follow the rubric composition of your sub-scores.",
        ],
    ),
}

_ROLE_DOMAIN_NOTES: dict[ProjectDomain, dict[Stage, str]] = {
    ProjectDomain.CRYPTO_DEFI: {
        Stage.BEAR: "Probe oracle manipulation, liquidation cascades and smart-contract risk.",
        Stage.BULL: "Look for underserved collateral types, chains or user segments.",
        Stage.JUDGE: "Weigh security posture heavily; unaudited lending designs cap out early.",
    },
    ProjectDomain.MEMECOIN: {
        Stage.BEAR: "Check mint/freeze authority, holder concentration and rug vectors.",
        Stage.BULL: "Assess narrative strength and community distribution.",
        Stage.JUDGE: "Treat attention as the product; discount utility claims.",
    },
    ProjectDomain.AI_ML: {
        Stage.BEAR: "Ask whether a foundation-model release makes this obsolete.",
        Stage.BULL: "Look for proprietary data or workflow lock-in.",
        Stage.JUDGE: "Separate genuine moats from prompt engineering.",
    },
}
_DEFAULT_ROLE_NOTE = "Apply the rubric anchors without domain-specific adjustments."


def role_domain_note(stage: Stage, domain: ProjectDomain) -> str:
    return _ROLE_DOMAIN_NOTES.get(domain, {}).get(stage, _DEFAULT_ROLE_NOTE)


def render_role_brief(stage: Stage, domain: ProjectDomain) -> str:
    role = ROLES[stage]
    lines = [f"Role: {role['title']}", role["stance"], "Objectives:"]
    lines.extend(f"- {o}" for o in role["objectives"])
    lines.append("Instructions:")
    lines.extend(f"- {i}" for i in role["instructions"])
    lines.append(f"Domain focus: {role_domain_note(stage, domain)}")
    return "\n".join(lines)


_DIMENSION_SCORES_SCHEMA = (
    '"dimension_scores": {"market_opportunity": 0-10, "technical_feasibility": 0-10, '
    '"tokenomics": 0-10, "execution_risk": 0-10}'
)

OUTPUT_SCHEMAS: dict[Stage, str] = {
    Stage.BEAR: (
        "{\n"
        '  "fatal_flaws": ["..."],\n'
        '  "risk_score": 0-100,\n'
        '  "verdict": "KILL" | "AVOID" | "SHORT",\n'
        '  "roast": "one paragraph",\n'
        f"  {_DIMENSION_SCORES_SCHEMA},\n"
        '  "structured_analysis": "markdown following the template"\n'
        "}"
    ),
    Stage.BULL: (
        "{\n"
        '  "alpha_signals": ["..."],\n'
        '  "upside_score": 0-100,\n'
        '  "verdict": "LONG" | "APE" | "ALL IN",\n'
        '  "pitch": "one paragraph",\n'
        f"  {_DIMENSION_SCORES_SCHEMA},\n"
        '  "structured_analysis": "markdown following the template"\n'
        "}"
    ),
    Stage.JUDGE: (
        "{\n"
        '  "overall_score": 0-100,\n'
        '  "reasoning_steps": ["..."],\n'
        '  "summary": {"title": "", "one_liner": "", "main_verdict": ""},\n'
        '  "technical": {"feasibility_score": 0-100, "key_risks": [], '
        '"required_components": [], "comments": ""},\n'
        '  "tokenomics": {"token_needed": true, "design_score": 0-100, '
        '"main_issues": [], "suggestions": []},\n'
        '  "market": {"market_fit_score": 0-100, "target_audience": [], '
        '"competitor_signals": [], "go_to_market_risks": []},\n'
        '  "execution": {"complexity_level": "low" | "medium" | "high", '
        '"execution_score": 0-100, "founder_readiness_flags": [], "estimated_timeline": ""},\n'
        '  "recommendations": {"must_fix_before_build": [], "recommended_pivots": [], '
        '"nice_to_have_later": []},\n'
        '  "structured_analysis": "markdown following the template",\n'
        '  "claims": [{"text": "", "claim_type": "fact" | "inference", '
        '"evidence_ids": ["..."], "support": "corroborated" | "uncorroborated"}]\n'
        "}"
    ),
}
