"""Scoring rubric shared by every committee stage."""

from __future__ import annotations

from typing import TypedDict

from idea_committee.contracts import ProjectDomain


class RubricDimension(TypedDict):
    key: str
    title: str
    weight: float
    judge_field: tuple[str, str]  # (JudgeResult section, score field)
    anchors: list[tuple[str, str]]  # (band, description)


RUBRIC_DIMENSIONS: list[RubricDimension] = [
    RubricDimension(
        key="market_opportunity",
        title="MARKET OPPORTUNITY",
        weight=0.30,
        judge_field=("market", "market_fit_score"),
        anchors=[
            ("0-2", "No identifiable buyer or the problem is imaginary."),
            ("3-4", "Niche demand with weak willingness to pay or heavy incumbents."),
            ("5-6", "Real demand, but distribution or differentiation is unproven."),
            ("7-8", "Clear buyer, growing segment, credible wedge against incumbents."),
            ("9-10", "Urgent, large, underserved demand with evidence of pull."),
        ],
    ),
    RubricDimension(
        key="technical_feasibility",
        title="TECHNICAL FEASIBILITY",
        weight=0.25,
        judge_field=("technical", "feasibility_score"),
        anchors=[
            ("0-2", "Requires breakthroughs or violates known constraints."),
            ("3-4", "Buildable only with major unsolved components."),
            ("5-6", "Buildable with known techniques; notable integration risk."),
            ("7-8", "Standard stack, clear architecture, manageable risk."),
            ("9-10", "Straightforward build with proven components."),
        ],
    ),
    RubricDimension(
        key="tokenomics",
        title="TOKENOMICS",
        weight=0.20,
        judge_field=("tokenomics", "design_score"),
        anchors=[
            ("0-2", "Token is extractive or has no sink; obvious dump dynamics."),
            ("3-4", "Token is bolted on; utility is speculative."),
            ("5-6", "Plausible utility, unclear emissions or value accrual."),
            ("7-8", "Token is needed by the mechanism, with sinks and sane emissions."),
            ("9-10", "Token is essential and incentive-compatible under stress."),
        ],
    ),
    RubricDimension(
        key="execution_risk",
        title="EXECUTION RISK",
        weight=0.25,
        judge_field=("execution", "execution_score"),
        anchors=[
            ("0-2", "Scope far beyond the team; no path to a first release."),
            ("3-4", "Large scope, key skills missing, long time to market."),
            ("5-6", "Achievable with focus; some capability gaps."),
            ("7-8", "Tight scope and a team that has shipped similar work."),
            ("9-10", "Minimal execution risk; MVP is weeks away."),
        ],
    ),
]

DISCIPLINE_RULES: list[str] = [
    "Score each dimension independently before computing the overall score.",
    "Use the full 0-10 range; 5 means genuinely average, not 'unknown'.",
    "Cite evidence tags for every factual statement; unsupported facts cap the sub-score at 6.",
    "Execution Risk is scored as readiness: higher means lower risk.",
    "When tokens are unnecessary, score Tokenomics on whether the idea avoids one sensibly.",
]

_DOMAIN_ADDENDA: dict[ProjectDomain, tuple[str, list[str]]] = {
    ProjectDomain.CRYPTO_DEFI: (
        "DeFi",
        [
            "Audits, oracle design and liquidation mechanics dominate Technical Feasibility.",
            "TVL concentration among incumbents weighs on Market Opportunity.",
            "Penalize mercenary-liquidity incentives in Tokenomics.",
        ],
    ),
    ProjectDomain.MEMECOIN: (
        "Memecoin",
        [
            "Distribution, community and attention are the market; utility claims are secondary.",
            "Mint/freeze authority and holder concentration are hard Tokenomics gates.",
            "Scores above 7 require evidence of organic traction.",
        ],
    ),
    ProjectDomain.AI_ML: (
        "AI",
        [
            "Thin wrappers over foundation models score at most 5 on Technical Feasibility moat.",
            "Data access and inference cost shape Execution Risk.",
        ],
    ),
    ProjectDomain.SAAS: (
        "SaaS",
        [
            "Weigh switching costs and sales-cycle length in Market Opportunity.",
            "A token is usually unnecessary; reward ideas that do not force one.",
        ],
    ),
    ProjectDomain.CONSUMER: (
        "Consumer",
        [
            "Retention and distribution loops matter more than feature lists.",
            "Cold-start problems weigh on Execution Risk.",
        ],
    ),
}
_DEFAULT_ADDENDUM: tuple[str, list[str]] = (
    "General",
    ["Apply the anchors as written; no domain-specific adjustments."],
)


def domain_addendum(domain: ProjectDomain) -> tuple[str, list[str]]:
    return _DOMAIN_ADDENDA.get(domain, _DEFAULT_ADDENDUM)


def composition_formula() -> str:
    parts = [f"({d['weight']:.2f}x{d['key']})" for d in RUBRIC_DIMENSIONS]
    return " + ".join(parts)


def render_rubric(domain: ProjectDomain) -> str:
    """Render the rubric block embedded in every stage's user prompt."""
    lines = ["SCORING RUBRIC (MANDATORY):"]
    for dim in RUBRIC_DIMENSIONS:
        lines.append(f"{dim['title']} (weight {dim['weight']:.2f}):")
        for band, text in dim["anchors"]:
            lines.append(f"  {band}: {text}")
    lines.append("")
    lines.append("Discipline:")
    lines.extend(f"- {rule}" for rule in DISCIPLINE_RULES)
    lines.append(f"Composition: {composition_formula()}, scaled to 0-100.")

    label, notes = domain_addendum(domain)
    lines.append("")
    lines.append(f"Domain calibration ({label}):")
    lines.extend(f"- {note}" for note in notes)
    return "\n".join(lines)
