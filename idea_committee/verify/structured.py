"""Parse the section-header structured analysis emitted by committee stages."""

from __future__ import annotations

import re
from typing import TypedDict

from idea_committee.prompts.rubric import RUBRIC_DIMENSIONS

_SECTION_RE = re.compile(r"^##\s+(.+?)\s*$", re.MULTILINE)
_SUBSCORE_RE = re.compile(r"sub[- ]?score\s*:\s*([0-9]+(?:\.[0-9]+)?)\s*/\s*10", re.IGNORECASE)
_FINAL_RE = re.compile(r"final\s+score\s*:\s*([0-9]+(?:\.[0-9]+)?)", re.IGNORECASE)
_CITATION_RE = re.compile(r"\[(MARKET_SNAPSHOT|TOKEN_SECURITY|COMPETITIVE_MEMO)\]")

REQUIRED_SECTIONS = ("EVIDENCE", "OVERALL")


class DimensionSection(TypedDict):
    sub_score: float | None
    reasoning: str
    uncertainty: str


class StructuredAnalysis(TypedDict):
    sections: list[str]
    dimensions: dict[str, DimensionSection]
    final_score: float | None
    citations: list[str]
    missing_sections: list[str]


def _split_sections(text: str) -> dict[str, str]:
    matches = list(_SECTION_RE.finditer(text))
    sections: dict[str, str] = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        sections[match.group(1).strip().upper()] = text[match.end() : end]
    return sections


def _line_value(body: str, label: str) -> str:
    for line in body.splitlines():
        stripped = line.strip().lstrip("-* ").strip()
        if stripped.lower().startswith(label.lower() + ":"):
            return stripped.split(":", 1)[1].strip()
    return ""


def parse_structured_analysis(text: str) -> StructuredAnalysis:
    sections = _split_sections(text or "")
    dimensions: dict[str, DimensionSection] = {}
    for dim in RUBRIC_DIMENSIONS:
        body = sections.get(dim["title"])
        if body is None:
            continue
        score_match = _SUBSCORE_RE.search(body)
        sub_score = None
        if score_match:
            sub_score = min(10.0, float(score_match.group(1)))
        dimensions[dim["key"]] = DimensionSection(
            sub_score=sub_score,
            reasoning=_line_value(body, "Reasoning"),
            uncertainty=_line_value(body, "Uncertainty"),
        )

    final_score = None
    overall = sections.get("OVERALL")
    if overall is not None:
        final_match = _FINAL_RE.search(overall)
        if final_match:
            final_score = float(final_match.group(1))

    return StructuredAnalysis(
        sections=list(sections),
        dimensions=dimensions,
        final_score=final_score,
        citations=sorted(set(_CITATION_RE.findall(text or ""))),
        missing_sections=[s for s in REQUIRED_SECTIONS if s not in sections],
    )


def dimension_sub_scores(text: str) -> dict[str, float]:
    """Rubric sub-scores (0..10) that were actually stated."""
    parsed = parse_structured_analysis(text)
    return {
        key: sec["sub_score"] for key, sec in parsed["dimensions"].items() if sec["sub_score"] is not None
    }
