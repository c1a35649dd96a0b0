"""Evaluation committee and trust scoring engine."""

from idea_committee.pipeline import evaluate
from idea_committee.scoring.trust import (
    compute_debate_disagreement_index,
    compute_evidence_coverage,
    derive_confidence,
)

__all__ = [
    "evaluate",
    "compute_evidence_coverage",
    "derive_confidence",
    "compute_debate_disagreement_index",
]
