"""EvaluationState — the single state object flowing through the committee graph."""

from __future__ import annotations

import operator
from typing import Annotated, Any, TypedDict

from idea_committee.contracts import (
    BearAnalysis,
    BullAnalysis,
    CommitteeDisagreement,
    DataFreshness,
    DomainClassification,
    EvaluationInput,
    EvaluationResult,
    GroundingBundle,
    JudgeResult,
    TokenUsage,
    TrustMetrics,
    VerifierResult,
)


class EvaluationState(TypedDict, total=False):
    # Input
    evaluation_id: str
    idea: EvaluationInput
    grounding: GroundingBundle  # may be supplied precomputed

    # Grounding / classification
    domain: DomainClassification

    # Committee (bear and bull write concurrently)
    bear: BearAnalysis
    bull: BullAnalysis
    draft_judge: Any  # Ok[dict] | DecodeError
    fallback_used: Annotated[bool, operator.or_]
    agent_failures: Annotated[int, operator.add]
    token_usage: Annotated[list[TokenUsage], operator.add]

    # Verification / calibration
    verifier: VerifierResult
    judge: JudgeResult
    calibration_notes: list[str]

    # Trust
    trust: TrustMetrics
    data_freshness: DataFreshness
    committee_disagreement: CommitteeDisagreement
    weighted_score: float | None

    # Output
    result: EvaluationResult
