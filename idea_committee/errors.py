"""Pipeline error taxonomy.

Grounding failures are absorbed by the collector; stage-call failures and
exhausted repairs propagate out of ``evaluate`` as explicit errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from idea_committee.contracts import VerifierResult


class CommitteeError(Exception):
    """Base class for every error raised by the evaluation pipeline."""


class GroundingUnavailable(CommitteeError):
    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Grounding source {source!r} unavailable: {reason}")


class StageCallFailure(CommitteeError):
    def __init__(self, stage: str, reason: str) -> None:
        self.stage = stage
        self.reason = reason
        super().__init__(f"{stage} stage failed: {reason}")


class VerificationFailure(CommitteeError):
    """A single failed verifier check. Recovered locally by repair."""

    def __init__(self, check: str, message: str) -> None:
        self.check = check
        self.message = message
        super().__init__(f"[{check}] {message}")


class FatalRepairExhausted(CommitteeError):
    def __init__(self, verifier_result: VerifierResult) -> None:
        self.verifier_result = verifier_result
        issues = "; ".join(verifier_result["issues"][:5])
        super().__init__(
            f"Verification failed after {verifier_result['repairs_used']} repair(s): {issues}"
        )


class PipelineTimeout(CommitteeError):
    def __init__(self, timeout_s: float) -> None:
        self.timeout_s = timeout_s
        super().__init__(f"Evaluation exceeded overall timeout of {timeout_s:.0f}s")
