"""Single source of truth for all types, enums, and protocols."""

from __future__ import annotations

from enum import Enum
from typing import Any, NotRequired, Protocol, TypedDict, runtime_checkable

# --- Enums ---


class Stage(str, Enum):
    BEAR = "bear"
    BULL = "bull"
    JUDGE = "judge"


class ClaimType(str, Enum):
    FACT = "fact"
    INFERENCE = "inference"


class ClaimSupport(str, Enum):
    CORROBORATED = "corroborated"
    UNCORROBORATED = "uncorroborated"


class BearVerdict(str, Enum):
    KILL = "KILL"
    AVOID = "AVOID"
    SHORT = "SHORT"


class BullVerdict(str, Enum):
    LONG = "LONG"
    APE = "APE"
    ALL_IN = "ALL IN"


class VerifierStatus(str, Enum):
    PASS = "pass"
    REPAIRED = "repaired"
    FAIL = "fail"


class ConfidenceLevel(str, Enum):
    HIGH = "high"  # >= 0.75
    MEDIUM = "medium"  # 0.45 - 0.75
    LOW = "low"  # < 0.45


class ProjectDomain(str, Enum):
    CRYPTO_DEFI = "crypto_defi"
    MEMECOIN = "memecoin"
    AI_ML = "ai_ml"
    SAAS = "saas"
    CONSUMER = "consumer"
    HARDWARE = "hardware"
    OTHER = "other"


class BreakerPhase(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class GroundingKind(str, Enum):
    MARKET = "market"
    TOKEN_SECURITY = "token_security"
    COMPETITIVE = "competitive"


# --- Input ---


class EvaluationInput(TypedDict):
    project_name: str
    description: str
    project_type: NotRequired[str]  # "defi" | "memecoin" | "ai" | "saas" | ...
    target_users: NotRequired[str]
    problem: NotRequired[str]
    token_address: NotRequired[str]  # Solana mint, enables token-security grounding
    team_size: NotRequired[int]
    response_style: NotRequired[str]  # "full" | "short"


# --- Grounding ---


class GroundingEnvelope(TypedDict):
    data: Any
    source: str
    fetched_at: str  # ISO 8601, UTC
    ttl_hours: float
    staleness_hours: float
    is_stale: bool


class EvidenceItem(TypedDict):
    id: str  # "market_snapshot" | "token_security" | "tavily-1" | "defillama-1"
    source: str
    title: str
    url: str
    snippet: str


class Claim(TypedDict):
    text: str
    claim_type: str  # ClaimType value
    evidence_ids: list[str]
    support: str  # ClaimSupport value


class MarketSnapshot(TypedDict):
    btc_dominance: float | None
    sol_price_usd: float | None
    total_alt_volume_24h_usd: float | None


class TokenSecurityReport(TypedDict):
    mint: str
    valid: bool
    mint_authority_revoked: bool | None
    freeze_authority_revoked: bool | None
    supply: str | None
    decimals: int | None
    liquidity_locked: bool | None
    top10_holder_percentage: float | None
    total_liquidity: float | None


class CompetitiveMemo(TypedDict):
    category_label: str
    crowdedness_level: str  # "low" | "medium" | "high"
    short_landscape_summary: str
    reference_projects: list[str]
    evidence_count: int
    unavailable_sources: list[str]
    evidence: list[EvidenceItem]
    claims: list[Claim]


class GroundingBundle(TypedDict):
    market: NotRequired[GroundingEnvelope]
    token_security: NotRequired[GroundingEnvelope]
    competitive: NotRequired[GroundingEnvelope]
    unavailable_sources: list[str]
    evidence_pool: list[EvidenceItem]
    claims: list[Claim]


class ProjectContext(TypedDict):
    """What a grounding source needs to know about the idea."""

    project_name: str
    description: str
    domain: str  # ProjectDomain value
    token_address: str


# --- Domain classification ---


class DomainClassification(TypedDict):
    domain: str  # ProjectDomain value
    confidence: str  # "high" | "medium" | "low"
    scores: dict[str, float]
    matched_keywords: list[str]


# --- Committee payloads ---


class BearAnalysis(TypedDict):
    fatal_flaws: list[str]
    risk_score: float  # 0..100
    verdict: str  # BearVerdict value
    roast: str
    structured_analysis: NotRequired[str]
    dimension_scores: NotRequired[dict[str, float]]  # 0..10 per rubric dimension


class BullAnalysis(TypedDict):
    alpha_signals: list[str]
    upside_score: float  # 0..100
    verdict: str  # BullVerdict value
    pitch: str
    structured_analysis: NotRequired[str]
    dimension_scores: NotRequired[dict[str, float]]


class JudgeSummary(TypedDict):
    title: str
    one_liner: str
    main_verdict: str


class TechnicalAssessment(TypedDict):
    feasibility_score: float
    key_risks: list[str]
    required_components: list[str]
    comments: str


class TokenomicsAssessment(TypedDict):
    token_needed: bool
    design_score: float
    main_issues: list[str]
    suggestions: list[str]


class MarketAssessment(TypedDict):
    market_fit_score: float
    target_audience: list[str]
    competitor_signals: list[str]
    go_to_market_risks: list[str]


class ExecutionAssessment(TypedDict):
    complexity_level: str  # "low" | "medium" | "high"
    execution_score: float  # higher = lower execution risk
    founder_readiness_flags: list[str]
    estimated_timeline: str


class Recommendations(TypedDict):
    must_fix_before_build: list[str]
    recommended_pivots: list[str]
    nice_to_have_later: list[str]


class JudgeResult(TypedDict):
    overall_score: float  # 0..100
    reasoning_steps: list[str]
    summary: JudgeSummary
    technical: TechnicalAssessment
    tokenomics: TokenomicsAssessment
    market: MarketAssessment
    execution: ExecutionAssessment
    recommendations: Recommendations
    structured_analysis: str  # contains "## EVIDENCE" and "## OVERALL"
    claims: list[Claim]


# --- Verification ---


class VerifierResult(TypedDict):
    status: str  # VerifierStatus value
    issues: list[str]
    repaired: bool
    result: JudgeResult | None  # None only when fatal and nothing decodable
    checks_run: int  # check executions over all passes
    checks_failed: int  # failing check executions over all passes
    repairs_used: int
    fatal_failure: bool


# --- Trust ---


class Confidence(TypedDict):
    score: float  # 0..1
    level: str  # ConfidenceLevel value
    reasons: list[str]


class TrustMetrics(TypedDict):
    evidence_coverage: float  # 0..1
    confidence: Confidence
    debate_disagreement_index: int  # 0..100


class ConfidenceSignals(TypedDict):
    evidence_coverage: float
    verifier_status: str
    fallback_used: bool
    external_data_available: bool
    tavily_available: bool
    defillama_required: bool
    defillama_available: bool
    agent_failures: int
    stale_sources: NotRequired[int]
    overall_freshness: NotRequired[float]  # 0..1, from compute_data_freshness
    high_disagreement: NotRequired[bool]


class SourceFreshness(TypedDict):
    source: str
    staleness_hours: float
    ttl_hours: float
    is_stale: bool
    freshness_score: float


class DataFreshness(TypedDict):
    overall_freshness: float
    stale_source_count: int
    total_source_count: int
    worst_source: str | None
    details: list[SourceFreshness]


class CommitteeDisagreement(TypedDict):
    score_std_dev: float
    high_disagreement: bool
    dimension_spread: dict[str, float]
    top_dimension: str | None


# --- Circuit breaker ---


class BreakerState(TypedDict):
    state: str  # BreakerPhase value
    failure_ema: float
    window_count: int
    opened_at: float | None  # epoch seconds


# --- Aggregate ---


class TokenUsage(TypedDict):
    agent: str
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    timestamp: str


class EvaluationResult(TypedDict):
    evaluation_id: str
    domain: DomainClassification
    judge: JudgeResult  # calibrated
    bear: BearAnalysis
    bull: BullAnalysis
    trust: TrustMetrics
    grounding: GroundingBundle
    verifier: dict  # VerifierResult without the draft
    calibration_notes: list[str]
    weighted_score: float | None
    committee_disagreement: CommitteeDisagreement
    data_freshness: DataFreshness
    token_usage: list[TokenUsage]


class RunEvent(TypedDict):
    node: str
    evaluation_id: str
    ts: str  # ISO 8601
    elapsed_s: float
    inputs_summary: dict[str, int]  # field -> count/size
    outputs_summary: dict[str, int]  # field -> count/size
    tokens: int
    cost: float
    stage: str | None  # committee stage for bear/bull/judge nodes
    details: dict[str, Any]  # verdicts, verifier status, stale sources, ...
    error: str | None  # set when the node raised


class RunDigest(TypedDict):
    """Roll-up of one evaluation's event log."""

    events: int
    tokens: int
    cost: float
    slowest_node: str | None
    slowest_s: float
    verifier_status: str | None
    repairs_used: int
    stale_sources: list[str]
    failed_node: str | None
    error: str | None


# --- Protocols ---


@runtime_checkable
class CompletionService(Protocol):
    async def complete(
        self,
        *,
        system: str,
        user: str,
        agent_name: str,
    ) -> tuple[str, TokenUsage]: ...


@runtime_checkable
class GroundingSource(Protocol):
    name: str
    ttl_hours: float

    async def fetch(self, context: ProjectContext) -> Any: ...

    async def health_check(self) -> bool: ...


@runtime_checkable
class ResultSink(Protocol):
    def save(self, evaluation_id: str, result: EvaluationResult) -> None: ...
