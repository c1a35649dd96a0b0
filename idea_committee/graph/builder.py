"""StateGraph construction — wires grounding, the committee fan-out/fan-in, and scoring."""

from __future__ import annotations

import inspect
import time

from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from idea_committee.agents.base import AgentCaller
from idea_committee.committee.decode import Decoded
from idea_committee.committee.orchestrator import CommitteeOrchestrator
from idea_committee.config import Settings
from idea_committee.contracts import (
    CompletionService,
    ConfidenceSignals,
    EvaluationResult,
    GroundingBundle,
    GroundingSource,
    ProjectContext,
    ProjectDomain,
    ResultSink,
    Stage,
    TrustMetrics,
)
from idea_committee.errors import FatalRepairExhausted
from idea_committee.event_log.writer import EventLog
from idea_committee.grounding.cache import GroundingCache
from idea_committee.grounding.collector import (
    SOURCE_ORDER,
    GroundingCollector,
    build_evidence_pool,
    build_sources,
)
from idea_committee.graph.state import EvaluationState
from idea_committee.prompts.composer import PriorOutputs
from idea_committee.scoring.breaker import BreakerPolicy, BreakerRegistry
from idea_committee.scoring.calibration import calibrate_with_notes
from idea_committee.scoring.domain import classify_domain
from idea_committee.scoring.trust import (
    compute_committee_disagreement,
    compute_data_freshness,
    compute_debate_disagreement_index,
    compute_evidence_coverage,
    compute_weighted_committee_score,
    derive_confidence,
)
from idea_committee.verify.structured import dimension_sub_scores
from idea_committee.verify.verifier import Verifier


def _get_stream_writer(config: RunnableConfig | None) -> callable | None:
    """Safely extract a stream writer from LangGraph config, if available."""
    if config is None:
        return None
    try:
        from langgraph.config import get_stream_writer

        return get_stream_writer()
    except (ImportError, Exception):
        return None


def _accepts_config(fn) -> bool:
    return "config" in inspect.signature(fn).parameters


def _wrap_with_logging(node_name: str, fn, event_log: EventLog | None):
    """Wrap a node so each invocation emits a RunEvent. Sync and async nodes both work."""
    if event_log is None:
        return fn

    pass_config = _accepts_config(fn)

    async def wrapped(state: EvaluationState, config: RunnableConfig = None) -> dict:
        inputs = {k: state.get(k) for k in ("idea", "grounding")}
        start = time.monotonic()
        try:
            result = fn(state, config=config) if pass_config else fn(state)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            event_log.record_failure(node_name, inputs, e, time.monotonic() - start)
            raise
        event_log.record_node(node_name, inputs, result, time.monotonic() - start)
        return result

    return wrapped


def _services(
    settings: Settings, completion: CompletionService | dict | None
) -> CompletionService | dict[Stage, CompletionService]:
    if completion is not None:
        return completion
    committee_caller = AgentCaller(
        api_key=settings.anthropic_api_key,
        model=settings.committee_model,
        max_concurrent=settings.max_concurrent_requests,
        fallback_model=settings.fallback_model,
    )
    judge_caller = AgentCaller(
        api_key=settings.anthropic_api_key,
        model=settings.judge_model,
        max_concurrent=settings.max_concurrent_requests,
        fallback_model=settings.fallback_model,
        max_tokens=8192,
    )
    return {Stage.BEAR: committee_caller, Stage.BULL: committee_caller, Stage.JUDGE: judge_caller}


def _domain(state: EvaluationState) -> ProjectDomain:
    return ProjectDomain(state["domain"]["domain"])


def _external_flags(grounding: GroundingBundle, domain: ProjectDomain) -> dict[str, bool]:
    competitive = grounding.get("competitive")
    sub_missing = competitive["data"].get("unavailable_sources", []) if competitive else []
    defillama_required = domain == ProjectDomain.CRYPTO_DEFI
    return {
        "external_data_available": any(grounding.get(k) is not None for k in SOURCE_ORDER),
        "tavily_available": competitive is not None and "tavily" not in sub_missing,
        "defillama_required": defillama_required,
        "defillama_available": (
            defillama_required and competitive is not None and "defillama" not in sub_missing
        ),
    }


def build_graph(
    settings: Settings,
    *,
    completion: CompletionService | dict[Stage, CompletionService] | None = None,
    sources: dict[str, GroundingSource] | None = None,
    breakers: BreakerRegistry | None = None,
    sink: ResultSink | None = None,
    event_log: EventLog | None = None,
    enable_cache: bool = True,
    checkpointer: BaseCheckpointSaver | None = None,
) -> CompiledStateGraph:
    """Build and compile the evaluation graph.

    Returns a compiled StateGraph ready to invoke.
    """
    orchestrator = CommitteeOrchestrator(
        _services(settings, completion),
        stage_timeout=settings.stage_timeout,
        judge_timeout=settings.judge_timeout,
    )
    verifier = Verifier(
        max_repairs=settings.max_repairs, tolerance=settings.consistency_tolerance
    )

    grounding_cache: GroundingCache | None = None
    if enable_cache:
        grounding_cache = GroundingCache(
            settings.grounding_cache_dir, max_age_hours=settings.grounding_cache_max_age_hours
        )
    collector = GroundingCollector(
        sources if sources is not None else build_sources(settings),
        timeout=settings.grounding_timeout,
        cache=grounding_cache,
        breakers=breakers,
        breaker_policy=BreakerPolicy(
            min_samples=settings.breaker_min_samples, cooldown_s=settings.breaker_cooldown_s
        ),
    )

    # --- Node functions (closures over the collaborators) ---

    async def collect_grounding_node(
        state: EvaluationState, config: RunnableConfig = None
    ) -> dict:
        """Classify the idea, then fetch grounding unless it was supplied."""
        writer = _get_stream_writer(config)
        idea = state["idea"]
        domain = classify_domain(idea)

        grounding = state.get("grounding")
        if grounding:
            grounding = dict(grounding)
            grounding.setdefault("unavailable_sources", [])
            grounding.setdefault("claims", [])
            if not grounding.get("evidence_pool"):
                grounding["evidence_pool"] = build_evidence_pool(grounding)
        else:
            context = ProjectContext(
                project_name=idea.get("project_name", ""),
                description=idea.get("description", ""),
                domain=domain["domain"],
                token_address=idea.get("token_address", ""),
            )
            grounding = await collector.collect(context)

        if writer:
            writer(
                {
                    "kind": "grounding_summary",
                    "available": [k for k in SOURCE_ORDER if grounding.get(k) is not None],
                    "unavailable": grounding["unavailable_sources"],
                    "stale": [
                        k for k in SOURCE_ORDER if (grounding.get(k) or {}).get("is_stale")
                    ],
                }
            )
        return {"domain": domain, "grounding": grounding}

    async def bear_stage_node(state: EvaluationState) -> dict:
        bear, call = await orchestrator.run_bear(state["idea"], state["grounding"], _domain(state))
        return {"bear": bear, "token_usage": [call["usage"]], "fallback_used": call["fallback_used"]}

    async def bull_stage_node(state: EvaluationState) -> dict:
        bull, call = await orchestrator.run_bull(state["idea"], state["grounding"], _domain(state))
        return {"bull": bull, "token_usage": [call["usage"]], "fallback_used": call["fallback_used"]}

    async def judge_stage_node(state: EvaluationState) -> dict:
        prior = PriorOutputs(bear=state["bear"], bull=state["bull"])
        draft, call = await orchestrator.run_judge(
            state["idea"], state["grounding"], _domain(state), prior
        )
        return {
            "draft_judge": draft,
            "token_usage": [call["usage"]],
            "fallback_used": call["fallback_used"],
        }

    async def verify_node(state: EvaluationState, config: RunnableConfig = None) -> dict:
        """Run checks and bounded repair; raise on exhausted budget."""
        writer = _get_stream_writer(config)
        prior = PriorOutputs(bear=state["bear"], bull=state["bull"])
        repair_usage: list = []
        repair_failures = 0

        async def repair_fn(issues: list[str]) -> Decoded[dict]:
            nonlocal repair_failures
            try:
                draft, call = await orchestrator.run_judge(
                    state["idea"], state["grounding"], _domain(state), prior, corrections=issues
                )
            except Exception:
                repair_failures += 1
                raise
            repair_usage.append(call["usage"])
            return draft

        result = await verifier.verify(
            state["draft_judge"], state["grounding"]["evidence_pool"], repair_fn=repair_fn
        )
        if writer:
            writer(
                {
                    "kind": "verification",
                    "status": result["status"],
                    "checks_failed": result["checks_failed"],
                    "repairs_used": result["repairs_used"],
                }
            )
        if result["fatal_failure"]:
            raise FatalRepairExhausted(result)
        return {
            "verifier": result,
            "token_usage": repair_usage,
            "agent_failures": repair_failures,
        }

    async def calibrate_node(state: EvaluationState) -> dict:
        calibrated, notes = calibrate_with_notes(
            state["verifier"]["result"],
            _domain(state),
            idea=state["idea"],
            tolerance=settings.consistency_tolerance,
        )
        return {"judge": calibrated, "calibration_notes": notes}

    async def score_trust_node(state: EvaluationState) -> dict:
        grounding = state["grounding"]
        domain = _domain(state)
        judge = state["judge"]
        envelopes = [grounding[k] for k in SOURCE_ORDER if grounding.get(k) is not None]

        freshness = compute_data_freshness(envelopes)
        disagreement = compute_committee_disagreement(
            state["bear"],
            state["bull"],
            dimension_sub_scores(judge.get("structured_analysis", "")),
            judge_overall=judge["overall_score"],
        )
        coverage = compute_evidence_coverage(judge.get("claims", []))
        signals = ConfidenceSignals(
            evidence_coverage=coverage,
            verifier_status=state["verifier"]["status"],
            fallback_used=state.get("fallback_used", False),
            agent_failures=state.get("agent_failures", 0),
            stale_sources=freshness["stale_source_count"],
            overall_freshness=freshness["overall_freshness"],
            high_disagreement=disagreement["high_disagreement"],
            **_external_flags(grounding, domain),
        )
        trust = TrustMetrics(
            evidence_coverage=coverage,
            confidence=derive_confidence(signals),
            debate_disagreement_index=compute_debate_disagreement_index(
                state["bear"], state["bull"]
            ),
        )
        return {
            "trust": trust,
            "data_freshness": freshness,
            "committee_disagreement": disagreement,
            "weighted_score": compute_weighted_committee_score(
                state["bear"], state["bull"], judge
            ),
        }

    async def persist_node(state: EvaluationState) -> dict:
        """Assemble the final result and hand it to the sink, if any."""
        verifier_summary = {k: v for k, v in state["verifier"].items() if k != "result"}
        result = EvaluationResult(
            evaluation_id=state["evaluation_id"],
            domain=state["domain"],
            judge=state["judge"],
            bear=state["bear"],
            bull=state["bull"],
            trust=state["trust"],
            grounding=state["grounding"],
            verifier=verifier_summary,
            calibration_notes=state["calibration_notes"],
            weighted_score=state["weighted_score"],
            committee_disagreement=state["committee_disagreement"],
            data_freshness=state["data_freshness"],
            token_usage=state.get("token_usage", []),
        )
        if sink is not None:
            sink.save(state["evaluation_id"], result)
        return {"result": result}

    # --- Build graph ---

    graph = StateGraph(EvaluationState)

    nodes = {
        "collect_grounding": collect_grounding_node,
        "bear_stage": bear_stage_node,
        "bull_stage": bull_stage_node,
        "judge_stage": judge_stage_node,
        "verify": verify_node,
        "calibrate": calibrate_node,
        "score_trust": score_trust_node,
        "persist": persist_node,
    }
    for name, fn in nodes.items():
        graph.add_node(name, _wrap_with_logging(name, fn, event_log))

    # Bear and Bull fan out from grounding and fan in at the Judge.
    graph.add_edge(START, "collect_grounding")
    graph.add_edge("collect_grounding", "bear_stage")
    graph.add_edge("collect_grounding", "bull_stage")
    graph.add_edge(["bear_stage", "bull_stage"], "judge_stage")
    graph.add_edge("judge_stage", "verify")
    graph.add_edge("verify", "calibrate")
    graph.add_edge("calibrate", "score_trust")
    graph.add_edge("score_trust", "persist")
    graph.add_edge("persist", END)

    return graph.compile(checkpointer=checkpointer)
