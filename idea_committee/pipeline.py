"""evaluate() — one idea in, one EvaluationResult out."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timezone

from idea_committee.config import Settings, get_settings
from idea_committee.contracts import (
    CompletionService,
    EvaluationInput,
    EvaluationResult,
    GroundingBundle,
    GroundingSource,
    ResultSink,
    Stage,
)
from idea_committee.errors import CommitteeError, PipelineTimeout
from idea_committee.event_log.writer import EventLog
from idea_committee.graph.builder import build_graph
from idea_committee.scoring.breaker import BreakerRegistry
from idea_committee.streaming import StreamDisplay


def new_evaluation_id() -> str:
    """Generate a unique evaluation ID: eval-YYYYMMDD-HHMMSS-XXXX."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    suffix = os.urandom(2).hex()
    return f"eval-{ts}-{suffix}"


async def _stream(graph, input_state: dict, display: StreamDisplay) -> dict:
    final: dict = {}
    async for event in graph.astream(input_state, stream_mode=["updates", "custom"]):
        if isinstance(event, tuple) and len(event) == 2:
            stream_mode, payload = event
            if stream_mode == "updates":
                display.handle_update(payload)
                for delta in payload.values():
                    if isinstance(delta, dict) and "result" in delta:
                        final = delta
            elif stream_mode == "custom":
                display.handle_custom(payload)
    return final


async def evaluate(
    idea: EvaluationInput,
    *,
    grounding: GroundingBundle | None = None,
    settings: Settings | None = None,
    completion: CompletionService | dict[Stage, CompletionService] | None = None,
    sources: dict[str, GroundingSource] | None = None,
    breakers: BreakerRegistry | None = None,
    sink: ResultSink | None = None,
    event_log: EventLog | None = None,
    evaluation_id: str | None = None,
    enable_cache: bool = True,
    display: StreamDisplay | None = None,
) -> EvaluationResult:
    """Run the full committee pipeline for a single idea.

    ``grounding`` skips live collection when supplied. ``breakers`` is the
    caller-owned circuit breaker registry; pass the same dict across calls to
    keep breaker history. Raises StageCallFailure, FatalRepairExhausted or
    PipelineTimeout; never returns a partial result.
    """
    settings = settings or get_settings()
    evaluation_id = evaluation_id or (event_log.evaluation_id if event_log else new_evaluation_id())

    graph = build_graph(
        settings,
        completion=completion,
        sources=sources,
        breakers=breakers,
        sink=sink,
        event_log=event_log,
        enable_cache=enable_cache,
    )
    input_state: dict = {"evaluation_id": evaluation_id, "idea": idea}
    if grounding is not None:
        input_state["grounding"] = grounding

    if display is not None:
        run = _stream(graph, input_state, display)
    else:
        run = graph.ainvoke(input_state)

    try:
        state = await asyncio.wait_for(run, timeout=settings.evaluation_timeout)
    except asyncio.TimeoutError:
        raise PipelineTimeout(settings.evaluation_timeout)

    result = state.get("result")
    if result is None:
        raise CommitteeError(f"Evaluation {evaluation_id} finished without a result")
    return result
