"""Tests for committee/orchestrator.py — fan-out/fan-in of the three stages."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from idea_committee.committee.decode import DecodeError, Ok
from idea_committee.committee.orchestrator import CommitteeOrchestrator
from idea_committee.contracts import ProjectDomain, Stage, TokenUsage
from idea_committee.errors import StageCallFailure
from idea_committee.prompts.composer import PriorOutputs

from conftest import FakeCompletion

DEFI = ProjectDomain.CRYPTO_DEFI


def _usage(agent: str, model: str) -> TokenUsage:
    return TokenUsage(
        agent=agent,
        model=model,
        input_tokens=10,
        output_tokens=5,
        cost_usd=0.0,
        timestamp="2026-03-01T12:00:00+00:00",
    )


class TestRun:
    @pytest.mark.asyncio
    async def test_full_committee(self, fake_completion, defi_idea, grounding_bundle, bear, bull, judge_payload):
        output = await CommitteeOrchestrator(fake_completion).run(defi_idea, grounding_bundle, DEFI)

        assert output["bear"]["risk_score"] == 82.0
        assert output["bull"]["upside_score"] == 73.0
        assert output["draft_judge"] == Ok(judge_payload)
        assert [u["agent"] for u in output["token_usage"]] == ["bear", "bull", "judge"]
        assert output["fallback_used"] is False

    @pytest.mark.asyncio
    async def test_bear_and_bull_run_concurrently(self, committee_responses, defi_idea, grounding_bundle):
        completion = FakeCompletion(committee_responses, delays={"bear": 0.05, "bull": 0.05})
        await CommitteeOrchestrator(completion).run(defi_idea, grounding_bundle, DEFI)

        events = completion.events
        assert events[:2] == [("start", "bear"), ("start", "bull")] or events[:2] == [
            ("start", "bull"),
            ("start", "bear"),
        ]
        judge_start = events.index(("start", "judge"))
        assert events.index(("end", "bear")) < judge_start
        assert events.index(("end", "bull")) < judge_start

    @pytest.mark.asyncio
    async def test_judge_sees_both_reports(self, fake_completion, defi_idea, grounding_bundle, bear, bull):
        await CommitteeOrchestrator(fake_completion).run(defi_idea, grounding_bundle, DEFI)
        judge_call = next(c for c in fake_completion.calls if c["agent_name"] == "judge")
        assert bear["roast"] in judge_call["user"]
        assert bull["pitch"] in judge_call["user"]

    @pytest.mark.asyncio
    async def test_bear_decode_failure_aborts(self, committee_responses, defi_idea, grounding_bundle):
        committee_responses["bear"] = "I will not answer in JSON."
        completion = FakeCompletion(committee_responses)

        with pytest.raises(StageCallFailure) as exc:
            await CommitteeOrchestrator(completion).run(defi_idea, grounding_bundle, DEFI)

        assert exc.value.stage == "bear"
        assert "undecodable output" in exc.value.reason
        assert "judge" not in [c["agent_name"] for c in completion.calls]

    @pytest.mark.asyncio
    async def test_stage_timeout(self, committee_responses, defi_idea, grounding_bundle):
        completion = FakeCompletion(committee_responses, delays={"bull": 1.0})
        orchestrator = CommitteeOrchestrator(completion, stage_timeout=0.05)

        with pytest.raises(StageCallFailure, match="bull stage failed: timed out"):
            await orchestrator.run(defi_idea, grounding_bundle, DEFI)

    @pytest.mark.asyncio
    async def test_service_error_wrapped(self, committee_responses, defi_idea, grounding_bundle):
        committee_responses["judge"] = RuntimeError("AgentCaller failed after 3 retries: overloaded")
        completion = FakeCompletion(committee_responses)

        with pytest.raises(StageCallFailure) as exc:
            await CommitteeOrchestrator(completion).run(defi_idea, grounding_bundle, DEFI)
        assert exc.value.stage == "judge"
        assert isinstance(exc.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_judge_decode_error_returned(self, committee_responses, defi_idea, grounding_bundle):
        committee_responses["judge"] = "not json at all"
        output = await CommitteeOrchestrator(FakeCompletion(committee_responses)).run(
            defi_idea, grounding_bundle, DEFI
        )
        assert isinstance(output["draft_judge"], DecodeError)
        assert output["judge_text"] == "not json at all"


class TestServices:
    @pytest.mark.asyncio
    async def test_per_stage_services(self, committee_responses, defi_idea, grounding_bundle):
        committee = FakeCompletion(committee_responses)
        judge = FakeCompletion(committee_responses)
        services = {Stage.BEAR: committee, Stage.BULL: committee, Stage.JUDGE: judge}

        await CommitteeOrchestrator(services).run(defi_idea, grounding_bundle, DEFI)

        assert sorted(c["agent_name"] for c in committee.calls) == ["bear", "bull"]
        assert [c["agent_name"] for c in judge.calls] == ["judge"]

    @pytest.mark.asyncio
    async def test_fallback_detected_from_usage_model(self, bear, defi_idea, grounding_bundle):
        service = SimpleNamespace(
            model="claude-opus-4-6",
            complete=AsyncMock(return_value=(json.dumps(bear), _usage("bear", "claude-sonnet-4-6"))),
        )
        _, call = await CommitteeOrchestrator(service).run_bear(defi_idea, grounding_bundle, DEFI)
        assert call["fallback_used"] is True

    @pytest.mark.asyncio
    async def test_primary_model_is_not_fallback(self, bear, defi_idea, grounding_bundle):
        service = SimpleNamespace(
            model="claude-opus-4-6",
            complete=AsyncMock(return_value=(json.dumps(bear), _usage("bear", "claude-opus-4-6"))),
        )
        _, call = await CommitteeOrchestrator(service).run_bear(defi_idea, grounding_bundle, DEFI)
        assert call["fallback_used"] is False


class TestRunJudge:
    @pytest.mark.asyncio
    async def test_corrections_appended(self, fake_completion, defi_idea, grounding_bundle, bear, bull, judge_payload):
        orchestrator = CommitteeOrchestrator(fake_completion)
        decoded, call = await orchestrator.run_judge(
            defi_idea,
            grounding_bundle,
            DEFI,
            PriorOutputs(bear=bear, bull=bull),
            corrections=["[schema] missing section 'market'"],
        )

        assert decoded == Ok(judge_payload)
        assert call["usage"]["agent"] == "judge_repair"
        user = fake_completion.calls[-1]["user"]
        assert "--- CORRECTIONS REQUIRED ---" in user
        assert "- [schema] missing section 'market'" in user
        assert user.rstrip().endswith("Return the complete corrected JSON report.")

    @pytest.mark.asyncio
    async def test_judge_timeout_separate_from_stage_timeout(
        self, committee_responses, defi_idea, grounding_bundle, bear, bull
    ):
        completion = FakeCompletion(committee_responses, delays={"judge": 0.1})
        orchestrator = CommitteeOrchestrator(completion, stage_timeout=0.01, judge_timeout=1.0)
        decoded, _ = await orchestrator.run_judge(
            defi_idea, grounding_bundle, DEFI, PriorOutputs(bear=bear, bull=bull)
        )
        assert isinstance(decoded, Ok)
