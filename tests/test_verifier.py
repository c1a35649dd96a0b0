"""Tests for verify/ — structured-analysis parsing, check battery, and bounded repair."""

from __future__ import annotations

import copy
from unittest.mock import AsyncMock

import pytest

from idea_committee.committee.decode import DecodeError, Ok
from idea_committee.verify.structured import dimension_sub_scores, parse_structured_analysis
from idea_committee.verify.verifier import (
    Verifier,
    patch_draft,
    run_checks,
    weighted_category_score,
)


@pytest.fixture
def pool(grounding_bundle):
    return grounding_bundle["evidence_pool"]


@pytest.fixture
def pool_ids(pool):
    return {e["id"] for e in pool}


class TestStructuredAnalysis:
    def test_parses_sections_and_scores(self, judge_payload):
        parsed = parse_structured_analysis(judge_payload["structured_analysis"])
        assert parsed["missing_sections"] == []
        assert parsed["final_score"] == 64.0
        assert parsed["dimensions"]["tokenomics"]["sub_score"] == 5.5
        assert parsed["dimensions"]["market_opportunity"]["reasoning"].startswith("demand is real")
        assert parsed["citations"] == ["COMPETITIVE_MEMO", "MARKET_SNAPSHOT", "TOKEN_SECURITY"]

    def test_missing_sections(self):
        parsed = parse_structured_analysis("## EVIDENCE\nnothing")
        assert parsed["missing_sections"] == ["OVERALL"]
        assert parsed["final_score"] is None

    def test_empty_text(self):
        parsed = parse_structured_analysis("")
        assert parsed["missing_sections"] == ["EVIDENCE", "OVERALL"]

    def test_dimension_sub_scores(self, judge_payload):
        scores = dimension_sub_scores(judge_payload["structured_analysis"])
        assert scores == {
            "market_opportunity": 7.0,
            "technical_feasibility": 6.0,
            "tokenomics": 5.5,
            "execution_risk": 5.8,
        }


class TestChecks:
    def test_clean_draft_passes(self, judge_payload, pool_ids):
        failures, ran = run_checks(Ok(judge_payload), pool_ids)
        assert failures == []
        assert ran == 7

    def test_decode_error_runs_one_check(self, pool_ids):
        failures, ran = run_checks(DecodeError("invalid JSON"), pool_ids)
        assert ran == 1
        assert [f.check for f in failures] == ["decode"]

    def test_schema_missing_section(self, judge_payload, pool_ids):
        del judge_payload["market"]
        failures, _ = run_checks(judge_payload, pool_ids)
        assert any(f.check == "schema" and "market" in f.message for f in failures)

    def test_empty_reasoning_steps(self, judge_payload, pool_ids):
        judge_payload["reasoning_steps"] = []
        failures, _ = run_checks(judge_payload, pool_ids)
        assert any("reasoning_steps is empty" in str(f) for f in failures)

    def test_score_range(self, judge_payload, pool_ids):
        judge_payload["overall_score"] = 120
        failures, _ = run_checks(judge_payload, pool_ids)
        assert "score_range" in {f.check for f in failures}

    def test_unknown_evidence_id(self, judge_payload, pool_ids):
        judge_payload["claims"][0]["evidence_ids"] = ["made-up"]
        failures, _ = run_checks(judge_payload, pool_ids)
        assert [f.check for f in failures] == ["evidence_integrity"]

    def test_unsupported_fact_marked_corroborated(self, judge_payload, pool_ids):
        judge_payload["claims"][0]["evidence_ids"] = []
        failures, _ = run_checks(judge_payload, pool_ids)
        assert [f.check for f in failures] == ["claim_support"]

    def test_numeric_consistency(self, judge_payload, pool_ids):
        judge_payload["overall_score"] = 10
        failures, _ = run_checks(judge_payload, pool_ids)
        assert [f.check for f in failures] == ["numeric_consistency"]

    def test_claims_not_a_list(self, judge_payload, pool_ids):
        judge_payload["claims"] = "none"
        failures, _ = run_checks(judge_payload, pool_ids)
        assert {f.check for f in failures} == {"schema"}

    def test_weighted_score_excludes_tokenomics_without_token(self, judge_payload):
        assert weighted_category_score(judge_payload) == pytest.approx(61.5)
        judge_payload["tokenomics"]["token_needed"] = False
        assert weighted_category_score(judge_payload) == pytest.approx(63.125)


class TestPatchDraft:
    def test_does_not_mutate_input(self, judge_payload, pool_ids):
        judge_payload["technical"]["feasibility_score"] = 140
        snapshot = copy.deepcopy(judge_payload)
        patched = patch_draft(judge_payload, pool_ids)
        assert judge_payload == snapshot
        assert patched["technical"]["feasibility_score"] == 100.0

    def test_pulls_overall_into_envelope(self, judge_payload, pool_ids):
        judge_payload["overall_score"] = 10
        assert patch_draft(judge_payload, pool_ids)["overall_score"] == 36.5

    def test_drops_unknown_ids(self, judge_payload, pool_ids):
        judge_payload["claims"][1]["evidence_ids"] = ["defillama-1", "ghost"]
        claim = patch_draft(judge_payload, pool_ids)["claims"][1]
        assert claim["evidence_ids"] == ["defillama-1"]
        assert claim["support"] == "uncorroborated"


class TestVerifier:
    @pytest.mark.asyncio
    async def test_pass(self, judge_payload, pool):
        result = await Verifier().verify(Ok(judge_payload), pool)
        assert result["status"] == "pass"
        assert result["issues"] == []
        assert result["checks_failed"] == 0
        assert result["checks_run"] == 7
        assert result["repairs_used"] == 0
        assert result["repaired"] is False
        assert result["fatal_failure"] is False
        assert result["result"] == judge_payload

    @pytest.mark.asyncio
    async def test_accepts_plain_dict(self, judge_payload, pool):
        result = await Verifier().verify(judge_payload, pool)
        assert result["status"] == "pass"

    @pytest.mark.asyncio
    async def test_local_repair_of_score_range(self, judge_payload, pool):
        judge_payload["technical"]["feasibility_score"] = 140
        result = await Verifier().verify(Ok(judge_payload), pool)
        assert result["status"] == "repaired"
        assert result["repaired"] is True
        assert result["repairs_used"] == 1
        assert result["checks_failed"] == 1
        assert result["checks_run"] == 14
        assert result["result"]["technical"]["feasibility_score"] == 100.0

    @pytest.mark.asyncio
    async def test_local_repair_of_evidence(self, judge_payload, pool):
        judge_payload["claims"][0]["evidence_ids"] = ["made-up"]
        result = await Verifier().verify(Ok(judge_payload), pool)
        assert result["status"] == "repaired"
        claim = result["result"]["claims"][0]
        assert claim["evidence_ids"] == []
        assert claim["support"] == "uncorroborated"

    @pytest.mark.asyncio
    async def test_model_repair_of_missing_sections(self, judge_payload, pool):
        broken = copy.deepcopy(judge_payload)
        broken["structured_analysis"] = "Just prose, no headers."
        repair_fn = AsyncMock(return_value=Ok(judge_payload))

        result = await Verifier().verify(Ok(broken), pool, repair_fn=repair_fn)

        assert result["status"] == "repaired"
        assert result["repairs_used"] == 1
        repair_fn.assert_awaited_once()
        issues = repair_fn.await_args.args[0]
        assert any(i.startswith("[structured_sections]") for i in issues)

    @pytest.mark.asyncio
    async def test_decode_failure_repaired(self, judge_payload, pool):
        repair_fn = AsyncMock(return_value=Ok(judge_payload))
        result = await Verifier().verify(DecodeError("invalid JSON"), pool, repair_fn=repair_fn)
        assert result["status"] == "repaired"
        assert result["checks_run"] == 8
        assert result["checks_failed"] == 1
        assert result["result"] == judge_payload

    @pytest.mark.asyncio
    async def test_fatal_after_budget(self, pool):
        repair_fn = AsyncMock(return_value=DecodeError("still garbage"))
        result = await Verifier(max_repairs=2).verify(
            DecodeError("invalid JSON"), pool, repair_fn=repair_fn
        )
        assert result["status"] == "fail"
        assert result["fatal_failure"] is True
        assert result["repairs_used"] == 2
        assert result["result"] is None
        assert result["checks_run"] == 3
        assert result["checks_failed"] == 3
        assert repair_fn.await_count == 2

    @pytest.mark.asyncio
    async def test_model_failure_without_repair_fn_is_fatal(self, judge_payload, pool):
        judge_payload["structured_analysis"] = "no headers"
        result = await Verifier().verify(Ok(judge_payload), pool)
        assert result["status"] == "fail"
        assert result["fatal_failure"] is True
        assert result["result"] is not None

    @pytest.mark.asyncio
    async def test_repair_call_error_is_absorbed(self, judge_payload, pool, capsys):
        judge_payload["structured_analysis"] = "no headers"
        repair_fn = AsyncMock(side_effect=RuntimeError("service down"))
        result = await Verifier(max_repairs=1).verify(Ok(judge_payload), pool, repair_fn=repair_fn)
        assert result["status"] == "fail"
        assert "judge repair call failed" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_zero_budget(self, judge_payload, pool):
        judge_payload["overall_score"] = 10
        result = await Verifier(max_repairs=0).verify(Ok(judge_payload), pool)
        assert result["status"] == "fail"
        assert result["repairs_used"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mutate",
        [
            lambda d: None,
            lambda d: d.update(overall_score=101),
            lambda d: d.update(claims=[]),
            lambda d: d["tokenomics"].update(token_needed=False),
            lambda d: d.pop("summary"),
        ],
    )
    async def test_pass_implies_no_failed_checks(self, judge_payload, pool, mutate):
        mutate(judge_payload)
        result = await Verifier().verify(Ok(judge_payload), pool)
        if result["status"] == "pass":
            assert result["checks_failed"] == 0
            assert result["issues"] == []
        else:
            assert result["checks_failed"] > 0
        assert result["checks_failed"] <= result["checks_run"]
