"""Tests for prompts/ — rubric, grounding brief, and stage prompt composition."""

from __future__ import annotations

import pytest

from idea_committee.contracts import ProjectDomain, Stage
from idea_committee.prompts.brief import (
    BRIEF_TOKEN_BUDGET,
    TRUNCATION_MARKER,
    estimate_tokens,
    fit_to_budget,
    render_grounding_brief,
    staleness_note,
)
from idea_committee.prompts.composer import (
    REASONING_CHAIN,
    PriorOutputs,
    compose_stage_prompt,
    structured_template,
)
from idea_committee.prompts.roles import role_domain_note
from idea_committee.prompts.rubric import RUBRIC_DIMENSIONS, domain_addendum, render_rubric


class TestRubric:
    def test_weights_sum_to_one(self):
        assert sum(d["weight"] for d in RUBRIC_DIMENSIONS) == pytest.approx(1.0)

    def test_render_contains_all_dimensions(self):
        text = render_rubric(ProjectDomain.CRYPTO_DEFI)
        assert text.startswith("SCORING RUBRIC (MANDATORY):")
        for dim in RUBRIC_DIMENSIONS:
            assert dim["title"] in text
        assert "Domain calibration (DeFi):" in text

    def test_domain_without_addendum_uses_default(self):
        label, notes = domain_addendum(ProjectDomain.HARDWARE)
        assert label == "General"
        assert notes

    def test_role_note_default(self):
        note = role_domain_note(Stage.BEAR, ProjectDomain.SAAS)
        assert note == "Apply the rubric anchors without domain-specific adjustments."


class TestGroundingBrief:
    def test_all_tags_present(self, grounding_bundle):
        brief = render_grounding_brief(grounding_bundle)
        assert brief.startswith("GROUNDING BRIEF (structured, decision-relevant):")
        for tag in ("[MARKET_SNAPSHOT]", "[TOKEN_SECURITY]", "[COMPETITIVE_MEMO]"):
            assert tag in brief
        assert "staleSources: token_security" in brief
        assert "STALE" in brief

    def test_unavailable_sources_still_tagged(self, empty_bundle):
        brief = render_grounding_brief(empty_bundle)
        for tag in ("[MARKET_SNAPSHOT]", "[TOKEN_SECURITY]", "[COMPETITIVE_MEMO]"):
            assert tag in brief
        assert brief.count("- data: unavailable") == 3
        assert "coverage: 0/3 sources" in brief

    def test_staleness_note(self, grounding_bundle, empty_bundle):
        note = staleness_note(grounding_bundle)
        assert note.startswith("DATA FRESHNESS WARNING: 1 of 3")
        assert "token_security: 2.0h old" in note
        assert staleness_note(empty_bundle) == ""

    def test_fit_to_budget(self):
        text = "x" * (BRIEF_TOKEN_BUDGET * 4 + 400)
        fitted = fit_to_budget(text)
        assert fitted.endswith(TRUNCATION_MARKER)
        assert estimate_tokens(fitted) <= BRIEF_TOKEN_BUDGET

    def test_fit_to_budget_short_text_untouched(self):
        assert fit_to_budget("short") == "short"


class TestComposeStagePrompt:
    def test_deterministic(self, defi_idea, grounding_bundle, bear, bull):
        prior = PriorOutputs(bear=bear, bull=bull)
        first = compose_stage_prompt(Stage.JUDGE, defi_idea, prior, grounding_bundle)
        second = compose_stage_prompt(Stage.JUDGE, defi_idea, prior, grounding_bundle)
        assert first == second
        assert first["user"].encode() == second["user"].encode()

    def test_key_order_does_not_change_prompt(self, defi_idea, grounding_bundle):
        reordered = dict(reversed(list(defi_idea.items())))
        a = compose_stage_prompt(Stage.BEAR, defi_idea, None, grounding_bundle)
        b = compose_stage_prompt(Stage.BEAR, reordered, None, grounding_bundle)
        assert a == b

    @pytest.mark.parametrize("stage", [Stage.BEAR, Stage.BULL])
    def test_system_prompt_markers_without_grounding(self, stage, defi_idea, empty_bundle):
        prompt = compose_stage_prompt(stage, defi_idea, None, empty_bundle)
        assert "## EVIDENCE" in prompt["system"]
        assert "## OVERALL" in prompt["system"]
        assert REASONING_CHAIN in prompt["system"]
        assert REASONING_CHAIN == "evidence -> reasoning -> uncertainty -> sub-score"

    def test_judge_markers_without_grounding(self, defi_idea, empty_bundle, bear, bull):
        prompt = compose_stage_prompt(
            Stage.JUDGE, defi_idea, PriorOutputs(bear=bear, bull=bull), empty_bundle
        )
        assert "SCORING RUBRIC" in prompt["user"]
        assert "STRUCTURED GROUNDING BRIEF" in prompt["user"]
        assert "Evidence ids:\n(none)" in prompt["user"]
        assert "Unavailable sources: market, token_security, competitive" in prompt["user"]

    def test_judge_section_order(self, defi_idea, grounding_bundle, bear, bull):
        user = compose_stage_prompt(
            Stage.JUDGE, defi_idea, PriorOutputs(bear=bear, bull=bull), grounding_bundle
        )["user"]
        markers = [
            "DATA FRESHNESS WARNING",
            "--- SCORING RUBRIC ---",
            "--- STRUCTURED GROUNDING BRIEF ---",
            "--- IDEA ---",
            "--- ROLE BRIEF ---",
            "--- COMMITTEE REPORTS ---",
            "--- EVIDENCE PACK ---",
            "--- INSTRUCTION ---",
        ]
        positions = [user.index(m) for m in markers]
        assert positions == sorted(positions)

    def test_judge_evidence_pack_lists_pool_ids(self, defi_idea, grounding_bundle, bear, bull):
        user = compose_stage_prompt(
            Stage.JUDGE, defi_idea, PriorOutputs(bear=bear, bull=bull), grounding_bundle
        )["user"]
        for item in grounding_bundle["evidence_pool"]:
            assert f"- {item['id']} (" in user

    def test_judge_requires_prior_outputs(self, defi_idea, grounding_bundle, bear):
        with pytest.raises(ValueError, match="both bear and bull"):
            compose_stage_prompt(Stage.JUDGE, defi_idea, PriorOutputs(bear=bear), grounding_bundle)

    def test_domain_classified_when_not_given(self, defi_idea, grounding_bundle):
        prompt = compose_stage_prompt("bull", defi_idea, None, grounding_bundle)
        assert "Domain classification: crypto_defi" in prompt["user"]

    def test_bear_role_and_schema(self, defi_idea, grounding_bundle):
        prompt = compose_stage_prompt(Stage.BEAR, defi_idea, None, grounding_bundle)
        assert "Adversarial Critic" in prompt["system"]
        assert '"risk_score"' in prompt["system"]
        assert "--- COMMITTEE REPORTS ---" not in prompt["user"]

    def test_template_has_section_per_dimension(self):
        template = structured_template()
        for dim in RUBRIC_DIMENSIONS:
            assert f"## {dim['title']}" in template
