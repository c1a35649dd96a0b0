"""Tests for scoring/domain.py — keyword domain classification."""

from __future__ import annotations

from idea_committee.contracts import ProjectDomain
from idea_committee.scoring.domain import DOMAIN_KEYWORDS, classify_domain


class TestClassifyDomain:
    def test_defi_lending(self, defi_idea):
        result = classify_domain(defi_idea)
        assert result["domain"] == "crypto_defi"
        assert result["confidence"] == "high"
        assert "lending" in result["matched_keywords"]

    def test_memecoin_beats_defi_vocabulary(self):
        idea = {
            "project_name": "FrogPump",
            "description": "A memecoin with a frog mascot, fair launch on pump.fun and a swap widget.",
        }
        assert classify_domain(idea)["domain"] == "memecoin"

    def test_saas(self):
        idea = {
            "project_name": "Ledgerly",
            "description": "B2B SaaS dashboard with subscription billing and CRM integration.",
        }
        assert classify_domain(idea)["domain"] == "saas"

    def test_no_signal_falls_back_to_other(self):
        idea = {"project_name": "Thing", "description": "Something new."}
        result = classify_domain(idea)
        assert result["domain"] == "other"
        assert result["confidence"] == "low"

    def test_hint_used_when_text_is_thin(self):
        idea = {"project_name": "Thing", "description": "Something new.", "project_type": "hardware"}
        assert classify_domain(idea)["domain"] == "hardware"

    def test_unknown_hint_ignored(self):
        idea = {"project_name": "Thing", "description": "Something new.", "project_type": "biotech"}
        assert classify_domain(idea)["domain"] == "other"

    def test_single_word_keywords_match_on_boundaries(self):
        # "ai" must not match inside "maintain" or "domain"
        idea = {"project_name": "Keeper", "description": "Maintain domain records."}
        assert classify_domain(idea)["scores"]["ai_ml"] == 0.0

    def test_scores_cover_every_keyword_domain(self, defi_idea):
        scores = classify_domain(defi_idea)["scores"]
        assert set(scores) == {d.value for d in DOMAIN_KEYWORDS}

    def test_hint_bonus(self):
        idea = {"project_name": "Thing", "description": "A dashboard.", "project_type": "saas"}
        scores = classify_domain(idea)["scores"]
        # one keyword at hint weight plus the hint bonus
        assert scores[ProjectDomain.SAAS.value] == 4.2
