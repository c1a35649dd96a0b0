"""Test fixtures and fakes."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from idea_committee.config import Settings
from idea_committee.contracts import (
    BearAnalysis,
    BullAnalysis,
    Claim,
    EvaluationInput,
    GroundingBundle,
    ProjectDomain,
    TokenUsage,
)
from idea_committee.grounding.collector import build_evidence_pool
from idea_committee.grounding.competitive import build_memo
from idea_committee.grounding.envelope import wrap_grounding

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


STRUCTURED_ANALYSIS = """## EVIDENCE
- [MARKET_SNAPSHOT] SOL at 142 USD, BTC dominance 54%
- [TOKEN_SECURITY] mint authority revoked, data is stale
- [COMPETITIVE_MEMO] crowded lending category led by Kamino

## MARKET OPPORTUNITY
Evidence: [COMPETITIVE_MEMO] lending TVL concentrated in two protocols
Reasoning: demand is real but incumbents are strong
Uncertainty: whether long-tail collateral attracts borrowers
Sub-score: 7/10

## TECHNICAL FEASIBILITY
Evidence: [MARKET_SNAPSHOT]
Reasoning: standard lending design with oracle dependency
Uncertainty: liquidation engine under volatility
Sub-score: 6/10

## TOKENOMICS
Evidence: [TOKEN_SECURITY]
Reasoning: token has a fee sink
Uncertainty: emissions schedule is unspecified
Sub-score: 5.5/10

## EXECUTION RISK
Evidence: none
Reasoning: small team, audited codebase planned
Uncertainty: hiring a risk engineer
Sub-score: 5.8/10

## OVERALL
Composition: weighted
Final score: 64/100
Confidence: MEDIUM
Top risk: oracle manipulation during liquidations
"""


def make_usage(agent: str, model: str = "fake-model", tokens: int = 100) -> TokenUsage:
    return TokenUsage(
        agent=agent,
        model=model,
        input_tokens=tokens,
        output_tokens=tokens // 2,
        cost_usd=0.001,
        timestamp="2026-03-01T12:00:00+00:00",
    )


class FakeCompletion:
    """CompletionService stand-in: canned text per agent name.

    A response may be a string, an Exception to raise, or a list consumed
    one entry per call. ``delays`` holds per-agent sleeps in seconds.
    """

    def __init__(self, responses: dict, *, delays: dict | None = None, model: str | None = None):
        self._responses = {k: (list(v) if isinstance(v, list) else v) for k, v in responses.items()}
        self._delays = delays or {}
        self.calls: list[dict] = []
        self.events: list[tuple[str, str]] = []
        if model is not None:
            self.model = model

    async def complete(self, *, system: str, user: str, agent_name: str):
        self.calls.append({"system": system, "user": user, "agent_name": agent_name})
        self.events.append(("start", agent_name))
        delay = self._delays.get(agent_name, 0)
        if delay:
            await asyncio.sleep(delay)
        self.events.append(("end", agent_name))

        response = self._responses[agent_name]
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        return response, make_usage(agent_name, model=getattr(self, "model", "fake-model"))


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        anthropic_api_key="test-key",
        tavily_api_key="test-tavily",
        grounding_cache_dir=str(tmp_path / "cache"),
        result_dir=str(tmp_path / "evaluations"),
        run_log_dir=str(tmp_path / "runs"),
    )


@pytest.fixture
def defi_idea() -> EvaluationInput:
    return EvaluationInput(
        project_name="LoopLend",
        description=(
            "A DeFi lending protocol on Solana that lets users borrow against long-tail "
            "collateral, with an oracle-driven liquidation engine and isolated vaults."
        ),
        project_type="defi",
        target_users="Solana traders holding long-tail tokens",
        problem="Long-tail tokens cannot be used as collateral anywhere",
        token_address="LoopMint1111111111111111111111111111111111",
    )


@pytest.fixture
def market_data() -> dict:
    return {"btc_dominance": 54.2, "sol_price_usd": 142.5, "total_alt_volume_24h_usd": 3.1e10}


@pytest.fixture
def token_data() -> dict:
    return {
        "mint": "LoopMint1111111111111111111111111111111111",
        "valid": True,
        "mint_authority_revoked": True,
        "freeze_authority_revoked": True,
        "supply": "1000000000",
        "decimals": 6,
        "liquidity_locked": None,
        "top10_holder_percentage": None,
        "total_liquidity": None,
    }


@pytest.fixture
def competitive_data() -> dict:
    return build_memo(
        domain=ProjectDomain.CRYPTO_DEFI,
        search_results=[
            {
                "title": "Kamino Lend overview",
                "url": "https://example.com/kamino",
                "content": "Kamino is a Solana lending market.",
            }
        ],
        protocols=[{"name": "Kamino", "tvl": 2.1e9, "url": "https://kamino.finance", "category": "Lending"}],
        category="Lending",
        protocol_count=42,
        unavailable=[],
    )


@pytest.fixture
def grounding_bundle(market_data, token_data, competitive_data) -> GroundingBundle:
    """Market and competitive fresh; token security 2h old against a 1h TTL."""
    bundle = GroundingBundle(
        market=wrap_grounding(
            market_data, source="market", fetched_at=NOW, ttl_hours=1, now=NOW
        ),
        token_security=wrap_grounding(
            token_data,
            source="token_security",
            fetched_at=NOW - timedelta(hours=2),
            ttl_hours=1,
            now=NOW,
        ),
        competitive=wrap_grounding(
            competitive_data, source="competitive", fetched_at=NOW, ttl_hours=72, now=NOW
        ),
        unavailable_sources=[],
        evidence_pool=[],
        claims=list(competitive_data["claims"]),
    )
    bundle["evidence_pool"] = build_evidence_pool(bundle)
    return bundle


@pytest.fixture
def empty_bundle() -> GroundingBundle:
    return GroundingBundle(
        unavailable_sources=["market", "token_security", "competitive"],
        evidence_pool=[],
        claims=[],
    )


@pytest.fixture
def bear() -> BearAnalysis:
    return BearAnalysis(
        fatal_flaws=["Oracle manipulation on thin long-tail markets", "Incumbents own liquidity"],
        risk_score=82,
        verdict="AVOID",
        roast="Another lending fork betting that illiquid collateral behaves in a crash.",
        dimension_scores={
            "market_opportunity": 4,
            "technical_feasibility": 3,
            "tokenomics": 3,
            "execution_risk": 2,
        },
    )


@pytest.fixture
def bull() -> BullAnalysis:
    return BullAnalysis(
        alpha_signals=["Long-tail collateral is unserved", "Solana lending TVL is growing"],
        upside_score=73,
        verdict="LONG",
        pitch="First mover on isolated long-tail lending for Solana.",
        dimension_scores={
            "market_opportunity": 8,
            "technical_feasibility": 7,
            "tokenomics": 6,
            "execution_risk": 7,
        },
    )


@pytest.fixture
def judge_claims() -> list[Claim]:
    return [
        Claim(
            text="SOL trades near 142 USD.",
            claim_type="fact",
            evidence_ids=["market_snapshot"],
            support="corroborated",
        ),
        Claim(
            text="Kamino leads Solana lending with over 2B TVL.",
            claim_type="fact",
            evidence_ids=["defillama-1"],
            support="corroborated",
        ),
        Claim(
            text="Long-tail collateral demand will grow.",
            claim_type="inference",
            evidence_ids=[],
            support="uncorroborated",
        ),
    ]


@pytest.fixture
def judge_payload(judge_claims) -> dict:
    return {
        "overall_score": 64,
        "reasoning_steps": [
            "Bear's oracle concern is supported by thin liquidity.",
            "Bull's demand thesis is plausible but unproven.",
        ],
        "summary": {
            "title": "LoopLend",
            "one_liner": "Isolated lending for long-tail Solana tokens",
            "main_verdict": "Promising but risky",
        },
        "technical": {
            "feasibility_score": 60,
            "key_risks": ["oracle manipulation"],
            "required_components": ["oracle", "liquidation engine"],
            "comments": "Standard design with a hard oracle problem.",
        },
        "tokenomics": {
            "token_needed": True,
            "design_score": 55,
            "main_issues": ["unspecified emissions"],
            "suggestions": ["publish an emissions schedule"],
        },
        "market": {
            "market_fit_score": 70,
            "target_audience": ["Solana traders"],
            "competitor_signals": ["Kamino"],
            "go_to_market_risks": ["liquidity bootstrapping"],
        },
        "execution": {
            "complexity_level": "medium",
            "execution_score": 58,
            "founder_readiness_flags": ["no risk engineer"],
            "estimated_timeline": "6 months",
        },
        "recommendations": {
            "must_fix_before_build": ["oracle design review"],
            "recommended_pivots": [],
            "nice_to_have_later": ["cross-margin"],
        },
        "structured_analysis": STRUCTURED_ANALYSIS,
        "claims": judge_claims,
    }


@pytest.fixture
def committee_responses(bear, bull, judge_payload) -> dict:
    return {
        "bear": json.dumps(bear),
        "bull": json.dumps(bull),
        "judge": json.dumps(judge_payload),
        "judge_repair": json.dumps(judge_payload),
    }


@pytest.fixture
def fake_completion(committee_responses) -> FakeCompletion:
    return FakeCompletion(committee_responses)
