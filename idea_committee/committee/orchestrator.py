"""CommitteeOrchestrator — Bear and Bull fan out, Judge fans in."""

from __future__ import annotations

import asyncio
from typing import TypedDict

from idea_committee.committee.decode import (
    Decoded,
    DecodeError,
    decode_bear,
    decode_bull,
    decode_judge,
)
from idea_committee.contracts import (
    BearAnalysis,
    BullAnalysis,
    CompletionService,
    EvaluationInput,
    GroundingBundle,
    ProjectDomain,
    Stage,
    TokenUsage,
)
from idea_committee.errors import StageCallFailure
from idea_committee.prompts.composer import PriorOutputs, compose_stage_prompt


class StageCall(TypedDict):
    text: str
    usage: TokenUsage
    fallback_used: bool


class CommitteeOutput(TypedDict):
    bear: BearAnalysis
    bull: BullAnalysis
    draft_judge: Decoded[dict]
    judge_text: str
    token_usage: list[TokenUsage]
    fallback_used: bool


def _used_fallback(service: CompletionService, usage: TokenUsage) -> bool:
    primary = getattr(service, "model", None)
    return primary is not None and usage.get("model") != primary


class CommitteeOrchestrator:
    """Runs the three committee stages against a completion service.

    ``services`` maps each stage to its completion service; a single service
    may be passed for all three. Every call is bounded by a timeout. Bear
    and Bull decode failures abort with StageCallFailure; the Judge's decode
    result is returned as-is for the verifier to handle.
    """

    def __init__(
        self,
        services: CompletionService | dict[Stage, CompletionService],
        *,
        stage_timeout: float = 25.0,
        judge_timeout: float = 60.0,
    ) -> None:
        if isinstance(services, dict):
            self._services = dict(services)
        else:
            self._services = {stage: services for stage in Stage}
        self._stage_timeout = stage_timeout
        self._judge_timeout = judge_timeout

    async def _call(self, stage: Stage, system: str, user: str, *, agent_name: str) -> StageCall:
        service = self._services[stage]
        timeout = self._judge_timeout if stage == Stage.JUDGE else self._stage_timeout
        try:
            text, usage = await asyncio.wait_for(
                service.complete(system=system, user=user, agent_name=agent_name),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise StageCallFailure(stage.value, f"timed out after {timeout:.0f}s")
        except StageCallFailure:
            raise
        except Exception as e:
            raise StageCallFailure(stage.value, str(e) or type(e).__name__) from e
        return StageCall(text=text, usage=usage, fallback_used=_used_fallback(service, usage))

    async def run_bear(
        self, idea: EvaluationInput, grounding: GroundingBundle, domain: ProjectDomain
    ) -> tuple[BearAnalysis, StageCall]:
        prompt = compose_stage_prompt(Stage.BEAR, idea, None, grounding, domain=domain)
        call = await self._call(Stage.BEAR, prompt["system"], prompt["user"], agent_name="bear")
        decoded = decode_bear(call["text"])
        if isinstance(decoded, DecodeError):
            raise StageCallFailure(Stage.BEAR.value, f"undecodable output: {decoded.reason}")
        return decoded.payload, call

    async def run_bull(
        self, idea: EvaluationInput, grounding: GroundingBundle, domain: ProjectDomain
    ) -> tuple[BullAnalysis, StageCall]:
        prompt = compose_stage_prompt(Stage.BULL, idea, None, grounding, domain=domain)
        call = await self._call(Stage.BULL, prompt["system"], prompt["user"], agent_name="bull")
        decoded = decode_bull(call["text"])
        if isinstance(decoded, DecodeError):
            raise StageCallFailure(Stage.BULL.value, f"undecodable output: {decoded.reason}")
        return decoded.payload, call

    async def run_judge(
        self,
        idea: EvaluationInput,
        grounding: GroundingBundle,
        domain: ProjectDomain,
        prior: PriorOutputs,
        *,
        corrections: list[str] | None = None,
    ) -> tuple[Decoded[dict], StageCall]:
        prompt = compose_stage_prompt(Stage.JUDGE, idea, prior, grounding, domain=domain)
        user = prompt["user"]
        agent_name = "judge"
        if corrections:
            user += "\n\n--- CORRECTIONS REQUIRED ---\n"
            user += "Your previous report failed verification:\n"
            user += "\n".join(f"- {c}" for c in corrections)
            user += "\nReturn the complete corrected JSON report."
            agent_name = "judge_repair"
        call = await self._call(Stage.JUDGE, prompt["system"], user, agent_name=agent_name)
        return decode_judge(call["text"]), call

    async def run(
        self, idea: EvaluationInput, grounding: GroundingBundle, domain: ProjectDomain
    ) -> CommitteeOutput:
        bear_task = self.run_bear(idea, grounding, domain)
        bull_task = self.run_bull(idea, grounding, domain)
        results = await asyncio.gather(bear_task, bull_task, return_exceptions=True)
        for outcome in results:
            if isinstance(outcome, BaseException):
                raise outcome

        (bear, bear_call), (bull, bull_call) = results
        draft, judge_call = await self.run_judge(
            idea, grounding, domain, PriorOutputs(bear=bear, bull=bull)
        )
        calls = [bear_call, bull_call, judge_call]
        return CommitteeOutput(
            bear=bear,
            bull=bull,
            draft_judge=draft,
            judge_text=judge_call["text"],
            token_usage=[c["usage"] for c in calls],
            fallback_used=any(c["fallback_used"] for c in calls),
        )
