"""AgentCaller — Anthropic-backed CompletionService for the committee stages."""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone

import anthropic
from anthropic._exceptions import OverloadedError

from idea_committee.contracts import TokenUsage

# Pricing per million tokens
_PRICING: dict[str, dict[str, float]] = {
    "claude-opus-4-6": {"input": 15.0, "output": 75.0},
    "claude-sonnet-4-6": {"input": 3.0, "output": 15.0},
}
_DEFAULT_PRICING = {"input": 3.0, "output": 15.0}


def _usage(response, agent_name: str, model: str) -> TokenUsage:
    pricing = _PRICING.get(model, _DEFAULT_PRICING)
    input_tokens = response.usage.input_tokens
    output_tokens = response.usage.output_tokens
    cost = (input_tokens * pricing["input"] + output_tokens * pricing["output"]) / 1_000_000
    return TokenUsage(
        agent=agent_name,
        model=model,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        cost_usd=round(cost, 6),
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


class AgentCaller:
    """Implements CompletionService over the Anthropic Messages API.

    One instance may be shared by concurrent stages of a single evaluation;
    the semaphore bounds in-flight requests. Overload (529) is retried with
    backoff and then handed to ``fallback_model``; the answering model is
    reported in ``usage["model"]`` so callers can tell a fallback happened.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        max_concurrent: int = 4,
        max_retries: int = 3,
        fallback_model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> None:
        self.model = model
        self.fallback_model = fallback_model
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._max_retries = max_retries
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def complete(
        self,
        *,
        system: str,
        user: str,
        agent_name: str,
    ) -> tuple[str, TokenUsage]:
        """Text in, text out. Returns (response_text, token_usage)."""
        async with self._semaphore:
            return await self._complete_with_retry(system, user, agent_name)

    async def _ask(self, model: str, system: str, user: str, agent_name: str) -> tuple[str, TokenUsage]:
        response = await self._client.messages.create(
            model=model,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        if getattr(response, "stop_reason", None) == "max_tokens":
            # shows up downstream as a truncated-JSON decode error
            print(
                f"WARNING: {agent_name} reply hit max_tokens ({self._max_tokens}), "
                "output is likely truncated",
                file=sys.stderr,
            )
        text = "".join(block.text for block in response.content if block.type == "text")
        return text, _usage(response, agent_name, model)

    def _backoff(self, exc: anthropic.APIError, attempt: int, agent_name: str) -> float:
        """Seconds to wait before the next attempt."""
        if isinstance(exc, OverloadedError):
            wait = 2 ** (attempt + 1)
            print(
                f"WARNING: {self.model} overloaded (529) during {agent_name}, "
                f"retry {attempt + 1}/{self._max_retries} in {wait}s",
                file=sys.stderr,
            )
            return wait
        if isinstance(exc, anthropic.RateLimitError):
            return 2 ** (attempt + 1)
        return 1

    async def _complete_with_retry(
        self, system: str, user: str, agent_name: str
    ) -> tuple[str, TokenUsage]:
        last_error: anthropic.APIError | None = None
        overloaded = False
        for attempt in range(self._max_retries):
            try:
                return await self._ask(self.model, system, user, agent_name)
            except anthropic.APIError as e:
                last_error = e
                overloaded = overloaded or isinstance(e, OverloadedError)
                wait = self._backoff(e, attempt, agent_name)
                if attempt < self._max_retries - 1 or isinstance(
                    e, (OverloadedError, anthropic.RateLimitError)
                ):
                    await asyncio.sleep(wait)

        reason = "overloaded" if isinstance(last_error, OverloadedError) else str(last_error)
        if overloaded and self.fallback_model:
            print(
                f"WARNING: {self.model} exhausted retries, "
                f"falling back to {self.fallback_model} for {agent_name}",
                file=sys.stderr,
            )
            try:
                return await self._ask(self.fallback_model, system, user, agent_name)
            except anthropic.APIError as e:
                reason = f"fallback ({self.fallback_model}) also failed: {e}"

        raise RuntimeError(f"AgentCaller failed after {self._max_retries} retries: {reason}")
