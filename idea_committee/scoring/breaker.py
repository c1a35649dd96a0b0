"""Circuit breaker as explicit state plus pure transitions.

Breaker state lives in a registry dict owned by the caller and passed into
the collector / pipeline. Nothing here holds module-level mutable state, so
any run can be replayed from its starting registry.
"""

from __future__ import annotations

from dataclasses import dataclass

from idea_committee.contracts import BreakerPhase, BreakerState

BreakerRegistry = dict[str, BreakerState]


@dataclass(frozen=True)
class BreakerPolicy:
    alpha: float = 0.3  # EMA weight of the newest outcome
    open_threshold: float = 0.5
    min_samples: int = 5
    cooldown_s: float = 60.0


DEFAULT_POLICY = BreakerPolicy()


def initial_state() -> BreakerState:
    return BreakerState(
        state=BreakerPhase.CLOSED.value, failure_ema=0.0, window_count=0, opened_at=None
    )


def transition(
    prior: BreakerState,
    success: bool,
    now: float,
    policy: BreakerPolicy = DEFAULT_POLICY,
) -> BreakerState:
    """Return the state after observing one call outcome at time ``now``."""
    outcome = 0.0 if success else 1.0
    phase = BreakerPhase(prior["state"])

    if phase == BreakerPhase.HALF_OPEN:
        if success:
            return initial_state()
        return BreakerState(
            state=BreakerPhase.OPEN.value,
            failure_ema=round(policy.alpha * outcome + (1 - policy.alpha) * prior["failure_ema"], 6),
            window_count=prior["window_count"] + 1,
            opened_at=now,
        )

    ema = round(policy.alpha * outcome + (1 - policy.alpha) * prior["failure_ema"], 6)
    count = prior["window_count"] + 1

    if phase == BreakerPhase.OPEN:
        # Outcomes reported while open (e.g. stale probes) only update the EMA.
        return BreakerState(
            state=BreakerPhase.OPEN.value,
            failure_ema=ema,
            window_count=count,
            opened_at=prior["opened_at"],
        )

    if count >= policy.min_samples and ema >= policy.open_threshold:
        return BreakerState(
            state=BreakerPhase.OPEN.value, failure_ema=ema, window_count=count, opened_at=now
        )
    return BreakerState(
        state=BreakerPhase.CLOSED.value, failure_ema=ema, window_count=count, opened_at=None
    )


def allow_request(
    state: BreakerState,
    now: float,
    policy: BreakerPolicy = DEFAULT_POLICY,
) -> tuple[bool, BreakerState]:
    """Decide whether a call may proceed. Returns (allowed, possibly-advanced state).

    An open breaker past its cooldown moves to half-open and admits one probe.
    """
    phase = BreakerPhase(state["state"])
    if phase == BreakerPhase.CLOSED:
        return True, state
    if phase == BreakerPhase.HALF_OPEN:
        return True, state

    opened_at = state["opened_at"] or 0.0
    if now - opened_at >= policy.cooldown_s:
        return True, BreakerState(
            state=BreakerPhase.HALF_OPEN.value,
            failure_ema=state["failure_ema"],
            window_count=state["window_count"],
            opened_at=state["opened_at"],
        )
    return False, state
