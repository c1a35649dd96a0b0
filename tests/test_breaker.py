"""Tests for scoring/breaker.py — pure circuit breaker transitions."""

from __future__ import annotations

from idea_committee.scoring.breaker import (
    BreakerPolicy,
    allow_request,
    initial_state,
    transition,
)


def _fail_n(n: int, policy: BreakerPolicy = BreakerPolicy(), start: float = 0.0):
    state = initial_state()
    for i in range(n):
        state = transition(state, False, start + i, policy)
    return state


class TestTransition:
    def test_initial_state_closed(self):
        state = initial_state()
        assert state["state"] == "closed"
        assert state["failure_ema"] == 0.0
        assert state["window_count"] == 0
        assert state["opened_at"] is None

    def test_ema_update(self):
        state = transition(initial_state(), False, 0.0)
        assert state["failure_ema"] == 0.3
        state = transition(state, True, 1.0)
        assert state["failure_ema"] == 0.21

    def test_does_not_open_before_min_samples(self):
        state = _fail_n(4)
        # EMA is above threshold but only 4 samples
        assert state["failure_ema"] >= 0.5
        assert state["state"] == "closed"

    def test_opens_after_min_samples(self):
        state = _fail_n(5)
        assert state["state"] == "open"
        assert state["opened_at"] == 4.0

    def test_successes_keep_closed(self):
        state = initial_state()
        for i in range(20):
            state = transition(state, True, float(i))
        assert state["state"] == "closed"
        assert state["failure_ema"] == 0.0

    def test_half_open_success_closes_and_resets(self):
        state = dict(_fail_n(5), state="half_open")
        state = transition(state, True, 100.0)
        assert state == initial_state()

    def test_half_open_failure_reopens(self):
        state = dict(_fail_n(5), state="half_open")
        state = transition(state, False, 100.0)
        assert state["state"] == "open"
        assert state["opened_at"] == 100.0

    def test_pure_function(self):
        prior = _fail_n(2)
        snapshot = dict(prior)
        transition(prior, False, 10.0)
        assert prior == snapshot


class TestAllowRequest:
    def test_closed_allows(self):
        allowed, state = allow_request(initial_state(), 0.0)
        assert allowed is True
        assert state["state"] == "closed"

    def test_open_blocks_during_cooldown(self):
        opened = _fail_n(5)
        allowed, state = allow_request(opened, opened["opened_at"] + 30)
        assert allowed is False
        assert state["state"] == "open"

    def test_open_moves_to_half_open_after_cooldown(self):
        opened = _fail_n(5)
        allowed, state = allow_request(opened, opened["opened_at"] + 60)
        assert allowed is True
        assert state["state"] == "half_open"

    def test_custom_policy_cooldown(self):
        policy = BreakerPolicy(min_samples=2, cooldown_s=5)
        opened = _fail_n(2, policy)
        assert opened["state"] == "open"
        allowed, _ = allow_request(opened, opened["opened_at"] + 5, policy)
        assert allowed is True
