"""Streaming display for real-time progress during an evaluation."""

from __future__ import annotations

import sys
from typing import Any

# Human-readable labels for graph node names
NODE_LABELS: dict[str, str] = {
    "collect_grounding": "Collecting grounding",
    "bear_stage": "Bear critique",
    "bull_stage": "Bull case",
    "judge_stage": "Judge synthesis",
    "verify": "Verifying report",
    "calibrate": "Calibrating scores",
    "score_trust": "Scoring trust",
    "persist": "Saving result",
}


class StreamDisplay:
    """Handles stream events from LangGraph astream and prints progress to stderr."""

    def __init__(self, *, verbose: bool = False) -> None:
        self._verbose = verbose
        self._current_node: str | None = None

    def _print(self, msg: str) -> None:
        print(msg, file=sys.stderr, flush=True)

    def handle_update(self, update: dict[str, Any]) -> None:
        """Handle an 'updates' stream event (node_name -> state_update)."""
        for node_name, state_delta in update.items():
            label = NODE_LABELS.get(node_name, node_name)
            self._current_node = node_name
            self._print(f"  [{label}]")

            if self._verbose and isinstance(state_delta, dict):
                self._print_details(node_name, state_delta)

    def handle_custom(self, event: dict[str, Any]) -> None:
        """Handle a 'custom' stream event (granular progress from nodes)."""
        kind = event.get("kind", "")
        msg = event.get("message", "")

        if kind == "grounding_summary":
            available = event.get("available", [])
            unavailable = event.get("unavailable", [])
            stale = event.get("stale", [])
            self._print(f"    Grounding: {len(available)} available ({', '.join(available) or 'none'})")
            if unavailable:
                self._print(f"    Unavailable: {', '.join(unavailable)}")
            if stale:
                self._print(f"    Stale: {', '.join(stale)}")
        elif kind == "verification":
            status = event.get("status", "?")
            failed = event.get("checks_failed", 0)
            repairs = event.get("repairs_used", 0)
            self._print(f"    Verifier: {status} ({failed} checks failed, {repairs} repairs)")
        elif msg:
            self._print(f"    {msg}")

    def _print_details(self, node_name: str, state_delta: dict) -> None:
        """Print verbose details about what a node produced."""
        counts: dict[str, str] = {}
        if "domain" in state_delta:
            d = state_delta["domain"]
            counts["domain"] = f"{d['domain']} ({d['confidence']})"
        if "bear" in state_delta:
            b = state_delta["bear"]
            counts["risk"] = f"{b['risk_score']:.0f} {b['verdict']}"
        if "bull" in state_delta:
            b = state_delta["bull"]
            counts["upside"] = f"{b['upside_score']:.0f} {b['verdict']}"
        if "judge" in state_delta:
            counts["overall"] = f"{state_delta['judge']['overall_score']:.0f}"
        if "trust" in state_delta:
            conf = state_delta["trust"]["confidence"]
            counts["confidence"] = f"{conf['score']:.2f} {conf['level']}"
        if "token_usage" in state_delta:
            counts["calls"] = str(len(state_delta["token_usage"]))

        if counts:
            detail = ", ".join(f"{k}={v}" for k, v in counts.items())
            self._print(f"    -> {detail}")
