"""Append-only JSONL event log for evaluation runs.

Each committee node appends one line: what it consumed, what it produced,
tokens spent, and the evaluation facts from its update (verdicts, verifier
outcome, stale or missing grounding). A node that raises still gets a line,
with ``error`` set. ``digest()`` rolls a run's lines up for the CLI.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from idea_committee.contracts import RunDigest, RunEvent, Stage
from idea_committee.errors import FatalRepairExhausted, StageCallFailure

NODE_STAGES: dict[str, Stage] = {
    "bear_stage": Stage.BEAR,
    "bull_stage": Stage.BULL,
    "judge_stage": Stage.JUDGE,
}

_GROUNDING_KEYS = ("market", "token_security", "competitive")


def summarize_payload(payload: dict | None) -> dict[str, int]:
    """Field -> size for containers, value for numbers. Other values are omitted."""
    summary: dict[str, int] = {}
    for key, value in (payload or {}).items():
        if isinstance(value, (list, dict, str)):
            summary[key] = len(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            summary[key] = int(value)
    return summary


def _verifier_details(verifier: dict) -> dict[str, Any]:
    return {
        "verifier_status": verifier["status"],
        "checks_failed": verifier["checks_failed"],
        "repairs_used": verifier["repairs_used"],
    }


def node_details(update: dict | None) -> dict[str, Any]:
    """Pick the evaluation facts out of a node's state update."""
    update = update or {}
    details: dict[str, Any] = {}

    grounding = update.get("grounding")
    if grounding:
        details["evidence_count"] = len(grounding.get("evidence_pool", []))
        details["unavailable_sources"] = list(grounding.get("unavailable_sources", []))
        details["stale_sources"] = [
            k for k in _GROUNDING_KEYS if (grounding.get(k) or {}).get("is_stale")
        ]
    if update.get("domain"):
        details["domain"] = update["domain"]["domain"]

    for role, score_key in (("bear", "risk_score"), ("bull", "upside_score")):
        analysis = update.get(role)
        if analysis:
            details["verdict"] = analysis.get("verdict")
            details[score_key] = analysis.get(score_key)

    if update.get("verifier"):
        details.update(_verifier_details(update["verifier"]))
    if update.get("judge"):
        details["overall_score"] = update["judge"].get("overall_score")
    if update.get("trust"):
        details["confidence"] = update["trust"]["confidence"]["level"]

    if update.get("fallback_used"):
        details["fallback_used"] = True
    if update.get("agent_failures"):
        details["agent_failures"] = update["agent_failures"]
    return details


def failure_details(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, FatalRepairExhausted):
        return {**_verifier_details(exc.verifier_result), "issues": exc.verifier_result["issues"]}
    if isinstance(exc, StageCallFailure):
        return {"failed_stage": exc.stage}
    return {}


class EventLog:
    """JSONL-backed event log for a single evaluation.

    One file per evaluation id; directory auto-created; corrupt lines are
    skipped on read.
    """

    _FILENAME = "events.jsonl"

    def __init__(self, log_dir: str | Path, evaluation_id: str) -> None:
        self.evaluation_id = evaluation_id
        self._dir = Path(log_dir) / evaluation_id
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._dir / self._FILENAME

    def emit(self, event: RunEvent) -> None:
        line = json.dumps(event, ensure_ascii=False, default=str)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def read_all(self) -> list[RunEvent]:
        """Read all events. Skips corrupt lines, returns [] on missing file."""
        if not self.path.exists():
            return []
        events: list[RunEvent] = []
        try:
            for line in self.path.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(json.loads(line))
                except json.JSONDecodeError:
                    continue
        except OSError:
            return []
        return events

    def make_event(
        self,
        *,
        node: str,
        elapsed_s: float,
        inputs_summary: dict[str, int] | None = None,
        outputs_summary: dict[str, int] | None = None,
        tokens: int = 0,
        cost: float = 0.0,
        details: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> RunEvent:
        stage = NODE_STAGES.get(node)
        return RunEvent(
            node=node,
            evaluation_id=self.evaluation_id,
            ts=datetime.now(timezone.utc).isoformat(),
            elapsed_s=round(elapsed_s, 3),
            inputs_summary=inputs_summary or {},
            outputs_summary=outputs_summary or {},
            tokens=tokens,
            cost=round(cost, 6),
            stage=stage.value if stage else None,
            details=details or {},
            error=error,
        )

    def record_node(
        self, node: str, inputs: dict, update: dict | None, elapsed_s: float
    ) -> RunEvent:
        usage = (update or {}).get("token_usage", [])
        event = self.make_event(
            node=node,
            elapsed_s=elapsed_s,
            inputs_summary=summarize_payload(inputs),
            outputs_summary=summarize_payload(update),
            tokens=sum(u["input_tokens"] + u["output_tokens"] for u in usage),
            cost=sum(u["cost_usd"] for u in usage),
            details=node_details(update),
        )
        self.emit(event)
        return event

    def record_failure(
        self, node: str, inputs: dict, exc: BaseException, elapsed_s: float
    ) -> RunEvent:
        event = self.make_event(
            node=node,
            elapsed_s=elapsed_s,
            inputs_summary=summarize_payload(inputs),
            details=failure_details(exc),
            error=f"{type(exc).__name__}: {exc}",
        )
        self.emit(event)
        return event

    def digest(self) -> RunDigest:
        events = self.read_all()
        slowest = max(events, key=lambda e: e["elapsed_s"], default=None)
        failed = next((e for e in events if e.get("error")), None)

        verifier_status: str | None = None
        repairs_used = 0
        stale: list[str] = []
        for event in events:
            details = event.get("details") or {}
            if "verifier_status" in details:
                verifier_status = details["verifier_status"]
                repairs_used = details.get("repairs_used", 0)
            stale.extend(s for s in details.get("stale_sources", []) if s not in stale)

        return RunDigest(
            events=len(events),
            tokens=sum(e["tokens"] for e in events),
            cost=round(sum(e["cost"] for e in events), 6),
            slowest_node=slowest["node"] if slowest else None,
            slowest_s=slowest["elapsed_s"] if slowest else 0.0,
            verifier_status=verifier_status,
            repairs_used=repairs_used,
            stale_sources=stale,
            failed_node=failed["node"] if failed else None,
            error=failed["error"] if failed else None,
        )
