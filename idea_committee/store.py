"""File-based result sink: one JSON document per evaluation id."""

from __future__ import annotations

import json
import re
from pathlib import Path

from idea_committee.contracts import EvaluationResult

_SAFE_ID = re.compile(r"[^A-Za-z0-9._-]")


class ResultStore:
    """Write-only from the pipeline's perspective; reads serve the CLI.

    Pattern follows EventLog: directory auto-creation, graceful degradation
    on missing or corrupt files when reading.
    """

    def __init__(self, result_dir: str | Path) -> None:
        self._dir = Path(result_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, evaluation_id: str) -> Path:
        return self._dir / f"{_SAFE_ID.sub('_', evaluation_id)}.json"

    def save(self, evaluation_id: str, result: EvaluationResult) -> None:
        self.path_for(evaluation_id).write_text(
            json.dumps(result, indent=2, ensure_ascii=False, default=str),
            encoding="utf-8",
        )

    def load(self, evaluation_id: str) -> EvaluationResult | None:
        path = self.path_for(evaluation_id)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return None
        return data if isinstance(data, dict) else None

    def list_ids(self) -> list[str]:
        return sorted(p.stem for p in self._dir.glob("*.json"))
