"""CLI entry point: python -m idea_committee <idea.json>"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from idea_committee.config import get_settings
from idea_committee.contracts import EvaluationInput, EvaluationResult
from idea_committee.errors import CommitteeError, FatalRepairExhausted
from idea_committee.event_log.writer import EventLog
from idea_committee.pipeline import evaluate, new_evaluation_id
from idea_committee.store import ResultStore
from idea_committee.streaming import StreamDisplay


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="idea-committee",
        description="Adversarial evaluation committee for project ideas",
    )
    parser.add_argument(
        "idea_file",
        type=str,
        nargs="?",
        default=None,
        help="JSON file describing the idea (project_name, description, ...)",
    )
    parser.add_argument("--name", type=str, default=None, help="Project name")
    parser.add_argument("--description", type=str, default=None, help="Project description")
    parser.add_argument(
        "--project-type",
        type=str,
        default=None,
        help="Domain hint, e.g. defi, memecoin, ai, saas",
    )
    parser.add_argument(
        "--token-address",
        type=str,
        default=None,
        help="Solana mint address; enables token-security grounding",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Also write the evaluation JSON to this path",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        default=False,
        help="Disable the stale-if-error grounding cache",
    )
    parser.add_argument(
        "--no-stream",
        action="store_true",
        default=False,
        help="Disable streaming output (use blocking ainvoke)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Show detailed progress during streaming",
    )
    parser.add_argument(
        "--no-log",
        action="store_true",
        default=False,
        help="Disable run event logging",
    )
    parser.add_argument(
        "--list-evaluations",
        action="store_true",
        default=False,
        help="List stored evaluation IDs and exit",
    )
    args = parser.parse_args(argv)

    if not args.list_evaluations and not args.idea_file and not (args.name and args.description):
        parser.error("an idea file is required (or use --name and --description / --list-evaluations)")

    return args


def load_idea(args: argparse.Namespace) -> EvaluationInput:
    """Build the idea from the JSON file, with CLI flags taking precedence."""
    idea: dict = {}
    if args.idea_file:
        path = Path(args.idea_file)
        if not path.exists():
            raise FileNotFoundError(f"Idea file not found: {path}")
        idea = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(idea, dict):
            raise ValueError("Idea file must contain a JSON object")

    overrides = {
        "project_name": args.name,
        "description": args.description,
        "project_type": args.project_type,
        "token_address": args.token_address,
    }
    idea.update({k: v for k, v in overrides.items() if v})

    for key in ("project_name", "description"):
        if not idea.get(key):
            raise ValueError(f"Idea is missing required field '{key}'")
    return idea  # type: ignore[return-value]


def _list_evaluations(store: ResultStore) -> None:
    ids = store.list_ids()
    if not ids:
        print("No evaluations found.", file=sys.stderr)
        return
    for evaluation_id in ids:
        result = store.load(evaluation_id)
        if result is None:
            print(f"  {evaluation_id}  [unreadable]")
            continue
        judge = result.get("judge", {})
        conf = result.get("trust", {}).get("confidence", {})
        print(
            f"  {evaluation_id}  "
            f"score={judge.get('overall_score', '?')}  "
            f"confidence={conf.get('level', '?')}  "
            f"{judge.get('summary', {}).get('title', '')}"
        )


def _print_run_log(event_log: EventLog) -> None:
    digest = event_log.digest()
    line = f"Run log: {event_log.path} ({digest['events']} events"
    if digest["slowest_node"]:
        line += f", slowest {digest['slowest_node']} {digest['slowest_s']:.1f}s"
    if digest["verifier_status"]:
        line += f", verifier {digest['verifier_status']} after {digest['repairs_used']} repair(s)"
    print(line + ")", file=sys.stderr)
    if digest["stale_sources"]:
        print(f"  stale grounding: {', '.join(digest['stale_sources'])}", file=sys.stderr)
    if digest["failed_node"]:
        print(f"  failed at {digest['failed_node']}: {digest['error']}", file=sys.stderr)


def _print_summary(result: EvaluationResult) -> None:
    judge = result["judge"]
    trust = result["trust"]
    conf = trust["confidence"]
    total_tokens = sum(u["input_tokens"] + u["output_tokens"] for u in result["token_usage"])
    total_cost = sum(u["cost_usd"] for u in result["token_usage"])
    print(
        f"\n{judge['summary'].get('title', result['evaluation_id'])}: "
        f"{judge['overall_score']:.0f}/100 | "
        f"Bear {result['bear']['verdict']} / Bull {result['bull']['verdict']} | "
        f"confidence {conf['level']} ({conf['score']:.2f}) | "
        f"disagreement {trust['debate_disagreement_index']}",
        file=sys.stderr,
    )
    for reason in conf["reasons"]:
        print(f"  - {reason}", file=sys.stderr)
    print(f"Completed: {total_tokens:,} tokens | ${total_cost:.4f}", file=sys.stderr)


async def run(args: argparse.Namespace) -> None:
    settings = get_settings()

    project_root = Path(__file__).resolve().parent.parent
    store = ResultStore(project_root / settings.result_dir)

    if args.list_evaluations:
        _list_evaluations(store)
        return

    errors = settings.validate()
    if errors:
        for err in errors:
            print(f"ERROR: {err}", file=sys.stderr)
        sys.exit(1)
    for warn in settings.warnings():
        print(f"WARNING: {warn}", file=sys.stderr)

    try:
        idea = load_idea(args)
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    evaluation_id = new_evaluation_id()
    event_log = None
    if not args.no_log:
        event_log = EventLog(project_root / settings.run_log_dir, evaluation_id)

    display = None if args.no_stream else StreamDisplay(verbose=args.verbose)
    print(f"Evaluation ID: {evaluation_id}", file=sys.stderr)

    try:
        result = await evaluate(
            idea,
            settings=settings,
            sink=store,
            event_log=event_log,
            evaluation_id=evaluation_id,
            enable_cache=not args.no_cache,
            display=display,
        )
    except FatalRepairExhausted as e:
        print(f"ERROR: {e}", file=sys.stderr)
        for issue in e.verifier_result["issues"]:
            print(f"  - {issue}", file=sys.stderr)
        if event_log is not None:
            _print_run_log(event_log)
        sys.exit(1)
    except CommitteeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        if event_log is not None:
            _print_run_log(event_log)
        sys.exit(1)

    result_json = json.dumps(result, indent=2, ensure_ascii=False, default=str)
    sys.stdout.buffer.write(result_json.encode("utf-8"))
    sys.stdout.buffer.write(b"\n")
    sys.stdout.buffer.flush()

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(result_json, encoding="utf-8")
        print(f"\nEvaluation saved to: {output_path}", file=sys.stderr)
    print(f"Stored as: {store.path_for(evaluation_id)}", file=sys.stderr)
    if event_log is not None:
        _print_run_log(event_log)

    _print_summary(result)


def main() -> None:
    args = parse_args()
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
