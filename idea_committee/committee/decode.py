"""Decode model text into typed stage payloads as tagged results."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from idea_committee.contracts import BearAnalysis, BullAnalysis

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    payload: T


@dataclass(frozen=True)
class DecodeError:
    reason: str
    raw: str = ""


Decoded = Ok[T] | DecodeError


def _extract_json(text: str) -> str:
    """Extract JSON from model response, handling fenced blocks and prose wrapping."""
    cleaned = text.strip()

    if cleaned.startswith("```"):
        lines = cleaned.split("\n")[1:]
        json_lines = []
        for line in lines:
            if line.strip() == "```":
                break
            json_lines.append(line)
        cleaned = "\n".join(json_lines).strip()

    if cleaned.startswith("["):
        return cleaned

    start = cleaned.find("{")
    if start == -1:
        return ""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(cleaned)):
        ch = cleaned[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return cleaned[start : i + 1]
    return cleaned[start:]


def decode_object(text: str) -> Decoded[dict]:
    cleaned = _extract_json(text)
    if not cleaned:
        return DecodeError("no JSON object in response", raw=text[:500])
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        stripped = cleaned.rstrip()
        if stripped and stripped[-1] not in ("}", "]"):
            return DecodeError(
                f"truncated JSON (response ends at char {len(cleaned)})", raw=text[-200:]
            )
        return DecodeError(f"invalid JSON: {e}", raw=text[:500])
    if not isinstance(data, dict):
        return DecodeError(f"expected JSON object, got {type(data).__name__}", raw=text[:500])
    return Ok(data)


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _score100(value: float) -> float:
    return max(0.0, min(100.0, value))


def _str_list(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [str(v) for v in value]


def _optional_fields(data: dict, out: dict) -> None:
    if isinstance(data.get("structured_analysis"), str):
        out["structured_analysis"] = data["structured_analysis"]
    scores = data.get("dimension_scores")
    if isinstance(scores, dict):
        parsed = {k: _number(v) for k, v in scores.items()}
        out["dimension_scores"] = {k: v for k, v in parsed.items() if v is not None}


def decode_bear(text: str) -> Decoded[BearAnalysis]:
    decoded = decode_object(text)
    if isinstance(decoded, DecodeError):
        return decoded
    data = decoded.payload

    flaws = _str_list(data.get("fatal_flaws"))
    risk = _number(data.get("risk_score"))
    verdict = data.get("verdict")
    if flaws is None:
        return DecodeError("bear: fatal_flaws must be a list")
    if risk is None:
        return DecodeError("bear: risk_score must be a number")
    if not isinstance(verdict, str) or not verdict.strip():
        return DecodeError("bear: verdict missing")

    bear = BearAnalysis(
        fatal_flaws=flaws,
        risk_score=_score100(risk),
        verdict=verdict.strip().upper(),
        roast=str(data.get("roast", "")),
    )
    _optional_fields(data, bear)
    return Ok(bear)


def decode_bull(text: str) -> Decoded[BullAnalysis]:
    decoded = decode_object(text)
    if isinstance(decoded, DecodeError):
        return decoded
    data = decoded.payload

    signals = _str_list(data.get("alpha_signals"))
    upside = _number(data.get("upside_score"))
    verdict = data.get("verdict")
    if signals is None:
        return DecodeError("bull: alpha_signals must be a list")
    if upside is None:
        return DecodeError("bull: upside_score must be a number")
    if not isinstance(verdict, str) or not verdict.strip():
        return DecodeError("bull: verdict missing")

    bull = BullAnalysis(
        alpha_signals=signals,
        upside_score=_score100(upside),
        verdict=verdict.strip().upper(),
        pitch=str(data.get("pitch", "")),
    )
    _optional_fields(data, bull)
    return Ok(bull)


def decode_judge(text: str) -> Decoded[dict]:
    """Judge output is only decoded to a JSON object here; field checks live in the verifier."""
    return decode_object(text)
