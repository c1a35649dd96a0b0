"""Grounding source registry."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from idea_committee.contracts import GroundingSource

_REGISTRY: dict[str, type] = {}


def register_source(name: str, cls: type) -> None:
    _REGISTRY[name] = cls


def get_source(name: str, **kwargs) -> "GroundingSource":
    if name not in _REGISTRY:
        available = ", ".join(_REGISTRY) or "(none)"
        raise KeyError(f"Unknown grounding source {name!r}. Available: {available}")
    return _REGISTRY[name](**kwargs)


def registered_sources() -> list[str]:
    return list(_REGISTRY)
