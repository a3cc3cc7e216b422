"""Trailing-``*`` prefix matching for cluster filter lists."""

from __future__ import annotations

from typing import Iterable, Optional


def matches(patterns: Optional[Iterable[str]], name: str) -> bool:
    """
    True if ``name`` matches any pattern.

    ``"logs-*"`` matches every name starting with ``"logs-"``; a pattern
    without a trailing ``*`` must equal the name exactly. ``*`` anywhere else
    is an ordinary character.
    """
    if not patterns:
        return False
    for pattern in patterns:
        if pattern.endswith("*"):
            if name.startswith(pattern[:-1]):
                return True
        elif pattern == name:
            return True
    return False


def matches_any(patterns: Optional[Iterable[str]], names: Iterable[str]) -> bool:
    if not patterns:
        return False
    patterns = list(patterns)
    return any(matches(patterns, name) for name in names)


__all__ = ["matches", "matches_any"]
