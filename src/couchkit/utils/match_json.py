"""Structural comparison of decoded JSON values."""

from __future__ import annotations

from typing import Any


def match_json(a: Any, b: Any) -> bool:
    """
    Return True if two JSON-like values have the same structure and contents.

    Object key order is ignored. Inside objects a ``None`` value counts as a
    missing key, so ``{"a": 1}`` matches ``{"a": 1, "b": None}``. Lists are
    compared element by element and never match objects.
    """
    if isinstance(a, dict) or isinstance(b, dict):
        if not (isinstance(a, dict) and isinstance(b, dict)):
            return False
        keys = {k for k, v in a.items() if v is not None}
        if keys != {k for k, v in b.items() if v is not None}:
            return False
        return all(match_json(a[k], b[k]) for k in keys)

    if isinstance(a, (list, tuple)) or isinstance(b, (list, tuple)):
        if not (isinstance(a, (list, tuple)) and isinstance(b, (list, tuple))):
            return False
        if len(a) != len(b):
            return False
        return all(match_json(x, y) for x, y in zip(a, b))

    # bool is an int subclass, keep True from matching 1
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


__all__ = ["match_json"]
