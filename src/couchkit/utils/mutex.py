"""Async mutual exclusion helpers."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, Concatenate, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")
S = TypeVar("S")


def instance_lock(owner: Any, name: str) -> asyncio.Lock:
    """Return the lock called ``name`` belonging to ``owner``, creating it on first use."""
    locks: dict[str, asyncio.Lock] = owner.__dict__.setdefault("_couchkit_locks", {})
    lock = locks.get(name)
    if lock is None:
        lock = locks[name] = asyncio.Lock()
    return lock


def serialized(
    method: Callable[Concatenate[S, P], Awaitable[R]],
) -> Callable[Concatenate[S, P], Awaitable[R]]:
    """
    Never run ``method`` concurrently for the same instance.

    Calls arriving while one is in flight wait on an ``asyncio.Lock`` (FIFO)
    and then perform their own run, so every caller sees the state produced
    after its call started.
    """

    @functools.wraps(method)
    async def wrapper(self: S, *args: P.args, **kwargs: P.kwargs) -> R:
        async with instance_lock(self, method.__name__):
            return await method(self, *args, **kwargs)

    return wrapper


__all__ = ["instance_lock", "serialized"]
