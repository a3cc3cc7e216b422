"""Minimal typed publish/subscribe channel."""

from __future__ import annotations

from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class EventChannel(Generic[T]):
    """
    Delivers events to subscribers synchronously, in subscription order.

    ``publish`` returns only after every subscriber has been called. An
    exception raised by a subscriber propagates to the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: T) -> None:
        # Copy so subscribers may unsubscribe while being notified.
        for callback in list(self._subscribers):
            callback(event)

    def __len__(self) -> int:
        return len(self._subscribers)


__all__ = ["EventChannel", "Unsubscribe"]
