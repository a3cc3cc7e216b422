"""Change feed subscription that keeps synced documents current."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Set

from couchkit.couch.protocols import DatabaseScope, JsonDict
from couchkit.monitoring.metrics import CHANGE_EVENTS
from couchkit.sync.synced_document import SyncedDocument
from couchkit.utils.logging import get_logger

logger = get_logger(__name__)

ErrorHandler = Callable[[BaseException], None]


@dataclass(frozen=True)
class ChangeEvent:
    """One row of a CouchDB change feed."""

    id: str
    rev: Optional[str] = None
    seq: Optional[str] = None
    deleted: bool = False
    doc: Optional[JsonDict] = None

    @classmethod
    def from_raw(cls, raw: JsonDict) -> "ChangeEvent":
        changes = raw.get("changes") or []
        rev = changes[0].get("rev") if changes and isinstance(changes[0], dict) else None
        seq = raw.get("seq")
        doc = raw.get("doc")
        return cls(
            id=str(raw["id"]),
            rev=rev,
            seq=None if seq is None else str(seq),
            deleted=bool(raw.get("deleted", False)),
            doc=doc if isinstance(doc, dict) else None,
        )


class DatabaseWatcher:
    """
    Follows a database's change feed.

    Every change whose id matches a registered ``SyncedDocument`` schedules a
    ``sync()`` of that document; every change is then handed to
    ``on_change``. Failures from callbacks, syncs or the feed itself go to
    ``on_error`` and never end the subscription. A dropped feed is reopened
    after ``retry_delay`` seconds, resuming from the last sequence seen.
    """

    def __init__(
        self,
        db: DatabaseScope,
        *,
        on_change: Optional[Callable[[ChangeEvent], None]] = None,
        on_error: Optional[ErrorHandler] = None,
        synced_documents: Iterable[SyncedDocument[Any]] = (),
        retry_delay: float = 5.0,
    ) -> None:
        self.db = db
        self.synced_documents: List[SyncedDocument[Any]] = list(synced_documents)
        self.retry_delay = retry_delay
        self._on_change = on_change
        self._on_error = on_error
        self._feed: Optional[asyncio.Task[None]] = None
        self._syncs: Set[asyncio.Task[None]] = set()
        self._cancelled = False
        self._last_seq = "now"

    @property
    def active(self) -> bool:
        return self._feed is not None and not self._feed.done()

    async def start(self) -> None:
        """Sync every registered document once, then subscribe from "now"."""
        for document in self.synced_documents:
            await self._sync(document)
        if not self._cancelled and self._feed is None:
            self._feed = asyncio.create_task(self._follow(), name=f"watch:{self.db.name}")

    def cancel(self) -> None:
        """Stop following the feed. Syncs already started are left to finish."""
        self._cancelled = True
        if self._feed is not None:
            self._feed.cancel()

    async def wait_idle(self) -> None:
        """Wait for every sync scheduled so far to finish."""
        while self._syncs:
            await asyncio.gather(*list(self._syncs), return_exceptions=True)

    def _report(self, error: BaseException) -> None:
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as exc:
                logger.error(
                    "watch_error_handler_failed",
                    database=self.db.name,
                    error=str(error),
                    exc_info=exc,
                )
        else:
            logger.error("watch_failed", database=self.db.name, exc_info=error)

    async def _sync(self, document: SyncedDocument[Any]) -> None:
        try:
            await document.sync(self.db)
        except Exception as exc:
            self._report(exc)

    def dispatch(self, event: ChangeEvent) -> None:
        """Route one change to the matching documents and to ``on_change``."""
        CHANGE_EVENTS.labels(database=self.db.name).inc()
        for document in self.synced_documents:
            if document.id == event.id:
                task = asyncio.create_task(self._sync(document))
                self._syncs.add(task)
                task.add_done_callback(self._syncs.discard)
        if self._on_change is not None:
            try:
                self._on_change(event)
            except Exception as exc:
                self._report(exc)

    async def _follow(self) -> None:
        while not self._cancelled:
            try:
                async for raw in self.db.changes(since=self._last_seq):
                    event = ChangeEvent.from_raw(raw)
                    if event.seq is not None:
                        self._last_seq = event.seq
                    self.dispatch(event)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._report(exc)
            if self._cancelled:
                return
            logger.info("watch_reconnecting", database=self.db.name, since=self._last_seq)
            await asyncio.sleep(self.retry_delay)


async def watch_database(
    db: DatabaseScope,
    *,
    on_change: Optional[Callable[[ChangeEvent], None]] = None,
    on_error: Optional[ErrorHandler] = None,
    synced_documents: Iterable[SyncedDocument[Any]] = (),
    retry_delay: float = 5.0,
) -> DatabaseWatcher:
    """Create and start a ``DatabaseWatcher``; call ``cancel()`` on the result to stop."""
    watcher = DatabaseWatcher(
        db,
        on_change=on_change,
        on_error=on_error,
        synced_documents=synced_documents,
        retry_delay=retry_delay,
    )
    await watcher.start()
    return watcher


__all__ = ["ChangeEvent", "DatabaseWatcher", "watch_database"]
