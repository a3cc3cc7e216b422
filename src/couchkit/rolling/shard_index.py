"""
Index of the time-partitioned databases ("shards") behind a rolling collection.

The index lives in a ``<collection>-list`` database with one document per
shard: ``{"_id": name, "archived": bool, "startDate": ISO-8601}``. Each
shard holds the documents dated from its start until the next shard's start.
The index always keeps one spare shard whose start lies in the future, so
the database exists well before writes are routed to it.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from couchkit.couch.documents import CouchDoc
from couchkit.couch.errors import ConflictError
from couchkit.couch.protocols import DatabaseScope, JsonDict, ServerScope
from couchkit.monitoring.metrics import SHARDS_CREATED, SHARDS_QUERYABLE
from couchkit.setup.database import (
    Cleanup,
    DatabaseSetup,
    SetupOptions,
    database_decision,
    setup_database,
)
from couchkit.topology.models import ARCHIVED_TAG
from couchkit.utils.logging import get_logger, log_context
from couchkit.utils.mutex import serialized
from couchkit.utils.periodic import PeriodicTask
from couchkit.utils.periodic_month import PeriodicMonth, pick_periodic_month

logger = get_logger(__name__)

MAINTENANCE_INTERVAL = 24 * 60 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(when: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when


class NoShardForDateError(LookupError):
    """No shard starts on or before the requested date."""

    def __init__(self, collection: str, when: datetime) -> None:
        super().__init__(f"No rolling database in '{collection}' exists for {when.isoformat()}")
        self.collection = collection
        self.when = when


@dataclass(frozen=True)
class ShardDescriptor:
    name: str
    start_date: datetime
    archived: bool = False


class ShardListEntry(BaseModel):
    """Body of a document in the ``<collection>-list`` database."""

    model_config = ConfigDict(populate_by_name=True)

    archived: bool = False
    start_date: datetime = Field(alias="startDate")

    @field_validator("start_date")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


@dataclass
class RollingDatabaseSetup:
    """Describes a rolling collection of databases that should exist."""

    name: str
    # How often to start a new shard:
    period: PeriodicMonth = PeriodicMonth.MONTH
    # How far back to create yearly archive shards when the index is empty:
    archive_start: Optional[datetime] = None

    # Applied to every shard:
    tags: Tuple[str, ...] = ()
    options: Optional[JsonDict] = None
    documents: Dict[str, JsonDict] = field(default_factory=dict)
    templates: Dict[str, JsonDict] = field(default_factory=dict)

    @property
    def list_db_name(self) -> str:
        return f"{self.name}-list"

    def shard_setup(self, shard: ShardDescriptor) -> DatabaseSetup:
        # Archived shards are never created and never replicated.
        tags = (*self.tags, ARCHIVED_TAG) if shard.archived else tuple(self.tags)
        return DatabaseSetup(
            name=shard.name,
            tags=tags,
            options=self.options,
            documents=self.documents,
            templates=self.templates,
            ignore_missing=shard.archived,
            replicate=not shard.archived,
        )


class ShardIndex:
    """
    Maintains a rolling collection's shard list and the shard databases.

    ``shards`` is the queryable snapshot: every indexed shard the topology
    places on this cluster, newest first. It is replaced wholesale at the end
    of each ``refresh()``.
    """

    def __init__(
        self,
        server: ServerScope,
        setup: RollingDatabaseSetup,
        options: Optional[SetupOptions] = None,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.server = server
        self.setup = setup
        self.options = options or SetupOptions()
        self._now = now
        self._shards: List[ShardDescriptor] = []
        self._indexed: List[ShardDescriptor] = []
        self._shard_cleanups: List[Cleanup] = []
        self._cleanups: List[Cleanup] = []
        self._pending: Set[asyncio.Task[None]] = set()
        self._task: Optional[PeriodicTask] = None

    @property
    def name(self) -> str:
        return self.setup.name

    @property
    def shards(self) -> List[ShardDescriptor]:
        return list(self._shards)

    @property
    def indexed_shards(self) -> List[ShardDescriptor]:
        """Every shard in the list database, including ones not on this cluster."""
        return list(self._indexed)

    def pick_target(self, when: datetime) -> str:
        """Name of the newest shard starting on or before ``when``."""
        when = as_utc(when)
        for shard in self._shards:
            if shard.start_date <= when:
                return shard.name
        raise NoShardForDateError(self.name, when)

    async def _read_list(self, list_db: DatabaseScope) -> List[ShardDescriptor]:
        response = await list_db.list({"include_docs": True})
        shards: List[ShardDescriptor] = []
        for row in response.get("rows", []):
            if str(row.get("id", "")).startswith("_design/"):
                continue
            try:
                entry = CouchDoc.decode(row.get("doc"), ShardListEntry)
            except ValueError as exc:
                logger.warning("shard_entry_skipped", shard=row.get("id"), error=str(exc))
                continue
            shards.append(ShardDescriptor(entry.id, entry.doc.start_date, entry.doc.archived))
        shards.sort(key=lambda shard: shard.start_date, reverse=True)
        return shards

    async def _add_shard(
        self,
        list_db: DatabaseScope,
        shards: List[ShardDescriptor],
        name: str,
        start_date: datetime,
    ) -> List[ShardDescriptor]:
        if any(shard.start_date == start_date for shard in shards):
            return shards
        entry = CouchDoc(id=name, doc=ShardListEntry(archived=False, start_date=start_date))
        try:
            await list_db.insert(entry.encode())
        except ConflictError:
            logger.info("shard_already_indexed", shard=name)
        else:
            SHARDS_CREATED.labels(collection=self.name).inc()
            logger.info("shard_created", shard=name, start_date=start_date.isoformat())
        shards = [*shards, ShardDescriptor(name, start_date)]
        shards.sort(key=lambda shard: shard.start_date, reverse=True)
        return shards

    async def _seed(self, list_db: DatabaseScope, now: datetime) -> List[ShardDescriptor]:
        shards: List[ShardDescriptor] = []
        if self.setup.archive_start is None:
            date, suffix = pick_periodic_month(now, self.setup.period, round_up=False)
            return await self._add_shard(list_db, shards, f"{self.name}-{suffix}", date)

        date, suffix = pick_periodic_month(self.setup.archive_start, PeriodicMonth.YEAR, round_up=False)
        while date < now:
            shards = await self._add_shard(list_db, shards, f"{self.name}-{suffix}", date)
            date, suffix = pick_periodic_month(date, PeriodicMonth.YEAR, round_up=True)
        return shards

    @serialized
    async def refresh(self) -> None:
        """
        Re-read the index, add any missing shards, set every shard up and
        publish a new queryable snapshot.
        """
        now = self._now()
        with log_context(collection=self.name):
            list_db = self.server.use(self.setup.list_db_name)
            shards = await self._read_list(list_db)

            if not shards:
                shards = await self._seed(list_db, now)

            if shards and shards[0].start_date <= now:
                date, suffix = pick_periodic_month(now, self.setup.period, round_up=True)
                shards = await self._add_shard(list_db, shards, f"{self.name}-{suffix}", date)

            # The previous shard maintenance stays in place until every shard is set up again.
            cleanups: List[Cleanup] = []
            try:
                for shard in shards:
                    cleanups.append(
                        await setup_database(self.server, self.setup.shard_setup(shard), self.options)
                    )
            except BaseException:
                for cleanup in cleanups:
                    cleanup()
                raise
            self._stop_shards()
            self._shard_cleanups = cleanups

            self._indexed = shards
            self._shards = [
                shard
                for shard in shards
                if database_decision(self.setup.shard_setup(shard).descriptor, self.options).exists
            ]
            SHARDS_QUERYABLE.labels(collection=self.name).set(len(self._shards))
            logger.debug("shards_refreshed", indexed=len(shards), queryable=len(self._shards))

    async def _refresh_reporting(self) -> None:
        try:
            await self.refresh()
        except Exception as exc:
            self.options.report(exc)

    def schedule_refresh(self, _event: object = None) -> None:
        """Refresh in the background; errors go to ``on_error``."""
        task = asyncio.create_task(self._refresh_reporting())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_idle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def start(self) -> None:
        """
        Set up the list database (refreshing whenever it changes), do the
        first refresh, follow topology changes and check daily for new
        shards.
        """
        list_setup = DatabaseSetup(name=self.setup.list_db_name, on_change=self.schedule_refresh)
        self._cleanups.append(await setup_database(self.server, list_setup, self.options))

        await self.refresh()

        if self.options.replicator_setup is not None:
            self._cleanups.append(
                self.options.replicator_setup.on_change.subscribe(self.schedule_refresh)
            )

        self._task = PeriodicTask(
            self.refresh,
            MAINTENANCE_INTERVAL,
            on_error=self.options.report,
            name=f"rolling:{self.name}",
        )
        if not self.options.disable_watching:
            self._task.start(wait=True)

    def _stop_shards(self) -> None:
        for cleanup in self._shard_cleanups:
            cleanup()
        self._shard_cleanups = []

    def stop(self) -> None:
        self._stop_shards()
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups = []
        if self._task is not None:
            self._task.stop()


__all__ = [
    "NoShardForDateError",
    "RollingDatabaseSetup",
    "ShardDescriptor",
    "ShardIndex",
    "ShardListEntry",
    "as_utc",
    "utc_now",
]
