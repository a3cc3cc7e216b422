"""Reads and writes across the shards of a rolling collection."""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Generic,
    List,
    Optional,
    Sequence,
    Type,
    TypeVar,
)

from pydantic import BaseModel

from couchkit.couch.documents import CouchDoc
from couchkit.couch.errors import CouchError
from couchkit.couch.protocols import DatabaseScope, JsonDict, ServerScope
from couchkit.couch.stream import view_to_stream
from couchkit.monitoring.metrics import FUTURE_SHARD_FAILURES, SHARDS_VISITED
from couchkit.rolling.shard_index import ShardDescriptor, ShardIndex, as_utc, utc_now
from couchkit.utils.logging import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

ShardCallback = Callable[[DatabaseScope, int], Awaitable[List[CouchDoc[M]]]]
ShardPageFetcher = Callable[[DatabaseScope, JsonDict], Awaitable[JsonDict]]


class ShardedQueryEngine(Generic[M]):
    """
    Routes writes to the shard covering a document's date and fans reads
    out over shards, newest first.

    Reads tolerate failures from shards that start in the future: such a
    shard may not have been created yet, so it simply contributes no rows.
    """

    def __init__(
        self,
        server: ServerScope,
        index: ShardIndex,
        model: Type[M],
        get_date: Callable[[CouchDoc[M]], datetime],
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.server = server
        self.index = index
        self.model = model
        self.get_date = get_date
        self._now = now

    @property
    def collection(self) -> str:
        return self.index.name

    def decode(self, raw: Any) -> CouchDoc[M]:
        return CouchDoc.decode(raw, self.model)

    # Writes

    async def insert(self, doc: CouchDoc[M]) -> JsonDict:
        target = self.index.pick_target(self.get_date(doc))
        return await self.server.use(target).insert(doc.encode())

    async def bulk(self, docs: Sequence[CouchDoc[M]]) -> List[JsonDict]:
        """One ``_bulk_docs`` request per target shard; results in group order."""
        groups: "OrderedDict[str, List[JsonDict]]" = OrderedDict()
        for doc in docs:
            target = self.index.pick_target(self.get_date(doc))
            groups.setdefault(target, []).append(doc.encode())

        out: List[JsonDict] = []
        for target, group in groups.items():
            out.extend(await self.server.use(target).bulk(group))
        return out

    # Bounded reads

    def _is_future(self, shard: ShardDescriptor) -> bool:
        return shard.start_date >= self._now()

    def _tolerate(self, shard: ShardDescriptor, exc: CouchError) -> None:
        """Swallow ``exc`` for a future shard, re-raise it otherwise."""
        if not self._is_future(shard):
            raise exc
        FUTURE_SHARD_FAILURES.labels(collection=self.collection).inc()
        logger.debug(
            "future_shard_unavailable",
            collection=self.collection,
            shard=shard.name,
            error=str(exc),
        )

    def _shards(self, use_archived: bool) -> List[ShardDescriptor]:
        return [shard for shard in self.index.shards if use_archived or not shard.archived]

    async def bounded_query(
        self,
        callback: ShardCallback[M],
        *,
        limit: Optional[int] = None,
        after_date: Optional[datetime] = None,
        use_archived: bool = False,
    ) -> List[CouchDoc[M]]:
        """
        Call ``callback(db, count)`` on each shard, newest first, and
        concatenate the results. ``count`` is the number of documents
        already collected.

        Stops once ``limit`` documents are collected, or after the first
        shard starting on or before ``after_date``.
        """
        if after_date is not None:
            after_date = as_utc(after_date)
        out: List[CouchDoc[M]] = []
        visited = 0
        try:
            for shard in self._shards(use_archived):
                visited += 1
                try:
                    out.extend(await callback(self.server.use(shard.name), len(out)))
                except CouchError as exc:
                    self._tolerate(shard, exc)

                if limit is not None and len(out) >= limit:
                    break
                if after_date is not None and shard.start_date <= after_date:
                    break
        finally:
            SHARDS_VISITED.labels(collection=self.collection).observe(visited)
        return out

    async def find(
        self,
        selector: JsonDict,
        *,
        limit: int = 20,
        sort: Optional[List[Any]] = None,
        partition: Optional[str] = None,
        after_date: Optional[datetime] = None,
        use_archived: bool = False,
    ) -> List[CouchDoc[M]]:
        async def query_shard(db: DatabaseScope, count: int) -> List[CouchDoc[M]]:
            query: JsonDict = {"selector": selector, "limit": limit - count}
            if sort is not None:
                query["sort"] = sort
            response = await db.find(query, partition)
            return [self.decode(doc) for doc in response.get("docs", [])]

        return await self.bounded_query(
            query_shard, limit=limit, after_date=after_date, use_archived=use_archived
        )

    def _row_params(self, params: Optional[JsonDict], limit: Optional[int], count: int) -> JsonDict:
        out: JsonDict = {**(params or {}), "include_docs": True}
        if limit is not None:
            out["limit"] = limit - count
        return out

    async def list(
        self,
        params: Optional[JsonDict] = None,
        *,
        limit: Optional[int] = None,
        partition: Optional[str] = None,
        after_date: Optional[datetime] = None,
        use_archived: bool = False,
    ) -> List[CouchDoc[M]]:
        async def list_shard(db: DatabaseScope, count: int) -> List[CouchDoc[M]]:
            response = await db.list(self._row_params(params, limit, count), partition)
            return [self.decode(row.get("doc")) for row in response.get("rows", [])]

        return await self.bounded_query(
            list_shard, limit=limit, after_date=after_date, use_archived=use_archived
        )

    async def view(
        self,
        design: str,
        view: str,
        params: Optional[JsonDict] = None,
        *,
        limit: Optional[int] = None,
        partition: Optional[str] = None,
        after_date: Optional[datetime] = None,
        use_archived: bool = False,
    ) -> List[CouchDoc[M]]:
        async def view_shard(db: DatabaseScope, count: int) -> List[CouchDoc[M]]:
            response = await db.view(design, view, self._row_params(params, limit, count), partition)
            return [self.decode(row.get("doc")) for row in response.get("rows", [])]

        return await self.bounded_query(
            view_shard, limit=limit, after_date=after_date, use_archived=use_archived
        )

    # Streaming reads

    async def stream(
        self,
        fetch_page: ShardPageFetcher,
        *,
        params: Optional[JsonDict] = None,
        after_date: Optional[datetime] = None,
        chunk_size: int = 2048,
        use_archived: bool = False,
    ) -> AsyncIterator[CouchDoc[M]]:
        """
        Yield every document of every shard, newest shard first, fetching
        ``chunk_size`` rows at a time with ``fetch_page(db, page_params)``.
        """
        if after_date is not None:
            after_date = as_utc(after_date)
        for shard in self._shards(use_archived):
            db = self.server.use(shard.name)

            async def fetch(page: JsonDict, db: DatabaseScope = db) -> JsonDict:
                return await fetch_page(db, page)

            try:
                async for raw in view_to_stream(fetch, limit=chunk_size, params=params):
                    yield self.decode(raw)
            except CouchError as exc:
                self._tolerate(shard, exc)

            if after_date is not None and shard.start_date <= after_date:
                return

    def stream_view(
        self,
        design: str,
        view: str,
        params: Optional[JsonDict] = None,
        *,
        partition: Optional[str] = None,
        after_date: Optional[datetime] = None,
        chunk_size: int = 2048,
        use_archived: bool = False,
    ) -> AsyncIterator[CouchDoc[M]]:
        async def fetch_page(db: DatabaseScope, page: JsonDict) -> JsonDict:
            return await db.view(design, view, page, partition)

        return self.stream(
            fetch_page,
            params=params,
            after_date=after_date,
            chunk_size=chunk_size,
            use_archived=use_archived,
        )

    def stream_list(
        self,
        params: Optional[JsonDict] = None,
        *,
        partition: Optional[str] = None,
        after_date: Optional[datetime] = None,
        chunk_size: int = 2048,
        use_archived: bool = False,
    ) -> AsyncIterator[CouchDoc[M]]:
        async def fetch_page(db: DatabaseScope, page: JsonDict) -> JsonDict:
            return await db.list(page, partition)

        return self.stream(
            fetch_page,
            params=params,
            after_date=after_date,
            chunk_size=chunk_size,
            use_archived=use_archived,
        )


__all__ = ["ShardedQueryEngine", "ShardCallback", "ShardPageFetcher"]
