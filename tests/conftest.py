import asyncio
import copy
import itertools
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import pytest

from couchkit.couch.errors import AlreadyExistsError, ConflictError, NotFoundError

JsonDict = Dict[str, Any]
ViewFn = Callable[[JsonDict], Optional[Any]]

_END_OF_FEED = object()


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line(
        "markers",
        "integration: tests that exercise several components against the fake CouchDB",
    )
    config.addinivalue_line("markers", "slow: slow-running tests")


@dataclass
class FakeStore:
    """Contents of one fake database."""

    options: JsonDict = field(default_factory=dict)
    docs: Dict[str, JsonDict] = field(default_factory=dict)
    views: Dict[Tuple[str, str], ViewFn] = field(default_factory=dict)
    feeds: List["asyncio.Queue[Any]"] = field(default_factory=list)
    seq: int = 0


class FakeDatabase:
    """In-memory ``DatabaseScope``; every call goes through the server's stores."""

    def __init__(self, server: "FakeCouchServer", name: str) -> None:
        self.server = server
        self.name = name

    def _store(self) -> FakeStore:
        failure = self.server.failures.get(self.name)
        if failure is not None:
            raise failure
        store = self.server.stores.get(self.name)
        if store is None:
            raise NotFoundError(f"Database {self.name} does not exist.", status=404, error="not_found")
        return store

    async def get(self, doc_id: str) -> JsonDict:
        self.server.calls.append(("get", self.name, doc_id))
        if self.server.get_delay:
            await asyncio.sleep(self.server.get_delay)
        doc = self._store().docs.get(doc_id)
        if doc is None:
            raise NotFoundError(f"missing {doc_id}", status=404, error="not_found")
        return copy.deepcopy(doc)

    async def insert(self, doc: JsonDict) -> JsonDict:
        self.server.calls.append(("insert", self.name, doc.get("_id")))
        if self.server.insert_delay:
            await asyncio.sleep(self.server.insert_delay)
        store = self._store()
        doc_id = doc.get("_id") or f"auto-{next(self.server.ids)}"
        current = store.docs.get(doc_id)
        current_rev = current["_rev"] if current is not None else None
        if doc.get("_rev") != current_rev:
            raise ConflictError(f"conflict on {doc_id}", status=409, error="conflict")

        generation = int(current_rev.split("-", 1)[0]) + 1 if current_rev else 1
        rev = f"{generation}-{next(self.server.ids):08x}"
        stored = {**copy.deepcopy(doc), "_id": doc_id, "_rev": rev}
        store.docs[doc_id] = stored
        self._publish(store, stored)
        return {"ok": True, "id": doc_id, "rev": rev}

    async def delete(self, doc_id: str, rev: str) -> JsonDict:
        self.server.calls.append(("delete", self.name, doc_id))
        store = self._store()
        current = store.docs.get(doc_id)
        if current is None:
            raise NotFoundError(f"missing {doc_id}", status=404, error="not_found")
        if current["_rev"] != rev:
            raise ConflictError(f"conflict on {doc_id}", status=409, error="conflict")
        del store.docs[doc_id]
        self._publish(store, {"_id": doc_id, "_rev": rev, "_deleted": True})
        return {"ok": True, "id": doc_id, "rev": rev}

    async def bulk(self, docs: List[JsonDict]) -> List[JsonDict]:
        self.server.calls.append(("bulk", self.name, len(docs)))
        results: List[JsonDict] = []
        for doc in docs:
            try:
                results.append(await self.insert(doc))
            except ConflictError:
                results.append({"id": doc.get("_id"), "error": "conflict"})
        return results

    def _visible(self, partition: Optional[str]) -> List[JsonDict]:
        docs = [
            doc
            for doc_id, doc in sorted(self._store().docs.items())
            if not doc_id.startswith("_design/")
        ]
        if partition is not None:
            docs = [doc for doc in docs if doc["_id"].startswith(f"{partition}:")]
        return docs

    async def find(self, query: JsonDict, partition: Optional[str] = None) -> JsonDict:
        self.server.calls.append(("find", self.name, query.get("limit")))
        selector = query.get("selector") or {}
        docs = [
            doc
            for doc in self._visible(partition)
            if all(doc.get(key) == value for key, value in selector.items())
        ]
        for item in reversed(query.get("sort") or []):
            name, direction = next(iter(item.items())) if isinstance(item, dict) else (item, "asc")
            docs.sort(key=lambda doc: doc.get(name), reverse=direction == "desc")

        start = int(query.get("bookmark") or 0)
        limit = query.get("limit", 25)
        page = docs[start : start + limit]
        return {"docs": copy.deepcopy(page), "bookmark": str(start + len(page))}

    def _page(self, rows: List[JsonDict], params: JsonDict) -> JsonDict:
        if "start_key" in params:
            start_id = params.get("start_key_doc_id")
            rows = [
                row
                for row in rows
                if row["key"] > params["start_key"]
                or (row["key"] == params["start_key"] and (start_id is None or row["id"] >= start_id))
            ]
        if "end_key" in params:
            rows = [row for row in rows if row["key"] <= params["end_key"]]
        rows = rows[params.get("skip", 0) :]
        if "limit" in params:
            rows = rows[: params["limit"]]
        if not params.get("include_docs"):
            rows = [{k: v for k, v in row.items() if k != "doc"} for row in rows]
        return {"total_rows": len(rows), "rows": copy.deepcopy(rows)}

    async def list(self, params: JsonDict, partition: Optional[str] = None) -> JsonDict:
        self.server.calls.append(("list", self.name, params.get("limit")))
        docs = sorted(self._store().docs.values(), key=lambda doc: doc["_id"])
        if partition is not None:
            docs = [doc for doc in docs if doc["_id"].startswith(f"{partition}:")]
        rows = [
            {"id": doc["_id"], "key": doc["_id"], "value": {"rev": doc["_rev"]}, "doc": doc}
            for doc in docs
        ]
        return self._page(rows, params)

    async def view(
        self, design: str, view: str, params: JsonDict, partition: Optional[str] = None
    ) -> JsonDict:
        self.server.calls.append(("view", self.name, params.get("limit")))
        store = self._store()
        fn = store.views.get((design, view))
        if fn is None:
            raise NotFoundError(f"missing view {design}/{view}", status=404, error="not_found")
        rows = []
        for doc in self._visible(partition):
            key = fn(doc)
            if key is not None:
                rows.append({"id": doc["_id"], "key": key, "value": None, "doc": doc})
        rows.sort(key=lambda row: (row["key"], row["id"]))
        return self._page(rows, params)

    def _publish(self, store: FakeStore, doc: JsonDict) -> None:
        store.seq += 1
        change = {
            "seq": f"{store.seq}-fake",
            "id": doc["_id"],
            "changes": [{"rev": doc["_rev"]}],
            "doc": copy.deepcopy(doc),
        }
        if doc.get("_deleted"):
            change["deleted"] = True
        for queue in store.feeds:
            queue.put_nowait(change)

    async def changes(self, since: str = "now") -> AsyncIterator[JsonDict]:
        self.server.calls.append(("changes", self.name, since))
        store = self._store()
        queue: "asyncio.Queue[Any]" = asyncio.Queue()
        store.feeds.append(queue)
        try:
            while True:
                item = await queue.get()
                if item is _END_OF_FEED:
                    return
                if isinstance(item, BaseException):
                    raise item
                yield item
        finally:
            store.feeds.remove(queue)


class FakeCouchServer:
    """In-memory ``ServerScope`` with a pre-created ``_replicator`` database."""

    def __init__(self) -> None:
        self.stores: Dict[str, FakeStore] = {"_replicator": FakeStore()}
        self.failures: Dict[str, BaseException] = {}
        self.calls: List[Tuple[str, str, Any]] = []
        self.ids = itertools.count(1)
        self.get_delay = 0.0
        self.insert_delay = 0.0

    async def all_dbs(self) -> List[str]:
        return sorted(self.stores)

    async def create_db(self, name: str, options: Optional[JsonDict] = None) -> None:
        self.calls.append(("create_db", name, options))
        if name in self.stores:
            raise AlreadyExistsError(f"{name} exists", status=412, error="file_exists")
        self.stores[name] = FakeStore(options=dict(options or {}))

    def use(self, name: str) -> FakeDatabase:
        return FakeDatabase(self, name)

    # Test helpers

    def drop_db(self, name: str) -> None:
        self.stores.pop(name, None)

    def docs(self, name: str) -> Dict[str, JsonDict]:
        return self.stores[name].docs

    def add_view(self, name: str, design: str, view: str, fn: ViewFn) -> None:
        self.stores[name].views[(design, view)] = fn

    def feed_count(self, name: str) -> int:
        store = self.stores.get(name)
        return len(store.feeds) if store is not None else 0

    def break_feeds(self, name: str, error: BaseException) -> None:
        for queue in list(self.stores[name].feeds):
            queue.put_nowait(error)

    def end_feeds(self, name: str) -> None:
        for queue in list(self.stores[name].feeds):
            queue.put_nowait(_END_OF_FEED)

    def writes(self, name: Optional[str] = None) -> List[Tuple[str, str, Any]]:
        return [
            call
            for call in self.calls
            if call[0] in ("insert", "delete") and (name is None or call[1] == name)
        ]


@pytest.fixture
def couch() -> FakeCouchServer:
    return FakeCouchServer()


async def settle(rounds: int = 10) -> None:
    """Let background tasks scheduled on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
