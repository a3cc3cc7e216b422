from typing import List

import pytest

from conftest import FakeCouchServer
from couchkit.couch.protocols import JsonDict
from couchkit.couch.stream import for_each_document, view_to_stream

pytestmark = [pytest.mark.asyncio, pytest.mark.unit]


async def fill(couch: FakeCouchServer, ids: List[str]) -> None:
    await couch.create_db("app")
    for doc_id in ids:
        await couch.use("app").insert({"_id": doc_id, "group": doc_id[0]})


async def test_view_to_stream_pages_without_gaps(couch):
    await fill(couch, ["a1", "a2", "a3", "b1", "b2"])
    couch.add_view("app", "docs", "by_group", lambda doc: doc["group"])
    pages: List[JsonDict] = []

    async def fetch(params: JsonDict) -> JsonDict:
        pages.append(dict(params))
        return await couch.use("app").view("docs", "by_group", params)

    ids = [doc["_id"] async for doc in view_to_stream(fetch, limit=2)]

    # Rows share keys, so paging must resume by document id as well.
    assert ids == ["a1", "a2", "a3", "b1", "b2"]
    assert len(pages) == 3
    assert pages[1]["start_key"] == "a"
    assert pages[1]["start_key_doc_id"] == "a2"
    assert pages[1]["skip"] == 1
    assert all(page["include_docs"] is True and page["limit"] == 2 for page in pages)


async def test_view_to_stream_exact_multiple_fetches_an_empty_page(couch):
    await fill(couch, ["a", "b", "c", "d"])
    calls = 0

    async def fetch(params: JsonDict) -> JsonDict:
        nonlocal calls
        calls += 1
        return await couch.use("app").list(params)

    ids = [doc["_id"] async for doc in view_to_stream(fetch, limit=2, params={"end_key": "z"})]

    assert ids == ["a", "b", "c", "d"]
    assert calls == 3


async def test_view_to_stream_rejects_zero_limit():
    async def fetch(params: JsonDict) -> JsonDict:
        return {"rows": []}

    with pytest.raises(ValueError):
        async for _ in view_to_stream(fetch, limit=0):
            pass


async def test_for_each_document_follows_bookmarks(couch):
    await fill(couch, ["a1", "a2", "b1", "b2", "b3"])
    seen: List[str] = []

    async def collect(doc: JsonDict) -> None:
        seen.append(doc["_id"])

    count = await for_each_document(couch.use("app"), collect, selector={"group": "b"}, batch_size=2)

    assert count == 3
    assert seen == ["b1", "b2", "b3"]
