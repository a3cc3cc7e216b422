"""Paginated iteration over views and whole databases."""

from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from couchkit.couch.protocols import DatabaseScope, JsonDict

PageFetcher = Callable[[JsonDict], Awaitable[JsonDict]]


async def view_to_stream(
    fetch_page: PageFetcher,
    *,
    limit: int = 2048,
    params: Optional[JsonDict] = None,
) -> AsyncIterator[Any]:
    """
    Yield ``row["doc"]`` for every row of a view or ``_all_docs`` listing.

    Pages are ``limit`` rows long. The next page starts at the last row's key
    and document id with ``skip=1``, so rows sharing a key are neither lost
    nor repeated. A short page means the listing is exhausted.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    last_row: Optional[Dict[str, Any]] = None
    while True:
        page_params: JsonDict = {**(params or {}), "include_docs": True, "limit": limit}
        if last_row is not None:
            page_params["skip"] = 1
            page_params["start_key"] = last_row["key"]
            page_params["start_key_doc_id"] = last_row["id"]

        response = await fetch_page(page_params)
        rows = response.get("rows", [])
        for row in rows:
            yield row.get("doc")

        if len(rows) < limit:
            return
        last_row = rows[-1]


async def for_each_document(
    db: DatabaseScope,
    callback: Callable[[JsonDict], Awaitable[None]],
    *,
    selector: Optional[JsonDict] = None,
    batch_size: int = 1000,
) -> int:
    """Await ``callback`` for every document matching ``selector``; return the count."""
    bookmark: Optional[str] = None
    count = 0
    while True:
        query: JsonDict = {"selector": selector or {}, "limit": batch_size}
        if bookmark is not None:
            query["bookmark"] = bookmark
        result = await db.find(query)
        docs = result.get("docs", [])
        if not docs:
            return count
        for doc in docs:
            await callback(doc)
            count += 1
        bookmark = result.get("bookmark")


__all__ = ["view_to_stream", "for_each_document", "PageFetcher"]
