"""
Interfaces couchkit needs from a CouchDB binding.

Everything above the ``couch`` package talks to these protocols only, so the
httpx binding in ``couchkit.couch.client`` and the in-memory fake used by the
tests are interchangeable.

Errors are reported with the ``couchkit.couch.errors`` hierarchy.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

JsonDict = Dict[str, Any]


class DatabaseScope(Protocol):
    """Operations on a single database."""

    name: str

    async def get(self, doc_id: str) -> JsonDict:
        """Return the raw document (with ``_id``/``_rev``) or raise NotFoundError."""

    async def insert(self, doc: JsonDict) -> JsonDict:
        """Create or update a document. Returns ``{"ok", "id", "rev"}``."""

    async def delete(self, doc_id: str, rev: str) -> JsonDict:
        """Delete a document revision."""

    async def bulk(self, docs: List[JsonDict]) -> List[JsonDict]:
        """``_bulk_docs``: one result row per input document."""

    async def find(self, query: JsonDict, partition: Optional[str] = None) -> JsonDict:
        """Mango query. Returns ``{"docs": [...], "bookmark": ...}``."""

    async def list(self, params: JsonDict, partition: Optional[str] = None) -> JsonDict:
        """``_all_docs``. Returns ``{"rows": [{"id", "key", "doc"?}, ...]}``."""

    async def view(
        self, design: str, view: str, params: JsonDict, partition: Optional[str] = None
    ) -> JsonDict:
        """Query a view. Same row shape as ``list``."""

    def changes(self, since: str = "now") -> AsyncIterator[JsonDict]:
        """Continuous change feed yielding ``{"seq", "id", "changes", "doc"?}``."""


class ServerScope(Protocol):
    """Operations on a whole CouchDB cluster."""

    async def all_dbs(self) -> List[str]:
        ...

    async def create_db(self, name: str, options: Optional[JsonDict] = None) -> None:
        """Create a database; raise AlreadyExistsError if it is there."""

    def use(self, name: str) -> DatabaseScope:
        ...


__all__ = ["JsonDict", "DatabaseScope", "ServerScope"]
