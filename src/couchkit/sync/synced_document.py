"""Keeps one configuration document present, clean and mirrored in memory."""

from __future__ import annotations

from typing import Generic, Optional, Type, TypeVar

from pydantic import BaseModel

from couchkit.couch.documents import encode_model, heal_model, strip_metadata
from couchkit.couch.errors import NotFoundError
from couchkit.couch.protocols import DatabaseScope, JsonDict
from couchkit.monitoring.metrics import SYNCED_DOC_WRITES
from couchkit.utils.events import EventChannel
from couchkit.utils.logging import get_logger
from couchkit.utils.match_json import match_json
from couchkit.utils.mutex import serialized

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class SyncedDocument(Generic[M]):
    """
    Babysits a CouchDB document, making sure it exists and is clean.

    ``model`` must validate ``{}`` (every field has a default); that value is
    what ``doc`` holds until the first ``sync()``. Subscribers of
    ``on_change`` receive the new value whenever the content or the revision
    changes.
    """

    def __init__(self, doc_id: str, model: Type[M]) -> None:
        self.id = doc_id
        self.model = model
        self.doc: M = heal_model(model, {})
        self.rev: Optional[str] = None
        self.on_change: EventChannel[M] = EventChannel()

    @serialized
    async def sync(self, db: DatabaseScope) -> None:
        """
        Fetch, heal and (if needed) rewrite the document.

        A missing document is created from the defaults. Any database error
        other than "not found" propagates. Overlapping calls run one after
        the other.
        """
        try:
            raw = await db.get(self.id)
        except NotFoundError:
            raw = {"_id": self.id}

        server_rev = raw.get("_rev")
        body = strip_metadata(raw)
        clean = heal_model(self.model, body)
        canonical = encode_model(clean)

        if server_rev is None or not match_json(canonical, body):
            write: JsonDict = {"_id": self.id, **canonical}
            if server_rev is not None:
                write["_rev"] = server_rev
            result = await db.insert(write)
            SYNCED_DOC_WRITES.labels(doc_id=self.id).inc()
            logger.info(
                "synced_document_written",
                doc_id=self.id,
                database=db.name,
                created=server_rev is None,
                rev=result.get("rev"),
            )
            self._update(clean, result.get("rev"))
        elif self.rev != server_rev:
            self._update(clean, server_rev)

    def _update(self, value: M, rev: Optional[str]) -> None:
        self.doc = value
        self.rev = rev
        self.on_change.publish(value)


__all__ = ["SyncedDocument"]
