from typing import List

import pytest
from pydantic import BaseModel

from conftest import settle
from couchkit.couch.errors import CouchTransportError
from couchkit.sync import ChangeEvent, SyncedDocument, watch_database

pytestmark = [pytest.mark.asyncio, pytest.mark.unit]


class Flags(BaseModel):
    enabled: bool = False


async def test_initial_sync_then_changes(couch):
    await couch.create_db("settings")
    db = couch.use("settings")
    flags = SyncedDocument("flags", Flags)
    events: List[ChangeEvent] = []

    watcher = await watch_database(db, on_change=events.append, synced_documents=[flags])
    try:
        assert "flags" in couch.docs("settings")
        await settle()
        assert couch.feed_count("settings") == 1

        current = await db.get("flags")
        await db.insert({**current, "enabled": True})
        await settle()
        await watcher.wait_idle()

        assert flags.doc.enabled is True
        assert [event.id for event in events] == ["flags"]
        assert events[0].doc["enabled"] is True
    finally:
        watcher.cancel()


async def test_callback_errors_are_reported(couch):
    await couch.create_db("things")
    db = couch.use("things")
    errors: List[BaseException] = []

    def explode(_event: ChangeEvent) -> None:
        raise RuntimeError("callback failed")

    watcher = await watch_database(db, on_change=explode, on_error=errors.append)
    try:
        await settle()
        await db.insert({"_id": "a"})
        await db.insert({"_id": "b"})
        await settle()

        assert [str(e) for e in errors] == ["callback failed", "callback failed"]
        assert watcher.active
    finally:
        watcher.cancel()


async def test_broken_feed_reconnects_from_last_seq(couch):
    await couch.create_db("things")
    db = couch.use("things")
    errors: List[BaseException] = []
    events: List[ChangeEvent] = []

    watcher = await watch_database(db, on_change=events.append, on_error=errors.append, retry_delay=0)
    try:
        await settle()
        await db.insert({"_id": "a"})
        await settle()
        couch.break_feeds("things", CouchTransportError("connection reset"))
        await settle()

        assert isinstance(errors[0], CouchTransportError)
        assert couch.feed_count("things") == 1
        since = [call[2] for call in couch.calls if call[0] == "changes"]
        assert since == ["now", events[0].seq]
    finally:
        watcher.cancel()


async def test_failing_error_handler_keeps_feed_alive(couch):
    await couch.create_db("things")
    db = couch.use("things")
    events: List[ChangeEvent] = []
    reported: List[BaseException] = []

    def explode(error: BaseException) -> None:
        reported.append(error)
        raise RuntimeError("handler failed")

    watcher = await watch_database(db, on_change=events.append, on_error=explode, retry_delay=0)
    try:
        await settle()
        couch.break_feeds("things", CouchTransportError("connection reset"))
        await settle()

        assert isinstance(reported[0], CouchTransportError)
        assert watcher.active
        assert couch.feed_count("things") == 1

        await db.insert({"_id": "after"})
        await settle()

        assert [event.id for event in events] == ["after"]
    finally:
        watcher.cancel()


async def test_cancel_stops_subscription(couch):
    await couch.create_db("things")
    db = couch.use("things")
    events: List[ChangeEvent] = []

    watcher = await watch_database(db, on_change=events.append)
    await settle()
    watcher.cancel()
    await settle()

    await db.insert({"_id": "late"})
    await settle()

    assert events == []
    assert couch.feed_count("things") == 0
    assert not watcher.active


async def test_change_event_from_raw():
    event = ChangeEvent.from_raw(
        {"seq": 12, "id": "x", "changes": [{"rev": "2-a"}], "deleted": True}
    )
    assert event == ChangeEvent(id="x", rev="2-a", seq="12", deleted=True, doc=None)
