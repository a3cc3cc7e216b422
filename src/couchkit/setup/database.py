"""
Makes one database exist on this cluster the way the topology wants it.

``setup_database`` creates the database when the topology places it here,
keeps its fixed documents and templates in shape, owns this cluster's
``_replicator`` edges for it and (optionally) starts a change feed watcher.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from couchkit.couch.documents import encode_model, strip_metadata
from couchkit.couch.errors import AlreadyExistsError, ConflictError, NotFoundError
from couchkit.couch.protocols import DatabaseScope, JsonDict, ServerScope
from couchkit.monitoring.metrics import REPLICATOR_DOCS_DELETED, REPLICATOR_DOCS_WRITTEN
from couchkit.sync.synced_document import SyncedDocument
from couchkit.sync.watch import ChangeEvent, watch_database
from couchkit.topology.edges import build_edges
from couchkit.topology.models import DatabaseDescriptor, ReplicatorSetupDocument, TopologyDecision
from couchkit.topology.resolver import resolve
from couchkit.utils.logging import get_logger, log_context
from couchkit.utils.match_json import match_json
from couchkit.utils.mutex import serialized

logger = get_logger(__name__)

REPLICATOR_DB = "_replicator"

Cleanup = Callable[[], None]
ErrorHandler = Callable[[BaseException], None]


@dataclass
class DatabaseSetup:
    """Describes a single database that should exist."""

    name: str
    tags: Tuple[str, ...] = ()
    # Creation parameters, e.g. {"partitioned": True}:
    options: Optional[JsonDict] = None

    # Documents that should exactly match:
    documents: Dict[str, JsonDict] = field(default_factory=dict)
    # Documents that we should create, unless they already exist:
    templates: Dict[str, JsonDict] = field(default_factory=dict)

    # Leave the database alone if it does not exist yet:
    ignore_missing: bool = False
    # Set to False to keep this database off the replication graph:
    replicate: bool = True

    on_change: Optional[Callable[[ChangeEvent], None]] = None
    synced_documents: Sequence[SyncedDocument[Any]] = ()

    @property
    def descriptor(self) -> DatabaseDescriptor:
        return DatabaseDescriptor(name=self.name, tags=tuple(self.tags), options=self.options)


@dataclass
class SetupOptions:
    """Cluster-wide context shared by every ``setup_database`` call."""

    current_cluster: Optional[str] = None
    current_user: str = "admin"
    replicator_setup: Optional[SyncedDocument[ReplicatorSetupDocument]] = None
    disable_watching: bool = False
    on_error: Optional[ErrorHandler] = None

    def report(self, error: BaseException) -> None:
        if self.on_error is not None:
            self.on_error(error)
        else:
            logger.error("database_maintenance_failed", exc_info=error)


def database_decision(descriptor: DatabaseDescriptor, options: SetupOptions) -> TopologyDecision:
    """What the current topology says about ``descriptor`` on this cluster."""
    if options.replicator_setup is None or options.current_cluster is None:
        return resolve(None, descriptor)
    config = options.replicator_setup.doc.clusters.get(options.current_cluster)
    return resolve(config, descriptor)


def _is_edge_id(db_name: str, doc_id: str) -> bool:
    return doc_id.startswith(f"{db_name}.to.") or doc_id.startswith(f"{db_name}.from.")


def _replicator_body(raw: JsonDict) -> JsonDict:
    # The replicator adds its own underscore-prefixed state fields.
    return {k: v for k, v in raw.items() if not k.startswith("_")}


class ReplicationEdges:
    """Keeps this cluster's ``_replicator`` documents for one database current."""

    def __init__(self, server: ServerScope, descriptor: DatabaseDescriptor, options: SetupOptions) -> None:
        self.server = server
        self.descriptor = descriptor
        self.options = options
        self._pending: Set[asyncio.Task[None]] = set()

    def wanted(self) -> Dict[str, JsonDict]:
        topology = self.options.replicator_setup
        if topology is None or self.options.current_cluster is None:
            return {}
        edges = build_edges(
            topology.doc,
            self.options.current_cluster,
            self.options.current_user,
            self.descriptor,
        )
        return {edge_id: encode_model(edge) for edge_id, edge in edges.items()}

    async def _existing(self, replicator: DatabaseScope) -> Dict[str, JsonDict]:
        prefix = f"{self.descriptor.name}."
        result = await replicator.list(
            {"include_docs": True, "start_key": prefix, "end_key": prefix + "\ufff0"}
        )
        existing: Dict[str, JsonDict] = {}
        for row in result.get("rows", []):
            doc = row.get("doc")
            if isinstance(doc, dict) and _is_edge_id(self.descriptor.name, row["id"]):
                existing[row["id"]] = doc
        return existing

    @serialized
    async def apply(self) -> None:
        """Write edges that differ and delete the ones the topology no longer wants."""
        name = self.descriptor.name
        replicator = self.server.use(REPLICATOR_DB)
        wanted = self.wanted()
        existing = await self._existing(replicator)

        for edge_id, body in wanted.items():
            current = existing.get(edge_id)
            if current is not None and match_json(body, _replicator_body(current)):
                continue
            doc: JsonDict = {"_id": edge_id, **body}
            if current is not None:
                doc["_rev"] = current["_rev"]
            try:
                await replicator.insert(doc)
            except ConflictError:
                # Another writer got there first; the next apply compares again.
                logger.info("replication_edge_conflict", database=name, edge=edge_id)
                continue
            REPLICATOR_DOCS_WRITTEN.labels(database=name).inc()
            logger.info("replication_edge_written", database=name, edge=edge_id)

        for edge_id, current in existing.items():
            if edge_id in wanted:
                continue
            try:
                await replicator.delete(edge_id, current["_rev"])
            except NotFoundError:
                continue
            REPLICATOR_DOCS_DELETED.labels(database=name).inc()
            logger.info("replication_edge_deleted", database=name, edge=edge_id)

    async def _apply_reporting(self) -> None:
        try:
            await self.apply()
        except Exception as exc:
            self.options.report(exc)

    def schedule(self, _topology: Any = None) -> None:
        """Re-apply in the background; used as a topology ``on_change`` subscriber."""
        task = asyncio.create_task(self._apply_reporting())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def wait_idle(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


async def _ensure_database(server: ServerScope, setup: DatabaseSetup) -> bool:
    """Create the database if needed. Returns False when it was left missing."""
    if setup.name in await server.all_dbs():
        return True
    if setup.ignore_missing:
        logger.info("database_missing_skipped", database=setup.name)
        return False
    try:
        await server.create_db(setup.name, setup.options)
    except AlreadyExistsError:
        return True
    logger.info("database_created", database=setup.name)
    return True


async def _get_or_none(db: DatabaseScope, doc_id: str) -> Optional[JsonDict]:
    try:
        return await db.get(doc_id)
    except NotFoundError:
        return None


async def _sync_fixed_documents(db: DatabaseScope, setup: DatabaseSetup) -> None:
    for doc_id, wanted in setup.documents.items():
        current = await _get_or_none(db, doc_id)
        if current is not None and match_json(wanted, strip_metadata(current)):
            continue
        doc: JsonDict = {**wanted, "_id": doc_id}
        if current is not None:
            doc["_rev"] = current["_rev"]
        await db.insert(doc)
        logger.info("document_written", database=setup.name, doc_id=doc_id)

    for doc_id, template in setup.templates.items():
        if await _get_or_none(db, doc_id) is not None:
            continue
        try:
            await db.insert({**template, "_id": doc_id})
        except ConflictError:
            continue
        logger.info("template_written", database=setup.name, doc_id=doc_id)


def _noop() -> None:
    return None


async def setup_database(
    server: ServerScope,
    setup: DatabaseSetup,
    options: Optional[SetupOptions] = None,
) -> Cleanup:
    """
    Ensure ``setup`` exists on this cluster, then keep it maintained.

    Returns a ``cleanup()`` that stops the watcher and the topology
    subscription started here. Errors raised while setting up propagate;
    errors in background maintenance go to ``options.on_error``.
    """
    options = options or SetupOptions()
    descriptor = setup.descriptor
    cleanups: List[Cleanup] = []

    with log_context(database=setup.name):
        decision = database_decision(descriptor, options)
        if not decision.exists:
            logger.debug("database_not_on_cluster")
            return _noop
        if not await _ensure_database(server, setup):
            return _noop

        db = server.use(setup.name)
        await _sync_fixed_documents(db, setup)

        if setup.replicate and options.replicator_setup is not None:
            edges = ReplicationEdges(server, descriptor, options)
            await edges.apply()
            cleanups.append(options.replicator_setup.on_change.subscribe(edges.schedule))

        if not options.disable_watching and (setup.on_change is not None or setup.synced_documents):
            watcher = await watch_database(
                db,
                on_change=setup.on_change,
                on_error=options.report,
                synced_documents=setup.synced_documents,
            )
            cleanups.append(watcher.cancel)

    def cleanup() -> None:
        for stop in cleanups:
            stop()

    return cleanup


__all__ = [
    "Cleanup",
    "DatabaseSetup",
    "ReplicationEdges",
    "SetupOptions",
    "database_decision",
    "setup_database",
]
