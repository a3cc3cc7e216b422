"""
Long-running maintenance of one cluster's databases.

The service loads the topology document from the settings database, keeps it
synced, and sets up every configured database and rolling collection on the
current cluster.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from couchkit.config.config import ServiceConfig
from couchkit.couch.pool import CouchPool, connect_couch
from couchkit.couch.protocols import ServerScope
from couchkit.rolling.shard_index import RollingDatabaseSetup, ShardIndex
from couchkit.setup.database import Cleanup, DatabaseSetup, SetupOptions, setup_database
from couchkit.sync.synced_document import SyncedDocument
from couchkit.topology.models import ReplicatorSetupDocument
from couchkit.utils.logging import get_logger

logger = get_logger(__name__)


class MaintenanceService:
    def __init__(self, config: ServiceConfig, server: Optional[ServerScope] = None) -> None:
        self.config = config
        self.pool: Optional[CouchPool] = None
        if server is None:
            self.pool = connect_couch(
                config.cluster_name,
                config.load_credentials(),
                timeout=config.request_timeout,
            )
            server = self.pool.default
        self.server: ServerScope = server

        self.topology: SyncedDocument[ReplicatorSetupDocument] = SyncedDocument(
            config.replicator_setup_id, ReplicatorSetupDocument
        )
        self.options = SetupOptions(
            current_cluster=config.cluster_name,
            current_user=config.current_user,
            replicator_setup=self.topology,
            on_error=self._report,
        )
        self.collections: Dict[str, ShardIndex] = {
            collection.name: ShardIndex(
                self.server,
                RollingDatabaseSetup(
                    name=collection.name,
                    period=collection.period,
                    archive_start=collection.archive_start,
                    tags=tuple(collection.tags),
                    options=collection.options,
                ),
                self.options,
            )
            for collection in config.collections
        }
        self.errors = 0
        self.started_at: Optional[float] = None
        self._cleanups: List[Cleanup] = []

    @property
    def started(self) -> bool:
        return self.started_at is not None

    def _report(self, error: BaseException) -> None:
        self.errors += 1
        logger.error("maintenance_failed", error=str(error), exc_info=error)

    async def start(self) -> None:
        if self.started:
            return
        settings = self.config.settings_db
        logger.info("maintenance_starting", cluster=self.config.cluster_name, settings_db=settings)

        # The topology has to be loaded before anything can be placed.
        await setup_database(self.server, DatabaseSetup(name=settings, replicate=False))
        await self.topology.sync(self.server.use(settings))
        self._cleanups.append(
            await setup_database(
                self.server,
                DatabaseSetup(name=settings, synced_documents=[self.topology]),
                self.options,
            )
        )

        for database in self.config.databases:
            self._cleanups.append(
                await setup_database(
                    self.server,
                    DatabaseSetup(
                        name=database.name,
                        tags=tuple(database.tags),
                        options=database.options,
                    ),
                    self.options,
                )
            )

        for index in self.collections.values():
            await index.start()

        self.started_at = time.time()
        logger.info(
            "maintenance_started",
            databases=len(self.config.databases),
            collections=len(self.collections),
        )

    async def stop(self) -> None:
        for index in self.collections.values():
            index.stop()
        for cleanup in self._cleanups:
            cleanup()
        self._cleanups = []
        if self.pool is not None:
            await self.pool.aclose()
        self.started_at = None
        logger.info("maintenance_stopped")

    def status(self) -> Dict[str, Any]:
        uptime = int(time.time() - self.started_at) if self.started_at is not None else 0
        return {
            "cluster": self.config.cluster_name,
            "started": self.started,
            "uptime_seconds": uptime,
            "errors": self.errors,
            "topology_rev": self.topology.rev,
            "clusters": sorted(self.topology.doc.clusters),
            "collections": {
                name: [shard.name for shard in index.shards]
                for name, index in self.collections.items()
            },
        }


__all__ = ["MaintenanceService"]
