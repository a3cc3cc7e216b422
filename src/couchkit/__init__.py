"""couchkit - CouchDB cluster lifecycle management."""

from .couch import CouchDoc, CouchPool, connect_couch
from .rolling import RollingDatabaseSetup, ShardedQueryEngine, ShardIndex
from .setup import DatabaseSetup, SetupOptions, setup_database
from .sync import SyncedDocument, watch_database
from .topology import ReplicatorSetupDocument, build_edges, resolve
from .utils import PeriodicMonth, PeriodicTask, match_json

__all__ = [
    "CouchDoc",
    "CouchPool",
    "connect_couch",
    "DatabaseSetup",
    "SetupOptions",
    "setup_database",
    "SyncedDocument",
    "watch_database",
    "ReplicatorSetupDocument",
    "build_edges",
    "resolve",
    "RollingDatabaseSetup",
    "ShardIndex",
    "ShardedQueryEngine",
    "PeriodicMonth",
    "PeriodicTask",
    "match_json",
]

__version__ = "0.1.0"
