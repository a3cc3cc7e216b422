"""
Rolling collections: documents spread over time-partitioned databases.
"""

from .query_engine import ShardedQueryEngine
from .shard_index import (
    NoShardForDateError,
    RollingDatabaseSetup,
    ShardDescriptor,
    ShardIndex,
    ShardListEntry,
)

__all__ = [
    "NoShardForDateError",
    "RollingDatabaseSetup",
    "ShardDescriptor",
    "ShardIndex",
    "ShardListEntry",
    "ShardedQueryEngine",
]
