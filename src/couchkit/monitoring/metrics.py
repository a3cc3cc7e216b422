"""Prometheus metrics for couchkit components."""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Rolling databases
SHARDS_CREATED = Counter(
    "couchkit_rolling_shards_created_total",
    "Shard entries added to a rolling collection's index",
    ["collection"],
)
SHARDS_QUERYABLE = Gauge(
    "couchkit_rolling_shards_queryable",
    "Shards currently visible to queries on this cluster",
    ["collection"],
)
SHARDS_VISITED = Histogram(
    "couchkit_rolling_shards_visited",
    "Shards touched by one bounded query",
    ["collection"],
    buckets=(1, 2, 3, 5, 8, 13, 21),
)
FUTURE_SHARD_FAILURES = Counter(
    "couchkit_rolling_future_shard_failures_total",
    "Query failures tolerated because the shard starts in the future",
    ["collection"],
)

# Replication
REPLICATOR_DOCS_WRITTEN = Counter(
    "couchkit_replicator_documents_written_total",
    "Replication documents created or updated in _replicator",
    ["database"],
)
REPLICATOR_DOCS_DELETED = Counter(
    "couchkit_replicator_documents_deleted_total",
    "Stale replication documents removed from _replicator",
    ["database"],
)

# Synced documents and change feeds
SYNCED_DOC_WRITES = Counter(
    "couchkit_synced_document_writes_total",
    "Repairing writes performed by synced documents",
    ["doc_id"],
)
CHANGE_EVENTS = Counter(
    "couchkit_change_events_total",
    "Change feed events received",
    ["database"],
)

# Background work
PERIODIC_TASK_RUNS = Counter(
    "couchkit_periodic_task_runs_total",
    "Periodic task executions",
    ["task"],
)
PERIODIC_TASK_FAILURES = Counter(
    "couchkit_periodic_task_failures_total",
    "Periodic task executions that raised",
    ["task"],
)

__all__ = [
    "SHARDS_CREATED",
    "SHARDS_QUERYABLE",
    "SHARDS_VISITED",
    "FUTURE_SHARD_FAILURES",
    "REPLICATOR_DOCS_WRITTEN",
    "REPLICATOR_DOCS_DELETED",
    "SYNCED_DOC_WRITES",
    "CHANGE_EVENTS",
    "PERIODIC_TASK_RUNS",
    "PERIODIC_TASK_FAILURES",
    "CONTENT_TYPE_LATEST",
    "generate_latest",
]
