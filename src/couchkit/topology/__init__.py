"""
Replication topology: filter matching, per-cluster decisions and edge building.
"""

from .edges import build_edges, edge_id
from .models import (
    ARCHIVED_TAG,
    ClusterConfig,
    DatabaseDescriptor,
    ReplicatorDocument,
    ReplicatorEndpoint,
    ReplicatorSetupDocument,
    TopologyDecision,
)
from .resolver import resolve
from .wildcard import matches, matches_any

__all__ = [
    "ARCHIVED_TAG",
    "ClusterConfig",
    "DatabaseDescriptor",
    "ReplicatorDocument",
    "ReplicatorEndpoint",
    "ReplicatorSetupDocument",
    "TopologyDecision",
    "build_edges",
    "edge_id",
    "matches",
    "matches_any",
    "resolve",
]
