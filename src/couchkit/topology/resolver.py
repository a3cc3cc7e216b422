"""Decides whether a database belongs on a cluster, and whether it replicates."""

from __future__ import annotations

from typing import Optional

from couchkit.topology.models import ClusterConfig, DatabaseDescriptor, TopologyDecision
from couchkit.topology.wildcard import matches_any

LOCAL_ONLY = TopologyDecision(exists=True, replicated=False)
REPLICATED = TopologyDecision(exists=True, replicated=True)
ABSENT = TopologyDecision(exists=False, replicated=False)

DEFAULT_INCLUDE = ("*",)


def resolve(config: Optional[ClusterConfig], db: DatabaseDescriptor) -> TopologyDecision:
    """
    Apply a cluster's filter lists to a database. First matching rule wins:

    1. no cluster config: the node is standalone, keep the database locally;
    2. ``_replicator`` or a ``local_only`` match: keep locally, never replicate;
    3. an ``exclude`` match: the database does not belong here;
    4. an ``include`` match (default ``["*"]``): keep and replicate;
    5. anything else does not belong here.
    """
    if config is None:
        return LOCAL_ONLY

    names = db.match_names
    if db.name == "_replicator" or matches_any(config.local_only, names):
        return LOCAL_ONLY
    if matches_any(config.exclude, names):
        return ABSENT

    include = config.include if config.include is not None else DEFAULT_INCLUDE
    if matches_any(include, names):
        return REPLICATED
    return ABSENT


__all__ = ["resolve", "LOCAL_ONLY", "REPLICATED", "ABSENT"]
