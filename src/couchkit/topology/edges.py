"""Turns a topology into concrete ``_replicator`` documents for one database."""

from __future__ import annotations

from typing import Dict, Union

from couchkit.topology.models import (
    ClusterConfig,
    DatabaseDescriptor,
    ReplicatorDocument,
    ReplicatorEndpoint,
    ReplicatorSetupDocument,
)
from couchkit.topology.resolver import resolve
from couchkit.topology.wildcard import matches


def edge_id(db_name: str, direction: str, peer: str) -> str:
    """``<db>.to.<peer>`` or ``<db>.from.<peer>``."""
    return f"{db_name}.{direction}.{peer}"


def make_endpoint(cluster: ClusterConfig, db_name: str) -> Union[str, ReplicatorEndpoint]:
    url = f"{cluster.url.rstrip('/')}/{db_name}"
    if cluster.basic_auth is None:
        return url
    return ReplicatorEndpoint(url=url, headers={"Authorization": f"Basic {cluster.basic_auth}"})


def build_edges(
    topology: ReplicatorSetupDocument,
    current_cluster: str,
    current_user: str,
    db: DatabaseDescriptor,
) -> Dict[str, ReplicatorDocument]:
    """
    Compute the replication documents ``current_cluster`` should own for ``db``.

    Nothing is produced unless the database replicates on the current cluster.
    Each peer must also hold the database; it then gets a pull edge if it
    matches ``pull_from`` and a push edge if it matches ``push_to``. Ids and
    contents depend only on the inputs, so re-running over the same topology
    yields the same documents.
    """
    current = topology.clusters.get(current_cluster)
    if current is None or not resolve(current, db).replicated:
        return {}

    local = make_endpoint(current, db.name)
    edges: Dict[str, ReplicatorDocument] = {}
    for peer_name, peer in topology.clusters.items():
        if peer_name == current_cluster or not resolve(peer, db).exists:
            continue
        remote = make_endpoint(peer, db.name)

        if matches(current.pull_from, peer_name):
            edges[edge_id(db.name, "from", peer_name)] = ReplicatorDocument(
                source=remote,
                target=local,
                owner=current_user,
                continuous=True,
                create_target=False,
            )
        if matches(current.push_to, peer_name):
            edges[edge_id(db.name, "to", peer_name)] = ReplicatorDocument(
                source=local,
                target=remote,
                owner=current_user,
                continuous=True,
                create_target=True,
                create_target_params=dict(db.options) if db.options else None,
            )
    return edges


__all__ = ["build_edges", "edge_id", "make_endpoint"]
