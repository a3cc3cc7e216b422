"""
Replication topology data model.

The topology document lives in CouchDB and is edited by hand, so it is
decoded with healing semantics: broken cluster entries are dropped and broken
fields fall back to their defaults instead of failing the whole document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from couchkit.couch.documents import heal_mapping

LEGACY_MODES = ("source", "target", "both")

# Tag carried by archived rolling shards.
ARCHIVED_TAG = "#archived"


class ClusterConfig(BaseModel):
    """Replication settings for one cluster, keyed by its friendly name."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    # Base URI of the cluster:
    url: str = ""

    # base64 "username:password", sent as a Basic Authorization header:
    basic_auth: Optional[str] = Field(None, alias="basicAuth")

    # Database names or #tags; a trailing '*' makes an entry a prefix match.
    # A missing include list means "everything".
    exclude: Optional[List[str]] = None
    include: Optional[List[str]] = None
    local_only: Optional[List[str]] = Field(None, alias="localOnly")

    # Peer cluster names (with the same '*' rule):
    pull_from: Optional[List[str]] = Field(None, alias="pullFrom")
    push_to: Optional[List[str]] = Field(None, alias="pushTo")


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _legacy_mode(raw: Any) -> Optional[str]:
    if not isinstance(raw, Mapping) or "mode" not in raw:
        return None
    mode = raw["mode"]
    return mode if mode in LEGACY_MODES else "source"


def migrate_legacy_clusters(clusters: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Rewrite ``mode``-style cluster entries into ``pushTo``/``pullFrom`` form.

    A "source" cluster is pulled from by its peers, a "target" cluster is
    pushed to, "both" is both. Only absent lists are filled in, and legacy
    entries without a valid ``exclude`` stop replicating archived databases.
    Entries without ``mode`` pass through untouched.
    """
    modes = {name: mode for name, raw in clusters.items() if (mode := _legacy_mode(raw)) is not None}
    if not modes:
        return dict(clusters)

    out: Dict[str, Any] = {}
    for name, raw in clusters.items():
        if name not in modes:
            out[name] = raw
            continue
        entry = {key: value for key, value in raw.items() if key != "mode"}
        if not _is_string_list(entry.get("pullFrom")):
            entry["pullFrom"] = [
                peer for peer, mode in modes.items() if peer != name and mode in ("source", "both")
            ]
        if not _is_string_list(entry.get("pushTo")):
            entry["pushTo"] = [
                peer for peer, mode in modes.items() if peer != name and mode in ("target", "both")
            ]
        if not _is_string_list(entry.get("exclude")):
            entry["exclude"] = [ARCHIVED_TAG]
        out[name] = entry
    return out


class ReplicatorSetupDocument(BaseModel):
    """The topology document: every cluster and how it replicates."""

    clusters: Dict[str, ClusterConfig] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _heal(cls, raw: Any) -> Any:
        clusters = raw.get("clusters") if isinstance(raw, Mapping) else None
        if not isinstance(clusters, Mapping):
            clusters = {}
        return {"clusters": heal_mapping(ClusterConfig, migrate_legacy_clusters(clusters))}


@dataclass(frozen=True)
class DatabaseDescriptor:
    """What the topology matches against: a database name plus its tags."""

    name: str
    tags: Tuple[str, ...] = ()
    # Creation parameters, e.g. {"partitioned": True}:
    options: Optional[Dict[str, Any]] = field(default=None, compare=False)

    @property
    def match_names(self) -> Tuple[str, ...]:
        return (self.name, *self.tags)


@dataclass(frozen=True)
class TopologyDecision:
    exists: bool
    replicated: bool


class ReplicatorEndpoint(BaseModel):
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)


class ReplicatorDocument(BaseModel):
    """A document in the ``_replicator`` database (one replication edge)."""

    source: Union[str, ReplicatorEndpoint]
    target: Union[str, ReplicatorEndpoint]
    owner: str
    continuous: bool = True
    create_target: bool = False
    create_target_params: Optional[Dict[str, Any]] = None


__all__ = [
    "ARCHIVED_TAG",
    "ClusterConfig",
    "DatabaseDescriptor",
    "ReplicatorDocument",
    "ReplicatorEndpoint",
    "ReplicatorSetupDocument",
    "TopologyDecision",
    "migrate_legacy_clusters",
]
