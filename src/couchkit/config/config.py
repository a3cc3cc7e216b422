"""Configuration management."""

from __future__ import annotations

import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from couchkit.couch.pool import CouchCredential
from couchkit.utils.periodic_month import PeriodicMonth


class DatabaseConfig(BaseModel):
    """A plain database the service keeps set up."""

    name: str = Field(..., description="Database name")
    tags: List[str] = Field(default_factory=list, description="Topology tags, e.g. #logs")
    options: Optional[Dict[str, Any]] = Field(
        None,
        description="Database creation parameters, e.g. {partitioned: true}",
    )


class RollingCollectionConfig(BaseModel):
    """A rolling collection the service keeps set up."""

    name: str = Field(..., description="Collection name; shards are <name>-<period>")
    period: PeriodicMonth = Field(PeriodicMonth.MONTH, description="month, quarter, half-year or year")
    archive_start: Optional[datetime] = Field(
        None,
        description="How far back yearly archive shards are seeded",
    )
    tags: List[str] = Field(default_factory=list)
    options: Optional[Dict[str, Any]] = None


class ServiceConfig(BaseModel):
    """Maintenance service configuration."""

    cluster_name: str = Field("default", description="This cluster's name in the topology")
    couch_url: Optional[str] = Field(None, description="CouchDB URL for a single-cluster setup")
    credentials_file: Optional[str] = Field(
        None,
        description="YAML file mapping cluster names to URLs or {url, username, password}",
    )
    current_user: str = Field("admin", description="Owner of the replication documents")
    settings_db: str = Field("settings", description="Database holding the topology document")
    replicator_setup_id: str = Field("replicators", description="Topology document id")
    request_timeout: float = Field(30.0, description="CouchDB request timeout (seconds)")
    log_level: str = Field("INFO")
    log_json: bool = Field(True)
    api_host: str = Field("0.0.0.0")
    api_port: int = Field(8080)
    collections: List[RollingCollectionConfig] = Field(default_factory=list)
    databases: List[DatabaseConfig] = Field(default_factory=list)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def load_credentials(self) -> Dict[str, Union[str, CouchCredential]]:
        """
        Cluster credentials keyed by name.

        ``couch_url`` alone yields a single entry named after this cluster.
        """
        credentials: Dict[str, Union[str, CouchCredential]] = {}
        if self.credentials_file:
            with open(self.credentials_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError(f"{self.credentials_file}: expected a mapping of clusters")
            for name, entry in data.items():
                credentials[str(name)] = (
                    entry if isinstance(entry, str) else CouchCredential.model_validate(entry)
                )
        if self.couch_url:
            credentials.setdefault(self.cluster_name, self.couch_url)
        if self.cluster_name not in credentials:
            raise ValueError(f"No CouchDB credentials for cluster '{self.cluster_name}'")
        return credentials

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        databases = [
            DatabaseConfig(name=name.strip())
            for name in os.getenv("COUCHKIT_DATABASES", "").split(",")
            if name.strip()
        ]
        return cls(
            cluster_name=os.getenv("COUCHKIT_CLUSTER_NAME", "default"),
            couch_url=os.getenv("COUCHKIT_COUCH_URL") or None,
            credentials_file=os.getenv("COUCHKIT_CREDENTIALS_FILE") or None,
            current_user=os.getenv("COUCHKIT_CURRENT_USER", "admin"),
            settings_db=os.getenv("COUCHKIT_SETTINGS_DB", "settings"),
            replicator_setup_id=os.getenv("COUCHKIT_REPLICATOR_SETUP_ID", "replicators"),
            request_timeout=float(os.getenv("COUCHKIT_REQUEST_TIMEOUT", "30")),
            log_level=os.getenv("COUCHKIT_LOG_LEVEL", "INFO"),
            log_json=os.getenv("COUCHKIT_LOG_JSON", "true").lower() == "true",
            api_host=os.getenv("COUCHKIT_API_HOST", "0.0.0.0"),
            api_port=int(os.getenv("COUCHKIT_API_PORT", "8080")),
            databases=databases,
        )

    @classmethod
    def from_yaml(cls, path: str) -> "ServiceConfig":
        """Load configuration from YAML file."""
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)


__all__ = ["DatabaseConfig", "RollingCollectionConfig", "ServiceConfig"]
