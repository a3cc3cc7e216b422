"""couchkit command line.

\b
    couchkit serve --config couchkit.yaml
    couchkit serve --no-api
    couchkit edges topology.yaml --cluster eu --database logs-2024 --tag '#logs'
"""

from __future__ import annotations

import asyncio
import json
from typing import Optional, Tuple

import click
import uvicorn
import yaml

from couchkit.api.server import create_app
from couchkit.config.config import ServiceConfig
from couchkit.couch.documents import encode_model
from couchkit.service.maintenance import MaintenanceService
from couchkit.topology.edges import build_edges
from couchkit.topology.models import DatabaseDescriptor, ReplicatorSetupDocument
from couchkit.topology.resolver import resolve
from couchkit.utils.logging import configure_logging, get_logger
from couchkit.utils.signals import install_stop_handlers

logger = get_logger(__name__)


def _load_config(path: Optional[str]) -> ServiceConfig:
    return ServiceConfig.from_yaml(path) if path else ServiceConfig.from_env()


async def _run_without_api(service: MaintenanceService) -> None:
    stop = asyncio.Event()
    install_stop_handlers(asyncio.get_running_loop(), stop.set)
    await service.start()
    try:
        await stop.wait()
    finally:
        await service.stop()


@click.group()
@click.version_option(package_name="couchkit")
def cli() -> None:
    """CouchDB cluster lifecycle management."""


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="YAML configuration file (default: COUCHKIT_* environment variables)",
)
@click.option("--no-api", is_flag=True, help="Run maintenance only, without the HTTP API")
def serve(config_path: Optional[str], no_api: bool) -> None:
    """Keep this cluster's databases, shards and replication set up."""
    config = _load_config(config_path)
    configure_logging(config.log_level, config.log_json, cluster_name=config.cluster_name)
    service = MaintenanceService(config)

    if no_api:
        asyncio.run(_run_without_api(service))
        return

    logger.info("api_starting", host=config.api_host, port=config.api_port)
    uvicorn.run(
        create_app(service),
        host=config.api_host,
        port=config.api_port,
        log_config=None,
    )


@cli.command()
@click.argument("topology_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--cluster", required=True, help="Cluster the edges are computed for")
@click.option("--database", required=True, help="Database name")
@click.option("--tag", "tags", multiple=True, help="Database tag, repeatable")
@click.option("--user", default="admin", show_default=True, help="Replication document owner")
def edges(topology_path: str, cluster: str, database: str, tags: Tuple[str, ...], user: str) -> None:
    """Print the replication documents CLUSTER would own for DATABASE."""
    with open(topology_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    topology = ReplicatorSetupDocument.model_validate(raw)
    db = DatabaseDescriptor(name=database, tags=tags)

    decision = resolve(topology.clusters.get(cluster), db)
    result = {
        "exists": decision.exists,
        "replicated": decision.replicated,
        "edges": {
            edge_id: encode_model(doc)
            for edge_id, doc in build_edges(topology, cluster, user, db).items()
        },
    }
    click.echo(json.dumps(result, indent=2, sort_keys=True))


if __name__ == "__main__":
    cli()
