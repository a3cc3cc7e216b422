from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List

from fastapi import FastAPI, HTTPException, Response

from couchkit import __version__
from couchkit.couch.documents import encode_model
from couchkit.monitoring import CONTENT_TYPE_LATEST, generate_latest
from couchkit.service.maintenance import MaintenanceService


def create_app(service: MaintenanceService, manage_lifecycle: bool = True) -> FastAPI:
    """
    HTTP surface of a maintenance service.

    With ``manage_lifecycle`` the service is started and stopped together
    with the application.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await service.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await service.stop()

    app = FastAPI(title="couchkit maintenance API", version=__version__, lifespan=lifespan)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        status = service.status()
        return {"status": "ok", "uptime_seconds": status["uptime_seconds"]}

    @app.get("/health/ready")
    async def ready() -> Dict[str, str]:
        if not service.started:
            raise HTTPException(status_code=503, detail="maintenance not started")
        return {"status": "ready"}

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        return service.status()

    @app.get("/topology")
    async def topology() -> Dict[str, Any]:
        return {"rev": service.topology.rev, "doc": encode_model(service.topology.doc)}

    @app.get("/collections/{name}/shards")
    async def shards(name: str) -> List[Dict[str, Any]]:
        index = service.collections.get(name)
        if index is None:
            raise HTTPException(status_code=404, detail="collection not found")
        queryable = {shard.name for shard in index.shards}
        return [
            {
                "name": shard.name,
                "start_date": shard.start_date.isoformat(),
                "archived": shard.archived,
                "queryable": shard.name in queryable,
            }
            for shard in index.indexed_shards
        ]

    return app


__all__ = ["create_app"]
