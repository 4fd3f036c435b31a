"""hubmesh node server.

Exposes:
  GET  /         — plain-text banner naming this node
  GET  /health   — liveness of this process only (for load balancer checks)
  GET  /nodes    — active nodes from the shared registry

The app owns this node's :class:`~hubmesh.registry.RegistryWriter`: it starts
heartbeating on startup and deregisters on shutdown.

Start with::

    python -m hubmesh.server
    # or
    uvicorn hubmesh.server:app --host 0.0.0.0 --port 5200
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from hubmesh import __version__
from hubmesh.config import Settings
from hubmesh.registry import DiscoveryReader, RegistryWriter, StoreUnavailable
from hubmesh.registry.identity import AddressResolver, resolve_node_id
from hubmesh.registry.models import STATUS_HEALTHY
from hubmesh.stores import RegistryStore, store_from_settings

logger = logging.getLogger(__name__)

router = APIRouter()


# ──────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────

@router.get("/", response_class=PlainTextResponse)
async def index(request: Request):
    return f"Chat hub node {request.app.state.node_id} is running"


@router.get("/health")
async def health(request: Request):
    return {"status": STATUS_HEALTHY, "node": request.app.state.node_id}


@router.get("/nodes")
async def nodes(request: Request):
    settings: Settings = request.app.state.settings
    reader: DiscoveryReader = request.app.state.reader
    try:
        result = await reader.discover()
    except StoreUnavailable as exc:
        logger.error("Discovery query failed: %s", exc)
        raise HTTPException(status_code=503, detail=f"Registry unavailable: {exc}")
    return result.to_dict(include_skipped=settings.report_malformed)


# ──────────────────────────────────────────────────────────────────
# App factory
# ──────────────────────────────────────────────────────────────────

def create_app(
    settings: Settings | None = None,
    store: RegistryStore | None = None,
    address_resolver: AddressResolver | None = None,
) -> FastAPI:
    """Build the node app.

    Args:
        settings:         Node settings (default: :meth:`Settings.from_env`).
        store:            Registry store to use. When omitted one is built from
                          *settings* at startup and closed at shutdown.
        address_resolver: Override for the advertised-address lookup.
    """
    if settings is None:
        settings = Settings.from_env()
    node_id = resolve_node_id(settings.node_id)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        registry_store = store if store is not None else store_from_settings(settings)
        writer = RegistryWriter(
            registry_store, settings, node_id=node_id, address_resolver=address_resolver
        )
        app.state.writer = writer
        app.state.reader = DiscoveryReader(registry_store, settings, node_id)
        await writer.start()
        try:
            yield
        finally:
            await writer.stop()
            if store is None:
                await registry_store.aclose()

    app = FastAPI(title="hubmesh", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.node_id = node_id
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


# ──────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────

def main():
    import uvicorn
    settings: Settings = app.state.settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(
        "Starting hubmesh node %s on %s:%d", app.state.node_id, settings.host, settings.port
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
