"""FastAPI application factory.

Lifespan
--------
On startup the app configures logging and makes sure the blob directory
exists.  The snapshot pipeline itself holds no state, so nothing needs to be
closed on shutdown.

Routers
-------
    /snapshots  pipeline runs, worker jobs and stored snapshots
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from readvault.api.routers import snapshots as snapshots_router
from readvault.config import settings
from readvault.logging_setup import configure_logging

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    settings.ensure_workspace()
    log.info(
        "Snapshot worker ready (storage=%s, enabled=%s)",
        settings.storage_dir,
        settings.snapshots_enabled,
    )
    yield


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="readvault API",
        description=(
            "Snapshot worker for readvault. Turns saved URLs into sanitized "
            "reader-mode documents and stores them as gzip'd JSON blobs."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(snapshots_router.router, prefix="/snapshots", tags=["snapshots"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn readvault.api.app:app --reload
app = create_app()
