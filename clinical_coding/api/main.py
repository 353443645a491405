"""Main FastAPI application for the clinical coding workflow.

This module sets up the FastAPI application with all routes, middleware,
and configuration. With the embedded worker enabled, the dead-letter consumer
runs as a background task in the same process, which is required when the
durable queue shares a DuckDB file with the API.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinical_coding import __version__
from clinical_coding.api.dependencies import get_container
from clinical_coding.api.middleware import setup_middleware
from clinical_coding.api.routes import audit, dead_letters, episodes, exports, health, queries, webhooks
from clinical_coding.container import build_container
from clinical_coding.infrastructure.logging_config import setup_logging
from clinical_coding.infrastructure.settings import settings
from clinical_coding.worker import build_consumer

# Configure structured logging
setup_logging(use_json=settings.json_logs, log_level=settings.log_level)

logger = logging.getLogger(__name__)


def create_app(with_worker: bool = False) -> FastAPI:
    """Build the application.

    Parameters:
        with_worker: Run the dead-letter consumer inside the API process
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        logger.info(f"{settings.app_name} API starting up...")
        logger.info("API documentation available at /api/docs")

        # A container supplied through dependency_overrides belongs to the caller
        override = app.dependency_overrides.get(get_container)
        if override is not None:
            container = override()
        else:
            logger.debug(f"Building service container with database: {settings.get_db_path()}")
            container = build_container(settings)
        app.state.container = container

        stop_event = asyncio.Event()
        worker_task = None
        if with_worker:
            worker_task = asyncio.create_task(build_consumer(container).run(stop_event))
            logger.info("Embedded dead-letter consumer started")

        yield

        logger.info(f"{settings.app_name} API shutting down...")
        if worker_task is not None:
            stop_event.set()
            await worker_task
        app.state.container = None
        if override is None:
            await container.aclose()

    app = FastAPI(
        title=settings.app_name,
        description="Episode coding review, clinician queries and dead-letter replay",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Process-Time", "X-Request-ID"],
    )

    setup_middleware(app)

    app.include_router(health.router)
    app.include_router(episodes.router)
    app.include_router(exports.router)
    app.include_router(queries.router)
    app.include_router(webhooks.router)
    app.include_router(audit.router)
    app.include_router(dead_letters.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": f"{settings.app_name} API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health"
        }

    return app


app = create_app(with_worker=settings.embedded_worker)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "clinical_coding.api.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
