"""
FastAPI application factory and configuration.

Builds the FastAPI app for the device activation service and the
uvicorn entry point that serves it.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Request, status
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import PostgresDeviceStateStore, run_migrations
from src.api.routes import router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "device", "description": "Activation, reactivation and deactivation of telematics devices"},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Own the process-wide resources for the lifetime of the app.

    The connection pool and the httpx client for collaborators are opened
    together, exposed on ``app.state`` and closed together on shutdown.
    Migrations run before the first request is accepted.
    """
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )

    with (
        ConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
        ) as pool,
        httpx.Client(timeout=settings.http_timeout_seconds) as http_client,
    ):
        logger.info("Applying migrations to %s", pool.name)
        run_migrations(pool)
        app.state.pool = pool
        app.state.http_client = http_client
        logger.info("Device activation service ready")
        yield
        logger.info("Device activation service stopping")


app = FastAPI(
    title="device-activation",
    description="Device Activation API - Issues device identities and passcodes to telematics devices",
    version="0.1.0",
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy, 503 otherwise.
    """
    store = PostgresDeviceStateStore(request.app.state.pool)
    if not store.health_check():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    return {"status": "healthy"}


def serve() -> None:
    """Run the API with uvicorn (console script entry point)."""
    settings = get_settings()
    uvicorn.run("src.api.main:app", host=settings.host, port=settings.port)
