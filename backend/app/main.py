"""FastAPI application entrypoint and configuration.

This module provides the application factory. The factory sets up CORS
middleware and logging, includes the polygon and region routers, maps
request validation failures to HTTP 400 and exposes a database health check
at ``/``. The PostGIS store and the static country index are created in the
lifespan handler and closed again on shutdown.

Example:
    The application can be run with uvicorn:
        $ uvicorn app.main:app --port 4000
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

import fastapi
import psycopg2
from fastapi import exceptions, responses
from fastapi.middleware import cors

from app.api import dependencies, errors, polygons, regions
from app.core import config, log
from app.db import database
from app.services import countries

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = log.get_logger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: fastapi.FastAPI) -> AsyncIterator[None]:
    """Open the store and load the country index for the app's lifetime.

    A database that is down at startup does not stop the app from serving:
    the failure is logged, the health check reports it and the store
    connects on its first successful request.
    """
    settings = config.get_settings()
    app.state.country_index = countries.CountryIndex.from_path(
        settings.countries_path
    )
    store = database.create_store(settings)
    try:
        store.open()
    except psycopg2.Error:
        logger.exception("Could not connect to PostGIS at startup")
    app.state.store = store
    try:
        yield
    finally:
        store.close()


async def _validation_error(
    _request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    logger.info("Rejected request: %s", exc)
    return responses.JSONResponse(
        status_code=400,
        content={"detail": "Invalid request"},
    )


async def _unexpected_error(
    request: fastapi.Request,
    exc: Exception,
) -> responses.JSONResponse:
    logger.error(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return responses.JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    log.configure_logging(settings.log_level)

    app = fastapi.FastAPI(
        title="Polygon Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(polygons.router)
    app.include_router(regions.router)

    app.add_exception_handler(
        exceptions.RequestValidationError,
        _validation_error,
    )
    app.add_exception_handler(Exception, _unexpected_error)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def health(
        store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
            dependencies.get_store
        ),
    ) -> dict[str, Any]:
        """Health check that round-trips to the database.

        Returns:
            ``{"status": "ok", "time": <database time>}``.
        """
        with errors.backend_errors("DB connection failed", "Healthcheck"):
            now = store.now()
        return {"status": "ok", "time": now.isoformat()}

    return app


app = create_app()
