"""Error translation shared by the API routers.

Three outcomes reach clients: 400 for invalid requests, 404 for missing
records or regions and 500 for backend failures. Backend failure details
are logged here and never returned to the caller.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

import fastapi
import psycopg2

from app.core import log
from app.db import database

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = log.get_logger(__name__)


@contextlib.contextmanager
def backend_errors(detail: str, context: str) -> Iterator[None]:
    """Turn database failures inside the block into HTTP 500 responses.

    Args:
        detail: Short message returned to the client.
        context: Description logged alongside the traceback.

    Raises:
        HTTPException: 500 with ``detail`` if the block raised a database
            or store error.
    """
    try:
        yield
    except (psycopg2.Error, database.StoreError) as exc:
        logger.exception("%s error", context)
        raise fastapi.HTTPException(status_code=500, detail=detail) from exc


def bad_request(detail: str) -> fastapi.HTTPException:
    return fastapi.HTTPException(status_code=400, detail=detail)


def not_found(detail: str) -> fastapi.HTTPException:
    return fastapi.HTTPException(status_code=404, detail=detail)
