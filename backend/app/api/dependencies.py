"""Shared FastAPI dependencies.

The store and the country index are created by the application lifespan
and kept on ``app.state``; endpoints receive them through these functions,
which tests replace with ``app.dependency_overrides``.
"""

import fastapi

from app.db import database
from app.services import countries, resolver


def get_store(request: fastapi.Request) -> database.StoreProtocol:
    """Return the store opened at application startup."""
    return request.app.state.store  # type: ignore[no-any-return]


def get_country_index(request: fastapi.Request) -> countries.CountryIndex:
    """Return the country index loaded at application startup."""
    return request.app.state.country_index  # type: ignore[no-any-return]


def get_resolver(
    store: database.StoreProtocol = fastapi.Depends(get_store),  # noqa: B008
    country_index: countries.CountryIndex = fastapi.Depends(  # noqa: B008
        get_country_index
    ),
) -> resolver.LocationResolver:
    """Build a location resolver over the startup store and index."""
    return resolver.LocationResolver(country_index, store)
