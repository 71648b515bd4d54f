"""Reference region lookup endpoints.

``POST /states`` returns the US states whose names match exactly.
``POST /locations-geojson`` resolves free-text names through the country,
state, city and urban area tiers and tags every feature with the ``level``
that matched.

Example:
    >>> client.post("/locations-geojson",
    ...             json={"locations": ["France", "Texas"]}).json()
    >>> # {"type": "FeatureCollection", "features": [
    >>> #   {"type": "Feature",
    >>> #    "properties": {"name": "France", "level": "country", ...}, ...},
    >>> #   {"type": "Feature",
    >>> #    "properties": {"name": "Texas", "level": "state", ...}, ...}]}
"""

from __future__ import annotations

from typing import Any

import fastapi
import pydantic

from app.api import dependencies, errors
from app.db import database
from app.services import geojson, resolver

router = fastapi.APIRouter(tags=["regions"])


class StatesRequest(pydantic.BaseModel):
    # Typed loosely so a non-array is rejected with the endpoint's message.
    states: Any = None


class LocationsRequest(pydantic.BaseModel):
    locations: Any = None


@router.post("/states")
def get_states(
    body: StatesRequest,
    store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_store
    ),
) -> dict[str, Any]:
    """Return the states whose names exactly match the supplied list.

    Raises:
        HTTPException: 400 for a missing, non-array or empty list (no query
            is issued), 404 if no state matched, 500 on backend failure.
    """
    if not isinstance(body.states, list) or not body.states:
        raise errors.bad_request("Need an array of state names")

    names = [str(name) for name in body.states]
    with errors.backend_errors("State fetch failed", "State fetch"):
        states = store.states_by_names(names)
    if not states:
        raise errors.not_found("No states found")

    return geojson.feature_collection(
        geojson.state_feature(state) for state in states
    )


@router.post("/locations-geojson")
def get_locations(
    body: LocationsRequest,
    location_resolver: resolver.LocationResolver = fastapi.Depends(  # noqa: B008
        dependencies.get_resolver
    ),
) -> dict[str, Any]:
    """Resolve place names to region features tagged with their tier.

    Names that resolve to nothing are left out of the collection.

    Raises:
        HTTPException: 400 for a missing, non-array or empty list, 404 if
            none of the names resolved.
    """
    if not isinstance(body.locations, list) or not body.locations:
        raise errors.bad_request("Need an array of location names")

    with errors.backend_errors("Location fetch failed", "Location fetch"):
        resolved = location_resolver.resolve(body.locations)
    if not resolved:
        raise errors.not_found("No locations found")

    return geojson.feature_collection(
        geojson.resolved_feature(match) for match in resolved
    )
