"""Drawn polygon storage and statistics endpoints.

A drawing set is stored as one record per agent/user pair: saving replaces
whatever the pair had before. Geometries are GeoJSON in EPSG:4326 and come
back as GeoJSON Features.

Example:
    Save a drawing set, then list it:
        >>> response = client.post("/polygons", json={
        ...     "agent_id": "a-1",
        ...     "user_id": "u-1",
        ...     "geometry": {"type": "Polygon", "coordinates": [...]},
        ...     "properties": {"featureCount": 1},
        ... })
        >>> response.json()
        >>> # {"status": "saved", "id": 7,
        >>> #  "message": "Saved 1 drawings in one record"}
        >>> client.get("/polygons", params={"agent_id": "a-1"}).json()
        >>> # {"type": "FeatureCollection", "features": [...]}
"""

from __future__ import annotations

import dataclasses
from typing import Any

import fastapi
import pydantic

from app.api import dependencies, errors
from app.core import log
from app.db import database
from app.services import geojson

logger = log.get_logger(__name__)

router = fastapi.APIRouter(tags=["polygons"])


class SavePolygonRequest(pydantic.BaseModel):
    """Body of ``POST /polygons``.

    ``geometry`` is optional at the schema level so that a missing geometry
    is reported with the endpoint's own 400 message.
    """

    model_config = pydantic.ConfigDict(coerce_numbers_to_str=True)

    name: str | None = None
    geometry: dict[str, Any] | None = None
    agent_id: str | None = None
    user_id: str | None = None
    properties: dict[str, Any] | None = None


@router.post("/polygons")
def save_polygons(
    body: SavePolygonRequest,
    include_states: bool = False,
    store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_store
    ),
) -> dict[str, Any]:
    """Replace the agent/user pair's drawing set with a new one.

    Existing records for the pair are deleted before the new one is
    inserted. The two statements are not isolated from concurrent saves for
    the same pair. Intersecting states are looked up before saving, so a
    failed lookup leaves the previous drawing set in place.

    Args:
        body: Drawing set to store.
        include_states: Also report which states the geometry intersects.
        store: Spatial store (injected via FastAPI Depends).

    Returns:
        ``{"status": "saved", "id", "message"}`` plus ``states`` when
        requested.

    Raises:
        HTTPException: 400 if geometry is missing, 500 on backend failure
            ("State lookup failed" or "Save failed").
    """
    if not body.geometry:
        raise errors.bad_request("Missing geometry")

    properties = body.properties or {}
    name = body.name or f"Drawing Set for Agent {body.agent_id}"

    states = None
    if include_states:
        with errors.backend_errors(
            "State lookup failed", "Intersect polygon collection"
        ):
            states = store.intersecting_states(body.geometry)

    with errors.backend_errors("Save failed", "Save polygon collection"):
        record_id = store.save_replace(
            name=name,
            geometry=body.geometry,
            agent_id=body.agent_id,
            user_id=body.user_id,
            properties=properties,
        )

    logger.info(
        "Saved drawing set %s for agent=%s user=%s",
        record_id,
        body.agent_id,
        body.user_id,
    )
    response: dict[str, Any] = {
        "status": "saved",
        "id": record_id,
        "message": (
            f"Saved {properties.get('featureCount') or 0} drawings "
            "in one record"
        ),
    }
    if states is not None:
        response["states"] = states
    return response


@router.get("/polygons")
def list_polygons(
    agent_id: str | None = None,
    user_id: str | None = None,
    store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_store
    ),
) -> dict[str, Any]:
    """List drawing sets, newest first, optionally filtered by agent/user."""
    with errors.backend_errors("Fetch failed", "Fetch polygons"):
        records = list(store.list(agent_id=agent_id or None,
                                  user_id=user_id or None))
    return geojson.feature_collection(
        geojson.polygon_feature(record) for record in records
    )


@router.get("/polygons/{record_id}")
def get_polygon(
    record_id: int,
    store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_store
    ),
) -> dict[str, Any]:
    """Return one drawing set as a GeoJSON Feature.

    Raises:
        HTTPException: 404 if the record does not exist.
    """
    with errors.backend_errors("Fetch failed", "Fetch polygon collection"):
        record = store.get(record_id)
    if record is None:
        raise errors.not_found("Polygon collection not found")
    return geojson.polygon_feature(record)


@router.delete("/polygons/agent/{agent_id}/user/{user_id}")
def delete_agent_user_polygons(
    agent_id: str,
    user_id: str,
    store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_store
    ),
) -> dict[str, Any]:
    """Delete every drawing set of an agent/user pair.

    Deleting a pair with no records is not an error; ``deletedRecords`` is
    then 0.
    """
    with errors.backend_errors("Delete failed", "Delete polygon collections"):
        deleted = store.delete_for(agent_id, user_id)
    return {
        "status": "deleted",
        "deletedRecords": len(deleted),
        "records": [
            {"id": record.id, "name": record.name} for record in deleted
        ],
    }


@router.delete("/polygons/{record_id}")
def delete_polygon(
    record_id: int,
    store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_store
    ),
) -> dict[str, Any]:
    """Delete one drawing set by id.

    Raises:
        HTTPException: 404 if the record does not exist.
    """
    with errors.backend_errors("Delete failed", "Delete polygon collection"):
        deleted = store.delete(record_id)
    if deleted is None:
        raise errors.not_found("Polygon collection not found")
    return {"status": "deleted", "record": dataclasses.asdict(deleted)}


@router.get("/stats")
def get_stats(
    store: database.StoreProtocol = fastapi.Depends(  # noqa: B008
        dependencies.get_store
    ),
) -> dict[str, Any]:
    """Per agent/user record counts, latest save time and feature totals."""
    with errors.backend_errors("Stats fetch failed", "Stats"):
        stats = store.stats()
    return {
        "stats": [
            {
                **dataclasses.asdict(entry),
                "last_updated": (
                    entry.last_updated.isoformat()
                    if entry.last_updated
                    else None
                ),
            }
            for entry in stats
        ]
    }
