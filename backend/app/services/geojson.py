"""GeoJSON reshaping helpers.

Stores return dataclasses with geometries already parsed from
``ST_AsGeoJSON``; these helpers turn them into the Feature and
FeatureCollection dictionaries the API responds with. Keeping them free of
web framework imports lets the resolver and tests reuse them directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from app.db import models as db_models


def feature_collection(features: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Wrap features in a GeoJSON FeatureCollection."""
    return {"type": "FeatureCollection", "features": list(features)}


def polygon_feature(record: db_models.PolygonRecord) -> dict[str, Any]:
    """Render a stored drawing set as a GeoJSON Feature.

    The record's own columns come first in ``properties``; keys from the
    client's properties blob are merged over them, so a client that stored
    e.g. its own ``name`` sees it echoed back.

    Args:
        record: Stored drawing set.

    Returns:
        Feature dictionary with the record id as the feature id.
    """
    properties: dict[str, Any] = {
        "id": record.id,
        "name": record.name,
        "agent_id": record.agent_id,
        "user_id": record.user_id,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat(),
    }
    properties.update(record.properties)
    return {
        "type": "Feature",
        "id": record.id,
        "properties": properties,
        "geometry": record.geometry,
    }


def state_feature(region: db_models.Region) -> dict[str, Any]:
    """Render a state row as a GeoJSON Feature."""
    return {
        "type": "Feature",
        "properties": {
            "id": region.id,
            "name": region.name,
            "stusps": region.code,
        },
        "geometry": region.geometry,
    }


def resolved_feature(resolved: db_models.ResolvedRegion) -> dict[str, Any]:
    """Render a resolved location, tagged with its tier, as a Feature."""
    region = resolved.region
    return {
        "type": "Feature",
        "properties": {
            "id": region.id,
            "name": region.name,
            "code": region.code,
            "level": resolved.level,
            "query": resolved.query,
        },
        "geometry": region.geometry,
    }
