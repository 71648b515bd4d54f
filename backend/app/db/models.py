"""Data models for stored drawings and reference regions.

This module defines the core data structures passed between the stores,
the location resolver and the API layer. Geometries are kept as parsed
GeoJSON dictionaries in EPSG:4326 (WGS84 longitude/latitude); the service
never handles any other spatial reference system.

Example:
    Creating a PolygonRecord for a saved drawing set:
        >>> from app.db.models import PolygonRecord
        >>> record = PolygonRecord(
        ...     id=1,
        ...     name="Drawing Set for Agent a-1",
        ...     agent_id="a-1",
        ...     user_id="u-1",
        ...     properties={"featureCount": 2},
        ...     geometry={"type": "GeometryCollection", "geometries": []},
        ... )

    Tagging a reference region with the tier that resolved it:
        >>> region = Region(id="FRA", name="France", code="FR",
        ...                 geometry={"type": "Polygon", "coordinates": []})
        >>> resolved = ResolvedRegion(region=region, level="country",
        ...                           query="france")
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any, Literal

Level = Literal["country", "state", "city", "urban_area"]
Geometry = dict[str, Any]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(tz=datetime.UTC)


@dataclasses.dataclass
class PolygonRecord:
    """One saved drawing set for an agent/user pair.

    Attributes:
        id: Database identifier.
        name: Display name of the drawing set.
        agent_id: Agent that owns the drawing set.
        user_id: User the drawing set was made for.
        properties: Free-form JSON object reported by the client. It may
            carry ``featureCount``, the number of drawings in the set.
        geometry: GeoJSON geometry (SRID 4326, SRID not embedded).
        created_at: Insertion timestamp.
        updated_at: Last modification timestamp.
    """

    id: int
    name: str
    agent_id: str | None
    user_id: str | None
    properties: dict[str, Any]
    geometry: Geometry
    created_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)
    updated_at: datetime.datetime = dataclasses.field(default_factory=_utcnow)


@dataclasses.dataclass
class DeletedRecord:
    """Identity of a drawing set removed by a delete operation."""

    id: int
    name: str
    agent_id: str | None = None
    user_id: str | None = None


@dataclasses.dataclass
class AgentUserStats:
    """Aggregate of stored drawing sets for one agent/user pair.

    ``total_features`` is the sum of ``properties.featureCount`` over the
    group, or None when no record in the group reports a count.
    """

    agent_id: str | None
    user_id: str | None
    total_records: int
    last_updated: datetime.datetime | None
    total_features: int | None


@dataclasses.dataclass
class Region:
    """Read-only reference region (country, state, city or urban area)."""

    id: str | int
    name: str
    code: str | None
    geometry: Geometry


@dataclasses.dataclass
class ResolvedRegion:
    """A region together with the resolution tier and query that found it."""

    region: Region
    level: Level
    query: str
