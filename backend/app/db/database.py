"""Spatial store client for drawn polygons and reference regions."""

from __future__ import annotations

import contextlib
import datetime
import itertools
import json
import threading
from typing import TYPE_CHECKING, Any, Protocol, cast

import psycopg2.extras
import psycopg2.pool
from psycopg2 import sql
from shapely import geometry as shapely_geometry

from app.core import log
from app.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from app.core import config

logger = log.get_logger(__name__)

_EPOCH = datetime.datetime(1970, 1, 1, tzinfo=datetime.UTC)


class StoreError(RuntimeError):
    """Raised when the store cannot serve a request (e.g. pool closed)."""


class PolygonStoreProtocol(Protocol):
    """Protocol interface for storing and retrieving drawn polygon sets.

    Implementations provide persistence for PolygonRecord objects,
    supporting both in-memory (testing) and PostGIS (production) backends.
    """

    def now(self) -> datetime.datetime: ...

    def save_replace(
        self,
        name: str,
        geometry: db_models.Geometry,
        agent_id: str | None,
        user_id: str | None,
        properties: dict[str, Any],
    ) -> int: ...

    def intersecting_states(self, geometry: db_models.Geometry) -> list[str]: ...

    def list(
        self,
        agent_id: str | None = None,
        user_id: str | None = None,
    ) -> Iterable[db_models.PolygonRecord]: ...

    def get(self, record_id: int) -> db_models.PolygonRecord | None: ...

    def delete(self, record_id: int) -> db_models.DeletedRecord | None: ...

    def delete_for(
        self,
        agent_id: str,
        user_id: str,
    ) -> list[db_models.DeletedRecord]: ...

    def stats(self) -> list[db_models.AgentUserStats]: ...


class RegionStoreProtocol(Protocol):
    """Protocol interface for the read-only reference region tables."""

    def states_by_names(self, names: list[str]) -> list[db_models.Region]: ...

    def find_state(self, name: str) -> db_models.Region | None: ...

    def find_city(self, name: str) -> db_models.Region | None: ...

    def find_urban_area(self, name: str) -> db_models.Region | None: ...


class StoreProtocol(PolygonStoreProtocol, RegionStoreProtocol, Protocol):
    """Everything the HTTP layer needs from a spatial store."""


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only matches literally."""
    return (
        value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )


def _table(name: str) -> sql.Identifier:
    """Quote a possibly schema-qualified table name."""
    return sql.Identifier(*name.split("."))


class InMemoryStore(StoreProtocol):
    """Simple in-memory store for tests and local development.

    Reference regions are supplied up front; polygon records live in a
    dictionary and are lost when the process exits. Spatial intersection is
    computed with shapely instead of PostGIS.
    """

    def __init__(
        self,
        states: Iterable[db_models.Region] = (),
        cities: Iterable[db_models.Region] = (),
        urban_areas: Iterable[db_models.Region] = (),
    ) -> None:
        """Initialize an empty polygon store over fixed reference regions.

        Args:
            states: State regions; ``code`` holds the postal abbreviation.
            cities: City/place regions.
            urban_areas: Urban area regions.
        """
        self._records: dict[int, db_models.PolygonRecord] = {}
        self._ids = itertools.count(1)
        self.states = list(states)
        self.cities = list(cities)
        self.urban_areas = list(urban_areas)

    def now(self) -> datetime.datetime:
        return datetime.datetime.now(tz=datetime.UTC)

    def save_replace(
        self,
        name: str,
        geometry: db_models.Geometry,
        agent_id: str | None,
        user_id: str | None,
        properties: dict[str, Any],
    ) -> int:
        for record in list(self._records.values()):
            if record.agent_id == agent_id and record.user_id == user_id:
                del self._records[record.id]

        record_id = next(self._ids)
        self._records[record_id] = db_models.PolygonRecord(
            id=record_id,
            name=name,
            agent_id=agent_id,
            user_id=user_id,
            properties=dict(properties),
            geometry=geometry,
        )
        return record_id

    def intersecting_states(self, geometry: db_models.Geometry) -> list[str]:
        drawn = shapely_geometry.shape(geometry)
        return sorted(
            state.name
            for state in self.states
            if shapely_geometry.shape(state.geometry).intersects(drawn)
        )

    def list(
        self,
        agent_id: str | None = None,
        user_id: str | None = None,
    ) -> Iterable[db_models.PolygonRecord]:
        records = [
            record
            for record in self._records.values()
            if (agent_id is None or record.agent_id == agent_id)
            and (user_id is None or record.user_id == user_id)
        ]
        return sorted(
            records,
            key=lambda r: (r.created_at, r.id),
            reverse=True,
        )

    def get(self, record_id: int) -> db_models.PolygonRecord | None:
        return self._records.get(record_id)

    def delete(self, record_id: int) -> db_models.DeletedRecord | None:
        record = self._records.pop(record_id, None)
        if record is None:
            return None
        return db_models.DeletedRecord(
            id=record.id,
            name=record.name,
            agent_id=record.agent_id,
            user_id=record.user_id,
        )

    def delete_for(
        self,
        agent_id: str,
        user_id: str,
    ) -> list[db_models.DeletedRecord]:
        deleted = []
        for record in list(self._records.values()):
            if record.agent_id == agent_id and record.user_id == user_id:
                del self._records[record.id]
                deleted.append(
                    db_models.DeletedRecord(id=record.id, name=record.name)
                )
        return deleted

    def stats(self) -> list[db_models.AgentUserStats]:
        groups: dict[
            tuple[str | None, str | None], list[db_models.PolygonRecord]
        ] = {}
        for record in self._records.values():
            groups.setdefault((record.agent_id, record.user_id), []).append(
                record
            )

        result = []
        for (agent_id, user_id), records in groups.items():
            counts = [
                int(r.properties["featureCount"])
                for r in records
                if r.properties.get("featureCount") is not None
            ]
            result.append(
                db_models.AgentUserStats(
                    agent_id=agent_id,
                    user_id=user_id,
                    total_records=len(records),
                    last_updated=max(r.created_at for r in records),
                    total_features=sum(counts) if counts else None,
                )
            )
        return sorted(
            result,
            key=lambda s: s.last_updated or _EPOCH,
            reverse=True,
        )

    def states_by_names(self, names: list[str]) -> list[db_models.Region]:
        wanted = set(names)
        return [state for state in self.states if state.name in wanted]

    def find_state(self, name: str) -> db_models.Region | None:
        needle = name.lower()
        for state in self.states:
            if state.name.lower() == needle or (
                state.code is not None and state.code.lower() == needle
            ):
                return state
        return None

    def find_city(self, name: str) -> db_models.Region | None:
        needle = name.lower()
        for city in self.cities:
            if city.name.lower() == needle:
                return city
        return None

    def find_urban_area(self, name: str) -> db_models.Region | None:
        needle = name.lower()
        matches = [
            area
            for area in self.urban_areas
            if area.name.lower().startswith(needle)
        ]
        return min(matches, key=lambda a: a.name) if matches else None


class PostgisStore(StoreProtocol):
    """PostgreSQL/PostGIS-backed store using a bounded connection pool.

    The pool is created by ``open()`` and released by ``close()``; the
    application calls both from its lifespan handler, so the store is an
    explicit handle passed to request handlers rather than module state.
    A store that could not connect at startup opens on first use instead.
    Checkouts are bounded by ``pool_max_size``: callers beyond that wait
    for a connection to come back rather than failing with ``PoolError``.
    Geometries are written with ``ST_SetSRID(ST_GeomFromGeoJSON(..), 4326)``
    and read back with ``ST_AsGeoJSON``.

    Expected schema for the table this service owns::

        CREATE TABLE user_polygons (
          id SERIAL PRIMARY KEY,
          name TEXT,
          agent_id TEXT,
          user_id TEXT,
          properties JSONB DEFAULT '{}'::jsonb,
          geom geometry(Geometry, 4326),
          created_at TIMESTAMPTZ DEFAULT now(),
          updated_at TIMESTAMPTZ DEFAULT now()
        );
    """

    RECORD_COLUMNS = """
        id, name, agent_id, user_id, properties, created_at, updated_at,
        ST_AsGeoJSON(geom) AS geometry
    """

    def __init__(self, settings: config.Settings) -> None:
        """Initialize the store without connecting.

        Args:
            settings: Application settings containing the database URL,
                pool bounds and reference table names.
        """
        self.settings = settings
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._closed = False
        self._open_lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(settings.pool_max_size)

    def open(self) -> None:
        """Create the connection pool.

        Raises:
            psycopg2.Error: If the initial connections cannot be made.
        """
        with self._open_lock:
            if self._pool is not None:
                return
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                self.settings.pool_min_size,
                self.settings.pool_max_size,
                self.settings.database_url,
            )
            self._closed = False
        logger.info(
            "Opened PostGIS pool (min=%d, max=%d)",
            self.settings.pool_min_size,
            self.settings.pool_max_size,
        )

    def close(self) -> None:
        """Close every pooled connection."""
        self._closed = True
        if self._pool is None:
            return
        self._pool.closeall()
        self._pool = None
        logger.info("Closed PostGIS pool")

    @contextlib.contextmanager
    def _cursor(self) -> Iterator[psycopg2.extras.RealDictCursor]:
        """Borrow a pooled connection and yield a dict cursor.

        Waits while every connection is checked out. The transaction commits
        when the block exits cleanly and rolls back when it raises; the
        connection always goes back to the pool.
        """
        if self._closed:
            raise StoreError("PostGIS store is closed")
        if self._pool is None:
            self.open()
        pool = cast(psycopg2.pool.ThreadedConnectionPool, self._pool)
        with self._slots:
            conn = pool.getconn()
            try:
                with conn, conn.cursor(
                    cursor_factory=psycopg2.extras.RealDictCursor
                ) as cur:
                    yield cur
            finally:
                pool.putconn(conn)

    def now(self) -> datetime.datetime:
        with self._cursor() as cur:
            cur.execute("SELECT NOW() AS now")
            row = cast(dict[str, Any], cur.fetchone())
        return cast(datetime.datetime, row["now"])

    def save_replace(
        self,
        name: str,
        geometry: db_models.Geometry,
        agent_id: str | None,
        user_id: str | None,
        properties: dict[str, Any],
    ) -> int:
        with self._cursor() as cur:
            cur.execute(
                "DELETE FROM user_polygons WHERE agent_id = %s AND user_id = %s",
                (agent_id, user_id),
            )
            cur.execute(
                """
                INSERT INTO user_polygons (name, geom, agent_id, user_id,
                                           properties)
                VALUES (%s, ST_SetSRID(ST_GeomFromGeoJSON(%s), 4326), %s, %s,
                        %s)
                RETURNING id
                """,
                (
                    name,
                    json.dumps(geometry),
                    agent_id,
                    user_id,
                    psycopg2.extras.Json(properties),
                ),
            )
            row = cast(dict[str, Any], cur.fetchone())
        return int(row["id"])

    def intersecting_states(self, geometry: db_models.Geometry) -> list[str]:
        query = sql.SQL(
            """
            SELECT name FROM {table}
            WHERE ST_Intersects(
                geom, ST_SetSRID(ST_GeomFromGeoJSON(%s), 4326)
            )
            ORDER BY name
            """
        ).format(table=_table(self.settings.state_table))
        with self._cursor() as cur:
            cur.execute(query, (json.dumps(geometry),))
            return [str(row["name"]) for row in cur.fetchall()]

    def list(
        self,
        agent_id: str | None = None,
        user_id: str | None = None,
    ) -> Iterable[db_models.PolygonRecord]:
        conditions: list[str] = []
        params: list[str] = []
        if agent_id:
            conditions.append("agent_id = %s")
            params.append(agent_id)
        if user_id:
            conditions.append("user_id = %s")
            params.append(user_id)

        query = f"SELECT {self.RECORD_COLUMNS} FROM user_polygons"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY created_at DESC"

        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [
            self._record_from_row(cast(dict[str, Any], row)) for row in rows
        ]

    def get(self, record_id: int) -> db_models.PolygonRecord | None:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT {self.RECORD_COLUMNS} FROM user_polygons WHERE id = %s",
                (record_id,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return self._record_from_row(cast(dict[str, Any], row))

    def delete(self, record_id: int) -> db_models.DeletedRecord | None:
        with self._cursor() as cur:
            cur.execute(
                """
                DELETE FROM user_polygons WHERE id = %s
                RETURNING id, name, agent_id, user_id
                """,
                (record_id,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return db_models.DeletedRecord(**cast(dict[str, Any], row))

    def delete_for(
        self,
        agent_id: str,
        user_id: str,
    ) -> list[db_models.DeletedRecord]:
        with self._cursor() as cur:
            cur.execute(
                """
                DELETE FROM user_polygons
                WHERE agent_id = %s AND user_id = %s
                RETURNING id, name
                """,
                (agent_id, user_id),
            )
            rows = cur.fetchall()
        return [
            db_models.DeletedRecord(**cast(dict[str, Any], row)) for row in rows
        ]

    def stats(self) -> list[db_models.AgentUserStats]:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT
                  agent_id,
                  user_id,
                  COUNT(*) AS total_records,
                  MAX(created_at) AS last_updated,
                  SUM((properties->>'featureCount')::int) AS total_features
                FROM user_polygons
                GROUP BY agent_id, user_id
                ORDER BY last_updated DESC
                """
            )
            rows = cur.fetchall()
        return [
            db_models.AgentUserStats(**cast(dict[str, Any], row))
            for row in rows
        ]

    def states_by_names(self, names: list[str]) -> list[db_models.Region]:
        query = sql.SQL(
            """
            SELECT gid, name, stusps AS code, ST_AsGeoJSON(geom) AS geometry
            FROM {table}
            WHERE name = ANY(%s)
            """
        ).format(table=_table(self.settings.state_table))
        with self._cursor() as cur:
            cur.execute(query, (list(names),))
            rows = cur.fetchall()
        return [
            self._region_from_row(cast(dict[str, Any], row)) for row in rows
        ]

    def find_state(self, name: str) -> db_models.Region | None:
        return self._find_one(
            """
            SELECT gid, name, stusps AS code, ST_AsGeoJSON(geom) AS geometry
            FROM {table}
            WHERE lower(name) = lower(%s) OR lower(stusps) = lower(%s)
            ORDER BY gid
            LIMIT 1
            """,
            self.settings.state_table,
            (name, name),
        )

    def find_city(self, name: str) -> db_models.Region | None:
        return self._find_one(
            """
            SELECT gid, name, NULL AS code, ST_AsGeoJSON(geom) AS geometry
            FROM {table}
            WHERE lower(name) = lower(%s)
            ORDER BY gid
            LIMIT 1
            """,
            self.settings.city_table,
            (name,),
        )

    def find_urban_area(self, name: str) -> db_models.Region | None:
        return self._find_one(
            """
            SELECT gid, name, NULL AS code, ST_AsGeoJSON(geom) AS geometry
            FROM {table}
            WHERE name ILIKE %s
            ORDER BY name
            LIMIT 1
            """,
            self.settings.urban_area_table,
            (_escape_like(name) + "%",),
        )

    def _find_one(
        self,
        template: str,
        table: str,
        params: tuple[str, ...],
    ) -> db_models.Region | None:
        query = sql.SQL(template).format(table=_table(table))
        with self._cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        if row is None:
            return None
        return self._region_from_row(cast(dict[str, Any], row))

    @staticmethod
    def _record_from_row(row: dict[str, Any]) -> db_models.PolygonRecord:
        """Convert a user_polygons row to a PolygonRecord.

        Args:
            row: Dictionary from a RealDictCursor; ``geometry`` holds the
                ``ST_AsGeoJSON`` text and ``properties`` either a decoded
                JSONB object or its text form.

        Returns:
            PolygonRecord with geometry parsed into a dictionary.
        """
        properties = row.get("properties") or {}
        if isinstance(properties, str):
            properties = json.loads(properties)
        return db_models.PolygonRecord(
            id=int(row["id"]),
            name=row["name"],
            agent_id=row.get("agent_id"),
            user_id=row.get("user_id"),
            properties=properties,
            geometry=json.loads(row["geometry"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _region_from_row(row: dict[str, Any]) -> db_models.Region:
        """Convert a reference table row to a Region."""
        return db_models.Region(
            id=row["gid"],
            name=str(row["name"]),
            code=row.get("code"),
            geometry=json.loads(row["geometry"]),
        )


def create_store(settings: config.Settings) -> PostgisStore:
    """Factory function to create the production store.

    Args:
        settings: Application settings for database connection.

    Returns:
        PostgisStore instance; callers must ``open()`` it before use.
    """
    return PostgisStore(settings)
