"""Shared fixtures: an in-memory store, the bundled country index and a client.

The client builds a fresh app per test and injects the in-memory store and
country index through ``app.dependency_overrides``, so no database is needed
and the lifespan handler never runs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
from fastapi import testclient

from app import main
from app.api import dependencies
from app.core import config
from app.db import database
from app.db import models as db_models
from app.services import countries

if TYPE_CHECKING:
    from collections.abc import Iterator


def square(
    min_x: float,
    min_y: float,
    max_x: float,
    max_y: float,
) -> dict[str, Any]:
    """Return a GeoJSON Polygon for an axis aligned rectangle."""
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [min_x, min_y],
                [max_x, min_y],
                [max_x, max_y],
                [min_x, max_y],
                [min_x, min_y],
            ]
        ],
    }


@pytest.fixture
def store() -> database.InMemoryStore:
    """In-memory store with a few states, cities and urban areas."""
    return database.InMemoryStore(
        states=[
            db_models.Region(1, "Texas", "TX", square(-106.6, 25.8, -93.5, 36.5)),
            db_models.Region(2, "Georgia", "GA", square(-85.6, 30.4, -80.8, 35.0)),
            db_models.Region(3, "Oklahoma", "OK", square(-103.0, 33.6, -94.4, 37.0)),
        ],
        cities=[
            db_models.Region(10, "Springfield", None, square(-89.8, 39.7, -89.5, 39.9)),
        ],
        urban_areas=[
            db_models.Region(20, "Austin, TX", None, square(-98.0, 30.1, -97.5, 30.6)),
            db_models.Region(21, "Atlanta, GA", None, square(-84.6, 33.5, -84.2, 34.0)),
        ],
    )


@pytest.fixture(scope="session")
def country_index() -> countries.CountryIndex:
    """Country index loaded from the dataset shipped with the package."""
    return countries.CountryIndex.from_path(config.DEFAULT_COUNTRIES_PATH)


@pytest.fixture
def client(
    store: database.InMemoryStore,
    country_index: countries.CountryIndex,
) -> Iterator[testclient.TestClient]:
    """Test client wired to the in-memory store and bundled country index."""
    app = main.create_app()
    app.dependency_overrides[dependencies.get_store] = lambda: store
    app.dependency_overrides[dependencies.get_country_index] = (
        lambda: country_index
    )
    try:
        yield testclient.TestClient(app)
    finally:
        app.dependency_overrides.clear()
