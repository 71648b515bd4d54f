"""Tests for the FastAPI main application factory and health checks.

This module validates that:
    - The FastAPI app is correctly instantiated via main.create_app,
    - OpenAPI metadata (title, version) matches the project contract,
    - Polygon and region routes are registered,
    - The ``/`` health check reports database time or a 500,
    - The lifespan handler opens the store and closes it on shutdown,
    - The app still starts and reports unhealthy when PostGIS is down,
    - Request validation failures surface as HTTP 400.
"""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, cast

import psycopg2
from fastapi import testclient

from app import main
from app.api import dependencies
from app.core import config
from app.db import database

if TYPE_CHECKING:
    import pytest


class _FailingStore(database.InMemoryStore):
    def now(self) -> datetime.datetime:
        raise database.StoreError("PostGIS store is closed")


class _RecordingStore(database.InMemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.events: list[str] = []

    def open(self) -> None:
        self.events.append("open")

    def close(self) -> None:
        self.events.append("close")


def test_create_app() -> None:
    """Test that create_app returns a configured FastAPI instance."""
    app = main.create_app()
    assert app is not None
    assert app.title == "Polygon Service"
    assert app.version == "0.1.0"


def test_app_includes_routers() -> None:
    """Test that all API routes are included in the app."""
    app = main.create_app()
    routes: list[str] = [
        cast(str, getattr(route, "path", ""))
        for route in app.routes  # type: ignore[attr-defined]
        if hasattr(route, "path")
    ]
    for path in (
        "/",
        "/polygons",
        "/polygons/{record_id}",
        "/polygons/agent/{agent_id}/user/{user_id}",
        "/stats",
        "/states",
        "/locations-geojson",
    ):
        assert path in routes


def test_health_endpoint(client: testclient.TestClient) -> None:
    """Test the health check returns ok status and the database time."""
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert datetime.datetime.fromisoformat(body["time"])


def test_health_endpoint_db_failure() -> None:
    """Test the health check reports a generic 500 when the store fails."""
    app = main.create_app()
    app.dependency_overrides[dependencies.get_store] = lambda: _FailingStore()
    try:
        response = testclient.TestClient(app).get("/")
        assert response.status_code == 500
        assert response.json() == {"detail": "DB connection failed"}
    finally:
        app.dependency_overrides.clear()


def test_lifespan_opens_and_closes_store(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test the store handle lives exactly as long as the application."""
    store = _RecordingStore()

    def fake_create_store(_settings: config.Settings) -> _RecordingStore:
        return store

    monkeypatch.setattr(database, "create_store", fake_create_store)

    app = main.create_app()
    with testclient.TestClient(app) as client:
        assert store.events == ["open"]
        assert app.state.store is store
        assert len(app.state.country_index) > 0
        assert client.get("/").status_code == 200
    assert store.events == ["open", "close"]


def test_app_starts_when_database_is_down(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Test a failed connect at startup surfaces through the health check."""
    attempts: list[str] = []

    def refuse(_minconn: int, _maxconn: int, dsn: str) -> None:
        attempts.append(dsn)
        raise psycopg2.OperationalError("could not connect to server")

    monkeypatch.setattr(database.psycopg2.pool, "ThreadedConnectionPool", refuse)

    app = main.create_app()
    with testclient.TestClient(app) as client:
        assert isinstance(app.state.store, database.PostgisStore)
        response = client.get("/")
        assert response.status_code == 500
        assert response.json() == {"detail": "DB connection failed"}
    # One attempt at startup and one more for the health check.
    assert len(attempts) == 2


def test_validation_error_is_bad_request(
    client: testclient.TestClient,
) -> None:
    """Test malformed path parameters are reported as 400, not 422."""
    response = client.get("/polygons/not-a-number")
    assert response.status_code == 400
    assert response.json() == {"detail": "Invalid request"}
