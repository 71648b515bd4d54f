"""Unit tests for app.services.resolver.LocationResolver.

Checks the tier order (country exact, country substring, state, city,
urban area), that unmatched or failing names are dropped without failing
the batch, and that output follows input order.
"""

from __future__ import annotations

import psycopg2
import pytest

from app.db import database
from app.db import models as db_models
from app.services import countries, resolver


class _BrokenCityStore(database.InMemoryStore):
    def find_city(self, name: str) -> db_models.Region | None:
        raise psycopg2.OperationalError("server closed the connection")


def _levels(matches: list[db_models.ResolvedRegion]) -> list[tuple[str, str]]:
    return [(m.region.name, m.level) for m in matches]


def test_each_tier_resolves(
    store: database.InMemoryStore,
    country_index: countries.CountryIndex,
) -> None:
    """Test one name per tier resolves to the expected level."""
    location_resolver = resolver.LocationResolver(country_index, store)
    matches = location_resolver.resolve(
        ["France", "Zealand", "Texas", "Springfield", "Atlan"]
    )
    assert _levels(matches) == [
        ("France", "country"),
        ("New Zealand", "country"),
        ("Texas", "state"),
        ("Springfield", "city"),
        ("Atlanta, GA", "urban_area"),
    ]
    assert [m.query for m in matches] == [
        "France", "Zealand", "Texas", "Springfield", "Atlan"
    ]


def test_country_wins_over_state(
    store: database.InMemoryStore,
    country_index: countries.CountryIndex,
) -> None:
    """Test a name that is both a country and a state resolves as country."""
    assert store.find_state("Georgia") is not None
    match = resolver.LocationResolver(country_index, store).resolve_one("Georgia")
    assert match is not None
    assert match.level == "country"
    assert match.region.id == "GEO"


@pytest.mark.parametrize(
    ("query", "name"),
    [
        ("India", "India"),
        ("United States", "United States of America"),
        ("USA", "United States of America"),
        ("China", "China"),
    ],
)
def test_country_wins_over_urban_area_prefix(
    store: database.InMemoryStore,
    country_index: countries.CountryIndex,
    query: str,
    name: str,
) -> None:
    """Test large countries resolve as countries, not urban area prefixes."""
    store.urban_areas.append(
        db_models.Region(22, "Indianapolis, IN", None,
                         {"type": "Point", "coordinates": [-86.2, 39.8]})
    )
    match = resolver.LocationResolver(country_index, store).resolve_one(query)
    assert match is not None
    assert (match.region.name, match.level) == (name, "country")


def test_state_postal_code(
    store: database.InMemoryStore,
    country_index: countries.CountryIndex,
) -> None:
    """Test state postal codes resolve case-insensitively."""
    match = resolver.LocationResolver(country_index, store).resolve_one("tx")
    assert match is not None
    assert (match.region.name, match.level) == ("Texas", "state")


def test_unmatched_and_invalid_names_are_dropped(
    store: database.InMemoryStore,
    country_index: countries.CountryIndex,
) -> None:
    """Test misses and non-text entries vanish from the result."""
    matches = resolver.LocationResolver(country_index, store).resolve(
        ["xyzzy-nowhere", 42, "  ", None, "France"]
    )
    assert _levels(matches) == [("France", "country")]


def test_all_unmatched_returns_empty(
    store: database.InMemoryStore,
    country_index: countries.CountryIndex,
) -> None:
    """Test a batch of misses yields an empty list rather than raising."""
    location_resolver = resolver.LocationResolver(country_index, store)
    assert location_resolver.resolve(["qwxz", "zzqq"]) == []


def test_lookup_errors_drop_only_that_name(
    country_index: countries.CountryIndex,
) -> None:
    """Test a database error in one lookup does not fail the batch."""
    store = _BrokenCityStore(
        states=[
            db_models.Region(1, "Texas", "TX",
                             {"type": "Point", "coordinates": [-99, 31]}),
        ]
    )
    matches = resolver.LocationResolver(country_index, store).resolve(
        ["Springfield", "Texas"]
    )
    assert _levels(matches) == [("Texas", "state")]
