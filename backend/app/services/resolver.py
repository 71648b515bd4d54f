"""Resolve free-text place names to reference regions.

Each name walks a fixed chain of lookups and stops at the first hit:

1. country, exact name or code (static dataset)
2. country, name containing the query (static dataset)
3. US state, exact name or postal code
4. city/place, exact name
5. urban area, name prefix

Names that match nothing are logged and left out of the result, as are
names whose lookup raised a database error. Callers therefore only see the
resolved subset, in input order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import psycopg2

from app.core import log
from app.db import models as db_models

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from app.db import database
    from app.services import countries

logger = log.get_logger(__name__)


class LocationResolver:
    """Walks the country, state, city and urban area tiers in order."""

    def __init__(
        self,
        country_index: countries.CountryIndex,
        regions: database.RegionStoreProtocol,
    ) -> None:
        self.country_index = country_index
        self.regions = regions
        self._tiers: list[
            tuple[db_models.Level, Callable[[str], db_models.Region | None]]
        ] = [
            ("country", country_index.exact),
            ("country", country_index.contains),
            ("state", regions.find_state),
            ("city", regions.find_city),
            ("urban_area", regions.find_urban_area),
        ]

    def resolve_one(self, name: str) -> db_models.ResolvedRegion | None:
        """Resolve a single name, returning None if no tier matches."""
        for level, lookup in self._tiers:
            region = lookup(name)
            if region is not None:
                logger.debug("Resolved %r as %s %r", name, level, region.name)
                return db_models.ResolvedRegion(
                    region=region, level=level, query=name
                )
        return None

    def resolve(self, names: Iterable[object]) -> list[db_models.ResolvedRegion]:
        """Resolve each name independently.

        Args:
            names: Place names; entries that are not non-blank strings are
                skipped.

        Returns:
            Resolved regions for the names that matched, in input order.
        """
        resolved = []
        for raw in names:
            if not isinstance(raw, str) or not raw.strip():
                logger.info("Skipping non-text location %r", raw)
                continue
            name = raw.strip()
            try:
                match = self.resolve_one(name)
            except psycopg2.Error:
                # A failed lookup is reported the same way as a miss.
                logger.warning("Lookup failed for %r", name, exc_info=True)
                continue
            if match is None:
                logger.info("No region found for %r", name)
                continue
            resolved.append(match)
        return resolved
