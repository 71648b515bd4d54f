"""Static country boundary index.

The service ships a GeoJSON FeatureCollection of country boundaries using
Natural Earth property names (``ADMIN``, ``NAME``, ``ISO_A3`` ...). The
index is built once at startup and answers two kinds of name lookups:

- ``exact``: case-insensitive equality against any of the name and code
  fields in ``EXACT_FIELDS``.
- ``contains``: case-insensitive substring match of the query inside one of
  the descriptive name fields in ``FUZZY_FIELDS``. The first feature in
  dataset order wins, so ties are resolved by file order only.

Example:
    >>> from app.services.countries import CountryIndex
    >>> index = CountryIndex.from_path(settings.countries_path)
    >>> index.exact("fra").name
    'France'
"""

from __future__ import annotations

import dataclasses
import json
from typing import TYPE_CHECKING, Any

from app.core import log
from app.db import models as db_models

if TYPE_CHECKING:
    import pathlib

logger = log.get_logger(__name__)

EXACT_FIELDS = (
    "ADMIN",
    "NAME",
    "NAME_LONG",
    "FORMAL_EN",
    "ABBREV",
    "SOVEREIGNT",
    "BRK_NAME",
    "ISO_A2",
    "ISO_A3",
    "ADM0_A3",
    "POSTAL",
)
FUZZY_FIELDS = ("ADMIN", "NAME", "NAME_LONG", "FORMAL_EN")

# Natural Earth marks missing codes with "-99".
_MISSING = {"", "-99"}


@dataclasses.dataclass
class _Entry:
    region: db_models.Region
    exact_names: frozenset[str]
    fuzzy_names: tuple[str, ...]


def _names(properties: dict[str, Any], fields: tuple[str, ...]) -> list[str]:
    names = []
    for field in fields:
        value = properties.get(field)
        if value is None:
            continue
        text = str(value).strip().lower()
        if text not in _MISSING:
            names.append(text)
    return names


class CountryIndex:
    """In-memory lookup over the bundled country features."""

    def __init__(self, features: list[dict[str, Any]]) -> None:
        """Index GeoJSON features in the given order.

        Args:
            features: GeoJSON Feature dictionaries with Natural Earth
                style properties.

        Raises:
            ValueError: If a feature has no geometry or no usable name.
        """
        self._entries: list[_Entry] = []
        for position, feature in enumerate(features):
            properties = feature.get("properties") or {}
            geometry = feature.get("geometry")
            exact = _names(properties, EXACT_FIELDS)
            if not geometry or not exact:
                raise ValueError(
                    f"Country feature #{position} lacks a geometry or name"
                )
            iso_a2 = properties.get("ISO_A2")
            codes = [
                properties.get(field)
                for field in ("ISO_A3", "ADM0_A3")
                if properties.get(field) not in _MISSING | {None}
            ]
            region = db_models.Region(
                id=str(codes[0]) if codes else str(position),
                name=str(
                    properties.get("ADMIN") or properties.get("NAME") or exact[0]
                ),
                code=None if iso_a2 in _MISSING else iso_a2,
                geometry=geometry,
            )
            self._entries.append(
                _Entry(
                    region=region,
                    exact_names=frozenset(exact),
                    fuzzy_names=tuple(_names(properties, FUZZY_FIELDS)),
                )
            )

    @classmethod
    def from_path(cls, path: pathlib.Path) -> CountryIndex:
        """Load the index from a GeoJSON FeatureCollection file.

        Args:
            path: Location of the dataset.

        Returns:
            Populated CountryIndex.

        Raises:
            OSError: If the file cannot be read.
            ValueError: If the file is not a FeatureCollection.
        """
        with path.open(encoding="utf-8") as handle:
            data = json.load(handle)
        if data.get("type") != "FeatureCollection":
            raise ValueError(f"{path} is not a GeoJSON FeatureCollection")
        index = cls(data.get("features") or [])
        logger.info("Loaded %d country features from %s", len(index), path)
        return index

    def __len__(self) -> int:
        return len(self._entries)

    def exact(self, name: str) -> db_models.Region | None:
        """Return the first country whose name or code equals ``name``."""
        needle = name.strip().lower()
        if not needle:
            return None
        for entry in self._entries:
            if needle in entry.exact_names:
                return entry.region
        return None

    def contains(self, name: str) -> db_models.Region | None:
        """Return the first country with a name field containing ``name``."""
        needle = name.strip().lower()
        if not needle:
            return None
        for entry in self._entries:
            if any(needle in candidate for candidate in entry.fuzzy_names):
                return entry.region
        return None
