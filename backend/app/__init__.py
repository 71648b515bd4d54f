"""App package initializer for the drawn polygon and region lookup service.

The service stores user-drawn map polygons per agent/user pair in PostGIS
and looks up named regions (countries, US states, cities, urban areas).
Every geometry it stores or returns is GeoJSON in EPSG:4326.

- Replace-on-write storage of drawing sets, one record per agent/user pair
- Per agent/user statistics over the stored records
- Location resolution through a fixed country, state, city, urban area chain
- PostGIS store handle opened at startup and closed at shutdown, injected
  into endpoints through FastAPI dependencies for testability

See README and module sub-docstrings for details on architecture and usage.
"""
