"""API router subpackage for the polygon service.

Submodules:
    - polygons: Saving, listing, fetching and deleting drawing sets, plus
      per agent/user statistics.
    - regions: US state lookup and free-text location resolution.
    - dependencies: FastAPI dependencies exposing the startup store and
      country index.
    - errors: Translation of backend failures into HTTP responses.
"""
