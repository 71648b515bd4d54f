"""Database interface and store abstractions.

This package holds the data models shared by every layer and the spatial
store client. ``app.db.database`` defines the store protocols together with
the PostGIS-backed implementation used in production and the in-memory
implementation used by the tests.

Example:
    Open a store for the configured database:
        >>> from app.db import database
        >>> store = database.create_store(settings)
        >>> store.open()
"""
