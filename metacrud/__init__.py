"""metacrud.

A metadata-driven REST layer that exposes database-backed entities through
generic CRUD semantics.

High-level architecture
-----------------------

- ``metacrud.core.model``: property descriptors, type resolution, formatters,
  entities and the filter algebra.
- ``metacrud.core.database``: the table-mapping layer and the persistence
  engines (flat and wrapper DAOs) running on SQLAlchemy.
- ``metacrud.core.schema``: the API schema (entities, tables, routes), loaded
  from a JSON file or from configuration tables stored in the database.
- ``metacrud.server``: the FastAPI application, the request router and the
  generic CRUD controller.
"""

__version__ = "0.1.0"
