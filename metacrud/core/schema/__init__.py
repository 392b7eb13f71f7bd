"""
API schema.

The schema is the single source of truth for entities, persistence and
routes. It is validated with pydantic and can live in a JSON file or in the
configuration tables handled by ``SchemaRepository``.
"""

from .models import ApiSchema, EntitySchema, PropertySchema, RouteSchema, TableSchema
from .repository import SchemaRepository

__all__ = [
    "ApiSchema",
    "EntitySchema",
    "PropertySchema",
    "RouteSchema",
    "SchemaRepository",
    "TableSchema",
]
