"""
Entity model.

This package describes entities generically: property descriptors and their
resolved types, formatters between internal, wire and storage values, the
entity bag itself and the filter algebra used to query it.
"""

from .descriptor import Direction, PropertyDescriptor
from .entity import Entity, EntityType, Version
from .filters import Comparator, FilterExpression, FilterGroup, FilterGroups, pk_filter_groups
from .formatters import (
    FilterValueAdapter,
    PassthroughFormatter,
    StorageFormatter,
    TypeFormatter,
    default_formatters,
)
from .session import ADMIN, ALL_LEVELS, ANONYMOUS, EVERYONE, NO_SESSION, SessionInfo
from .types import PropertyType, ScalarType, TypeKind, resolve_type

__all__ = [
    "ADMIN",
    "ALL_LEVELS",
    "ANONYMOUS",
    "Comparator",
    "Direction",
    "EVERYONE",
    "Entity",
    "EntityType",
    "FilterExpression",
    "FilterGroup",
    "FilterGroups",
    "FilterValueAdapter",
    "NO_SESSION",
    "PassthroughFormatter",
    "PropertyDescriptor",
    "PropertyType",
    "ScalarType",
    "SessionInfo",
    "StorageFormatter",
    "TypeFormatter",
    "TypeKind",
    "Version",
    "default_formatters",
    "pk_filter_groups",
    "resolve_type",
]
