"""
Property Types.

A property's declared type is a raw string such as ``"integer|boolean"``,
``"Widget"``, ``"Widget[]"``, ``"Date"`` or ``"null|string"``. This module
resolves those strings into the closed ``PropertyType`` variant used by the
rest of the engine, plus an independent nullability flag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Collection, List, Mapping, Optional, Sequence, Tuple, Union

from metacrud.core.exceptions import InvalidConfigurationError

if TYPE_CHECKING:
    from metacrud.core.model.formatters import TypeFormatter

NULL_MARKER = "NULL"
LIST_SUFFIX = "[]"

SYNONYMS = {
    "bool": "boolean",
    "int": "integer",
    "float": "double",
    "str": "string",
    "[]": "array",
    "null": NULL_MARKER,
}


class ScalarType(str, Enum):
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DOUBLE = "double"
    STRING = "string"
    ARRAY = "array"


class TypeKind(str, Enum):
    SCALAR = "scalar"
    ENTITY = "entity"
    ENTITY_LIST = "entity_list"
    FORMATTED = "formatted"


@dataclass(frozen=True)
class PropertyType:
    """Resolved type of a property.

    ``scalars`` is only set for SCALAR types and keeps the declared order, the
    first one being the primary type. ``target`` names the entity for ENTITY
    and ENTITY_LIST and the formatter for FORMATTED.
    """

    kind: TypeKind
    scalars: Tuple[ScalarType, ...] = ()
    target: Optional[str] = None
    formatter: Optional["TypeFormatter"] = field(default=None, compare=False, repr=False)

    @classmethod
    def scalar(cls, *scalars: ScalarType) -> "PropertyType":
        return cls(TypeKind.SCALAR, scalars=tuple(scalars))

    @classmethod
    def entity(cls, name: str) -> "PropertyType":
        return cls(TypeKind.ENTITY, target=name)

    @classmethod
    def entity_list(cls, name: str) -> "PropertyType":
        return cls(TypeKind.ENTITY_LIST, target=name)

    @classmethod
    def formatted(cls, name: str, formatter: "TypeFormatter") -> "PropertyType":
        return cls(TypeKind.FORMATTED, target=name, formatter=formatter)

    @property
    def is_entity(self) -> bool:
        return self.kind in (TypeKind.ENTITY, TypeKind.ENTITY_LIST)

    @property
    def primary(self) -> Optional[ScalarType]:
        return self.scalars[0] if self.scalars else None

    def accepts(self, scalar: ScalarType) -> bool:
        return scalar in self.scalars

    def names(self) -> List[str]:
        """Human readable names used in interface descriptions."""
        if self.kind is TypeKind.SCALAR:
            return [scalar.value for scalar in self.scalars]
        if self.kind is TypeKind.ENTITY_LIST:
            return [f"{self.target}{LIST_SUFFIX}"]
        return [str(self.target)]


def matches_scalar(value: Any, scalar: ScalarType) -> bool:
    """Check a Python value against a scalar type.

    ``bool`` is a subclass of ``int`` in Python, so it is excluded from the
    numeric types explicitly.
    """
    if scalar is ScalarType.BOOLEAN:
        return isinstance(value, bool)
    if scalar is ScalarType.INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if scalar is ScalarType.DOUBLE:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if scalar is ScalarType.STRING:
        return isinstance(value, str)
    return isinstance(value, (list, tuple))


def resolve_name(name: str, candidates: Collection[str]) -> Optional[str]:
    """Find ``name`` among ``candidates`` using the known naming conventions.

    The exact name is tried first, then the last dotted segment (so that
    ``"metacrud.formatters.Date"`` finds ``"Date"``), then a case-insensitive
    match of that segment.

    Args:
        name: Name as written in the configuration
        candidates: Registered names

    Returns:
        The registered name, or ``None`` when nothing matches
    """
    if name in candidates:
        return name
    short = name.rsplit(".", 1)[-1].rsplit("\\", 1)[-1]
    if short in candidates:
        return short
    lowered = short.lower()
    for candidate in candidates:
        if candidate.lower() == lowered:
            return candidate
    return None


def _tokens(spec: Union[str, Sequence[str]]) -> List[str]:
    raw = spec.split("|") if isinstance(spec, str) else list(spec)
    tokens: List[str] = []
    for token in raw:
        token = token.strip()
        if not token:
            raise InvalidConfigurationError(f"Empty type in type specification {spec!r}")
        token = SYNONYMS.get(token, token)
        if token not in tokens:
            tokens.append(token)
    return tokens


def resolve_type(
    spec: Union[str, Sequence[str]],
    formatters: Mapping[str, "TypeFormatter"],
    entities: Collection[str],
) -> Tuple[PropertyType, bool]:
    """Resolve a raw type specification.

    Args:
        spec: ``"|"``-separated string or list of type names
        formatters: Registered formatters by name
        entities: Names of the known entity types

    Returns:
        The resolved type and whether ``null`` is accepted

    Raises:
        InvalidConfigurationError: Empty, mixed or unresolvable specification
    """
    tokens = _tokens(spec)
    nullable = NULL_MARKER in tokens
    tokens = [token for token in tokens if token != NULL_MARKER]
    if not tokens:
        raise InvalidConfigurationError(f"Type specification {spec!r} declares no type")

    basics = {scalar.value for scalar in ScalarType}
    complex_types = [token for token in tokens if token not in basics]
    if not complex_types:
        scalars = [ScalarType(token) for token in tokens]
        if ScalarType.DOUBLE in scalars and ScalarType.INTEGER not in scalars:
            scalars.append(ScalarType.INTEGER)
        return PropertyType.scalar(*scalars), nullable

    if len(tokens) != 1:
        raise InvalidConfigurationError(
            f"Type {complex_types[0]!r} cannot be combined with other types in {spec!r}"
        )
    name = complex_types[0]
    if name.endswith(LIST_SUFFIX):
        entity = resolve_name(name[: -len(LIST_SUFFIX)], entities)
        if entity is None:
            raise InvalidConfigurationError(f"Unknown entity type in {name!r}")
        return PropertyType.entity_list(entity), nullable

    formatter_name = resolve_name(name, formatters.keys())
    if formatter_name is not None:
        return PropertyType.formatted(formatter_name, formatters[formatter_name]), nullable
    entity = resolve_name(name, entities)
    if entity is not None:
        return PropertyType.entity(entity), nullable
    raise InvalidConfigurationError(f"Unknown type {name!r}")
