"""
Property Descriptors.

A ``PropertyDescriptor`` is the immutable description of one entity field:
its label, resolved type, direction, primary-key and required flags,
nullability and the role levels allowed to see it. Descriptors are built once
per entity type when the registry is assembled.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Collection, FrozenSet, Iterable, Mapping, Optional, Sequence, Union

from metacrud.core.exceptions import InvalidConfigurationError

from .formatters import PassthroughFormatter, TypeFormatter
from .session import SessionInfo, normalize_levels
from .types import PropertyType, TypeKind, resolve_type

LABEL_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")


class Direction(str, Enum):
    IN = "in"
    OUT = "out"
    IN_OUT = "in/out"


@dataclass(frozen=True)
class PropertyDescriptor:
    """Immutable description of one entity property.

    Use ``PropertyDescriptor.create`` to build one from configuration: it
    validates the label, resolves the type and derives the direction.
    """

    label: str
    type: PropertyType
    direction: Direction = Direction.IN_OUT
    nullable: bool = False
    primary_key: bool = False
    required: bool = False
    writable: bool = True
    only_on_single: bool = False
    visible_to: Optional[FrozenSet[int]] = None
    description: Optional[str] = None

    @classmethod
    def create(
        cls,
        label: str,
        type_spec: Union[str, Sequence[str]],
        *,
        formatters: Mapping[str, TypeFormatter],
        entities: Collection[str],
        direction: Direction = Direction.IN_OUT,
        primary_key: bool = False,
        required: bool = False,
        writable: bool = True,
        only_on_single: bool = False,
        visible_to: Optional[Iterable[int]] = None,
        description: Optional[str] = None,
    ) -> "PropertyDescriptor":
        """Validate configuration values and build a descriptor.

        Args:
            label: Property label, letters, digits and hyphens only
            type_spec: Raw type specification (see ``resolve_type``)
            formatters: Registered formatters by name
            entities: Names of the known entity types
            direction: Declared direction, overridden for keys and read-only properties
            primary_key: Whether the property belongs to the primary key
            required: Whether the property must be supplied on creation
            writable: Whether the property has a writer
            only_on_single: Hide the property in list responses
            visible_to: Levels allowed to see the property, ``None`` for everyone
            description: Free text shown in interface descriptions

        Returns:
            The validated descriptor

        Raises:
            InvalidConfigurationError: Invalid label or type, or a writer-less key
        """
        if not isinstance(label, str) or not LABEL_PATTERN.match(label):
            raise InvalidConfigurationError(f"Invalid property label {label!r}")
        try:
            property_type, nullable = resolve_type(type_spec, formatters, entities)
        except InvalidConfigurationError as exc:
            raise InvalidConfigurationError(f"Property '{label}': {exc}") from exc
        if primary_key and not writable:
            raise InvalidConfigurationError(f"Primary key property '{label}' must be writable")

        if primary_key:
            direction = Direction.IN_OUT
        elif not writable:
            direction = Direction.OUT
        return cls(
            label=label,
            type=property_type,
            direction=Direction(direction),
            nullable=nullable,
            primary_key=primary_key,
            required=required and writable,
            writable=writable,
            only_on_single=only_on_single,
            visible_to=normalize_levels(visible_to),
            description=description,
        )

    @property
    def readable(self) -> bool:
        return self.direction is not Direction.IN

    @property
    def is_read_only(self) -> bool:
        return self.direction is Direction.OUT

    @property
    def is_write_only(self) -> bool:
        return self.direction is Direction.IN

    def visible_for(self, session: SessionInfo) -> bool:
        return session.has_level(self.visible_to)

    @property
    def basic_formatter(self) -> PassthroughFormatter:
        return PassthroughFormatter(self.type.scalars, self.nullable)

    @property
    def formatter(self) -> Optional[TypeFormatter]:
        return self.type.formatter if self.type.kind is TypeKind.FORMATTED else None

    def definition(self) -> str:
        """Short direction tag shown in interface descriptions."""
        if self.primary_key:
            text = "(PriKey)"
        elif self.direction is Direction.IN_OUT:
            text = "(in/out)"
        elif self.direction is Direction.OUT:
            text = "(out)"
        else:
            text = "(in)"
        if self.only_on_single:
            text += " [!list]"
        return text

    def summary(self, types: Any) -> dict:
        entry = {"required": self.required, "def": self.definition(), "types": types}
        if self.description:
            entry["description"] = self.description
        return entry
