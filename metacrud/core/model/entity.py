"""
Entity Model.

``EntityType`` holds the descriptors of one entity (in declaration order) and
``Entity`` is a per-request bag of values accessed through ``get``/``set``.
Entities serialize to and deserialize from flat JSON maps while honouring
property direction, visibility by role and the FULL/SHORT versions.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from metacrud.core.exceptions import RequestParsingError, RequiredPropertyError

from .descriptor import Direction, PropertyDescriptor
from .session import ANONYMOUS, SessionInfo
from .types import TypeKind

if TYPE_CHECKING:
    from metacrud.core.registry import EntityRegistry


class Version(str, Enum):
    FULL = "full"
    SHORT = "short"


class EntityType:
    """Descriptors and hooks shared by every entity of one type."""

    def __init__(
        self,
        name: str,
        descriptors: Sequence[PropertyDescriptor],
        registry: "EntityRegistry",
        link_templates: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.name = name
        self.descriptors: Tuple[PropertyDescriptor, ...] = tuple(descriptors)
        self.registry = registry
        self.link_templates = dict(link_templates or {})
        self._by_label = {descriptor.label: descriptor for descriptor in self.descriptors}

    def __repr__(self) -> str:
        return f"EntityType({self.name!r})"

    def __iter__(self) -> Iterator[PropertyDescriptor]:
        return iter(self.descriptors)

    def descriptor(self, label: str) -> Optional[PropertyDescriptor]:
        return self._by_label.get(label)

    @property
    def primary_keys(self) -> Tuple[PropertyDescriptor, ...]:
        return tuple(d for d in self.descriptors if d.primary_key)

    @property
    def writable(self) -> Tuple[PropertyDescriptor, ...]:
        return tuple(d for d in self.descriptors if d.writable)

    @property
    def nested_collections(self) -> Tuple[PropertyDescriptor, ...]:
        return tuple(d for d in self.descriptors if d.writable and d.type.kind is TypeKind.ENTITY_LIST)

    def new(self, values: Optional[Mapping[str, Any]] = None) -> "Entity":
        return Entity(self, values)

    def describe(
        self,
        session: SessionInfo = ANONYMOUS,
        only_in: bool = False,
        only_out: bool = False,
        _expanding: FrozenSet[str] = frozenset(),
    ) -> Dict[str, Any]:
        """Interface description of the properties visible to ``session``.

        Nested entities are expanded in place, except an entity already being
        described further up, which is given by name (``"B"`` or ``"B[]"``).

        Args:
            session: Caller whose level decides which properties are listed
            only_in: Only list properties accepted as input
            only_out: Only list properties emitted as output

        Returns:
            Mapping of label to ``{required, def, types[, description]}``
        """
        expanding = _expanding | {self.name}
        result: Dict[str, Any] = {}
        for descriptor in self.descriptors:
            if not descriptor.visible_for(session):
                continue
            if only_in and descriptor.direction is Direction.OUT:
                continue
            if only_out and descriptor.direction is Direction.IN:
                continue
            described = self._describe_type(descriptor, session, only_in, only_out, expanding)
            result[descriptor.label] = descriptor.summary(described)
        return result

    def _describe_type(
        self,
        descriptor: PropertyDescriptor,
        session: SessionInfo,
        only_in: bool,
        only_out: bool,
        expanding: FrozenSet[str],
    ) -> Any:
        kind = descriptor.type.kind
        if kind is TypeKind.ENTITY or kind is TypeKind.ENTITY_LIST:
            target = descriptor.type.target
            if target in expanding:
                return f"{target}[]" if kind is TypeKind.ENTITY_LIST else target
            nested = self.registry.entity_type(target).describe(session, only_in, only_out, expanding)
            return [nested] if kind is TypeKind.ENTITY_LIST else nested
        if kind is TypeKind.FORMATTED:
            return descriptor.type.formatter.description
        names = descriptor.type.names()
        if descriptor.nullable:
            names.append("null")
        return names


class Entity:
    """One entity instance.

    Values are only reachable through ``get`` and ``set``, which reject
    unknown labels and writes to properties without a writer.
    """

    __slots__ = ("entity_type", "_values")

    def __init__(self, entity_type: EntityType, values: Optional[Mapping[str, Any]] = None) -> None:
        self.entity_type = entity_type
        self._values: Dict[str, Any] = {}
        for label, value in (values or {}).items():
            self.set(label, value)

    def __repr__(self) -> str:
        return f"Entity({self.entity_type.name!r}, {self._values!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return self.entity_type is other.entity_type and self._values == other._values

    def _descriptor(self, label: str) -> PropertyDescriptor:
        descriptor = self.entity_type.descriptor(label)
        if descriptor is None:
            raise KeyError(f"{self.entity_type.name} has no property '{label}'")
        return descriptor

    def get(self, label: str) -> Any:
        self._descriptor(label)
        return self._values.get(label)

    def set(self, label: str, value: Any) -> None:
        if not self._descriptor(label).writable:
            raise AttributeError(f"Property '{label}' of {self.entity_type.name} is read-only")
        self._values[label] = value

    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    def links(self) -> Dict[str, str]:
        """Links built from the entity type's templates.

        Templates use ``str.format`` fields named after property labels; a
        template referring to a property without value is skipped.
        """
        available = {label: value for label, value in self._values.items() if value is not None}
        links: Dict[str, str] = {}
        for name, template in self.entity_type.link_templates.items():
            try:
                links[name] = template.format(**available)
            except KeyError:
                continue
        return links

    def serialize(
        self, version: Version = Version.FULL, session: SessionInfo = ANONYMOUS, print_links: bool = False
    ) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for descriptor in self.entity_type.descriptors:
            if not descriptor.readable or not descriptor.visible_for(session):
                continue
            if descriptor.only_on_single and version is Version.SHORT:
                continue
            value = self._values.get(descriptor.label)
            if value is None and not descriptor.required:
                continue
            result[descriptor.label] = self._format(descriptor, value, version, session, print_links)
        if print_links:
            links = self.links()
            if links:
                result["links"] = links
        return result

    @staticmethod
    def _format(
        descriptor: PropertyDescriptor, value: Any, version: Version, session: SessionInfo, print_links: bool
    ) -> Any:
        kind = descriptor.type.kind
        if value is None:
            return None
        if kind is TypeKind.ENTITY:
            return value.serialize(version, session, print_links)
        if kind is TypeKind.ENTITY_LIST:
            return [item.serialize(version, session, print_links) for item in value]
        if kind is TypeKind.FORMATTED:
            return descriptor.type.formatter.format(value)
        return descriptor.basic_formatter.format(value)

    def deserialize(
        self,
        data: Mapping[str, Any],
        session: SessionInfo = ANONYMOUS,
        *,
        partial: bool = False,
        preset: Iterable[str] = (),
    ) -> "Entity":
        """Populate the entity from a parsed request body.

        Args:
            data: Parsed JSON object
            session: Caller; invisible properties are ignored
            partial: Do not complain about missing required properties
            preset: Labels already set by the caller, ignored in ``data``

        Returns:
            The entity itself

        Raises:
            RequestParsingError: A value is null where null is not accepted, or cannot be parsed
            RequiredPropertyError: A required property is absent
        """
        skipped = set(preset)
        for descriptor in self.entity_type.descriptors:
            label = descriptor.label
            if label in skipped or descriptor.is_read_only or not descriptor.visible_for(session):
                continue
            if label in data:
                raw = data[label]
                if raw is None and not descriptor.nullable:
                    raise RequestParsingError(f"The property '{label}' does not accept nulls")
                try:
                    value = None if raw is None else self._parse(descriptor, raw, session)
                except RequestParsingError as exc:
                    raise RequestParsingError(f"Error parsing {label}: {exc.message}") from exc
                self.set(label, value)
            elif descriptor.required and not partial:
                raise RequiredPropertyError(f"Required property not found: {label}")
        return self

    def _parse(self, descriptor: PropertyDescriptor, raw: Any, session: SessionInfo) -> Any:
        kind = descriptor.type.kind
        if kind is TypeKind.ENTITY:
            if not isinstance(raw, Mapping):
                raise RequestParsingError("Expected an object")
            return self.entity_type.registry.entity_type(descriptor.type.target).new().deserialize(raw, session)
        if kind is TypeKind.ENTITY_LIST:
            return self._parse_list(descriptor, raw, session)
        if kind is TypeKind.FORMATTED:
            return descriptor.type.formatter.parse(raw)
        return descriptor.basic_formatter.parse(raw)

    def _parse_list(self, descriptor: PropertyDescriptor, raw: Any, session: SessionInfo) -> List["Entity"]:
        if not isinstance(raw, list) or not all(isinstance(item, Mapping) for item in raw):
            raise RequestParsingError("Expected a list of objects")
        nested_type = self.entity_type.registry.entity_type(descriptor.type.target)
        # parent key labels are stamped by the wrapper DAO
        inherited = [d.label for d in self.entity_type.primary_keys if nested_type.descriptor(d.label) is not None]
        return [nested_type.new().deserialize(item, session, preset=inherited) for item in raw]
