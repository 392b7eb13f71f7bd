"""
Entity Registry.

Builds, once at startup, every entity type described by an ``ApiSchema``
together with its table mapping, and wires the persistence engines. The
registry is read-only once built and is shared by every request.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from metacrud.core.database.dao import BaseDAO, FlatDAO
from metacrud.core.database.facade import EntityDAO
from metacrud.core.database.storage import Storage
from metacrud.core.database.table_mapping import TableMappingManager
from metacrud.core.database.wrapper_dao import WrapperDAO
from metacrud.core.exceptions import InvalidConfigurationError
from metacrud.core.logging_config import get_logger
from metacrud.core.model.descriptor import PropertyDescriptor
from metacrud.core.model.entity import EntityType
from metacrud.core.model.formatters import TypeFormatter, default_formatters
from metacrud.core.schema.models import ApiSchema, EntitySchema, RouteSchema

logger = get_logger(__name__)


class EntityRegistry:
    """Immutable snapshot of entity types, formatters, mappings and routes.

    Use ``EntityRegistry.from_schema`` to build one.
    """

    def __init__(
        self,
        formatters: Mapping[str, TypeFormatter],
        routes: Tuple[RouteSchema, ...] = (),
    ) -> None:
        self._formatters: Mapping[str, TypeFormatter] = MappingProxyType(dict(formatters))
        self._entity_types: Dict[str, EntityType] = {}
        self._mappings: Dict[str, TableMappingManager] = {}
        self._kinds: Dict[str, str] = {}
        self.routes: Tuple[RouteSchema, ...] = tuple(routes)

    @classmethod
    def from_schema(
        cls, schema: ApiSchema, formatters: Optional[Mapping[str, TypeFormatter]] = None
    ) -> "EntityRegistry":
        """Build every entity type, table mapping and route of ``schema``.

        Entity names are collected first so that properties may refer to any
        entity regardless of declaration order.

        Args:
            schema: Validated API schema
            formatters: Extra formatters, added to (and overriding) the defaults

        Returns:
            The built registry

        Raises:
            InvalidConfigurationError: The schema violates a metadata invariant
        """
        registry = cls(default_formatters(formatters), tuple(schema.routes))
        names = [entity.name for entity in schema.entities]
        duplicated = {name for name in names if names.count(name) > 1}
        if duplicated:
            raise InvalidConfigurationError(f"Entity types declared twice: {sorted(duplicated)}")

        for entity in schema.entities:
            registry._entity_types[entity.name] = registry._build_type(entity, names)
            registry._kinds[entity.name] = entity.kind
        for entity in schema.entities:
            if entity.tables:
                registry._mappings[entity.name] = TableMappingManager(
                    registry._entity_types[entity.name],
                    [(table.name, table.columns) for table in entity.tables],
                )
        for entity in schema.entities:
            registry._check_wrapper(entity)
        for route in registry.routes:
            if route.entity is not None and route.entity not in registry._mappings:
                raise InvalidConfigurationError(
                    f"Route {route.pattern!r} serves {route.entity!r}, which is not a persisted entity type"
                )

        logger.info(
            f"Entity registry built: {len(registry._entity_types)} entity types, "
            f"{len(registry._mappings)} mapped, {len(registry.routes)} routes",
            extra={"entities": list(registry._entity_types)},
        )
        return registry

    def _build_type(self, entity: EntitySchema, names) -> EntityType:
        labels = [prop.label for prop in entity.properties]
        if len(set(labels)) != len(labels):
            raise InvalidConfigurationError(f"{entity.name} declares a property label twice")
        descriptors = [
            PropertyDescriptor.create(
                prop.label,
                prop.type,
                formatters=self._formatters,
                entities=names,
                direction=prop.direction,
                primary_key=prop.primary_key,
                required=prop.required,
                writable=prop.writable,
                only_on_single=prop.only_on_single,
                visible_to=prop.visible_to,
                description=prop.description,
            )
            for prop in entity.properties
        ]
        return EntityType(entity.name, descriptors, self, entity.links)

    def _check_wrapper(self, entity: EntitySchema) -> None:
        if entity.kind != "wrapper":
            return
        entity_type = self._entity_types[entity.name]
        collections = self._child_collections(entity_type)
        if not collections:
            raise InvalidConfigurationError(f"Wrapper {entity.name} has no persisted nested collection")
        parent_pks = [descriptor.label for descriptor in entity_type.primary_keys]
        for label, target in collections.items():
            child_mapping = self._mappings[target]
            missing = [pk for pk in parent_pks if child_mapping.mapping_for(pk) is None]
            if missing:
                raise InvalidConfigurationError(
                    f"Nested collection '{label}' of {entity.name} does not map the parent key {missing}"
                )

    def _child_collections(self, entity_type: EntityType) -> Dict[str, str]:
        return {
            descriptor.label: descriptor.type.target
            for descriptor in entity_type.nested_collections
            if descriptor.type.target in self._mappings
        }

    @property
    def formatters(self) -> Mapping[str, TypeFormatter]:
        return self._formatters

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._entity_types)

    def formatter(self, name: str) -> TypeFormatter:
        try:
            return self._formatters[name]
        except KeyError:
            raise InvalidConfigurationError(f"Unknown formatter {name!r}") from None

    def entity_type(self, name: str) -> EntityType:
        try:
            return self._entity_types[name]
        except KeyError:
            raise InvalidConfigurationError(f"Unknown entity type {name!r}") from None

    def mapping(self, name: str) -> TableMappingManager:
        try:
            return self._mappings[name]
        except KeyError:
            raise InvalidConfigurationError(f"{name!r} is not mapped to any table") from None

    def dao(self, name: str, storage: Storage) -> BaseDAO:
        """Persistence engine of entity type ``name``.

        Wrapper entities get a ``WrapperDAO`` with one engine per nested
        collection, built recursively.
        """
        entity_type = self.entity_type(name)
        mapping = self.mapping(name)
        if self._kinds.get(name) != "wrapper":
            return FlatDAO(entity_type, mapping, storage)
        children = {label: self.dao(target, storage) for label, target in self._child_collections(entity_type).items()}
        return WrapperDAO(entity_type, mapping, storage, children)

    def facade(self, name: str, storage: Storage) -> EntityDAO:
        return EntityDAO(self.dao(name, storage))
