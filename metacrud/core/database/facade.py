"""
DAO Facade.

``EntityDAO`` is the request-scoped entry point the controllers use. It wraps
an engine (flat or wrapper) with single-resource conveniences and validates
that every filter it receives addresses a filterable property.

Key values passed to ``get_one``, ``delete_one`` and ``delete_many`` are in
the same representation as filter values (storage representation for
formatted properties).
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from metacrud.core.exceptions import RequestParsingError, UncontrolledStorageError
from metacrud.core.model.descriptor import PropertyDescriptor
from metacrud.core.model.entity import Entity, EntityType
from metacrud.core.model.filters import FilterExpression, FilterGroups, pk_filter_groups
from metacrud.core.model.session import SessionInfo

from .dao import BaseDAO, ReadResult


class EntityDAO:
    """CRUD operations on one entity type."""

    def __init__(self, engine: BaseDAO) -> None:
        self.engine = engine

    @property
    def entity_type(self) -> EntityType:
        return self.engine.entity_type

    @property
    def pk_descriptors(self) -> Tuple[PropertyDescriptor, ...]:
        return self.engine.pk_descriptors

    def new(self) -> Entity:
        return self.entity_type.new()

    def is_filterable(self, route: Sequence[str], label: str) -> bool:
        return self.engine.is_filterable(route, label)

    def _visible(self, expression: FilterExpression, session: SessionInfo) -> bool:
        entity_type = self.entity_type
        for label in expression.route + (expression.label,):
            descriptor = entity_type.descriptor(label)
            if descriptor is None or not descriptor.visible_for(session):
                return False
            if descriptor.type.is_entity:
                entity_type = entity_type.registry.entity_type(descriptor.type.target)
        return True

    def check_filters(self, groups: FilterGroups, session: Optional[SessionInfo] = None) -> None:
        """Reject filters on properties that are not filterable, or hidden from ``session`` when given."""
        for group in groups:
            for expression in group:
                if not self.engine.is_filterable(expression.route, expression.label) or (
                    session is not None and not self._visible(expression, session)
                ):
                    raise RequestParsingError(
                        f"The property '{expression.routed_label}' cannot be used as a filter"
                    )

    def _pk_groups(self, pks: Sequence[Union[Sequence[Any], Mapping[str, Any]]]) -> FilterGroups:
        return pk_filter_groups(self.engine.pk_labels, pks)

    def get_one(self, *pk: Any) -> Optional[Entity]:
        """Entity with the given key, or ``None``.

        Raises:
            UncontrolledStorageError: The key matches more than one row
        """
        entities = self.engine.read(self._pk_groups([pk])).entities
        if len(entities) > 1:
            raise UncontrolledStorageError(f"More than one {self.entity_type.name} has the key {pk}")
        return entities[0] if entities else None

    def get_many(
        self, groups: FilterGroups, page: int = 0, size: int = -1, session: Optional[SessionInfo] = None
    ) -> ReadResult:
        self.check_filters(groups, session)
        return self.engine.read(groups, page, size)

    def create_one(self, prototype: Entity) -> Entity:
        return self.engine.create([prototype])[0]

    def create_many(self, prototypes: Sequence[Entity]) -> List[Entity]:
        return self.engine.create(prototypes)

    def delete_one(self, *pk: Any) -> int:
        return self.delete_many([pk])

    def delete_many(self, pks: Sequence[Union[Sequence[Any], Mapping[str, Any]]]) -> int:
        return self.engine.delete(self._pk_groups(pks))

    def filtered_delete(self, groups: FilterGroups, session: Optional[SessionInfo] = None) -> int:
        self.check_filters(groups, session)
        return self.engine.delete(groups)

    def save_one(self, entity: Entity) -> None:
        self.engine.save([entity])

    def save_many(self, entities: Sequence[Entity]) -> None:
        self.engine.save(entities)
