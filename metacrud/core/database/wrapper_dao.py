"""
Wrapper Persistence Engine.

``WrapperDAO`` persists a parent entity together with its nested collections
(writable properties typed ``Child[]``). Every child collection has its own
engine; children are tied to their parent by carrying, under the same labels,
the parent's primary-key properties.

Saving a parent replaces all of its children (delete then recreate), which
costs one delete and one insert per child even when nothing changed.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import ColumnElement

from metacrud.core.exceptions import UncontrolledStorageError
from metacrud.core.logging_config import get_logger
from metacrud.core.model.entity import Entity, EntityType
from metacrud.core.model.filters import FilterExpression, FilterGroup, FilterGroups

from .dao import BaseDAO, FlatDAO, ReadResult
from .storage import Storage
from .table_mapping import PrimaryKey, TableMappingManager

logger = get_logger(__name__)


class WrapperDAO(FlatDAO):
    """Flat engine for the parent plus one engine per nested collection.

    Args:
        entity_type: Parent entity type
        mapping: Table mapping of the parent
        storage: Shared storage
        children: Engines of the nested collections keyed by property label
    """

    def __init__(
        self,
        entity_type: EntityType,
        mapping: TableMappingManager,
        storage: Storage,
        children: Dict[str, BaseDAO],
    ) -> None:
        super().__init__(entity_type, mapping, storage)
        self.children = dict(children)

    def is_filterable(self, route: Sequence[str], label: str) -> bool:
        if route:
            child = self.children.get(route[0])
            return child is not None and child.is_filterable(route[1:], label)
        return label in self.children or super().is_filterable(route, label)

    def _child_filter(self, key: PrimaryKey) -> FilterGroups:
        return [[FilterExpression.eq(label, key[label]) for label in self.pk_labels]]

    def _exists_clause(self, label: str, group: FilterGroup) -> Optional[ColumnElement]:
        child = self.children[label]
        inner = child.group_clause(group)
        if inner is None or not isinstance(child, FlatDAO):
            return inner
        correlation = [
            child.mapping.column_for(pk_label) == self.mapping.column_for(pk_label) for pk_label in self.pk_labels
        ]
        subquery = (
            sa.select(sa.literal(1))
            .select_from(child.mapping.joined_table())
            .where(*correlation, inner)
            .correlate(*[table.table for table in self.mapping.tables])
        )
        return sa.exists(subquery)

    def group_clause(self, group: FilterGroup) -> Optional[ColumnElement]:
        """Parent predicates ANDed with one EXISTS per child collection filtered in the group."""
        parts = []
        own = self.mapping.group_clause([expression for expression in group if not expression.route])
        if own is not None:
            parts.append(own)
        for label in self.children:
            routed = [expression.descend() for expression in group if expression.route and expression.head == label]
            if routed:
                exists = self._exists_clause(label, routed)
                if exists is not None:
                    parts.append(exists)
        if not parts:
            return None
        return parts[0] if len(parts) == 1 else sa.and_(*parts)

    def _read(self, conn: Connection, groups: FilterGroups, page: int, size: int) -> ReadResult:
        result = super()._read(conn, groups, page, size)
        for parent in result.entities:
            child_filter = self._child_filter(self.mapping.pk_of(parent))
            for label, child in self.children.items():
                parent.set(label, child._read(conn, child_filter, 0, -1).entities)
        return result

    def _stamp(self, parent: Entity, nested: Entity) -> None:
        for label in self.pk_labels:
            descriptor = nested.entity_type.descriptor(label)
            if descriptor is None or not descriptor.writable:
                raise UncontrolledStorageError(
                    f"Nested entity {nested.entity_type.name} has no writable property '{label}' "
                    f"to receive the key of {self.entity_type.name}"
                )
            nested.set(label, parent.get(label))

    def _create_children(self, conn: Connection, parent: Entity, nested_values: Dict[str, List[Entity]]) -> None:
        for label, child in self.children.items():
            nested = nested_values.get(label) or []
            for item in nested:
                self._stamp(parent, item)
            parent.set(label, child._create(conn, nested))

    def _create(self, conn: Connection, prototypes: Sequence[Entity]) -> List[Entity]:
        created: List[Entity] = []
        for prototype in prototypes:
            nested_values = {label: prototype.get(label) for label in self.children}
            parent = super()._create(conn, [prototype])[0]
            self._create_children(conn, parent, nested_values)
            created.append(parent)
        return created

    def _save(self, conn: Connection, entities: Sequence[Entity]) -> None:
        super()._save(conn, entities)
        for entity in entities:
            nested_values = {label: entity.get(label) for label in self.children}
            child_filter = self._child_filter(self.mapping.pk_of(entity))
            for child in self.children.values():
                child._delete(conn, child_filter)
            self._create_children(conn, entity, nested_values)

    def _delete(self, conn: Connection, groups: FilterGroups) -> int:
        if not groups:
            return 0
        keys = self.matching_keys(conn, groups)
        if not keys:
            return 0
        count = 0
        for key in keys:
            child_filter = self._child_filter(key)
            for child in self.children.values():
                count += child._delete(conn, child_filter)
        count += self.delete_keys(conn, keys)
        logger.debug(f"Deleted {count} {self.entity_type.name} rows including nested collections")
        return count
