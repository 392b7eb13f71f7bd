"""
Table Mapping.

Maps the writable properties of an entity type onto an ordered hierarchy of
tables. The first table holds the primary key; every following table carries
the full key of the tables before it (usually as its own primary and foreign
key), so the hierarchy can be joined back on those shared key columns.

Statements are built with SQLAlchemy's lightweight ``table()``/``column()``
constructs, so no ``MetaData`` or reflection is required.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Type, Union

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnClause, ColumnElement
from sqlalchemy.sql.expression import FromClause, TableClause
from sqlalchemy.types import JSON, Boolean, Float, Integer, String, TypeEngine

from metacrud.core.exceptions import InvalidConfigurationError, RequiredFieldError
from metacrud.core.model.descriptor import PropertyDescriptor
from metacrud.core.model.entity import Entity, EntityType
from metacrud.core.model.filters import Comparator, FilterExpression, FilterGroup, FilterGroups, pk_filter_groups
from metacrud.core.model.formatters import StorageFormatter
from metacrud.core.model.types import ScalarType, TypeKind

STORAGE_TYPES: Dict[ScalarType, Type[TypeEngine]] = {
    ScalarType.BOOLEAN: Boolean,
    ScalarType.INTEGER: Integer,
    ScalarType.DOUBLE: Float,
    ScalarType.STRING: String,
    ScalarType.ARRAY: JSON,
}

PrimaryKey = Dict[str, Any]


def storage_type(descriptor: PropertyDescriptor) -> Type[TypeEngine]:
    """Column type used to bind and read a property."""
    kind = descriptor.type.kind
    if kind is TypeKind.FORMATTED:
        formatter = descriptor.type.formatter
        if isinstance(formatter, StorageFormatter):
            return formatter.storage_type
        return STORAGE_TYPES[formatter.basic_type]
    if kind is TypeKind.SCALAR:
        return STORAGE_TYPES[descriptor.type.primary]
    raise InvalidConfigurationError(f"Entity property '{descriptor.label}' cannot be stored in a column")


@dataclass(frozen=True)
class ColumnMapping:
    """A property bound to one column of one table."""

    descriptor: PropertyDescriptor
    column: ColumnClause
    required: bool = True

    @property
    def label(self) -> str:
        return self.descriptor.label

    @property
    def name(self) -> str:
        return self.column.name

    def to_storage(self, value: Any) -> Any:
        formatter = self.descriptor.formatter
        if value is not None and isinstance(formatter, StorageFormatter):
            return formatter.to_storage(value)
        return value

    def from_storage(self, raw: Any) -> Any:
        formatter = self.descriptor.formatter
        if raw is not None and isinstance(formatter, StorageFormatter):
            return formatter.from_storage(raw)
        return raw


class TableMapping:
    """One table of the hierarchy: its key columns and its other columns."""

    def __init__(self, table: TableClause, pk_columns: Sequence[ColumnMapping], columns: Sequence[ColumnMapping]) -> None:
        if not pk_columns:
            raise InvalidConfigurationError(f"Table '{table.name}' has no primary key column")
        self.table = table
        self.pk_columns: Tuple[ColumnMapping, ...] = tuple(pk_columns)
        self.columns: Tuple[ColumnMapping, ...] = tuple(columns)
        self._by_label = {mapping.label: mapping for mapping in self.pk_columns + self.columns}

    def __repr__(self) -> str:
        return f"TableMapping({self.name!r})"

    @property
    def name(self) -> str:
        return self.table.name

    @property
    def pk_labels(self) -> List[str]:
        return [mapping.label for mapping in self.pk_columns]

    @property
    def all_columns(self) -> Tuple[ColumnMapping, ...]:
        return self.pk_columns + self.columns

    @property
    def insert_mappings(self) -> Tuple[ColumnMapping, ...]:
        return tuple(m for m in self.pk_columns if m.required) + self.columns

    @property
    def generated_columns(self) -> Tuple[ColumnMapping, ...]:
        return tuple(m for m in self.pk_columns if not m.required)

    def mapping(self, label: str) -> Optional[ColumnMapping]:
        return self._by_label.get(label)

    def column(self, label: str) -> Optional[ColumnClause]:
        mapping = self._by_label.get(label)
        return None if mapping is None else mapping.column


def _compare(column: ColumnClause, comparator: Comparator, value: Any) -> ColumnElement:
    if comparator is Comparator.EQ:
        return column == value
    if comparator is Comparator.NEQ:
        return column != value
    if comparator is Comparator.GT:
        return column > value
    if comparator is Comparator.GTE:
        return column >= value
    if comparator is Comparator.LT:
        return column < value
    if comparator is Comparator.LTE:
        return column <= value
    if comparator is Comparator.LIKE:
        return column.like(value)
    return column.not_like(value)


def predicate(column: ColumnClause, expression: FilterExpression) -> ColumnElement:
    """Render one filter expression against a column; its values are ORed."""
    parts = [_compare(column, expression.comparator, value) for value in expression.values if value is not None]
    if None in expression.values:
        parts.append(column.is_(None) if expression.comparator is Comparator.EQ else column.is_not(None))
    return parts[0] if len(parts) == 1 else sa.or_(*parts)


def or_groups(clauses: Iterable[Optional[ColumnElement]]) -> Optional[ColumnElement]:
    """OR the non-empty group clauses; ``None`` when no group restricts anything."""
    present = [clause for clause in clauses if clause is not None]
    if not present:
        return None
    return present[0] if len(present) == 1 else sa.or_(*present)


class TableMappingManager:
    """Projects an entity type onto its table hierarchy.

    Args:
        entity_type: Entity whose writable properties are mapped
        tables: Ordered ``(table name, {label: column name})`` pairs

    Raises:
        InvalidConfigurationError: The tables break one of the mapping invariants
    """

    def __init__(self, entity_type: EntityType, tables: Sequence[Tuple[str, Mapping[str, str]]]) -> None:
        if not tables:
            raise InvalidConfigurationError(f"{entity_type.name} is not mapped to any table")
        self.entity_type = entity_type
        writable = {descriptor.label: descriptor for descriptor in entity_type.writable}
        order = {descriptor.label: index for index, descriptor in enumerate(entity_type.descriptors)}

        built: List[TableMapping] = []
        previous_pks: List[str] = []
        for name, columns in tables:
            if len(set(columns.values())) != len(columns):
                raise InvalidConfigurationError(f"Table '{name}' maps two properties to the same column")
            unknown = [label for label in columns if label not in writable]
            if unknown:
                raise InvalidConfigurationError(
                    f"Table '{name}' maps {unknown}, which are not writable properties of {entity_type.name}"
                )
            clauses = {label: sa.column(column, storage_type(writable[label])) for label, column in columns.items()}
            table = sa.table(name, *clauses.values())

            pk_columns: List[ColumnMapping] = []
            other_columns: List[ColumnMapping] = []
            for label in columns:
                descriptor = writable[label]
                if descriptor.primary_key:
                    required = descriptor.required or label in previous_pks
                    pk_columns.append(ColumnMapping(descriptor, clauses[label], required))
                else:
                    other_columns.append(ColumnMapping(descriptor, clauses[label]))
            pk_columns.sort(key=lambda mapping: order[mapping.label])

            table_pks = [mapping.label for mapping in pk_columns]
            missing = [label for label in previous_pks if label not in table_pks]
            if missing:
                raise InvalidConfigurationError(
                    f"Tables of {entity_type.name} do not form a hierarchy: '{name}' lacks key {missing}"
                )
            built.append(TableMapping(table, pk_columns, other_columns))
            previous_pks.extend(label for label in table_pks if label not in previous_pks)

        unmapped = [d.label for d in entity_type.primary_keys if d.label not in previous_pks]
        if unmapped:
            raise InvalidConfigurationError(f"Primary key {unmapped} of {entity_type.name} is not mapped to a table")
        self.tables: Tuple[TableMapping, ...] = tuple(built)

    def __len__(self) -> int:
        return len(self.tables)

    @property
    def pk_labels(self) -> List[str]:
        return [descriptor.label for descriptor in self.entity_type.primary_keys]

    def mapping_for(self, label: str) -> Optional[ColumnMapping]:
        """Mapping of ``label`` in the first table that holds it."""
        for table in self.tables:
            mapping = table.mapping(label)
            if mapping is not None:
                return mapping
        return None

    def column_for(self, label: str) -> Optional[ColumnClause]:
        mapping = self.mapping_for(label)
        return None if mapping is None else mapping.column

    def is_filterable(self, label: str) -> bool:
        mapping = self.mapping_for(label)
        return mapping is not None and not mapping.descriptor.is_read_only

    def pk_columns(self) -> List[ColumnClause]:
        return [self.column_for(label) for label in self.pk_labels]

    def joined_table(self, outer: bool = False) -> FromClause:
        """Join every table to the previous one on the previous table's key.

        Args:
            outer: LEFT OUTER joins (deletes) instead of inner joins (reads)
        """
        joined: FromClause = self.tables[0].table
        for previous, current in zip(self.tables, self.tables[1:]):
            onclause = sa.and_(*[current.column(label) == previous.column(label) for label in previous.pk_labels])
            joined = joined.join(current.table, onclause, isouter=outer)
        return joined

    def select_columns(self) -> List[ColumnClause]:
        return [mapping.column for table in self.tables for mapping in table.all_columns]

    def insert_columns(self, index: int) -> List[ColumnClause]:
        return [mapping.column for mapping in self.tables[index].insert_mappings]

    def update_set_columns(self, index: int) -> List[ColumnClause]:
        return [mapping.column for mapping in self.tables[index].columns]

    def update_where_columns(self, index: int) -> List[ColumnClause]:
        return [mapping.column for mapping in self.tables[index].pk_columns]

    def storage_types(self, index: int) -> Dict[str, TypeEngine]:
        return {mapping.name: mapping.column.type for mapping in self.tables[index].insert_mappings}

    def values_for_insert(
        self, index: int, entity: Entity, pk_from_previous: Optional[PrimaryKey] = None
    ) -> Dict[str, Any]:
        """Bound values of the INSERT into table ``index``.

        Args:
            index: Table position in the hierarchy
            entity: Prototype being created
            pk_from_previous: Key (storage values) produced by the previous table

        Returns:
            Column name to storage value, keys first

        Raises:
            RequiredFieldError: A supplied key column has no value
        """
        previous = pk_from_previous or {}
        values: Dict[str, Any] = {}
        for mapping in self.tables[index].insert_mappings:
            if mapping.descriptor.primary_key and mapping.label in previous:
                values[mapping.name] = previous[mapping.label]
                continue
            value = entity.get(mapping.label)
            if mapping.descriptor.primary_key and value is None:
                raise RequiredFieldError(f"Required field not found: {mapping.label}")
            values[mapping.name] = mapping.to_storage(value)
        return values

    def last_inserted_pk(self, index: int, auto_id: Any, inserted: Mapping[str, Any]) -> PrimaryKey:
        """Key of the row just inserted into table ``index``.

        Supplied key columns take their inserted value; generated ones take
        the id reported by the database.
        """
        return {
            mapping.label: inserted[mapping.name] if mapping.required else auto_id
            for mapping in self.tables[index].pk_columns
        }

    def update_values(self, index: int, entity: Entity) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """SET and WHERE values of the UPDATE of table ``index``, keyed by column name."""
        table = self.tables[index]
        set_values = {m.name: m.to_storage(entity.get(m.label)) for m in table.columns}
        where_values = {m.name: m.to_storage(entity.get(m.label)) for m in table.pk_columns}
        return set_values, where_values

    def pk_of(self, entity: Entity) -> PrimaryKey:
        """Storage values of the entity's primary key."""
        return {label: self.mapping_for(label).to_storage(entity.get(label)) for label in self.pk_labels}

    def entity_from_row(self, row: Sequence[Any], entity: Entity) -> Entity:
        """Populate ``entity`` from a row selected with ``select_columns``."""
        mappings = [mapping for table in self.tables for mapping in table.all_columns]
        for mapping, raw in zip(mappings, row):
            entity.set(mapping.label, mapping.from_storage(raw))
        return entity

    def group_clause(self, group: FilterGroup) -> Optional[ColumnElement]:
        """AND of the group's unrouted filters on properties mapped here."""
        parts = []
        for expression in group:
            if expression.route:
                continue
            column = self.column_for(expression.label)
            if column is not None:
                parts.append(predicate(column, expression))
        if not parts:
            return None
        return parts[0] if len(parts) == 1 else sa.and_(*parts)

    def where_for_groups(self, groups: FilterGroups) -> Optional[ColumnElement]:
        return or_groups(self.group_clause(group) for group in groups)

    def pk_filter_groups(self, pks: Iterable[Union[Sequence[Any], Mapping[str, Any]]]) -> FilterGroups:
        return pk_filter_groups(self.pk_labels, pks)
