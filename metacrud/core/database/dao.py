"""
Flat Persistence Engine.

``FlatDAO`` implements paginated filtered reads, bulk creation, bulk update
and filtered deletion for an entity mapped onto a table hierarchy. Each public
operation is one unit of work; the ``_read``/``_create``/``_save``/``_delete``
variants run on an already open connection so that composing engines (see
``WrapperDAO``) can nest them inside their own transaction.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import sqlalchemy as sa
from sqlalchemy.engine import Connection, CursorResult
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement

from metacrud.core.exceptions import (
    AlreadyExistentResourceError,
    ForeignKeyConstraintError,
    UncontrolledStorageError,
)
from metacrud.core.logging_config import get_logger
from metacrud.core.model.descriptor import PropertyDescriptor
from metacrud.core.model.entity import Entity, EntityType
from metacrud.core.model.filters import FilterGroup, FilterGroups

from .storage import Storage, is_foreign_key_violation, is_unique_violation
from .table_mapping import PrimaryKey, TableMappingManager, or_groups

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaginationInfo:
    """Page position of a paginated read."""

    total_pages: int
    size: int
    page: int

    def to_dict(self) -> Dict[str, int]:
        return {"total-pages": self.total_pages, "size": self.size, "page": self.page}


@dataclass
class ReadResult:
    entities: List[Entity] = field(default_factory=list)
    pagination: Optional[PaginationInfo] = None


class BaseDAO(ABC):
    """Generic CRUD engine for one entity type.

    The public operations open a unit of work, run the connection-level
    variant and translate storage errors into API errors once the transaction
    has been rolled back.
    """

    def __init__(self, entity_type: EntityType, storage: Storage) -> None:
        self.entity_type = entity_type
        self.storage = storage

    @property
    def pk_descriptors(self) -> Tuple[PropertyDescriptor, ...]:
        return self.entity_type.primary_keys

    @property
    def pk_labels(self) -> List[str]:
        return [descriptor.label for descriptor in self.pk_descriptors]

    def read(self, groups: FilterGroups, page: int = 0, size: int = -1) -> ReadResult:
        """Read the entities matching ``groups``.

        Args:
            groups: Filter groups, ORed together
            page: Zero-based page number, used when ``size`` is positive
            size: Page size; zero or negative returns every matching row

        Returns:
            The entities and, when paginating, the pagination info
        """
        try:
            with self.storage.unit_of_work(read_only=True) as conn:
                return self._read(conn, groups, page, size)
        except SQLAlchemyError as exc:
            raise self._uncontrolled("read", exc) from exc

    def create(self, prototypes: Sequence[Entity]) -> List[Entity]:
        """Insert ``prototypes`` and return them as stored.

        Raises:
            AlreadyExistentResourceError: A unique or primary key is duplicated
        """
        try:
            with self.storage.unit_of_work() as conn:
                return self._create(conn, prototypes)
        except DBAPIError as exc:
            if is_unique_violation(exc):
                logger.info(f"Duplicated key creating {self.entity_type.name}: {exc.orig}")
                raise AlreadyExistentResourceError() from exc
            raise self._uncontrolled("create", exc) from exc
        except SQLAlchemyError as exc:
            raise self._uncontrolled("create", exc) from exc

    def save(self, entities: Sequence[Entity]) -> None:
        try:
            with self.storage.unit_of_work() as conn:
                self._save(conn, entities)
        except DBAPIError as exc:
            if is_unique_violation(exc):
                raise AlreadyExistentResourceError() from exc
            raise self._uncontrolled("save", exc) from exc
        except SQLAlchemyError as exc:
            raise self._uncontrolled("save", exc) from exc

    def delete(self, groups: FilterGroups) -> int:
        """Delete the entities matching ``groups``.

        Returns:
            Number of deleted rows, summed over every table

        Raises:
            ForeignKeyConstraintError: Other rows still reference a deleted row
        """
        try:
            with self.storage.unit_of_work() as conn:
                return self._delete(conn, groups)
        except DBAPIError as exc:
            if is_foreign_key_violation(exc):
                logger.info(f"Foreign key prevents deleting {self.entity_type.name}: {exc.orig}")
                raise ForeignKeyConstraintError() from exc
            raise self._uncontrolled("delete", exc) from exc
        except SQLAlchemyError as exc:
            raise self._uncontrolled("delete", exc) from exc

    def _uncontrolled(self, operation: str, exc: Exception) -> UncontrolledStorageError:
        logger.error(
            f"Storage error during {operation} of {self.entity_type.name}: {exc}",
            extra={"entity": self.entity_type.name, "operation": operation, "error_type": type(exc).__name__},
        )
        return UncontrolledStorageError()

    def where_clause(self, groups: FilterGroups) -> Optional[ColumnElement]:
        return or_groups(self.group_clause(group) for group in groups)

    @abstractmethod
    def group_clause(self, group: FilterGroup) -> Optional[ColumnElement]:
        """Condition matching every filter of one AND-group."""

    @abstractmethod
    def is_filterable(self, route: Sequence[str], label: str) -> bool:
        """Whether ``label``, reached through ``route``, may appear in a filter."""

    @abstractmethod
    def _read(self, conn: Connection, groups: FilterGroups, page: int, size: int) -> ReadResult:
        ...

    @abstractmethod
    def _create(self, conn: Connection, prototypes: Sequence[Entity]) -> List[Entity]:
        ...

    @abstractmethod
    def _save(self, conn: Connection, entities: Sequence[Entity]) -> None:
        ...

    @abstractmethod
    def _delete(self, conn: Connection, groups: FilterGroups) -> int:
        ...


class FlatDAO(BaseDAO):
    """Persistence engine for an entity stored in a table hierarchy."""

    def __init__(self, entity_type: EntityType, mapping: TableMappingManager, storage: Storage) -> None:
        super().__init__(entity_type, storage)
        self.mapping = mapping

    def group_clause(self, group: FilterGroup) -> Optional[ColumnElement]:
        return self.mapping.group_clause(group)

    def is_filterable(self, route: Sequence[str], label: str) -> bool:
        return not route and self.mapping.is_filterable(label)

    def _read(self, conn: Connection, groups: FilterGroups, page: int, size: int) -> ReadResult:
        joined = self.mapping.joined_table()
        where = self.where_clause(groups)
        stmt = sa.select(*self.mapping.select_columns()).select_from(joined).order_by(*self.mapping.pk_columns())
        if where is not None:
            stmt = stmt.where(where)

        pagination = None
        if size > 0:
            count_stmt = sa.select(sa.func.count()).select_from(joined)
            if where is not None:
                count_stmt = count_stmt.where(where)
            total = conn.execute(count_stmt).scalar_one()
            pagination = PaginationInfo(total_pages=math.ceil(total / size), size=size, page=page)
            stmt = stmt.limit(size).offset(page * size)

        rows = conn.execute(stmt).all()
        logger.debug(f"Read {len(rows)} {self.entity_type.name} rows")
        entities = [self.mapping.entity_from_row(row, self.entity_type.new()) for row in rows]
        return ReadResult(entities, pagination)

    @staticmethod
    def _auto_id(result: CursorResult, returning: bool) -> Any:
        if returning:
            return result.scalar_one()
        return result.lastrowid

    def _create(self, conn: Connection, prototypes: Sequence[Entity]) -> List[Entity]:
        if not prototypes:
            return []
        keys: List[PrimaryKey] = [{} for _ in prototypes]
        dialect = conn.dialect
        for index, table in enumerate(self.mapping.tables):
            stmt = sa.insert(table.table)
            generated = table.generated_columns
            returning = bool(generated) and not dialect.postfetch_lastrowid and dialect.insert_returning
            if returning:
                stmt = stmt.returning(generated[0].column)
            for position, prototype in enumerate(prototypes):
                values = self.mapping.values_for_insert(index, prototype, keys[position] if index else None)
                result = conn.execute(stmt, values)
                auto_id = self._auto_id(result, returning) if generated else None
                keys[position].update(self.mapping.last_inserted_pk(index, auto_id, values))
        logger.debug(f"Inserted {len(prototypes)} {self.entity_type.name} rows")
        return self._read(conn, self.mapping.pk_filter_groups(keys), 0, -1).entities

    def _save(self, conn: Connection, entities: Sequence[Entity]) -> None:
        for index, table in enumerate(self.mapping.tables):
            if not table.columns:
                continue
            where = sa.and_(*[m.column == sa.bindparam(f"pk_{n}") for n, m in enumerate(table.pk_columns)])
            stmt = (
                sa.update(table.table)
                .where(where)
                .values({m.name: sa.bindparam(f"set_{n}") for n, m in enumerate(table.columns)})
            )
            for entity in entities:
                set_values, where_values = self.mapping.update_values(index, entity)
                params = {f"set_{n}": set_values[m.name] for n, m in enumerate(table.columns)}
                params.update({f"pk_{n}": where_values[m.name] for n, m in enumerate(table.pk_columns)})
                conn.execute(stmt, params)

    def matching_keys(self, conn: Connection, groups: FilterGroups) -> List[PrimaryKey]:
        """Primary keys (storage values) of the rows matching ``groups``.

        Groups that restrict nothing match nothing: deletion is never unscoped.
        """
        where = self.where_clause(groups)
        if where is None:
            return []
        stmt = (
            sa.select(*self.mapping.pk_columns())
            .select_from(self.mapping.joined_table(outer=True))
            .where(where)
            .distinct()
        )
        labels = self.mapping.pk_labels
        return [dict(zip(labels, row)) for row in conn.execute(stmt)]

    def delete_keys(self, conn: Connection, keys: Sequence[PrimaryKey]) -> int:
        """Delete the given keys from every table, last table first."""
        count = 0
        for table in reversed(self.mapping.tables):
            where = sa.and_(*[m.column == sa.bindparam(f"pk_{n}") for n, m in enumerate(table.pk_columns)])
            stmt = sa.delete(table.table).where(where)
            for key in keys:
                result = conn.execute(stmt, {f"pk_{n}": key[m.label] for n, m in enumerate(table.pk_columns)})
                count += result.rowcount
        return count

    def _delete(self, conn: Connection, groups: FilterGroups) -> int:
        if not groups:
            return 0
        keys = self.matching_keys(conn, groups)
        count = self.delete_keys(conn, keys) if keys else 0
        logger.debug(f"Deleted {count} {self.entity_type.name} rows")
        return count
