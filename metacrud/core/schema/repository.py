"""
Schema repository.

Loads the API schema from (and stores it into) the configuration tables
defined in ``entities.py``.
"""

from __future__ import annotations

import json
from typing import Dict, List

from sqlmodel import Session, SQLModel, select

from metacrud.core.logging_config import get_logger

from .entities import ApiColumn, ApiEntity, ApiProperty, ApiRoute, ApiRouteLevel, ApiTable
from .models import ApiSchema, EntitySchema, PropertySchema, RouteSchema, TableSchema

logger = get_logger(__name__)

CONFIG_MODELS = (ApiRouteLevel, ApiRoute, ApiColumn, ApiTable, ApiProperty, ApiEntity)


class SchemaRepository:
    """Reads and writes the configuration tables with a SQLModel session."""

    def __init__(self, session: Session) -> None:
        """Initialize repository with a database session.

        Args:
            session: SQLModel Session for database operations
        """
        self.session = session

    @staticmethod
    def create_tables(engine) -> None:
        """Create the configuration tables if they do not exist."""
        SQLModel.metadata.create_all(engine, tables=[model.__table__ for model in reversed(CONFIG_MODELS)])

    def load(self) -> ApiSchema:
        """Build an ``ApiSchema`` from the configuration tables.

        Returns:
            The validated schema
        """
        entities = [self._load_entity(record) for record in self.session.exec(select(ApiEntity).order_by(ApiEntity.id))]
        routes = [
            self._load_route(record)
            for record in self.session.exec(select(ApiRoute).order_by(ApiRoute.position, ApiRoute.id))
        ]
        logger.info(f"Loaded schema with {len(entities)} entities and {len(routes)} routes from the database")
        return ApiSchema(entities=entities, routes=routes)

    def _load_entity(self, record: ApiEntity) -> EntitySchema:
        properties = self.session.exec(
            select(ApiProperty).where(ApiProperty.entity_id == record.id).order_by(ApiProperty.position, ApiProperty.id)
        )
        tables: List[TableSchema] = []
        for table in self.session.exec(
            select(ApiTable).where(ApiTable.entity_id == record.id).order_by(ApiTable.position, ApiTable.id)
        ):
            columns = self.session.exec(
                select(ApiColumn).where(ApiColumn.table_id == table.id).order_by(ApiColumn.position, ApiColumn.id)
            )
            tables.append(TableSchema(name=table.name, columns={column.label: column.column for column in columns}))
        return EntitySchema(
            name=record.name,
            kind=record.kind,
            properties=[
                PropertySchema(
                    label=prop.label,
                    type=prop.type,
                    primary_key=prop.primary_key,
                    required=prop.required,
                    writable=prop.writable,
                    direction=prop.direction,
                    only_on_single=prop.only_on_single,
                    visible_to=None if prop.visible_to is None else json.loads(prop.visible_to),
                    description=prop.description,
                )
                for prop in properties
            ],
            tables=tables,
            links=json.loads(record.links or "{}"),
        )

    def _load_route(self, record: ApiRoute) -> RouteSchema:
        levels: Dict[str, object] = {}
        for level in self.session.exec(select(ApiRouteLevel).where(ApiRouteLevel.route_id == record.id)):
            levels[level.method] = None if level.levels is None else json.loads(level.levels)
        return RouteSchema(
            pattern=record.pattern,
            entity=record.entity,
            controller=record.controller,
            description=record.description,
            levels=levels,
        )

    def save(self, schema: ApiSchema) -> None:
        """Replace the stored configuration with ``schema``.

        Args:
            schema: Schema to store
        """
        for model in CONFIG_MODELS:
            for record in self.session.exec(select(model)).all():
                self.session.delete(record)
            self.session.flush()

        for entity in schema.entities:
            record = ApiEntity(name=entity.name, kind=entity.kind, links=json.dumps(entity.links))
            self.session.add(record)
            self.session.flush()
            for position, prop in enumerate(entity.properties):
                self.session.add(
                    ApiProperty(
                        entity_id=record.id,
                        position=position,
                        label=prop.label,
                        type=prop.type if isinstance(prop.type, str) else "|".join(prop.type),
                        primary_key=prop.primary_key,
                        required=prop.required,
                        writable=prop.writable,
                        direction=prop.direction.value,
                        only_on_single=prop.only_on_single,
                        visible_to=None if prop.visible_to is None else json.dumps(prop.visible_to),
                        description=prop.description,
                    )
                )
            for position, table in enumerate(entity.tables):
                table_record = ApiTable(entity_id=record.id, position=position, name=table.name)
                self.session.add(table_record)
                self.session.flush()
                for column_position, (label, column) in enumerate(table.columns.items()):
                    self.session.add(
                        ApiColumn(table_id=table_record.id, position=column_position, label=label, column=column)
                    )

        for position, route in enumerate(schema.routes):
            route_record = ApiRoute(
                position=position,
                pattern=route.pattern,
                entity=route.entity,
                controller=route.controller,
                description=route.description,
            )
            self.session.add(route_record)
            self.session.flush()
            for method, levels in route.levels.items():
                self.session.add(
                    ApiRouteLevel(
                        route_id=route_record.id,
                        method=method,
                        levels=None if levels is None else json.dumps(levels),
                    )
                )
        self.session.commit()
        logger.info(f"Stored schema with {len(schema.entities)} entities and {len(schema.routes)} routes")
