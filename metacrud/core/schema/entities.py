"""
Schema configuration tables.

SQLModel entities storing the API schema in the database itself: entities,
their properties and table hierarchy, and the routes with their required
levels. List and map values are stored as JSON strings.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ConfigDict
from sqlmodel import Field, SQLModel


class Base(SQLModel):
    """Base class for the configuration entities."""

    model_config = ConfigDict(arbitrary_types_allowed=True)


class ApiEntity(Base, table=True):
    """An exposed entity type.

    Table: api_entities
    """

    __tablename__ = "api_entities"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, unique=True, description="Entity type name")
    kind: str = Field(default="basic", description="'basic' or 'wrapper'")
    links: str = Field(default="{}", description="JSON object of link name to URL template")


class ApiProperty(Base, table=True):
    """One property of an entity type.

    Table: api_properties
    """

    __tablename__ = "api_properties"

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_id: int = Field(foreign_key="api_entities.id", index=True)
    position: int = Field(default=0, description="Declaration order")
    label: str
    type: str = Field(description="'|'-separated type specification")
    primary_key: bool = Field(default=False)
    required: bool = Field(default=False)
    writable: bool = Field(default=True)
    direction: str = Field(default="in/out")
    only_on_single: bool = Field(default=False)
    visible_to: Optional[str] = Field(default=None, description="JSON array of levels, null for everyone")
    description: Optional[str] = Field(default=None)


class ApiTable(Base, table=True):
    """One table of an entity's hierarchy.

    Table: api_tables
    """

    __tablename__ = "api_tables"

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_id: int = Field(foreign_key="api_entities.id", index=True)
    position: int = Field(default=0, description="Position in the hierarchy")
    name: str


class ApiColumn(Base, table=True):
    """A property mapped to a column of an ``ApiTable``.

    Table: api_columns
    """

    __tablename__ = "api_columns"

    id: Optional[int] = Field(default=None, primary_key=True)
    table_id: int = Field(foreign_key="api_tables.id", index=True)
    position: int = Field(default=0)
    label: str
    column: str


class ApiRoute(Base, table=True):
    """A URL pattern.

    Table: api_routes
    """

    __tablename__ = "api_routes"

    id: Optional[int] = Field(default=None, primary_key=True)
    position: int = Field(default=0, description="Matching order, first match wins")
    pattern: str
    entity: Optional[str] = Field(default=None)
    controller: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)


class ApiRouteLevel(Base, table=True):
    """Levels required to call one method of a route.

    Table: api_route_levels
    """

    __tablename__ = "api_route_levels"

    id: Optional[int] = Field(default=None, primary_key=True)
    route_id: int = Field(foreign_key="api_routes.id", index=True)
    method: str
    levels: Optional[str] = Field(default=None, description="JSON array of levels, null for everyone")
