"""
API Schema Models.

Pydantic models describing everything the engine needs to expose entities:
their properties, how they are persisted and which routes reach them. An
``ApiSchema`` can be read from a JSON file or loaded from the configuration
tables through ``SchemaRepository``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from metacrud.core.model.descriptor import Direction

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")


class PropertySchema(BaseModel):
    """One property of an entity."""

    label: str = Field(description="Property label (letters, digits and hyphens)")
    type: Union[str, List[str]] = Field(description="Type specification, e.g. 'integer|null' or 'Line[]'")
    primary_key: bool = Field(default=False, description="Part of the primary key")
    required: bool = Field(default=False, description="Must be supplied on creation")
    writable: bool = Field(default=True, description="Whether the property has a writer")
    direction: Direction = Field(default=Direction.IN_OUT, description="Declared direction")
    only_on_single: bool = Field(default=False, description="Hidden in list responses")
    visible_to: Optional[List[int]] = Field(default=None, description="Levels allowed to see it, null for everyone")
    description: Optional[str] = Field(default=None, description="Shown in interface descriptions")


class TableSchema(BaseModel):
    """One table of an entity's hierarchy."""

    name: str = Field(description="Table name")
    columns: Dict[str, str] = Field(description="Property label to column name")


class EntitySchema(BaseModel):
    """An entity type and its persistence."""

    name: str = Field(description="Entity type name")
    kind: Literal["basic", "wrapper"] = Field(default="basic", description="Flat entity or parent of nested collections")
    properties: List[PropertySchema] = Field(default_factory=list)
    tables: List[TableSchema] = Field(default_factory=list, description="Ordered table hierarchy")
    links: Dict[str, str] = Field(default_factory=dict, description="Link name to URL template")


class RouteSchema(BaseModel):
    """A URL pattern bound to an entity or to a specialized controller."""

    pattern: str = Field(description="Regular expression matched against the path")
    entity: Optional[str] = Field(default=None, description="Entity served by the generic controller")
    controller: Optional[str] = Field(default=None, description="Name of a specialized controller")
    description: Optional[str] = Field(default=None, description="Shown in the URL listing")
    levels: Dict[str, Optional[List[int]]] = Field(
        default_factory=dict, description="HTTP method to required levels; missing or null means everyone"
    )

    @model_validator(mode="after")
    def _check_target(self) -> "RouteSchema":
        if (self.entity is None) == (self.controller is None):
            raise ValueError(f"Route {self.pattern!r} must name exactly one of entity or controller")
        self.levels = {method.upper(): levels for method, levels in self.levels.items()}
        return self


class ApiSchema(BaseModel):
    """Complete API configuration snapshot."""

    entities: List[EntitySchema] = Field(default_factory=list)
    routes: List[RouteSchema] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ApiSchema":
        """Read a schema from a JSON file.

        Args:
            path: Path to the JSON document

        Returns:
            The validated schema
        """
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    def entity(self, name: str) -> Optional[EntitySchema]:
        return next((entity for entity in self.entities if entity.name == name), None)
