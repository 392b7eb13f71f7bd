"""
Generic Entity Controller.

Exposes one schema-declared entity through CRUD semantics. Named path
captures whose names are primary-key labels locate a single resource; every
capture is also applied as a ``_<name>`` filter.

- GET: one resource with the full key, otherwise a filtered and optionally
  paginated list (``page``, ``size``); ``?interfaz`` describes the entity.
- POST: one prototype from an object, several from an array.
- PUT: partial update of the resource with the full key.
- DELETE: the resource with the full key, or the keys listed in ``pks``.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping

from fastapi import status

from metacrud.core.exceptions import (
    RequestParsingError,
    RequiredFieldError,
    ResourceNotFoundError,
    UnauthorizedError,
    UnknownMethodError,
)
from metacrud.core.logging_config import get_logger
from metacrud.core.model.entity import Entity, Version
from metacrud.core.model.filters import FilterGroups

from .controller import ApiResponse, UrlController
from .filter_parser import FilterParser, filter_value, parse_positional

logger = get_logger(__name__)

INTERFACE_PARAM = "interfaz"
PKS_PARAM = "pks"


class EntityController(UrlController):
    """CRUD controller bound to the route's entity type."""

    methods = ("GET", "POST", "PUT", "DELETE")

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.dao = self.context.registry.facade(self.route.entity, self.context.storage)
        self.entity_type = self.dao.entity_type
        self.parser = FilterParser(self.entity_type, self.dao.is_filterable, self.session)
        self.pk_descriptors = self.dao.pk_descriptors
        self.positional = {d.label: self.params[d.label] for d in self.pk_descriptors if d.label in self.params}

    @property
    def has_full_pk(self) -> bool:
        return len(self.positional) == len(self.pk_descriptors)

    def supported_methods(self) -> List[str]:
        if self.has_full_pk:
            return ["GET", "PUT", "DELETE", "POST"]
        methods = ["GET", "POST"]
        if self.has_query(PKS_PARAM):
            methods.append("DELETE")
        return methods

    def render(self, entity: Entity, version: Version = Version.FULL) -> Dict[str, Any]:
        return entity.serialize(version, self.session, self.context.settings.print_links)

    def filters(self, with_captures: bool = True) -> FilterGroups:
        return self.parser.parse(self.query, self.params if with_captures else None)

    def positional_key(self) -> List[Any]:
        """Full primary key from the path, in filter representation."""
        return [filter_value(d, self.positional[d.label]) for d in self.pk_descriptors]

    def _list(self, groups: FilterGroups) -> Any:
        page = self.int_query("page", 0)
        if page < 0:
            raise RequestParsingError("The parameter 'page' cannot be negative")
        size = self.int_query("size", -1)
        result = self.dao.get_many(groups, page, size, self.session)
        version = Version.FULL if len(result.entities) == 1 else Version.SHORT
        elements = [self.render(entity, version) for entity in result.entities]
        if size > 0:
            return {"pagination": result.pagination.to_dict(), "elements": elements}
        return elements

    def _interface(self) -> Dict[str, Any]:
        selector = self.query_value(INTERFACE_PARAM)
        urls = self.router.urls_for(self.route.entity) if self.router is not None else [self.route.humanized]
        return {
            "urls": urls,
            f"interface {self.entity_type.name}": self.entity_type.describe(
                self.session, only_in=selector == "in", only_out=selector == "out"
            ),
        }

    def get(self) -> ApiResponse:
        if INTERFACE_PARAM in self.query:
            return ApiResponse(status.HTTP_200_OK, self._interface())
        if self.has_full_pk:
            result = self.dao.get_many(self.filters(), 0, 1, self.session)
            if not result.entities:
                raise ResourceNotFoundError(
                    f"Couldn't find {self.entity_type.name} with key "
                    f"<{','.join(self.positional.values())}> and the given filters"
                )
            return ApiResponse(status.HTTP_200_OK, self.render(result.entities[0]))
        return ApiResponse(status.HTTP_200_OK, self._list(self.filters()))

    def _prototype(self, data: Any) -> Entity:
        if not isinstance(data, Mapping):
            raise RequestParsingError("Every element to create must be a JSON object")
        prototype = self.dao.new()
        preset: List[str] = []
        for descriptor in self.pk_descriptors:
            if not descriptor.required:
                continue
            label = descriptor.label
            if label in self.positional:
                try:
                    prototype.set(label, parse_positional(descriptor, self.positional[label]))
                except RequestParsingError as exc:
                    raise RequestParsingError(f"Error parsing {label}: {exc.message}") from exc
                preset.append(label)
            elif data.get(label) is None:
                raise RequiredFieldError(f"Required field not found: {label}")
        return prototype.deserialize(data, self.session, preset=preset)

    @staticmethod
    def _as_bulk(body: Any) -> Any:
        if isinstance(body, dict) and body and all(str(key).isdigit() for key in body):
            return [body[key] for key in sorted(body, key=int)]
        return body

    def post(self) -> ApiResponse:
        body = self._as_bulk(self.json_body(default={}))
        if isinstance(body, list) and not body:
            body = {}
        if isinstance(body, list):
            if self.has_full_pk:
                raise RequestParsingError("A bulk creation cannot target the URL of a single resource")
            prototypes = [self._prototype(item) for item in body]
            created = self.dao.create_many(prototypes)
            logger.info(f"Created {len(created)} {self.entity_type.name}")
            return ApiResponse(status.HTTP_201_CREATED, [self.render(e, Version.SHORT) for e in created])
        created_one = self.dao.create_one(self._prototype(body))
        logger.info(f"Created {self.entity_type.name}")
        return ApiResponse(status.HTTP_201_CREATED, self.render(created_one))

    def put(self) -> ApiResponse:
        if not self.has_full_pk:
            labels = ", ".join(d.label for d in self.pk_descriptors)
            raise UnknownMethodError(f"Updating requires {labels}", headers=self.allow_header())
        body = self.json_body(default={})
        if not isinstance(body, dict):
            raise RequestParsingError("The request body must be a JSON object")
        key = self.positional_key()
        entity = self.dao.get_one(*key)
        if entity is None:
            raise ResourceNotFoundError(
                f"Couldn't find {self.entity_type.name} with key <{','.join(self.positional.values())}>"
            )
        entity.deserialize(body, self.session, partial=True, preset=list(self.positional))
        self.dao.save_one(entity)
        return ApiResponse(status.HTTP_200_OK, self.render(self.dao.get_one(*key)))

    def _listed_keys(self) -> List[Dict[str, Any]]:
        """Keys of the ``pks`` parameter, completed with the positional part of the key."""
        missing = [d for d in self.pk_descriptors if d.label not in self.positional]
        raw = self.query_value(PKS_PARAM, "").split(",")
        if len(raw) % len(missing) != 0:
            raise RequestParsingError(
                f"Unable to parse pks, the number of values should be a multiple of {len(missing)}, "
                f"but {len(raw)} given"
            )
        fixed = {d.label: filter_value(d, self.positional[d.label]) for d in self.pk_descriptors if d.label in self.positional}
        keys: List[Dict[str, Any]] = []
        for start in range(0, len(raw), len(missing)):
            key = dict(fixed)
            for descriptor, value in zip(missing, raw[start:start + len(missing)]):
                key[descriptor.label] = filter_value(descriptor, value)
            keys.append(key)
        return keys

    def delete(self) -> ApiResponse:
        if self.has_full_pk:
            deleted = self.dao.delete_one(*self.positional_key())
        elif self.has_query(PKS_PARAM):
            deleted = self.dao.delete_many(self._listed_keys())
        else:
            raise UnauthorizedError("Filtered or unrestricted deletion is not allowed")
        if deleted == 0:
            return ApiResponse(status.HTTP_304_NOT_MODIFIED)
        logger.info(f"Deleted {deleted} rows of {self.entity_type.name}")
        remaining_captures = {k: v for k, v in self.params.items() if k not in self.positional}
        groups = self.parser.parse(self.query, remaining_captures)
        return ApiResponse(status.HTTP_200_OK, self._list(groups))
