"""
Request Router.

Matches a request path against the ordered route patterns of the registry
(first match wins), builds the controller bound to the matched route and
renders every ``ApiError`` as the standard error body::

    {"error": "<message>", "session_info": {"logeada": false, "expirada": false}}

The router is synchronous; the HTTP layer runs it in the thread pool.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Pattern, Tuple, Type

from fastapi import status

from metacrud.core.exceptions import ApiError, InvalidConfigurationError, UnknownControllerError
from metacrud.core.logging_config import get_logger
from metacrud.core.model.session import EVERYONE, SessionInfo, normalize_levels
from metacrud.core.schema.models import RouteSchema
from metacrud.server.core.constant import SESSION_CONTROLLER

from .controller import ApiResponse, UrlController
from .generic import EntityController
from .session_controller import SessionController

logger = get_logger(__name__)

URLS_PARAM = "urls"
NO_DESCRIPTION = "No description"

DEFAULT_CONTROLLERS: Dict[str, Type[UrlController]] = {
    SESSION_CONTROLLER: SessionController,
}

_NAMED_GROUP = re.compile(r"\(\?P<(\w+)>[^)]*\)")
_OPTIONAL_GROUP = re.compile(r"\(([^()]*)\)\?")
_REGEX_SYNTAX = re.compile(r"(?<!\\)[\^$+?*()]")
_ESCAPE = re.compile(r"\\(.)")


def humanize_pattern(pattern: str) -> str:
    """Readable form of a route pattern.

    ``^/widgets(/(?P<id>\\d+))?$`` becomes ``/widgets[/:id]``: named groups
    turn into ``:name``, optional groups into ``[...]``, and the remaining
    regex syntax is dropped.
    """
    url = pattern.replace("(?:", "(")
    url = _NAMED_GROUP.sub(r":\1", url)
    count = 1
    while count:
        url, count = _OPTIONAL_GROUP.subn(r"[\1]", url)
    url = _REGEX_SYNTAX.sub("", url)
    return _ESCAPE.sub(r"\1", url)


def normalize_query(items: Iterable[Tuple[str, str]]) -> Dict[str, List[Optional[str]]]:
    """Group query items by key; empty values become ``None``."""
    query: Dict[str, List[Optional[str]]] = {}
    for key, value in items:
        query.setdefault(key, []).append(value if value != "" else None)
    return query


@dataclass(frozen=True)
class Route:
    """A compiled route pattern and the levels required per method."""

    source: str
    regex: Pattern
    entity: Optional[str] = None
    controller: Optional[str] = None
    description: Optional[str] = None
    levels: Mapping[str, Optional[FrozenSet[int]]] = field(default_factory=dict)

    @classmethod
    def from_schema(cls, schema: RouteSchema) -> "Route":
        try:
            regex = re.compile(schema.pattern)
        except re.error as exc:
            raise InvalidConfigurationError(f"Invalid route pattern {schema.pattern!r}: {exc}") from exc
        return cls(
            source=schema.pattern,
            regex=regex,
            entity=schema.entity,
            controller=schema.controller,
            description=schema.description,
            levels={method: normalize_levels(levels) for method, levels in schema.levels.items()},
        )

    @property
    def humanized(self) -> str:
        return humanize_pattern(self.source)

    def levels_for(self, method: str) -> Optional[FrozenSet[int]]:
        """Levels allowed to call ``method``; a method without entry is open to everyone."""
        return self.levels.get(method.upper(), EVERYONE)


class RequestRouter:
    """Dispatches requests to the controller of the first matching route.

    Args:
        routes: Route definitions in matching order
        controllers: Specialized controllers by name, added to the defaults
    """

    def __init__(
        self,
        routes: Iterable[RouteSchema],
        controllers: Optional[Mapping[str, Type[UrlController]]] = None,
    ) -> None:
        self.controllers: Dict[str, Type[UrlController]] = dict(DEFAULT_CONTROLLERS)
        self.controllers.update(controllers or {})
        self.routes: Tuple[Route, ...] = tuple(Route.from_schema(route) for route in routes)
        for route in self.routes:
            if route.controller is not None and route.controller not in self.controllers:
                raise InvalidConfigurationError(f"Route {route.source!r} names unknown controller {route.controller!r}")

    def match(self, path: str) -> Tuple[Route, Dict[str, Optional[str]]]:
        for route in self.routes:
            found = route.regex.search(path)
            if found:
                return route, found.groupdict()
        raise UnknownControllerError(f"Unknown URL {path}")

    def url_listing(self) -> Dict[str, str]:
        return {route.humanized: route.description or NO_DESCRIPTION for route in self.routes}

    def urls_for(self, entity: str) -> List[str]:
        return [route.humanized for route in self.routes if route.entity == entity]

    def controller_for(
        self,
        context,
        route: Route,
        params: Mapping[str, Optional[str]],
        query: Mapping[str, List[Optional[str]]],
        body: bytes,
    ) -> UrlController:
        controller_cls = EntityController if route.entity is not None else self.controllers[route.controller]
        return controller_cls(context, route, params, query, body, router=self)

    def dispatch(
        self,
        context,
        method: str,
        path: str,
        query: Mapping[str, List[Optional[str]]],
        body: bytes = b"",
    ) -> ApiResponse:
        """Handle one request.

        Args:
            context: Request context (session, registry, storage, settings)
            method: HTTP method
            path: Request path relative to the API prefix
            query: Normalized query parameters (see ``normalize_query``)
            body: Raw request body

        Returns:
            The response to render; API errors are rendered, never raised
        """
        try:
            if URLS_PARAM in query:
                return ApiResponse(status.HTTP_200_OK, self.url_listing())
            route, params = self.match(path)
            controller = self.controller_for(context, route, params, query, body)
            return controller.handle(method)
        except ApiError as exc:
            return self.error_response(exc, context.session, method, path)

    @staticmethod
    def error_response(
        exc: ApiError, session: SessionInfo, method: str = "", path: str = ""
    ) -> ApiResponse:
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(f"{method} {path} failed: {exc.message}", extra={"error_type": type(exc).__name__})
        else:
            logger.info(f"{method} {path} answered {exc.status_code}: {exc.message}")
        body = {"error": exc.message, "session_info": session.to_dict()} if exc.message else None
        return ApiResponse(exc.status_code, body, dict(exc.headers))
