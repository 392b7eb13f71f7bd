"""
URL Controllers.

A controller handles every method of one matched route. ``UrlController``
checks the caller's level for the requested method before calling the
method's implementation, answers OPTIONS, and rejects the methods it does not
implement with a 405 carrying the ``Allow`` header.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence

from fastapi import status

from metacrud.core.exceptions import RequestParsingError, UnauthorizedError, UnknownMethodError
from metacrud.core.logging_config import get_logger

if TYPE_CHECKING:
    from metacrud.server.services.deps import RequestContext

    from .router import RequestRouter, Route

logger = get_logger(__name__)


@dataclass
class ApiResponse:
    """Status, JSON payload (``None`` for no body) and headers of a response."""

    status_code: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class UrlController:
    """Base controller.

    Subclasses implement ``get``, ``post``, ``put`` and ``delete`` as needed
    and list them in ``methods``.
    """

    methods: Sequence[str] = ()

    def __init__(
        self,
        context: "RequestContext",
        route: "Route",
        params: Mapping[str, Optional[str]],
        query: Mapping[str, List[Optional[str]]],
        body: bytes = b"",
        router: Optional["RequestRouter"] = None,
    ) -> None:
        self.context = context
        self.route = route
        self.params = {name: value for name, value in params.items() if value is not None}
        self.query = query
        self.raw_body = body
        self.router = router

    @property
    def session(self):
        return self.context.session

    def query_value(self, name: str, default: Any = None) -> Any:
        values = self.query.get(name)
        if not values or values[-1] is None:
            return default
        return values[-1]

    def has_query(self, name: str) -> bool:
        return self.query_value(name) is not None

    def int_query(self, name: str, default: int) -> int:
        raw = self.query_value(name)
        if raw is None:
            return default
        try:
            return int(raw)
        except ValueError:
            raise RequestParsingError(f"The parameter '{name}' must be an integer") from None

    def json_body(self, default: Any = None) -> Any:
        """Request body parsed as a JSON object or array.

        Raises:
            RequestParsingError: Malformed JSON, or a JSON scalar
        """
        if not self.raw_body or not self.raw_body.strip():
            return default
        try:
            body = json.loads(self.raw_body)
        except ValueError:
            raise RequestParsingError("The request body is not valid JSON") from None
        if not isinstance(body, (dict, list)):
            raise RequestParsingError("The request body must be a JSON object or array")
        return body

    def supported_methods(self) -> List[str]:
        """Methods meaningful for this request, before the level check."""
        return list(self.methods)

    def allowed_methods(self) -> List[str]:
        return [method for method in self.supported_methods() if self.session.has_level(self.route.levels_for(method))]

    def allow_header(self) -> Dict[str, str]:
        return {"Allow": ", ".join(self.allowed_methods())}

    def check_level(self, method: str) -> None:
        if not self.session.has_level(self.route.levels_for(method)):
            logger.info(
                f"Rejected {method} {self.route.source} for level {self.session.level}",
                extra={"method": method, "route": self.route.source, "level": self.session.level},
            )
            raise UnauthorizedError()

    def handle(self, method: str) -> ApiResponse:
        method = method.upper()
        if method == "OPTIONS":
            return self.options()
        if method not in self.methods:
            raise UnknownMethodError(headers=self.allow_header())
        self.check_level(method)
        return getattr(self, method.lower())()

    def options(self) -> ApiResponse:
        return ApiResponse(status.HTTP_204_NO_CONTENT, headers=self.allow_header())
