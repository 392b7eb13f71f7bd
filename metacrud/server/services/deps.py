"""
Request Dependencies.

Provides the ``RequestContext`` handed to the request router: the caller's
session, resolved from the ``Authorization`` header, together with the
application-wide registry, storage and settings.
"""

from dataclasses import dataclass
from typing import Annotated, Mapping, Optional

from fastapi import Depends, Request

from metacrud.core.database.storage import Storage
from metacrud.core.exceptions import UnauthorizedError
from metacrud.core.logging_config import get_logger
from metacrud.core.model.session import ANONYMOUS, NO_SESSION, SessionInfo
from metacrud.core.registry import EntityRegistry
from metacrud.server.core.config import Settings

logger = get_logger(__name__)

BEARER_SCHEME = "bearer"


class SessionResolver:
    """Maps bearer tokens to session levels.

    Args:
        tokens: Token to level table
    """

    def __init__(self, tokens: Mapping[str, int]) -> None:
        self.tokens = dict(tokens)

    def resolve(self, authorization: Optional[str]) -> SessionInfo:
        """Session of the caller presenting ``authorization``.

        No header gives the anonymous session; an unknown token gives an
        anonymous session flagged as expired.

        Raises:
            UnauthorizedError: The header does not use the Bearer scheme
        """
        if not authorization:
            return ANONYMOUS
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() != BEARER_SCHEME or not token.strip():
            raise UnauthorizedError("Only Bearer authorization is supported")
        level = self.tokens.get(token.strip())
        if level is None:
            logger.info("Request with an unknown or expired token")
            return SessionInfo(level=NO_SESSION, logged_in=False, expired=True)
        return SessionInfo(level=level, logged_in=True)


@dataclass(frozen=True)
class RequestContext:
    """Everything a controller needs for one request."""

    session: SessionInfo
    registry: EntityRegistry
    storage: Storage
    settings: Settings


def get_request_context(request: Request) -> RequestContext:
    """Build the request context from the application state."""
    state = request.app.state
    session = state.session_resolver.resolve(request.headers.get("Authorization"))
    return RequestContext(session=session, registry=state.registry, storage=state.storage, settings=state.settings)


RequestContextDep = Annotated[RequestContext, Depends(get_request_context)]
