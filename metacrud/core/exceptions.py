"""
API Error Taxonomy.

Every request-scoped failure is an ``ApiError`` carrying the HTTP status code
it is rendered with. The request router catches them and turns them into the
standard error body. ``InvalidConfigurationError`` is deliberately not an
``ApiError``: broken metadata must stop the application at startup.
"""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import status


class InvalidConfigurationError(Exception):
    """Entity metadata or a table mapping violates one of its invariants."""


class ApiError(Exception):
    """Base class for errors that are rendered as an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = ""

    def __init__(self, message: Optional[str] = None, *, headers: Optional[Dict[str, str]] = None) -> None:
        self.message = self.default_message if message is None else message
        self.headers: Dict[str, str] = dict(headers or {})
        super().__init__(self.message)


class RequestParsingError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "The request could not be parsed"


class RequiredPropertyError(ApiError):
    """A required property is missing from a deserialized body."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Required property not found"


class RequiredFieldError(ApiError):
    """A required primary-key segment is missing when creating a resource."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Required field not found"


class UnauthorizedError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not enough privileges"


class ResourceNotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class UnknownControllerError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Unknown URL"


class UnknownMethodError(ApiError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    default_message = "Method not allowed"


class AlreadyExistentResourceError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "The resource already exists"


class ForeignKeyConstraintError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Foreign keys prevent deleting the resource"


class UncontrolledStorageError(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Storage error"
