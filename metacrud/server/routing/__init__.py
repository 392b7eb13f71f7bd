"""
Request routing.

Structure:
- router.py: route matching, dispatch and error rendering
- controller.py: controller base with level checks and OPTIONS
- generic.py: CRUD controller for schema-declared entities
- filter_parser.py: query parameters to filter groups
- session_controller.py: session information endpoint
"""

from .controller import ApiResponse, UrlController
from .generic import EntityController
from .router import RequestRouter, Route, humanize_pattern, normalize_query

__all__ = [
    "ApiResponse",
    "EntityController",
    "RequestRouter",
    "Route",
    "UrlController",
    "humanize_pattern",
    "normalize_query",
]
