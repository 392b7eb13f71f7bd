"""
Session Controller.

Tells callers how the server sees them: their level and whether their
session is logged in or expired.
"""

from fastapi import status

from .controller import ApiResponse, UrlController


class SessionController(UrlController):
    methods = ("GET",)

    def get(self) -> ApiResponse:
        body = {"level": self.session.level}
        body.update(self.session.to_dict())
        return ApiResponse(status.HTTP_200_OK, body)
