"""
Exception handlers for the metacrud server.

This package contains custom exception handlers for different error types
and a setup function to register them with the FastAPI application.
"""

from .global_handler import api_error_handler, global_exception_handler, setup_exception_handlers

__all__ = ["api_error_handler", "global_exception_handler", "setup_exception_handlers"]
