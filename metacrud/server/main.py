"""
Main Application Entry Point.

This module initializes the FastAPI application, configures middleware (CORS),
and includes the health and dispatch routers. It serves as the root of the
web server.
"""

from contextlib import asynccontextmanager
from typing import Mapping, Optional, Type

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

import metacrud
from metacrud.core.database.storage import Storage
from metacrud.core.exceptions import InvalidConfigurationError
from metacrud.core.logging_config import get_logger, setup_logging
from metacrud.core.registry import EntityRegistry
from metacrud.core.schema import ApiSchema, SchemaRepository

from .api import dispatch, health
from .core import constant
from .core.config import Settings, settings
from .exception_handlers import setup_exception_handlers
from .routing.controller import UrlController
from .routing.router import RequestRouter
from .services.deps import SessionResolver

# Initialize logging
setup_logging()
logger = get_logger(__name__)


def load_schema(app_settings: Settings, storage: Storage) -> ApiSchema:
    """Read the API schema from the configured source.

    Raises:
        InvalidConfigurationError: The file source is selected but no file is configured
    """
    if app_settings.schema_source == constant.SCHEMA_SOURCE_DATABASE:
        with Session(storage.engine) as session:
            return SchemaRepository(session).load()
    if not app_settings.schema_file:
        raise InvalidConfigurationError("METACRUD_SCHEMA_FILE must be set when the schema source is 'file'")
    logger.info(f"Loading schema from {app_settings.schema_file}")
    return ApiSchema.from_file(app_settings.schema_file)


def install(
    app: FastAPI,
    registry: EntityRegistry,
    storage: Storage,
    app_settings: Settings,
    controllers: Optional[Mapping[str, Type[UrlController]]] = None,
) -> None:
    """Attach the registry, storage and request router to the application state."""
    app.state.registry = registry
    app.state.storage = storage
    app.state.settings = app_settings
    app.state.router = RequestRouter(registry.routes, controllers)
    app.state.session_resolver = SessionResolver(app_settings.api_tokens)


def create_app(
    registry: Optional[EntityRegistry] = None,
    storage: Optional[Storage] = None,
    app_settings: Settings = settings,
    controllers: Optional[Mapping[str, Type[UrlController]]] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    When ``registry`` and ``storage`` are given the application is ready at
    once; otherwise the lifespan loads the schema and builds them on startup.

    Args:
        registry: Prebuilt entity registry
        storage: Storage of the entity database
        app_settings: Application settings
        controllers: Specialized controllers by name

    Returns:
        The configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application lifespan events.

        Loads the schema and builds the registry unless they were injected,
        and disposes the storage it created on shutdown.
        """
        # Startup
        logger.info("Starting up metacrud server...")
        owned_storage = None
        if getattr(app.state, "registry", None) is None:
            owned_storage = storage or Storage.from_url(app_settings.database_url)
            schema = load_schema(app_settings, owned_storage)
            install(app, EntityRegistry.from_schema(schema), owned_storage, app_settings, controllers)
            logger.info("Entity registry installed")

        yield

        # Shutdown
        logger.info("Shutting down metacrud server...")
        if owned_storage is not None and storage is None:
            owned_storage.dispose()

    app = FastAPI(
        title=constant.PROJECT_NAME,
        description="""
        metacrud API

        Generic REST layer exposing the entities declared in the API schema
        through CRUD semantics, with filtering, pagination and level-based access.
        """,
        version=metacrud.__version__,
        lifespan=lifespan,
    )

    if registry is not None:
        install(app, registry, storage or Storage.from_url(app_settings.database_url), app_settings, controllers)

    cors = app_settings.cors
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.origins,
        allow_credentials=cors.allow_credentials,
        allow_methods=cors.allow_methods,
        allow_headers=cors.allow_headers,
    )

    setup_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(dispatch.router, prefix=app_settings.api_prefix)
    return app


app = create_app()
