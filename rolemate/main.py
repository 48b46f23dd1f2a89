"""rolemate FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from starlette.routing import BaseRoute

from .core.exceptions import RedirectConfigurationError
from .core.logging import configure_logging
from .db import ensure_database_ready
from .features.roles.catalog import PermissionCatalog
from .features.roles.dependencies import AccessDenied, access_denied_handler
from .features.roles.router import router as roles_router
from .settings import Settings, get_app_settings, get_settings

API_PREFIX = "/api"

logger = logging.getLogger(__name__)


def install_access_control(app: FastAPI, settings: Settings) -> None:
    """Attach settings, the permission catalog and the denial handler to ``app``.

    Host applications that mount the guards on their own app call this once
    before serving requests.
    """

    app.state.settings = settings
    app.state.catalog = PermissionCatalog.from_settings(settings)
    app.add_exception_handler(AccessDenied, access_denied_handler)


def _route_names(routes: list[BaseRoute]) -> set[str]:
    names: set[str] = set()
    for route in routes:
        name = getattr(route, "name", None)
        if name:
            names.add(name)
        nested = getattr(route, "routes", None)
        if nested:
            names.update(_route_names(list(nested)))
    return names


def validate_redirect_routes(app: FastAPI) -> None:
    """Raise :class:`RedirectConfigurationError` for redirect targets ``app`` lacks."""

    settings = get_app_settings(app)
    wanted = settings.redirects_roles.route_names() | settings.redirects_permissions.route_names()
    missing = wanted - _route_names(list(app.router.routes))
    if missing:
        raise RedirectConfigurationError(sorted(missing))
    logger.debug("Redirect routes resolved: %s", ", ".join(sorted(wanted)))


def create_app(settings: Settings | None = None) -> FastAPI:
    """Return a configured FastAPI application."""

    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        validate_redirect_routes(app)
        await ensure_database_ready(settings)
        logger.info("%s %s ready", settings.app_name, settings.app_version)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs" if settings.api_docs_enabled else None,
        redoc_url="/redoc" if settings.api_docs_enabled else None,
        openapi_url="/openapi.json" if settings.api_docs_enabled else None,
        lifespan=lifespan,
    )

    install_access_control(app, settings)
    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    app.include_router(roles_router, prefix=API_PREFIX)

    @app.get("/", name="index", status_code=status.HTTP_200_OK, include_in_schema=False)
    async def read_index() -> dict[str, str]:
        return {"service": app.title}

    @app.get("/health", status_code=status.HTTP_200_OK, summary="Service health status")
    async def read_health() -> dict[str, str]:
        return {"status": "ok"}


__all__ = [
    "API_PREFIX",
    "create_app",
    "install_access_control",
    "validate_redirect_routes",
]
