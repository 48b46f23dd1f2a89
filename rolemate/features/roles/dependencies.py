"""FastAPI dependencies for role and permission guards."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from rolemate.db.session import get_read_session, get_session
from rolemate.settings import get_app_settings

from ..users.models import User
from .catalog import PermissionCatalog
from .query import RolesQuery
from .resolver import AccessOutcome, AuthorizationDecision, AuthorizationResolver


class AccessDenied(Exception):
    """Raised by guards to end the request with a redirect to ``route_name``."""

    def __init__(self, route_name: str, message: str) -> None:
        super().__init__(message)
        self.route_name = route_name
        self.message = message


def get_catalog(request: Request) -> PermissionCatalog:
    """Return the catalog built at startup, or build one from app settings."""

    catalog = getattr(request.app.state, "catalog", None)
    if isinstance(catalog, PermissionCatalog):
        return catalog
    catalog = PermissionCatalog.from_settings(get_app_settings(request.app))
    request.app.state.catalog = catalog
    return catalog


SessionDependency = Annotated[AsyncSession, Depends(get_session)]
ReadSessionDependency = Annotated[AsyncSession, Depends(get_read_session)]
CatalogDependency = Annotated[PermissionCatalog, Depends(get_catalog)]


def get_roles_query(session: SessionDependency, catalog: CatalogDependency) -> RolesQuery:
    return RolesQuery(session, catalog)


def get_authorization_resolver(
    request: Request,
    session: ReadSessionDependency,
    catalog: CatalogDependency,
) -> AuthorizationResolver:
    """Resolver for guards; it reads through the guard's own short-lived session."""

    query = RolesQuery(session, catalog)
    return AuthorizationResolver.from_settings(query, get_app_settings(request.app))


async def get_current_principal(request: Request, session: ReadSessionDependency) -> User | None:
    """Load the user the host's authentication layer put on ``request.state.user_id``."""

    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        return None
    try:
        identifier = int(user_id)
    except (TypeError, ValueError):
        return None
    return await session.get(User, identifier)


PrincipalDependency = Annotated[User | None, Depends(get_current_principal)]
ResolverDependency = Annotated[AuthorizationResolver, Depends(get_authorization_resolver)]


def _enforce(decision: AuthorizationDecision, principal: User | None) -> User:
    if decision.outcome is AccessOutcome.UNAUTHENTICATED or principal is None:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    if decision.outcome is AccessOutcome.DENIED:
        raise AccessDenied(decision.redirect_to or "", decision.message or "")
    return principal


def require_roles(*roles: str) -> Callable[..., Awaitable[User]]:
    """Build a dependency that admits principals holding any of ``roles``."""

    required = tuple(roles)

    async def check_roles(
        principal: PrincipalDependency,
        resolver: ResolverDependency,
        session: ReadSessionDependency,
    ) -> User:
        decision = await resolver.has_any_role(principal, required)
        await session.close()
        return _enforce(decision, principal)

    return check_roles


def require_permissions(*permissions: str) -> Callable[..., Awaitable[User]]:
    """Build a dependency that admits principals holding any of ``permissions``."""

    required = tuple(permissions)

    async def check_permissions(
        principal: PrincipalDependency,
        resolver: ResolverDependency,
        session: ReadSessionDependency,
    ) -> User:
        decision = await resolver.has_any_permission(principal, required)
        await session.close()
        return _enforce(decision, principal)

    return check_permissions


async def require_manage_permission(
    request: Request,
    principal: PrincipalDependency,
    resolver: ResolverDependency,
    session: ReadSessionDependency,
) -> User:
    """Guard for the management API using the configured ``manage_permission``."""

    settings = get_app_settings(request.app)
    decision = await resolver.has_any_permission(principal, (settings.manage_permission,))
    await session.close()
    return _enforce(decision, principal)


async def access_denied_handler(request: Request, exc: AccessDenied) -> RedirectResponse:
    """Redirect to the denial route and flash the denial message."""

    settings = get_app_settings(request.app)
    response = RedirectResponse(
        url=str(request.url_for(exc.route_name)),
        status_code=status.HTTP_302_FOUND,
    )
    response.set_cookie(
        settings.flash_cookie_name,
        exc.message,
        httponly=True,
        samesite="lax",
    )
    return response


__all__ = [
    "AccessDenied",
    "access_denied_handler",
    "get_authorization_resolver",
    "get_catalog",
    "get_current_principal",
    "get_roles_query",
    "require_manage_permission",
    "require_permissions",
    "require_roles",
]
