"""Read-only queries over roles, permissions and assignments."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..users.models import UserPermission
from .catalog import PermissionCatalog
from .matrix import RolePermissionMatrix
from .models import Role, RolePermission, UserRole


@runtime_checkable
class Principal(Protocol):
    """Anything identifying an authenticated user by integer ``id``."""

    id: int


class RolesQuery:
    """Facade used by the resolver, HTTP handlers and the CLI."""

    def __init__(self, session: AsyncSession, catalog: PermissionCatalog) -> None:
        self._session = session
        self._catalog = catalog
        self._matrix = RolePermissionMatrix(session, catalog)

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def catalog(self) -> PermissionCatalog:
        return self._catalog

    def list_permissions(self) -> tuple[str, ...]:
        return self._catalog.list_permissions()

    async def list_roles(self) -> Sequence[Role]:
        result = await self._session.execute(
            select(Role).order_by(Role.created_at, Role.id)
        )
        return result.scalars().all()

    async def has_role(self, principal: Principal, name: str) -> bool:
        stmt = select(
            exists()
            .where(UserRole.user_id == principal.id)
            .where(UserRole.role_id == Role.id)
            .where(Role.name == name)
        )
        return bool(await self._session.scalar(stmt))

    async def has_permission(self, principal: Principal, name: str) -> bool:
        if not self._catalog.is_valid(name):
            return False

        direct = select(
            exists()
            .where(UserPermission.user_id == principal.id)
            .where(UserPermission.permission == name)
        )
        if await self._session.scalar(direct):
            return True

        via_role = select(
            exists()
            .where(UserRole.user_id == principal.id)
            .where(RolePermission.role_id == UserRole.role_id)
            .where(RolePermission.permission == name)
            .where(RolePermission.enabled.is_(True))
        )
        return bool(await self._session.scalar(via_role))

    async def roles_for_user(self, user_id: int) -> Sequence[Role]:
        """Return the roles held by ``user_id`` in assignment order."""

        result = await self._session.execute(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.id)
        )
        return result.scalars().all()

    async def role_names_for_user(self, user_id: int) -> list[str]:
        return [role.name for role in await self.roles_for_user(user_id)]

    async def direct_permissions_for_user(self, user_id: int) -> list[str]:
        """Return permissions granted directly to ``user_id`` in grant order."""

        result = await self._session.execute(
            select(UserPermission.permission)
            .where(UserPermission.user_id == user_id)
            .order_by(UserPermission.id)
        )
        return [name for name in result.scalars() if self._catalog.is_valid(name)]

    async def permissions_for_user(self, user_id: int) -> list[str]:
        """Return direct grants followed by permissions inherited from roles."""

        held: dict[str, None] = dict.fromkeys(
            await self.direct_permissions_for_user(user_id)
        )
        for role in await self.roles_for_user(user_id):
            for permission in await self._matrix.permissions_for_role(role.id):
                held.setdefault(permission, None)
        return list(held)

    async def permissions_for_role(self, role_id: str) -> list[str]:
        return await self._matrix.permissions_for_role(role_id)

    async def matrix_data(self) -> dict[str, Any]:
        """Return permissions, roles and the full matrix for admin views."""

        roles = await self.list_roles()
        return {
            "permissions": list(self.list_permissions()),
            "roles": [{"id": role.id, "name": role.name} for role in roles],
            "role_permissions": await self._matrix.get_matrix(),
        }


__all__ = ["Principal", "RolesQuery"]
