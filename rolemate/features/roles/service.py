"""Assignment of permissions and roles to users and of permissions to roles."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rolemate.core.exceptions import (
    PersistenceError,
    RoleNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from rolemate.db import atomic, begin_write

from ..users.models import User, UserPermission
from ..users.repository import UsersRepository
from .catalog import PermissionCatalog
from .matrix import RolePermissionMatrix
from .models import Role, UserRole

logger = logging.getLogger(__name__)


def _unique_roles(roles: Iterable[Role]) -> list[Role]:
    seen: dict[str, Role] = {}
    for role in roles:
        seen.setdefault(role.id, role)
    return list(seen.values())


class AssignmentService:
    """Mutate user permissions, user roles and role permissions.

    ``replace_*`` operations leave exactly the given (valid) values in place;
    ``union_*`` operations add the given values to what is already held and
    never remove anything. Each call runs in one transaction that locks the
    user or role row being changed, so concurrent unions do not lose updates.
    """

    def __init__(self, session: AsyncSession, catalog: PermissionCatalog) -> None:
        self._session = session
        self._catalog = catalog
        self._users = UsersRepository(session)
        self._matrix = RolePermissionMatrix(session, catalog)

    # Lookups -------------------------------------------------------------
    #
    # Lookups open a writer transaction: the caller usually mutates next, and
    # SQLite cannot upgrade a read lock while another writer is waiting.

    async def get_user(self, user_id: int) -> User:
        await begin_write(self._session)
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def get_role_by_name(self, name: str) -> Role:
        await begin_write(self._session)
        role = await self._find_role(name.strip())
        if role is None:
            raise RoleNotFoundError(name)
        return role

    async def find_or_create_role(self, name: str) -> Role:
        """Return the role called ``name``, creating it on first reference."""

        candidate = name.strip() if name else ""
        if not candidate:
            raise ValidationError("Role name must not be empty")

        await begin_write(self._session)
        role = await self._find_role(candidate)
        if role is not None:
            return role

        try:
            async with atomic(self._session):
                role = Role(name=candidate)
                self._session.add(role)
                await self._session.flush([role])
        except IntegrityError as exc:
            # Another transaction created the role after our select.
            existing = await self._find_role(candidate)
            if existing is None:
                raise PersistenceError(f"Failed to create role {candidate!r}: {exc}") from exc
            logger.debug("Role %s was created concurrently; reusing %s", candidate, existing.id)
            return existing
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to create role {candidate!r}: {exc}") from exc
        logger.info("Created role %s (%s)", role.name, role.id)
        return role

    async def roles_by_names(self, names: Iterable[str]) -> list[Role]:
        """Return existing roles for ``names`` in input order; unknown names are skipped."""

        wanted = list(dict.fromkeys(name.strip() for name in names if name and name.strip()))
        if not wanted:
            return []
        await begin_write(self._session)
        result = await self._session.execute(select(Role).where(Role.name.in_(wanted)))
        by_name = {role.name: role for role in result.scalars()}
        skipped = [name for name in wanted if name not in by_name]
        if skipped:
            logger.debug("Ignoring unknown roles: %s", ", ".join(skipped))
        return [by_name[name] for name in wanted if name in by_name]

    # User permissions ----------------------------------------------------

    async def union_user_permissions(self, user: User, permissions: Iterable[str]) -> list[str]:
        """Grant the valid ``permissions`` the user does not hold yet."""

        requested = self._catalog.filter(permissions)
        try:
            async with atomic(self._session):
                await self._lock_user(user.id)
                held = await self._direct_permissions(user.id)
                missing = [name for name in requested if name not in held]
                self._session.add_all(
                    UserPermission(user_id=user.id, permission=name) for name in missing
                )
                await self._session.flush()
        except SQLAlchemyError as exc:
            raise self._persistence_error("grant permissions to user", user.id, exc) from exc

        logger.info("Granted %d permission(s) to user %s", len(missing), user.id)
        return await self._direct_permissions_ordered(user.id)

    async def replace_user_permissions(self, user: User, permissions: Iterable[str]) -> list[str]:
        """Make the user's direct grants exactly the valid ``permissions``."""

        requested = self._catalog.filter(permissions)
        try:
            async with atomic(self._session):
                await self._lock_user(user.id)
                held = await self._direct_permissions(user.id)
                stale = [name for name in held if name not in requested]
                if stale:
                    await self._session.execute(
                        delete(UserPermission).where(
                            UserPermission.user_id == user.id,
                            UserPermission.permission.in_(stale),
                        )
                    )
                self._session.add_all(
                    UserPermission(user_id=user.id, permission=name)
                    for name in requested
                    if name not in held
                )
                await self._session.flush()
        except SQLAlchemyError as exc:
            raise self._persistence_error("replace permissions of user", user.id, exc) from exc

        logger.info("Replaced direct permissions of user %s", user.id)
        return await self._direct_permissions_ordered(user.id)

    # Role permissions ----------------------------------------------------

    async def replace_role_permissions(self, role: Role, permissions: Iterable[str]) -> list[str]:
        """Leave ``role`` holding exactly the valid ``permissions``."""

        requested = set(self._catalog.filter(permissions))
        cells = {name: name in requested for name in self._catalog}
        await self._matrix.update_matrix({role.id: cells})
        return await self._matrix.permissions_for_role(role.id)

    async def union_role_permissions(self, role: Role, permissions: Iterable[str]) -> list[str]:
        """Add the valid ``permissions`` to those ``role`` already holds."""

        requested = self._catalog.filter(permissions)
        try:
            async with atomic(self._session):
                await self._lock_role(role.id)
                current = await self._matrix.permissions_for_role(role.id)
                result = await self.replace_role_permissions(role, [*current, *requested])
        except SQLAlchemyError as exc:
            raise self._persistence_error("append permissions to role", role.id, exc) from exc
        return result

    # User roles ----------------------------------------------------------

    async def replace_user_roles(self, user: User, roles: Iterable[Role]) -> list[Role]:
        """Sync the user's role links to exactly ``roles``."""

        desired = _unique_roles(roles)
        desired_ids = [role.id for role in desired]
        try:
            async with atomic(self._session):
                await self._lock_user(user.id)
                result = await self._session.execute(
                    select(UserRole.role_id).where(UserRole.user_id == user.id)
                )
                current_ids = set(result.scalars())
                stale = current_ids - set(desired_ids)
                if stale:
                    await self._session.execute(
                        delete(UserRole).where(
                            UserRole.user_id == user.id,
                            UserRole.role_id.in_(sorted(stale)),
                        )
                    )
                self._session.add_all(
                    UserRole(user_id=user.id, role_id=role_id)
                    for role_id in desired_ids
                    if role_id not in current_ids
                )
                await self._session.flush()
        except SQLAlchemyError as exc:
            raise self._persistence_error("assign roles to user", user.id, exc) from exc

        logger.info("User %s now holds %d role(s)", user.id, len(desired_ids))
        return await self._roles_for_user(user.id)

    async def union_user_roles(self, user: User, roles: Iterable[Role]) -> list[Role]:
        """Add ``roles`` to the roles the user already holds."""

        try:
            async with atomic(self._session):
                await self._lock_user(user.id)
                current = await self._roles_for_user(user.id)
                result = await self.replace_user_roles(user, [*current, *roles])
        except SQLAlchemyError as exc:
            raise self._persistence_error("append roles to user", user.id, exc) from exc
        return result

    # Helpers -------------------------------------------------------------

    async def _find_role(self, name: str) -> Role | None:
        result = await self._session.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def _lock_user(self, user_id: int) -> None:
        if await self._users.get_by_id_for_update(user_id) is None:
            raise UserNotFoundError(user_id)

    async def _lock_role(self, role_id: str) -> None:
        result = await self._session.execute(
            select(Role.id).where(Role.id == role_id).with_for_update()
        )
        if result.scalar_one_or_none() is None:
            raise RoleNotFoundError(role_id)

    async def _direct_permissions(self, user_id: int) -> set[str]:
        result = await self._session.execute(
            select(UserPermission.permission).where(UserPermission.user_id == user_id)
        )
        return set(result.scalars())

    async def _direct_permissions_ordered(self, user_id: int) -> list[str]:
        result = await self._session.execute(
            select(UserPermission.permission)
            .where(UserPermission.user_id == user_id)
            .order_by(UserPermission.id)
        )
        return list(result.scalars())

    async def _roles_for_user(self, user_id: int) -> list[Role]:
        result = await self._session.execute(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.id)
        )
        return list(result.scalars())

    @staticmethod
    def _persistence_error(action: str, target: object, exc: SQLAlchemyError) -> PersistenceError:
        logger.exception("Failed to %s %s", action, target)
        return PersistenceError(f"Failed to {action} {target}: {exc}")


__all__ = ["AssignmentService"]
