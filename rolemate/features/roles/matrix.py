"""Persistent role x permission matrix."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rolemate.core.exceptions import PersistenceError, RoleNotFoundError
from rolemate.db import atomic

from .catalog import PermissionCatalog
from .models import Role, RolePermission

logger = logging.getLogger(__name__)

MatrixUpdate = Mapping[str, Mapping[str, bool]]


class RolePermissionMatrix:
    """Read and reconcile the ``role_permissions`` cells.

    Updates are sparse: a role listed in an update gets exactly the given
    cells written, while cells for permissions the update omits keep their
    stored value. Callers that want "exactly these permissions" enumerate the
    whole catalog (see :meth:`AssignmentService.replace_role_permissions`).
    """

    def __init__(self, session: AsyncSession, catalog: PermissionCatalog) -> None:
        self._session = session
        self._catalog = catalog

    async def get_matrix(self) -> dict[str, dict[str, bool]]:
        """Return one row per role with a column for every catalog permission."""

        roles = await self._session.execute(
            select(Role.id).order_by(Role.created_at, Role.id)
        )
        matrix: dict[str, dict[str, bool]] = {
            role_id: {permission: False for permission in self._catalog}
            for role_id in roles.scalars()
        }

        cells = await self._session.execute(select(RolePermission))
        for cell in cells.scalars():
            row = matrix.get(cell.role_id)
            if row is not None and cell.permission in row:
                row[cell.permission] = bool(cell.enabled)
        return matrix

    async def permissions_for_role(self, role_id: str) -> list[str]:
        """Return the enabled catalog permissions of ``role_id`` in catalog order."""

        result = await self._session.execute(
            select(RolePermission.permission).where(
                RolePermission.role_id == role_id,
                RolePermission.enabled.is_(True),
            )
        )
        return self._catalog.sort(result.scalars())

    async def update_matrix(self, updates: MatrixUpdate) -> None:
        """Write ``updates`` atomically.

        Unknown roles raise :class:`RoleNotFoundError`; unknown permission
        names follow the catalog policy. Store failures roll the whole call
        back and surface as :class:`PersistenceError`.
        """

        if not updates:
            return

        try:
            async with atomic(self._session):
                await self._apply(updates)
        except SQLAlchemyError as exc:
            logger.exception("Role permission matrix update failed")
            raise PersistenceError(f"Failed to update role permissions: {exc}") from exc

    async def _apply(self, updates: MatrixUpdate) -> None:
        role_ids = list(updates)
        result = await self._session.execute(
            select(Role.id).where(Role.id.in_(role_ids)).with_for_update()
        )
        known = set(result.scalars())
        for role_id in role_ids:
            if role_id not in known:
                raise RoleNotFoundError(role_id)

        existing_result = await self._session.execute(
            select(RolePermission).where(RolePermission.role_id.in_(role_ids))
        )
        existing = {
            (cell.role_id, cell.permission): cell for cell in existing_result.scalars()
        }

        for role_id, cells in updates.items():
            valid = set(self._catalog.filter(cells))
            written = 0
            for permission, enabled in cells.items():
                permission = permission.strip()
                if permission not in valid:
                    continue
                cell = existing.get((role_id, permission))
                if cell is None:
                    cell = RolePermission(role_id=role_id, permission=permission)
                    self._session.add(cell)
                    existing[(role_id, permission)] = cell
                cell.enabled = bool(enabled)
                written += 1
            logger.info("Updated %d matrix cell(s) for role %s", written, role_id)

        await self._session.flush()


__all__ = ["MatrixUpdate", "RolePermissionMatrix"]
