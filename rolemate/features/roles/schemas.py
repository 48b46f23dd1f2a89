"""Pydantic schemas for the role and permission management API."""

from __future__ import annotations

from pydantic import RootModel

from rolemate.core.schema import BaseSchema


class RoleSummary(BaseSchema):
    """Role identifier and name."""

    id: str
    name: str


class RoleRead(RoleSummary):
    """Role with the permissions currently enabled in the matrix."""

    permissions: list[str]


class PermissionCatalogRead(BaseSchema):
    """Configured permission vocabulary in configuration order."""

    permissions: list[str]


class MatrixRead(BaseSchema):
    """Aggregate of permissions, roles and the role x permission matrix."""

    permissions: list[str]
    roles: list[RoleSummary]
    role_permissions: dict[str, dict[str, bool]]


class MatrixUpdate(RootModel[dict[str, dict[str, bool]]]):
    """Sparse update payload: ``{role_id: {permission: enabled}}``."""


__all__ = [
    "MatrixRead",
    "MatrixUpdate",
    "PermissionCatalogRead",
    "RoleRead",
    "RoleSummary",
]
