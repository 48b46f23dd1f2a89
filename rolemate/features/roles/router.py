"""HTTP endpoints for role and permission management."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from rolemate.core.exceptions import NotFoundError, PersistenceError, ValidationError

from ..users.models import User
from .dependencies import get_roles_query, require_manage_permission
from .matrix import RolePermissionMatrix
from .query import RolesQuery
from .schemas import MatrixRead, MatrixUpdate, PermissionCatalogRead, RoleRead

router = APIRouter(tags=["roles"])

QueryDependency = Annotated[RolesQuery, Depends(get_roles_query)]
ManagerDependency = Annotated[User, Depends(require_manage_permission)]

_GUARD_RESPONSES = {
    status.HTTP_302_FOUND: {"description": "Caller lacks the management permission."},
    status.HTTP_401_UNAUTHORIZED: {"description": "Authentication required."},
}


@router.get(
    "/permissions",
    response_model=PermissionCatalogRead,
    summary="List the permission catalog",
    responses=_GUARD_RESPONSES,
)
async def list_permissions(
    query: QueryDependency,
    _manager: ManagerDependency,
) -> PermissionCatalogRead:
    return PermissionCatalogRead(permissions=list(query.list_permissions()))


@router.get(
    "/roles",
    response_model=list[RoleRead],
    summary="List roles with their permissions",
    responses=_GUARD_RESPONSES,
)
async def list_roles(
    query: QueryDependency,
    _manager: ManagerDependency,
) -> list[RoleRead]:
    roles = await query.list_roles()
    return [
        RoleRead(
            id=role.id,
            name=role.name,
            permissions=await query.permissions_for_role(role.id),
        )
        for role in roles
    ]


@router.get(
    "/roles/matrix",
    response_model=MatrixRead,
    summary="Return the role x permission matrix",
    responses=_GUARD_RESPONSES,
)
async def read_matrix(
    query: QueryDependency,
    _manager: ManagerDependency,
) -> MatrixRead:
    return MatrixRead.model_validate(await query.matrix_data())


@router.put(
    "/roles/matrix",
    response_model=MatrixRead,
    summary="Apply a sparse update to the role x permission matrix",
    responses={
        **_GUARD_RESPONSES,
        status.HTTP_404_NOT_FOUND: {"description": "A role in the payload does not exist."},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"description": "Unknown permission (reject policy)."},
    },
)
async def update_matrix(
    payload: MatrixUpdate,
    query: QueryDependency,
    _manager: ManagerDependency,
) -> MatrixRead:
    """Write the given cells; permissions omitted for a role keep their value."""

    matrix = RolePermissionMatrix(query.session, query.catalog)
    try:
        await matrix.update_matrix(payload.root)
    except NotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return MatrixRead.model_validate(await query.matrix_data())


__all__ = ["router"]
