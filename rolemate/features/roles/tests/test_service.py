import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from ulid import ULID

from rolemate.core.exceptions import (
    PersistenceError,
    RoleNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from rolemate.features.roles.models import Role
from rolemate.features.roles.query import RolesQuery
from rolemate.features.roles.service import AssignmentService


@pytest.mark.asyncio
async def test_union_user_permissions_is_idempotent(session_factory, catalog, seed_users) -> None:
    user_id = seed_users["alice"]

    for _ in range(2):
        async with session_factory() as session:
            service = AssignmentService(session, catalog)
            user = await service.get_user(user_id)
            held = await service.union_user_permissions(user, ["edit articles", "view reports"])
            await session.commit()

    assert held == ["edit articles", "view reports"]


@pytest.mark.asyncio
async def test_union_user_permissions_only_adds(session_factory, catalog, seed_users) -> None:
    user_id = seed_users["alice"]

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(user_id)
        await service.union_user_permissions(user, ["edit articles"])
        held = await service.union_user_permissions(user, ["view reports", "bogus"])
        await session.commit()

    assert held == ["edit articles", "view reports"]


@pytest.mark.asyncio
async def test_replace_user_permissions_removes_grants_not_given(
    session_factory, catalog, seed_users
) -> None:
    user_id = seed_users["bob"]

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(user_id)
        await service.union_user_permissions(user, ["edit articles", "view reports"])
        held = await service.replace_user_permissions(user, ["publish articles", "view reports"])
        await session.commit()

    assert held == ["view reports", "publish articles"]

    async with session_factory() as session:
        query = RolesQuery(session, catalog)
        assert await query.direct_permissions_for_user(user_id) == held


@pytest.mark.asyncio
async def test_get_user_raises_for_unknown_id(session_factory, catalog) -> None:
    async with session_factory() as session:
        with pytest.raises(UserNotFoundError):
            await AssignmentService(session, catalog).get_user(999_999)


@pytest.mark.asyncio
async def test_find_or_create_role_reuses_existing(session_factory, catalog) -> None:
    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        first = await service.find_or_create_role("editor")
        second = await service.find_or_create_role(" editor ")
        await session.commit()

    assert first.id == second.id
    assert str(ULID.from_str(first.id)) == first.id
    assert first.created_at is not None

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(Role))
    assert count == 1


@pytest.mark.asyncio
async def test_find_or_create_role_returns_role_created_concurrently(
    session_factory, catalog, monkeypatch
) -> None:
    async with session_factory() as session:
        existing = await AssignmentService(session, catalog).find_or_create_role("editor")
        await session.commit()

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        find_role = service._find_role
        lookups: list[str] = []

        async def miss_first_lookup(name: str) -> Role | None:
            # Simulates the other writer committing between select and insert.
            lookups.append(name)
            if len(lookups) == 1:
                return None
            return await find_role(name)

        monkeypatch.setattr(service, "_find_role", miss_first_lookup)
        role = await service.find_or_create_role("editor")
        await session.commit()

    assert role.id == existing.id
    assert lookups == ["editor", "editor"]

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(Role))
    assert count == 1


@pytest.mark.asyncio
async def test_find_or_create_role_rejects_blank_name(session_factory, catalog) -> None:
    async with session_factory() as session:
        with pytest.raises(ValidationError):
            await AssignmentService(session, catalog).find_or_create_role("  ")


@pytest.mark.asyncio
async def test_get_role_by_name_raises_for_missing_role(session_factory, catalog) -> None:
    async with session_factory() as session:
        with pytest.raises(RoleNotFoundError):
            await AssignmentService(session, catalog).get_role_by_name("ghost")


@pytest.mark.asyncio
async def test_replace_role_permissions_sets_exact_set(session_factory, catalog) -> None:
    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        role = await service.find_or_create_role("editor")
        await service.replace_role_permissions(role, ["edit articles", "view reports"])
        held = await service.replace_role_permissions(role, ["view reports", "nonsense"])
        await session.commit()

    assert held == ["view reports"]


@pytest.mark.asyncio
async def test_union_role_permissions_is_monotonic(session_factory, catalog) -> None:
    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        role = await service.find_or_create_role("editor")
        await service.replace_role_permissions(role, ["view reports"])
        held = await service.union_role_permissions(role, ["edit articles"])
        again = await service.union_role_permissions(role, ["edit articles"])
        await session.commit()

    assert held == ["edit articles", "view reports"]
    assert again == held


@pytest.mark.asyncio
async def test_concurrent_unions_do_not_lose_updates(session_factory, catalog) -> None:
    async with session_factory() as session:
        await AssignmentService(session, catalog).find_or_create_role("editor")
        await session.commit()

    async def _append(permission: str) -> None:
        async with session_factory() as session:
            service = AssignmentService(session, catalog)
            role = await service.get_role_by_name("editor")
            await service.union_role_permissions(role, [permission])
            await session.commit()

    await asyncio.gather(_append("edit articles"), _append("publish articles"))

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        role = await service.get_role_by_name("editor")
        held = await RolesQuery(session, catalog).permissions_for_role(role.id)

    assert held == ["edit articles", "publish articles"]


@pytest.mark.asyncio
async def test_replace_user_roles_syncs_in_given_order(
    session_factory, catalog, seed_users
) -> None:
    user_id = seed_users["carol"]

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(user_id)
        editor = await service.find_or_create_role("editor")
        viewer = await service.find_or_create_role("viewer")
        admin = await service.find_or_create_role("admin")
        await service.replace_user_roles(user, [viewer, editor])
        held = await service.replace_user_roles(user, [editor, admin, editor])
        await session.commit()

    assert [role.name for role in held] == ["editor", "admin"]


@pytest.mark.asyncio
async def test_union_user_roles_keeps_existing_roles(session_factory, catalog, seed_users) -> None:
    user_id = seed_users["carol"]

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(user_id)
        editor = await service.find_or_create_role("editor")
        viewer = await service.find_or_create_role("viewer")
        await service.replace_user_roles(user, [editor])
        held = await service.union_user_roles(user, [viewer, editor])
        await session.commit()

    assert [role.name for role in held] == ["editor", "viewer"]


@pytest.mark.asyncio
async def test_roles_by_names_skips_unknown_names(session_factory, catalog) -> None:
    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        await service.find_or_create_role("editor")
        await service.find_or_create_role("viewer")
        found = await service.roles_by_names(["viewer", "ghost", " editor", "viewer"])
        await session.commit()

    assert [role.name for role in found] == ["viewer", "editor"]


@pytest.mark.asyncio
async def test_permissions_for_user_combines_direct_and_role_grants(
    session_factory, catalog, seed_users
) -> None:
    user_id = seed_users["alice"]

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(user_id)
        role = await service.find_or_create_role("editor")
        await service.replace_role_permissions(role, ["publish articles", "edit articles"])
        await service.union_user_permissions(user, ["view reports", "edit articles"])
        await service.replace_user_roles(user, [role])
        await session.commit()

    async with session_factory() as session:
        query = RolesQuery(session, catalog)
        held = await query.permissions_for_user(user_id)
        assert await query.has_permission(user, "publish articles")
        assert not await query.has_permission(user, "manage permissions")
        assert not await query.has_permission(user, "not in catalog")
        assert await query.has_role(user, "editor")
        assert not await query.has_role(user, "viewer")

    assert held == ["view reports", "edit articles", "publish articles"]


async def _failing_flush(self, objects=None) -> None:
    raise OperationalError("INSERT INTO user_permissions", {}, Exception("disk I/O error"))


@pytest.mark.asyncio
async def test_union_user_permissions_store_failure_keeps_prior_grants(
    session_factory, catalog, seed_users, monkeypatch
) -> None:
    user_id = seed_users["alice"]
    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(user_id)
        await service.union_user_permissions(user, ["edit articles"])
        await session.commit()

    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(user_id)
        with monkeypatch.context() as patched:
            patched.setattr(AsyncSession, "flush", _failing_flush)
            with pytest.raises(PersistenceError, match="disk I/O error"):
                await service.union_user_permissions(user, ["view reports", "publish articles"])
        await session.rollback()

    async with session_factory() as session:
        held = await RolesQuery(session, catalog).direct_permissions_for_user(user_id)
    assert held == ["edit articles"]


@pytest.mark.asyncio
async def test_idle_read_session_does_not_block_other_sessions(
    session_factory, catalog, seed_users
) -> None:
    async with session_factory() as session:
        service = AssignmentService(session, catalog)
        user = await service.get_user(seed_users["carol"])
        await service.replace_user_roles(user, [await service.find_or_create_role("editor")])
        await session.commit()

    async with session_factory() as idle, session_factory() as other:
        assert await RolesQuery(idle, catalog).has_role(user, "editor")
        assert idle.in_transaction()

        assert await RolesQuery(other, catalog).has_role(user, "editor")

        await idle.close()
        await other.rollback()
        await AssignmentService(other, catalog).union_user_permissions(user, ["view reports"])
        await other.commit()

    async with session_factory() as session:
        assert await RolesQuery(session, catalog).has_permission(user, "view reports")
