"""`rolemate roles` command."""

from __future__ import annotations

import typer

from rolemate.features.roles.query import RolesQuery
from rolemate.features.roles.service import AssignmentService

from .. import runtime


def register(app: typer.Typer) -> None:
    @app.command(
        name="roles",
        help="List roles, describe a role, or configure the permissions of a role.",
    )
    def roles(
        role_name: str | None = typer.Option(
            None, "--role-name", "--roleName", help="Role to describe or configure."
        ),
        names: str | None = typer.Option(
            None, "--permissions", help="Comma separated permission names."
        ),
        append: bool = typer.Option(
            False, "--append", help="Add to the role's permissions instead of replacing them."
        ),
        describe: bool = typer.Option(False, "--describe", help="Print the role's permissions."),
        list_: bool = typer.Option(False, "--list", help="Print all roles."),
    ) -> None:
        settings = runtime.load_settings()
        catalog = runtime.catalog_for(settings)

        async def _list() -> None:
            async with runtime.open_session(settings) as session:
                found = await RolesQuery(session, catalog).list_roles()
                runtime.echo_items("Available roles:", [role.name for role in found])

        async def _describe() -> None:
            name = runtime.require_option(role_name, "--role-name")
            async with runtime.open_session(settings) as session:
                service = AssignmentService(session, catalog)
                role = await service.get_role_by_name(name)
                held = await RolesQuery(session, catalog).permissions_for_role(role.id)
            runtime.echo_items(f"The role {role.name} has the following permissions:", held)

        async def _configure() -> None:
            name = runtime.require_option(role_name, "--role-name")
            requested = runtime.split_csv(names)
            async with runtime.open_session(settings) as session:
                service = AssignmentService(session, catalog)
                role = await service.find_or_create_role(name)
                if append:
                    held = await service.union_role_permissions(role, requested)
                else:
                    held = await service.replace_role_permissions(role, requested)
            runtime.echo_items(f"The role {role.name} has the following permissions:", held)

        if list_:
            runtime.run(_list)
        elif describe:
            runtime.run(_describe)
        else:
            runtime.run(_configure)
