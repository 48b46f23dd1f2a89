"""`rolemate user-role` command."""

from __future__ import annotations

import typer

from rolemate.features.roles.query import RolesQuery
from rolemate.features.roles.service import AssignmentService

from .. import runtime


def register(app: typer.Typer) -> None:
    @app.command(
        name="user-role",
        help="List roles or set the roles assigned to a user.",
    )
    def user_role(
        userid: int | None = typer.Option(None, "--userid", help="Target user id."),
        names: str | None = typer.Option(None, "--roles", help="Comma separated role names."),
        append: bool = typer.Option(
            False, "--append", help="Add to the user's roles instead of replacing them."
        ),
        list_: bool = typer.Option(
            False, "--list", help="Print the user's roles, or all roles without --userid."
        ),
    ) -> None:
        settings = runtime.load_settings()
        catalog = runtime.catalog_for(settings)

        async def _list() -> None:
            async with runtime.open_session(settings) as session:
                if userid is None:
                    found = await RolesQuery(session, catalog).list_roles()
                    runtime.echo_items("Available roles:", [role.name for role in found])
                    return
                user = await AssignmentService(session, catalog).get_user(userid)
                held = await RolesQuery(session, catalog).role_names_for_user(user.id)
            runtime.echo_items(f"User {userid} has the following roles:", held)

        async def _assign() -> None:
            user_id = runtime.require_option(userid, "--userid")
            async with runtime.open_session(settings) as session:
                service = AssignmentService(session, catalog)
                user = await service.get_user(user_id)
                wanted = await service.roles_by_names(runtime.split_csv(names))
                if append:
                    held = await service.union_user_roles(user, wanted)
                else:
                    held = await service.replace_user_roles(user, wanted)
            runtime.echo_items(
                f"User {user_id} has the following roles:", [role.name for role in held]
            )

        runtime.run(_list if list_ else _assign)
