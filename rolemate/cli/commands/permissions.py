"""`rolemate permissions` command."""

from __future__ import annotations

import typer

from rolemate.features.roles.service import AssignmentService

from .. import runtime


def register(app: typer.Typer) -> None:
    @app.command(
        name="permissions",
        help="List the permission catalog or set the direct permissions of a user.",
    )
    def permissions(
        userid: int | None = typer.Option(None, "--userid", help="Target user id."),
        names: str | None = typer.Option(
            None, "--permissions", help="Comma separated permission names."
        ),
        append: bool = typer.Option(
            False, "--append", help="Add to the user's permissions instead of replacing them."
        ),
        list_: bool = typer.Option(False, "--list", help="Print the permission catalog."),
    ) -> None:
        settings = runtime.load_settings()
        catalog = runtime.catalog_for(settings)

        if list_:
            runtime.echo_items("Available permissions:", list(catalog))
            return

        async def _assign() -> None:
            user_id = runtime.require_option(userid, "--userid")
            requested = runtime.split_csv(runtime.require_option(names, "--permissions"))
            async with runtime.open_session(settings) as session:
                service = AssignmentService(session, catalog)
                user = await service.get_user(user_id)
                if append:
                    held = await service.union_user_permissions(user, requested)
                else:
                    held = await service.replace_user_permissions(user, requested)
            runtime.echo_items(f"User {user_id} has the following permissions:", held)

        runtime.run(_assign)
