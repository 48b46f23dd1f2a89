"""Root ``rolemate`` CLI app."""

from __future__ import annotations

import typer

from .commands import register_all

app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Manage permissions, roles and user role assignments.",
)


@app.callback()
def _main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


register_all(app)


def main() -> None:
    app()


__all__ = ["app", "main"]
