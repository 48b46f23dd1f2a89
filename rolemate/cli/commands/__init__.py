"""Root ``rolemate`` command registration."""

from __future__ import annotations

import typer

from . import permissions, roles, user_role


def register_all(app: typer.Typer) -> None:
    for module in (permissions, roles, user_role):
        module.register(app)
