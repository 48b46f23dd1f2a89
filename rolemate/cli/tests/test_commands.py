import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from typer.testing import CliRunner

from rolemate.cli.main import app


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


def _lines(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


def test_root_without_command_prints_help(runner: CliRunner) -> None:
    result = runner.invoke(app, [])

    assert result.exit_code == 0
    assert "permissions" in result.output
    assert "user-role" in result.output


def test_permissions_list_prints_catalog(runner: CliRunner, settings) -> None:
    result = runner.invoke(app, ["permissions", "--list"])

    assert result.exit_code == 0
    assert _lines(result.output) == ["Available permissions:", *settings.permissions]


def test_permissions_replace_and_append(runner: CliRunner, seed_users) -> None:
    user_id = str(seed_users["alice"])

    first = runner.invoke(
        app, ["permissions", "--userid", user_id, "--permissions", "edit articles, bogus"]
    )
    appended = runner.invoke(
        app, ["permissions", "--userid", user_id, "--permissions", "view reports", "--append"]
    )
    replaced = runner.invoke(
        app, ["permissions", "--userid", user_id, "--permissions", "publish articles"]
    )

    assert first.exit_code == 0, first.output
    assert _lines(first.output)[1:] == ["edit articles"]
    assert appended.exit_code == 0, appended.output
    assert _lines(appended.output)[1:] == ["edit articles", "view reports"]
    assert replaced.exit_code == 0, replaced.output
    assert _lines(replaced.output) == [
        f"User {user_id} has the following permissions:",
        "publish articles",
    ]


def test_permissions_requires_userid(runner: CliRunner) -> None:
    result = runner.invoke(app, ["permissions", "--permissions", "edit articles"])

    assert result.exit_code == 1
    assert "Error: Missing required parameter --userid" in result.output


def test_permissions_unknown_user_fails(runner: CliRunner) -> None:
    result = runner.invoke(
        app, ["permissions", "--userid", "999999", "--permissions", "edit articles"]
    )

    assert result.exit_code == 1
    assert "Error: User 999999 not found" in result.output


def test_permissions_store_failure_exits_with_error(
    runner: CliRunner, seed_users, monkeypatch
) -> None:
    user_id = str(seed_users["carol"])
    runner.invoke(app, ["permissions", "--userid", user_id, "--permissions", "edit articles"])

    async def failing_flush(self, objects=None) -> None:
        raise OperationalError("INSERT INTO user_permissions", {}, Exception("disk I/O error"))

    with monkeypatch.context() as patched:
        patched.setattr(AsyncSession, "flush", failing_flush)
        failed = runner.invoke(
            app, ["permissions", "--userid", user_id, "--permissions", "view reports", "--append"]
        )
    unchanged = runner.invoke(
        app, ["permissions", "--userid", user_id, "--permissions", "bogus", "--append"]
    )

    assert failed.exit_code == 1
    assert f"Error: Failed to grant permissions to user {user_id}" in failed.output
    assert _lines(unchanged.output)[1:] == ["edit articles"]

def test_roles_configure_describe_and_list(runner: CliRunner) -> None:
    created = runner.invoke(
        app, ["roles", "--roleName", "editor", "--permissions", "view reports,edit articles"]
    )
    appended = runner.invoke(
        app, ["roles", "--role-name", "editor", "--permissions", "publish articles", "--append"]
    )
    described = runner.invoke(app, ["roles", "--role-name", "editor", "--describe"])
    runner.invoke(app, ["roles", "--role-name", "viewer"])
    listed = runner.invoke(app, ["roles", "--list"])

    assert created.exit_code == 0, created.output
    assert _lines(created.output) == [
        "The role editor has the following permissions:",
        "edit articles",
        "view reports",
    ]
    assert appended.exit_code == 0, appended.output
    assert _lines(described.output)[1:] == [
        "edit articles",
        "publish articles",
        "view reports",
    ]
    assert _lines(listed.output) == ["Available roles:", "editor", "viewer"]


def test_roles_describe_missing_role_fails(runner: CliRunner) -> None:
    result = runner.invoke(app, ["roles", "--role-name", "ghost", "--describe"])

    assert result.exit_code == 1
    assert "Error: Role 'ghost' not found" in result.output


def test_roles_requires_name(runner: CliRunner) -> None:
    result = runner.invoke(app, ["roles", "--permissions", "edit articles"])

    assert result.exit_code == 1
    assert "Missing required parameter --role-name" in result.output


def test_user_role_assign_and_list(runner: CliRunner, seed_users) -> None:
    user_id = str(seed_users["bob"])
    runner.invoke(app, ["roles", "--role-name", "editor"])
    runner.invoke(app, ["roles", "--role-name", "viewer"])

    assigned = runner.invoke(app, ["user-role", "--userid", user_id, "--roles", "editor,ghost"])
    appended = runner.invoke(
        app, ["user-role", "--userid", user_id, "--roles", "viewer", "--append"]
    )
    listed = runner.invoke(app, ["user-role", "--userid", user_id, "--list"])
    all_roles = runner.invoke(app, ["user-role", "--list"])
    replaced = runner.invoke(app, ["user-role", "--userid", user_id, "--roles", "viewer"])

    assert assigned.exit_code == 0, assigned.output
    assert _lines(assigned.output)[1:] == ["editor"]
    assert _lines(appended.output)[1:] == ["editor", "viewer"]
    assert _lines(listed.output) == [
        f"User {user_id} has the following roles:",
        "editor",
        "viewer",
    ]
    assert _lines(all_roles.output) == ["Available roles:", "editor", "viewer"]
    assert _lines(replaced.output)[1:] == ["viewer"]


def test_user_role_requires_userid(runner: CliRunner) -> None:
    result = runner.invoke(app, ["user-role", "--roles", "editor"])

    assert result.exit_code == 1
    assert "Error: Missing required parameter --userid" in result.output
