"""Error taxonomy for role and permission management."""

from __future__ import annotations

from collections.abc import Sequence


class RolemateError(Exception):
    """Base class for errors surfaced to operators and API callers."""


class ValidationError(RolemateError):
    """Raised when caller input is missing or malformed."""


class UnknownPermissionError(ValidationError):
    """Raised under the ``reject`` policy when a permission is not in the catalog."""

    def __init__(self, names: Sequence[str]) -> None:
        joined = ", ".join(repr(name) for name in names)
        super().__init__(f"Unknown permission(s): {joined}")
        self.names = tuple(names)


class NotFoundError(RolemateError):
    """Raised when a referenced user or role does not exist."""


class UserNotFoundError(NotFoundError):
    """Raised when a user lookup does not yield a result."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id!r} not found")
        self.user_id = user_id


class RoleNotFoundError(NotFoundError):
    """Raised when a role lookup by id or name does not yield a result."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Role {reference!r} not found")
        self.reference = reference


class PersistenceError(RolemateError):
    """Raised when a store write fails; the transaction has been rolled back."""


class RedirectConfigurationError(RolemateError, ValueError):
    """Raised when a redirect table names a route the application does not define."""

    def __init__(self, missing: Sequence[str]) -> None:
        joined = ", ".join(sorted(missing))
        super().__init__(f"Redirect routes not defined by the application: {joined}")
        self.missing = tuple(sorted(missing))


__all__ = [
    "NotFoundError",
    "PersistenceError",
    "RedirectConfigurationError",
    "RoleNotFoundError",
    "RolemateError",
    "UnknownPermissionError",
    "UserNotFoundError",
    "ValidationError",
]
