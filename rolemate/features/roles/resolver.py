"""Decide access for a principal and pick a redirect target on denial."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from rolemate.settings import DEFAULT_DENIAL_MESSAGE, RedirectTable, Settings

from .query import Principal, RolesQuery

logger = logging.getLogger(__name__)


class AccessOutcome(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class AuthorizationDecision:
    """Result of a role or permission check.

    ``redirect_to`` and ``message`` are only set for ``DENIED``; ``matched``
    names the required entry that granted access.
    """

    outcome: AccessOutcome
    redirect_to: str | None = None
    message: str | None = None
    matched: str | None = None

    @property
    def granted(self) -> bool:
        return self.outcome is AccessOutcome.GRANTED

    @property
    def denied(self) -> bool:
        return self.outcome is AccessOutcome.DENIED


UNAUTHENTICATED = AuthorizationDecision(outcome=AccessOutcome.UNAUTHENTICATED)


class AuthorizationResolver:
    """Evaluate "any of" role and permission requirements."""

    def __init__(
        self,
        query: RolesQuery,
        *,
        role_redirects: RedirectTable,
        permission_redirects: RedirectTable,
        message: str = DEFAULT_DENIAL_MESSAGE,
    ) -> None:
        self._query = query
        self._role_redirects = role_redirects
        self._permission_redirects = permission_redirects
        self._message = message

    @classmethod
    def from_settings(cls, query: RolesQuery, settings: Settings) -> AuthorizationResolver:
        return cls(
            query,
            role_redirects=settings.redirects_roles,
            permission_redirects=settings.redirects_permissions,
            message=settings.denial_message,
        )

    async def has_any_role(
        self, principal: Principal | None, roles: Sequence[str]
    ) -> AuthorizationDecision:
        """Grant when ``principal`` holds at least one of ``roles``."""

        return await self._resolve(
            kind="role",
            principal=principal,
            required=roles,
            check=self._query.has_role,
            held=self._query.role_names_for_user,
            redirects=self._role_redirects,
        )

    async def has_any_permission(
        self, principal: Principal | None, permissions: Sequence[str]
    ) -> AuthorizationDecision:
        """Grant when ``principal`` holds at least one of ``permissions``."""

        return await self._resolve(
            kind="permission",
            principal=principal,
            required=permissions,
            check=self._query.has_permission,
            held=self._query.permissions_for_user,
            redirects=self._permission_redirects,
        )

    async def _resolve(
        self,
        *,
        kind: str,
        principal: Principal | None,
        required: Sequence[str],
        check: Callable[[Principal, str], Awaitable[bool]],
        held: Callable[[int], Awaitable[list[str]]],
        redirects: RedirectTable,
    ) -> AuthorizationDecision:
        if principal is None:
            logger.debug("Anonymous %s check for %s", kind, list(required))
            return UNAUTHENTICATED

        for name in required:
            if await check(principal, name):
                logger.debug("User %s granted by %s %r", principal.id, kind, name)
                return AuthorizationDecision(outcome=AccessOutcome.GRANTED, matched=name)

        destination = redirects.destination_for(await held(principal.id))
        logger.info(
            "User %s lacks any %s of %s; redirecting to %s",
            principal.id,
            kind,
            list(required),
            destination,
        )
        return AuthorizationDecision(
            outcome=AccessOutcome.DENIED,
            redirect_to=destination,
            message=self._message,
        )


__all__ = [
    "AccessOutcome",
    "AuthorizationDecision",
    "AuthorizationResolver",
    "UNAUTHENTICATED",
]
