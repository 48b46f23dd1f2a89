"""Permission catalog built from the configured vocabulary."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from rolemate.core.exceptions import UnknownPermissionError
from rolemate.settings import Settings, UnknownPermissionPolicy

logger = logging.getLogger(__name__)


class PermissionCatalog:
    """Ordered, immutable set of valid permission names.

    Names keep their configuration order; repeated or blank entries are
    ignored. ``policy`` decides what :meth:`filter` does with names outside
    the catalog: ``drop`` skips them, ``reject`` raises
    :class:`UnknownPermissionError`.
    """

    def __init__(
        self,
        names: Iterable[str],
        *,
        policy: UnknownPermissionPolicy = "drop",
    ) -> None:
        ordered: dict[str, None] = {}
        for name in names:
            candidate = str(name).strip()
            if candidate:
                ordered.setdefault(candidate, None)
        self._names: tuple[str, ...] = tuple(ordered)
        self._members: frozenset[str] = frozenset(self._names)
        self.policy: UnknownPermissionPolicy = policy

    @classmethod
    def from_settings(cls, settings: Settings) -> PermissionCatalog:
        return cls(settings.permissions, policy=settings.unknown_permission_policy)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._members

    def __iter__(self):
        return iter(self._names)

    def __len__(self) -> int:
        return len(self._names)

    def list_permissions(self) -> tuple[str, ...]:
        return self._names

    def is_valid(self, name: str) -> bool:
        return name in self._members

    def filter(self, names: Iterable[str]) -> tuple[str, ...]:
        """Return the valid entries of ``names`` in input order, without duplicates."""

        accepted: dict[str, None] = {}
        unknown: list[str] = []
        for name in names:
            candidate = str(name).strip()
            if not candidate:
                continue
            if candidate in self._members:
                accepted.setdefault(candidate, None)
            elif candidate not in unknown:
                unknown.append(candidate)

        if unknown:
            if self.policy == "reject":
                raise UnknownPermissionError(unknown)
            logger.debug("Dropping unknown permissions: %s", ", ".join(unknown))
        return tuple(accepted)

    def sort(self, names: Iterable[str]) -> list[str]:
        """Return the catalog members of ``names`` in catalog order."""

        wanted = set(names)
        return [name for name in self._names if name in wanted]


__all__ = ["PermissionCatalog"]
