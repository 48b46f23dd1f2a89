"""Application settings for rolemate."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Annotated, Any, ClassVar, Literal, Protocol, cast, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DENIAL_MESSAGE = "You do not have permission to access this page."

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"]
UnknownPermissionPolicy = Literal["drop", "reject"]


class RedirectTable(BaseModel):
    """Typed name -> route mapping with a mandatory ``default`` destination.

    Accepts the flat configuration shape ``{"editor": "editor-home",
    "default": "home"}`` and splits it into ``default`` and ``routes``.
    """

    model_config = ConfigDict(frozen=True)

    default: str
    routes: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _from_flat_mapping(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        if set(value) <= {"default", "routes"} and isinstance(value.get("routes"), Mapping):
            return value

        entries: dict[str, str] = {}
        for key, target in value.items():
            name = str(key).strip()
            route = "" if target is None else str(target).strip()
            if not name or not route:
                msg = f"Redirect entry {key!r} -> {target!r} must have a name and a route"
                raise ValueError(msg)
            entries[name] = route

        default = entries.pop("default", None)
        if default is None:
            raise ValueError("Redirect table requires a 'default' route")
        return {"default": default, "routes": entries}

    def destination_for(self, held: Iterable[str]) -> str:
        """Return the route of the first ``held`` name present in the table."""

        for name in held:
            route = self.routes.get(name)
            if route is not None:
                return route
        return self.default

    def route_names(self) -> frozenset[str]:
        return frozenset((self.default, *self.routes.values()))


class Settings(BaseSettings):
    """rolemate configuration loaded from environment variables."""

    model_config: ClassVar[SettingsConfigDict] = cast(
        SettingsConfigDict,
        {
            "env_file": ".env",
            "env_prefix": "ROLEMATE_",
            "case_sensitive": False,
            "extra": "ignore",
        },
    )

    app_name: str = Field(default="rolemate", description="Human readable API name.")
    app_version: str = Field(default="0.1.0", description="API version string.")
    api_docs_enabled: bool = Field(
        default=False,
        description="Expose interactive API documentation endpoints.",
    )
    logging_level: LogLevel = Field(
        default="INFO",
        description="Root log level for the application.",
    )

    database_dsn: str = Field(
        default="sqlite+aiosqlite:///./var/db/rolemate.sqlite",
        description="SQLAlchemy database URL.",
    )
    database_echo: bool = Field(
        default=False,
        description="Enable SQLAlchemy engine echo logging.",
    )
    database_pool_size: int = Field(
        default=5,
        ge=1,
        description="SQLAlchemy connection pool size.",
    )
    database_max_overflow: int = Field(
        default=10,
        ge=0,
        description="SQLAlchemy connection pool overflow.",
    )
    database_pool_timeout: int = Field(
        default=30,
        gt=0,
        description="SQLAlchemy pool timeout in seconds.",
    )

    permissions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["manage permissions"],
        description="Ordered permission vocabulary (JSON array or comma separated list).",
    )
    redirects_roles: RedirectTable = Field(
        default_factory=lambda: RedirectTable(default="index"),
        description="Role name -> route name used when a role check denies access.",
    )
    redirects_permissions: RedirectTable = Field(
        default_factory=lambda: RedirectTable(default="index"),
        description="Permission name -> route name used when a permission check denies access.",
    )
    unknown_permission_policy: UnknownPermissionPolicy = Field(
        default="drop",
        description="Drop unknown permission names silently or reject the request.",
    )
    denial_message: str = Field(
        default=DEFAULT_DENIAL_MESSAGE,
        description="Flash message attached to denial redirects.",
    )
    manage_permission: str = Field(
        default="manage permissions",
        description="Permission guarding the management API.",
    )
    flash_cookie_name: str = Field(
        default="rolemate_flash",
        description="Cookie carrying the denial flash message.",
    )

    @field_validator("permissions", mode="before")
    @classmethod
    def _parse_permissions(cls, value: Any) -> list[str] | Any:
        if value is None:
            return []
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    parsed = json.loads(raw)
                except json.JSONDecodeError as exc:
                    raise ValueError(
                        "permissions must be a JSON array or comma separated list",
                    ) from exc
                if not isinstance(parsed, list):
                    raise ValueError("permissions JSON value must be an array")
                value = parsed
            else:
                value = raw.split(",")
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if str(item).strip()]
        return value

    @field_validator("manage_permission", "flash_cookie_name", "denial_message", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            candidate = value.strip()
            if not candidate:
                raise ValueError("value must not be empty")
            return candidate
        return value


def get_settings() -> Settings:
    """Return settings loaded from the environment."""

    return Settings()


def reload_settings() -> Settings:
    """Reload settings from the environment (alias for :func:`get_settings`)."""

    return get_settings()


@runtime_checkable
class SupportsState(Protocol):
    """Objects carrying a Starlette-style ``state`` attribute."""

    state: Any


def get_app_settings(container: SupportsState) -> Settings:
    """Return settings stored on ``container.state``, initialising if absent."""

    settings = getattr(container.state, "settings", None)
    if isinstance(settings, Settings):
        return settings

    settings = get_settings()
    container.state.settings = settings
    return settings


__all__ = [
    "DEFAULT_DENIAL_MESSAGE",
    "RedirectTable",
    "Settings",
    "UnknownPermissionPolicy",
    "get_app_settings",
    "get_settings",
    "reload_settings",
]
