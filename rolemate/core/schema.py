"""Base model for rolemate API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Reads ORM objects directly and ignores unknown input fields."""

    model_config = ConfigDict(from_attributes=True, extra="ignore", frozen=True)


__all__ = ["BaseSchema"]
