"""SQLAlchemy models for users and their direct permission grants."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rolemate.db import Base, TimestampMixin


class User(TimestampMixin, Base):
    """Principal owned by the host application."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    permissions: Mapped[list["UserPermission"]] = relationship(
        "UserPermission",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="UserPermission.id",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"


class UserPermission(Base):
    """Direct grant of a catalog permission to a user."""

    __tablename__ = "user_permissions"
    __table_args__ = (UniqueConstraint("user_id", "permission"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    permission: Mapped[str] = mapped_column(String(120), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    user: Mapped[User] = relationship("User", back_populates="permissions")


__all__ = ["User", "UserPermission"]
