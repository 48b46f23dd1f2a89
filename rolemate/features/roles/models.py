"""SQLAlchemy models for roles, the role-permission matrix and role assignments."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint, false, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rolemate.db import Base, TimestampMixin, generate_ulid

from ..users.models import User


class Role(TimestampMixin, Base):
    """Named group of permissions that can be assigned to users."""

    __tablename__ = "roles"

    id: Mapped[str] = mapped_column("role_id", String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)

    cells: Mapped[list["RolePermission"]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
    )
    user_assignments: Mapped[list["UserRole"]] = relationship(
        "UserRole",
        back_populates="role",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Role(id={self.id!r}, name={self.name!r})>"


class RolePermission(Base):
    """One cell of the role x permission matrix."""

    __tablename__ = "role_permissions"

    role_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("roles.role_id", ondelete="CASCADE"), primary_key=True
    )
    permission: Mapped[str] = mapped_column(String(120), primary_key=True)
    enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    role: Mapped[Role] = relationship("Role", back_populates="cells")


class UserRole(Base):
    """Assignment of a role to a user; ``id`` order is the user's stored role order."""

    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("roles.role_id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    role: Mapped[Role] = relationship("Role", back_populates="user_assignments")
    user: Mapped[User] = relationship("User")


__all__ = ["Role", "RolePermission", "UserRole"]
