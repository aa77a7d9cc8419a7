"""User model."""

from __future__ import annotations

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.rbac import UserRole
from app.db.base import Base, TimestampMixin
from app.models.validators import one_of


class User(Base, TimestampMixin):
    """Staff or customer account. The role decides which tip pool bucket a shift lands in."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(20), default=UserRole.SERVER.value, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @validates("role")
    def _validate_role(self, key, value):
        return one_of(key, value, UserRole)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
