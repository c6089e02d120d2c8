"""
Module: expense_routing.models.user
Responsibility: ORM persistence for the users the routing engine reads.
Architecture position: Models.  May import from db/base.py only.

Users are owned by the identity/auth layer.  The engine needs three
things from them: the submitter's company, the submitter's manager (for
manager-first routing) and the role (for the administrative override).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from expense_routing.db.base import TimestampedBase, UUIDString


class UserModel(TimestampedBase):
    """A company member who submits or approves expenses."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'manager', 'employee')",
            name="ck_users_valid_role",
        ),
        Index("ix_users_company", "company_id"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    manager_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="employee")
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<User {self.display_name} role={self.role}>"
