"""
Module: expense_routing.models.expense
Responsibility: ORM persistence for expenses and their routing pointer.
Architecture position: Models.  May import from db/base.py only.

Invariants enforced:
    - Valid status values (DB check constraint).
    - pending <=> current_approver_id IS NOT NULL (DB check constraint,
      mirrored by ExpenseStateMachine).
    - Optimistic locking: ``version`` is SQLAlchemy's version_id_col, so an
      UPDATE issued against a stale version matches zero rows and the
      flush raises StaleDataError.
    - Terminal expenses are frozen (db/immutability.py listener).

Failure modes:
    - StaleDataError on concurrent update (mapped to CONFLICT by services).
    - ImmutabilityViolationError on UPDATE of an approved/rejected expense.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from expense_routing.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from expense_routing.domain.expense import ExpenseRecord


class ExpenseModel(TimestampedBase):
    """Persistent expense.

    Contract:
        Only ExpenseStateMachine changes ``status``,
        ``current_approver_id`` and ``current_approval_step``.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'rejected')",
            name="ck_expenses_valid_status",
        ),
        CheckConstraint(
            "(status = 'pending' AND current_approver_id IS NOT NULL) OR "
            "(status <> 'pending' AND current_approver_id IS NULL)",
            name="ck_expenses_pending_has_approver",
        ),
        CheckConstraint("current_approval_step >= 0", name="ck_expenses_step"),
        CheckConstraint("amount > 0", name="ck_expenses_positive_amount"),
        Index("ix_expenses_company_status", "company_id", "status", "created_at"),
        Index("ix_expenses_current_approver", "current_approver_id", "status"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    submitter_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    expense_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")
    current_approver_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    current_approval_step: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # ExpenseStateMachine bumps the counter on every transition, so a Hold
    # still invalidates concurrent readers.
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    def __repr__(self) -> str:
        return (
            f"<Expense {self.id} {self.amount} {self.currency} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> ExpenseRecord:
        """Convert ORM model to frozen domain DTO."""
        from expense_routing.domain.expense import ExpenseRecord, ExpenseStatus

        return ExpenseRecord(
            expense_id=self.id,
            company_id=self.company_id,
            submitter_id=self.submitter_id,
            amount=self.amount,
            currency=self.currency,
            category=self.category,
            status=ExpenseStatus(self.status),
            current_approver_id=self.current_approver_id,
            current_approval_step=self.current_approval_step,
            version=self.version,
            description=self.description,
            expense_date=self.expense_date,
            created_at=self.created_at,
            submitted_at=self.submitted_at,
            resolved_at=self.resolved_at,
        )
