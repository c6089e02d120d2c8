"""
Module: expense_routing.models.approval
Responsibility: ORM persistence for the append-only approval audit trail.
Architecture position: Models.  May import from db/base.py only.

Invariants enforced:
    - Decisions are append-only: UPDATE and DELETE are blocked by the
      listeners in db/immutability.py.
    - UNIQUE(expense_id, decision_seq): two transactions that both read the
      same history cannot both append the next decision.
    - Valid decision values (DB check constraint).

Failure modes:
    - IntegrityError on a duplicate (expense_id, decision_seq) -- mapped to
      CONFLICT by WorkflowEngine.
    - ImmutabilityViolationError on UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from expense_routing.db.base import Base, UUIDString

if TYPE_CHECKING:
    from expense_routing.domain.expense import ApprovalRecord


class ApprovalModel(Base):
    """One approver's decision on one expense.  Immutable once written."""

    __tablename__ = "approvals"

    __table_args__ = (
        UniqueConstraint(
            "expense_id", "decision_seq",
            name="uq_approvals_expense_decision_seq",
        ),
        CheckConstraint(
            "status IN ('approved', 'rejected')",
            name="ck_approvals_valid_status",
        ),
        CheckConstraint("step_number >= 0", name="ck_approvals_step"),
        CheckConstraint("decision_seq >= 1", name="ck_approvals_decision_seq"),
        Index("ix_approvals_approver", "approver_id"),
    )

    expense_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("expenses.id"), nullable=False,
    )
    approver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    decision_seq: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    approved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Approval expense={self.expense_id} #{self.decision_seq} "
            f"step={self.step_number} {self.status}>"
        )

    def to_dto(self) -> ApprovalRecord:
        """Convert ORM model to frozen domain DTO."""
        from expense_routing.domain.expense import ApprovalRecord, Decision

        return ApprovalRecord(
            approval_id=self.id,
            expense_id=self.expense_id,
            approver_id=self.approver_id,
            step_number=self.step_number,
            decision_seq=self.decision_seq,
            decision=Decision(self.status),
            comments=self.comments,
            is_override=self.is_override,
            approved_at=self.approved_at,
        )
