"""
Module: expense_routing.models.rule
Responsibility: ORM persistence for approval rules and their ordered
    approver lists.
Architecture position: Models.  May import from db/base.py only.

Two rule tables exist:

    approval_rules         -- company-wide rule
    user_approval_rules    -- per-submitter override (optionally names the
                              manager to put first)

Each has a child table of approvers with a ``sequence_order`` that is
unique within the rule and starts at 1.  Rules are authored outside this
package; the routing engine only reads them and normalises both shapes
into ``domain.rules.RuleView`` via ``to_rule_view()``.

Invariants enforced:
    - Valid approval_type values (DB check constraint).
    - percentage_threshold within 1..100 when present (DB check constraint).
    - sequence_order >= 1 and UNIQUE(rule_id, sequence_order).
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_routing.db.base import Base, TimestampedBase, UUIDString

if TYPE_CHECKING:
    from expense_routing.domain.rules import RuleView

_VALID_TYPES = (
    "approval_type IN ('SEQUENTIAL', 'PERCENTAGE', 'SPECIFIC_APPROVER', 'HYBRID')"
)
_VALID_THRESHOLD = (
    "percentage_threshold IS NULL OR "
    "(percentage_threshold >= 1 AND percentage_threshold <= 100)"
)


class _RuleColumns:
    """Columns shared by company-wide and per-user rules."""

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    approval_type: Mapped[str] = mapped_column(String(30), nullable=False)
    use_sequence: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_manager_approver: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    percentage_threshold: Mapped[int | None] = mapped_column(Integer, nullable=True)
    specific_approver_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def _view(self, source, approvers) -> RuleView:
        from expense_routing.domain.rules import RuleApprover, build_rule_view

        return build_rule_view(
            rule_id=self.id,
            source=source,
            name=self.name,
            approval_type=self.approval_type,
            approvers=[
                RuleApprover(
                    approver_id=a.approver_id,
                    sequence_order=a.sequence_order,
                    is_required=a.is_required,
                )
                for a in approvers
            ],
            percentage_threshold=self.percentage_threshold,
            specific_approver_id=self.specific_approver_id,
            use_sequence=self.use_sequence,
            is_manager_approver=self.is_manager_approver,
        )


class _ApproverColumns:
    """Columns shared by both approver child tables."""

    approver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ApprovalRuleModel(_RuleColumns, TimestampedBase):
    """Company-wide approval rule."""

    __tablename__ = "approval_rules"

    __table_args__ = (
        CheckConstraint(_VALID_TYPES, name="ck_approval_rules_type"),
        CheckConstraint(_VALID_THRESHOLD, name="ck_approval_rules_threshold"),
        Index("ix_approval_rules_company_active", "company_id", "is_active"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    approvers: Mapped[list["ApprovalRuleApproverModel"]] = relationship(
        "ApprovalRuleApproverModel",
        order_by="ApprovalRuleApproverModel.sequence_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ApprovalRule {self.name} {self.approval_type}>"

    def to_rule_view(self) -> RuleView:
        from expense_routing.domain.rules import RuleSource

        return self._view(RuleSource.COMPANY, self.approvers)


class ApprovalRuleApproverModel(_ApproverColumns, Base):
    """One ordered approver slot of a company-wide rule."""

    __tablename__ = "approval_rule_approvers"

    __table_args__ = (
        UniqueConstraint(
            "rule_id", "sequence_order",
            name="uq_approval_rule_approvers_order",
        ),
        CheckConstraint(
            "sequence_order >= 1", name="ck_approval_rule_approvers_order",
        ),
    )

    rule_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_rules.id"), nullable=False,
    )


class UserApprovalRuleModel(_RuleColumns, TimestampedBase):
    """Per-submitter rule.  Takes precedence over the company rule."""

    __tablename__ = "user_approval_rules"

    __table_args__ = (
        CheckConstraint(_VALID_TYPES, name="ck_user_approval_rules_type"),
        CheckConstraint(_VALID_THRESHOLD, name="ck_user_approval_rules_threshold"),
        Index("ix_user_approval_rules_user_active", "user_id", "is_active"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    # Overrides the submitter's own manager for manager-first routing
    manager_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )

    approvers: Mapped[list["UserApprovalRuleApproverModel"]] = relationship(
        "UserApprovalRuleApproverModel",
        order_by="UserApprovalRuleApproverModel.sequence_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<UserApprovalRule {self.name} user={self.user_id}>"

    def to_rule_view(self) -> RuleView:
        from expense_routing.domain.rules import RuleSource

        return self._view(RuleSource.USER, self.approvers)


class UserApprovalRuleApproverModel(_ApproverColumns, Base):
    """One ordered approver slot of a per-submitter rule."""

    __tablename__ = "user_approval_rule_approvers"

    __table_args__ = (
        UniqueConstraint(
            "rule_id", "sequence_order",
            name="uq_user_approval_rule_approvers_order",
        ),
        CheckConstraint(
            "sequence_order >= 1", name="ck_user_approval_rule_approvers_order",
        ),
    )

    rule_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("user_approval_rules.id"), nullable=False,
    )
