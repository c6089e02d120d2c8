"""
ExpenseSelector -- read side of the routing engine.

Queries:
    get_expense(expense_id)         -> ExpenseRecord
    history(expense_id)             -> [ApprovalRecord] by step, then insertion
    eligible_approvers(expense_id)  -> frozenset of approver ids
    list_pending(caller)            -> [ExpenseRecord] the caller may act on

Eligibility is derived, never stored: for Sequential and SpecificApprover
rules it is the current approver; for Percentage and Hybrid rules it is
every configured approver who has not decided yet.  ``list_pending`` uses
one RuleResolver for the whole call, so each submitter's rule is read
once.  RuleResolver is itself read-only.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_routing.config import RoutingSettings
from expense_routing.domain.expense import (
    ApprovalRecord,
    Caller,
    ExpenseRecord,
    ExpenseStatus,
)
from expense_routing.domain.rules import ApprovalType
from expense_routing.engines.approval_strategies import eligible_approvers_for
from expense_routing.exceptions import ExpenseNotFoundError
from expense_routing.models.approval import ApprovalModel
from expense_routing.models.expense import ExpenseModel
from expense_routing.models.user import UserModel
from expense_routing.selectors.base import BaseSelector
from expense_routing.services.rule_resolver import RuleResolver

# Rule types whose eligibility is just the routing pointer
_POINTER_TYPES = (ApprovalType.SEQUENTIAL, ApprovalType.SPECIFIC_APPROVER)


class ExpenseSelector(BaseSelector):
    """Read-only expense and approval queries."""

    def __init__(self, session: Session, settings: RoutingSettings | None = None):
        super().__init__(session)
        self._settings = settings or RoutingSettings()

    def get_expense(self, expense_id: UUID) -> ExpenseRecord:
        return self._get_model(expense_id).to_dto()

    def history(self, expense_id: UUID) -> list[ApprovalRecord]:
        """Approval records ordered by step_number, then decision_seq."""
        self._get_model(expense_id)
        return self._history(expense_id, by_step=True)

    def eligible_approvers(self, expense_id: UUID) -> frozenset[UUID]:
        """Who may decide now without an override.  Empty unless pending."""
        expense = self._get_model(expense_id)
        if expense.status != ExpenseStatus.PENDING.value:
            return frozenset()
        rule = RuleResolver(self.session).resolve(expense.submitter_id)
        return eligible_approvers_for(
            rule, expense.current_approver_id, self._history(expense.id),
        )

    def list_pending(self, caller: Caller) -> list[ExpenseRecord]:
        """
        Pending expenses in the caller's company that the caller may decide.

        Override roles see every pending expense of their company.  Oldest
        first.
        """
        company_id = caller.company_id or self._company_of(caller.actor_id)
        if company_id is None:
            return []

        pending = self.session.scalars(
            select(ExpenseModel)
            .where(
                ExpenseModel.company_id == company_id,
                ExpenseModel.status == ExpenseStatus.PENDING.value,
            )
            .order_by(ExpenseModel.created_at, ExpenseModel.id)
        ).all()

        if self._settings.is_override_role(caller.role):
            return [e.to_dto() for e in pending]

        resolver = RuleResolver(self.session)
        result = []
        for expense in pending:
            rule = resolver.resolve(expense.submitter_id)
            if rule is None or rule.approval_type in _POINTER_TYPES:
                if expense.current_approver_id == caller.actor_id:
                    result.append(expense.to_dto())
                continue
            eligible = eligible_approvers_for(
                rule, expense.current_approver_id, self._history(expense.id),
            )
            if caller.actor_id in eligible:
                result.append(expense.to_dto())
        return result

    def _get_model(self, expense_id: UUID) -> ExpenseModel:
        expense = self.session.get(ExpenseModel, expense_id)
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        return expense

    def _history(self, expense_id: UUID, by_step: bool = False) -> list[ApprovalRecord]:
        order = (
            (ApprovalModel.step_number, ApprovalModel.decision_seq)
            if by_step
            else (ApprovalModel.decision_seq,)
        )
        rows = self.session.scalars(
            select(ApprovalModel)
            .where(ApprovalModel.expense_id == expense_id)
            .order_by(*order)
        ).all()
        return [row.to_dto() for row in rows]

    def _company_of(self, user_id: UUID) -> UUID | None:
        user = self.session.get(UserModel, user_id)
        return user.company_id if user else None
