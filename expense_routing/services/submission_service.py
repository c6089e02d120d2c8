"""
SubmissionService -- moves a draft expense into the approval workflow.

Responsibility:
    Resolve the submitter's rule and route the draft to its first approver
    (``ApprovalStrategy.initial_route``).  A submitter with no governing
    rule, or a rule with nobody to route to, is approved immediately.

Architecture position:
    Services -- flushes, never commits.

Failure modes:
    - ExpenseNotFoundError, ExpenseNotDraftError.
    - NotEligibleApproverError if the actor is neither the submitter nor an
      override role.
    - SubmitterNotFoundError / InvalidRuleConfigurationError from the
      resolver.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_routing.config import RoutingSettings
from expense_routing.domain.clock import Clock, SystemClock
from expense_routing.domain.expense import Caller, ExpenseRecord, ExpenseStatus
from expense_routing.domain.routing import Advance, Finalize
from expense_routing.engines.approval_strategies import strategy_for
from expense_routing.exceptions import (
    ExpenseNotDraftError,
    ExpenseNotFoundError,
    NotEligibleApproverError,
)
from expense_routing.logging_config import LogContext, get_logger
from expense_routing.models.expense import ExpenseModel
from expense_routing.services.base import BaseService
from expense_routing.services.rule_resolver import RuleResolver
from expense_routing.services.state_machine import ExpenseStateMachine

logger = get_logger("services.submission")


class SubmissionService(BaseService):
    """Routes draft expenses."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: RoutingSettings | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._settings = settings or RoutingSettings()
        self._state_machine = ExpenseStateMachine(self._clock)

    def submit(self, expense_id: UUID, actor: Caller) -> ExpenseRecord:
        with LogContext.bind(expense_id=str(expense_id), actor_id=str(actor.actor_id)):
            expense = self.session.execute(
                select(ExpenseModel)
                .where(ExpenseModel.id == expense_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if expense is None:
                raise ExpenseNotFoundError(str(expense_id))

            if (
                actor.actor_id != expense.submitter_id
                and not self._settings.is_override_role(actor.role)
            ):
                raise NotEligibleApproverError(str(expense_id), str(actor.actor_id))

            if expense.status != ExpenseStatus.DRAFT.value:
                raise ExpenseNotDraftError(str(expense_id), expense.status)

            rule = RuleResolver(self.session).resolve(expense.submitter_id)
            if rule is None:
                route: Advance | Finalize = Finalize(
                    ExpenseStatus.APPROVED, reason="No approval rule configured",
                )
            else:
                route = strategy_for(rule.approval_type).initial_route(rule)

            if isinstance(route, Finalize):
                self._state_machine.finalize(expense, route.status)
            else:
                self._state_machine.route(expense, route.next_approver_id, route.next_step)

            self.session.flush()

            logger.info(
                "expense_submitted",
                extra={
                    "status": expense.status,
                    "rule_id": str(rule.rule_id) if rule else None,
                    "current_approver_id": (
                        str(expense.current_approver_id)
                        if expense.current_approver_id else None
                    ),
                    "step": expense.current_approval_step,
                    "reason": route.reason,
                },
            )
            return expense.to_dto()
