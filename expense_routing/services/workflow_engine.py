"""
WorkflowEngine -- records one approver decision and routes the expense.

Responsibility:
    ``decide()`` is the single mutating entry point of the routing engine.
    It validates the decision, locks and loads the expense, re-resolves the
    governing rule, authorises the caller, appends the Approval record,
    asks the rule's ApprovalStrategy for the outcome and applies it through
    ExpenseStateMachine -- all inside the caller's transaction.

Architecture position:
    Services -- imperative shell around the pure strategies in
    ``engines/approval_strategies.py``.  Flushes, never commits.

Invariants enforced:
    - Read -> evaluate -> write is serialised per expense: the expense row
      is read with ``SELECT ... FOR UPDATE`` (PostgreSQL) or under the
      ``BEGIN IMMEDIATE`` write lock (SQLite).
    - Lost updates are impossible: the expense ``version`` counter and the
      UNIQUE(expense_id, decision_seq) key turn any residual race into
      ConcurrentDecisionError.
    - The rule is resolved fresh on every call.
    - Either both the Approval insert and the Expense update flush, or
      neither does (the transaction owner rolls back on error).

Failure modes (checked in this order):
    1. InvalidDecisionError / CommentRequiredError / CommentTooLongError
    2. ExpenseNotFoundError
    3. ConcurrentDecisionError (``expected_version`` mismatch)
    4. ExpenseNotPendingError
    5. SubmitterNotFoundError / InvalidRuleConfigurationError
    6. NotEligibleApproverError
    7. ConcurrentDecisionError (stale version or duplicate decision_seq
       at flush time, or a lock wait that timed out)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from expense_routing.config import RoutingSettings
from expense_routing.domain.clock import Clock, SystemClock
from expense_routing.domain.expense import (
    ApprovalRecord,
    Caller,
    Decision,
    ExpenseRecord,
    ExpenseStatus,
    parse_decision,
)
from expense_routing.domain.routing import Advance, Finalize, Outcome
from expense_routing.domain.rules import RuleView
from expense_routing.engines.approval_strategies import (
    eligible_approvers_for,
    evaluate_ungoverned,
    strategy_for,
)
from expense_routing.exceptions import (
    CommentRequiredError,
    CommentTooLongError,
    ConcurrentDecisionError,
    ExpenseNotFoundError,
    ExpenseNotPendingError,
    NotEligibleApproverError,
)
from expense_routing.logging_config import LogContext, get_logger
from expense_routing.models.approval import ApprovalModel
from expense_routing.models.expense import ExpenseModel
from expense_routing.services.base import BaseService
from expense_routing.services.rule_resolver import RuleResolver
from expense_routing.services.state_machine import ExpenseStateMachine

logger = get_logger("services.workflow_engine")

# Driver messages for a lock wait that gave up (SQLite busy timeout,
# PostgreSQL lock_timeout / NOWAIT)
_LOCK_TIMEOUT_MARKERS = ("database is locked", "lock timeout", "could not obtain lock")


def _is_lock_timeout(exc: OperationalError) -> bool:
    message = str(exc.orig).lower()
    return any(marker in message for marker in _LOCK_TIMEOUT_MARKERS)


@dataclass(frozen=True)
class DecisionResult:
    """What ``decide()`` returns: the new status and the recorded decision."""

    status: ExpenseStatus
    approval: ApprovalRecord
    expense: ExpenseRecord
    outcome: Outcome


class WorkflowEngine(BaseService):
    """
    Applies approver decisions to expenses.

    Contract:
        One call to ``decide()`` inserts exactly one Approval row and
        updates exactly one Expense row, or raises and changes nothing
        once the caller rolls back.

    Non-goals:
        - Does NOT commit.  Use DecisionCoordinator for a self-contained,
          retrying unit of work.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: RoutingSettings | None = None,
        resolver_factory: Callable[[Session], RuleResolver] = RuleResolver,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._settings = settings or RoutingSettings()
        self._resolver_factory = resolver_factory
        self._state_machine = ExpenseStateMachine(self._clock)

    def decide(
        self,
        expense_id: UUID,
        approver: Caller,
        decision: Decision | str,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> DecisionResult:
        """
        Record ``approver``'s decision on ``expense_id`` and route the expense.

        Args:
            expense_id: Expense being decided.
            approver: Authenticated caller.
            decision: ``Decision`` or one of approve/approved/reject/rejected.
            comment: Optional free text, stored stripped.
            expected_version: If given, the decision is refused with CONFLICT
                unless the expense is still at this version.

        Returns:
            DecisionResult with the expense's new status and the Approval.
        """
        parsed = parse_decision(decision)
        comment = self._clean_comment(parsed, comment)

        with LogContext.bind(expense_id=str(expense_id), actor_id=str(approver.actor_id)):
            expense = self._lock_expense(expense_id)

            if expected_version is not None and expense.version != expected_version:
                raise ConcurrentDecisionError(
                    str(expense_id),
                    expected_version=expected_version,
                    actual_version=expense.version,
                )

            if expense.status != ExpenseStatus.PENDING.value:
                raise ExpenseNotPendingError(str(expense_id), expense.status)

            rule = self._resolver_factory(self.session).resolve(expense.submitter_id)
            history = self._load_history(expense.id)
            is_override = self._authorize(expense, approver, rule, history)

            approval = ApprovalModel(
                id=uuid4(),
                expense_id=expense.id,
                approver_id=approver.actor_id,
                step_number=expense.current_approval_step,
                decision_seq=len(history) + 1,
                status=parsed.value,
                comments=comment,
                is_override=is_override,
                approved_at=self._clock.now(),
            )
            self.session.add(approval)
            latest = approval.to_dto()

            if rule is None:
                outcome: Outcome = evaluate_ungoverned(latest)
            else:
                outcome = strategy_for(rule.approval_type).evaluate(
                    rule, [*history, latest], latest,
                )

            self._state_machine.apply(expense, outcome)
            self._flush(expense_id)

            self._log_outcome(expense, latest, rule, outcome)

            return DecisionResult(
                status=ExpenseStatus(expense.status),
                approval=latest,
                expense=expense.to_dto(),
                outcome=outcome,
            )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _clean_comment(self, decision: Decision, comment: str | None) -> str | None:
        if comment is not None:
            comment = comment.strip() or None
        if comment is None:
            if decision == Decision.REJECTED and self._settings.require_comment_on_reject:
                raise CommentRequiredError(decision.value)
            return None
        if len(comment) > self._settings.max_comment_length:
            raise CommentTooLongError(len(comment), self._settings.max_comment_length)
        return comment

    def _lock_expense(self, expense_id: UUID) -> ExpenseModel:
        try:
            expense = self.session.execute(
                select(ExpenseModel)
                .where(ExpenseModel.id == expense_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as exc:
            if not _is_lock_timeout(exc):
                raise
            logger.warning("decision_conflict", extra={"cause": "lock_timeout"})
            raise ConcurrentDecisionError(str(expense_id)) from exc
        if expense is None:
            raise ExpenseNotFoundError(str(expense_id))
        return expense

    def _load_history(self, expense_id: UUID) -> list[ApprovalRecord]:
        rows = self.session.scalars(
            select(ApprovalModel)
            .where(ApprovalModel.expense_id == expense_id)
            .order_by(ApprovalModel.decision_seq)
        ).all()
        return [row.to_dto() for row in rows]

    def _authorize(
        self,
        expense: ExpenseModel,
        caller: Caller,
        rule: RuleView | None,
        history: list[ApprovalRecord],
    ) -> bool:
        """Return True if the caller acts through the override role."""
        eligible = eligible_approvers_for(rule, expense.current_approver_id, history)
        if caller.actor_id in eligible:
            return False

        same_company = caller.company_id is None or caller.company_id == expense.company_id
        if same_company and self._settings.is_override_role(caller.role):
            return True

        logger.warning(
            "decision_not_authorized",
            extra={
                "role": str(caller.role),
                "eligible_count": len(eligible),
            },
        )
        raise NotEligibleApproverError(str(expense.id), str(caller.actor_id))

    def _flush(self, expense_id: UUID) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning("decision_conflict", extra={"cause": "stale_version"})
            raise ConcurrentDecisionError(str(expense_id)) from exc
        except IntegrityError as exc:
            if "decision_seq" not in str(exc.orig):
                raise
            logger.warning("decision_conflict", extra={"cause": "duplicate_decision_seq"})
            raise ConcurrentDecisionError(str(expense_id)) from exc
        except OperationalError as exc:
            if not _is_lock_timeout(exc):
                raise
            logger.warning("decision_conflict", extra={"cause": "lock_timeout"})
            raise ConcurrentDecisionError(str(expense_id)) from exc

    def _log_outcome(
        self,
        expense: ExpenseModel,
        latest: ApprovalRecord,
        rule: RuleView | None,
        outcome: Outcome,
    ) -> None:
        logger.info(
            "decision_recorded",
            extra={
                "decision": latest.decision.value,
                "decision_seq": latest.decision_seq,
                "step_number": latest.step_number,
                "is_override": latest.is_override,
                "rule_id": str(rule.rule_id) if rule else None,
                "approval_type": rule.approval_type.value if rule else None,
            },
        )
        if isinstance(outcome, Finalize):
            logger.info(
                "expense_finalized",
                extra={"status": outcome.status.value, "reason": outcome.reason},
            )
        elif isinstance(outcome, Advance):
            logger.info(
                "expense_advanced",
                extra={
                    "next_approver_id": str(outcome.next_approver_id),
                    "next_step": outcome.next_step,
                },
            )
        else:
            logger.info(
                "expense_held",
                extra={
                    "approvals_received": outcome.approvals_received,
                    "approvals_required": outcome.approvals_required,
                    "version": expense.version,
                },
            )
