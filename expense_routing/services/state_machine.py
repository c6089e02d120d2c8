"""
ExpenseStateMachine -- applies lifecycle transitions to expense rows.

Responsibility:
    The only code that writes ``status``, ``current_approver_id``,
    ``current_approval_step``, ``submitted_at`` and ``resolved_at``.
    Every change is checked against ``domain.expense.EXPENSE_TRANSITIONS``
    before it touches the row.

Architecture position:
    Services -- operates on ORM rows handed in by WorkflowEngine and
    SubmissionService.  Does not flush; the calling service does.

Invariants enforced:
    - DRAFT -> PENDING -> {APPROVED, REJECTED}; terminal states absorb.
    - pending <=> current_approver_id is set.
    - Every applied transition increments ``version`` (the expense's
      optimistic-lock counter), including a Hold that leaves the routing
      pointer where it was.

Failure modes:
    - InvalidExpenseTransitionError (ILLEGAL_STATE) for any edge missing
      from the transition table.
"""

from __future__ import annotations

from uuid import UUID

from expense_routing.domain.clock import Clock, SystemClock
from expense_routing.domain.expense import (
    ExpenseStatus,
    check_approver_invariant,
    validate_transition,
)
from expense_routing.domain.routing import Advance, Finalize, Hold, Outcome
from expense_routing.models.expense import ExpenseModel


class ExpenseStateMachine:
    """Transition applier for ExpenseModel rows."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def route(self, expense: ExpenseModel, approver_id: UUID, step: int) -> None:
        """Submit a draft into the workflow at ``step``."""
        self._transition(expense, ExpenseStatus.PENDING, approver_id, step)
        expense.submitted_at = self._clock.now()

    def advance(self, expense: ExpenseModel, approver_id: UUID, step: int) -> None:
        """Hand a pending expense to the next approver."""
        self._transition(expense, ExpenseStatus.PENDING, approver_id, step)

    def hold(self, expense: ExpenseModel) -> None:
        """Keep a pending expense where it is."""
        self._transition(
            expense,
            ExpenseStatus.PENDING,
            expense.current_approver_id,
            expense.current_approval_step,
        )

    def finalize(self, expense: ExpenseModel, status: ExpenseStatus) -> None:
        """Approve or reject.  Clears the approver pointer."""
        was_draft = ExpenseStatus(expense.status) == ExpenseStatus.DRAFT
        self._transition(expense, status, None, expense.current_approval_step)
        now = self._clock.now()
        if was_draft:
            expense.submitted_at = now
        expense.resolved_at = now

    def apply(self, expense: ExpenseModel, outcome: Outcome) -> None:
        """Apply a strategy outcome."""
        if isinstance(outcome, Finalize):
            self.finalize(expense, outcome.status)
        elif isinstance(outcome, Advance):
            self.advance(expense, outcome.next_approver_id, outcome.next_step)
        elif isinstance(outcome, Hold):
            self.hold(expense)
        else:
            raise TypeError(f"Unknown outcome: {outcome!r}")

    def _transition(
        self,
        expense: ExpenseModel,
        target: ExpenseStatus,
        approver_id: UUID | None,
        step: int,
    ) -> None:
        validate_transition(ExpenseStatus(expense.status), target)
        if not check_approver_invariant(target, approver_id):
            raise ValueError(
                f"Expense {expense.id}: status {target.value} is inconsistent "
                f"with current approver {approver_id}"
            )
        expense.status = target.value
        expense.current_approver_id = approver_id
        expense.current_approval_step = step
        expense.updated_at = self._clock.now()
        expense.version = (expense.version or 0) + 1
