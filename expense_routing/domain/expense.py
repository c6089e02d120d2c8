"""
Expense domain types (``expense_routing.domain.expense``).

Responsibility
--------------
Pure value objects for expenses and their approval audit trail: the
expense lifecycle state machine, decision values, caller identity, and
frozen record DTOs returned by services and selectors.

Architecture position
---------------------
**Domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* ``EXPENSE_TRANSITIONS`` is the only source of legal status changes.
  ``DRAFT -> PENDING -> {APPROVED, REJECTED}``; terminal states have no
  outgoing edges.
* A pending expense always names a current approver; a terminal one never
  does (checked by ``check_approver_invariant``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from expense_routing.exceptions import (
    InvalidDecisionError,
    InvalidExpenseTransitionError,
)


# =========================================================================
# Expense Status Lifecycle
# =========================================================================


class ExpenseStatus(str, Enum):
    """Expense lifecycle states."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


EXPENSE_TRANSITIONS: dict[ExpenseStatus, frozenset[ExpenseStatus]] = {
    ExpenseStatus.DRAFT: frozenset({
        ExpenseStatus.PENDING,
        # Submission with no governing rule auto-approves
        ExpenseStatus.APPROVED,
    }),
    ExpenseStatus.PENDING: frozenset({
        ExpenseStatus.PENDING,
        ExpenseStatus.APPROVED,
        ExpenseStatus.REJECTED,
    }),
    ExpenseStatus.APPROVED: frozenset(),
    ExpenseStatus.REJECTED: frozenset(),
}

TERMINAL_EXPENSE_STATUSES: frozenset[ExpenseStatus] = frozenset({
    ExpenseStatus.APPROVED,
    ExpenseStatus.REJECTED,
})


def validate_transition(current: ExpenseStatus, target: ExpenseStatus) -> None:
    """Raise InvalidExpenseTransitionError unless current -> target is legal."""
    if target not in EXPENSE_TRANSITIONS.get(current, frozenset()):
        raise InvalidExpenseTransitionError(current.value, target.value)


def check_approver_invariant(
    status: ExpenseStatus,
    current_approver_id: UUID | None,
) -> bool:
    """True if ``status`` and ``current_approver_id`` agree.

    pending <=> approver set; draft and terminal states carry no approver.
    """
    if status == ExpenseStatus.PENDING:
        return current_approver_id is not None
    return current_approver_id is None


# =========================================================================
# Decisions and callers
# =========================================================================


class Decision(str, Enum):
    """What an approver decided.  Values match Approval.status."""

    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def final_status(self) -> ExpenseStatus:
        if self is Decision.APPROVED:
            return ExpenseStatus.APPROVED
        return ExpenseStatus.REJECTED


_DECISION_ALIASES: dict[str, Decision] = {
    "approve": Decision.APPROVED,
    "approved": Decision.APPROVED,
    "reject": Decision.REJECTED,
    "rejected": Decision.REJECTED,
}


def parse_decision(value: Decision | str) -> Decision:
    """Accept a Decision or approve/approved/reject/rejected (any case)."""
    if isinstance(value, Decision):
        return value
    if isinstance(value, str):
        decision = _DECISION_ALIASES.get(value.strip().lower())
        if decision is not None:
            return decision
    raise InvalidDecisionError(value)


class Role(str, Enum):
    """Roles known to the authentication layer."""

    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class Caller:
    """An authenticated identity as handed over by the auth layer."""

    actor_id: UUID
    role: str
    company_id: UUID | None = None


# =========================================================================
# Record DTOs
# =========================================================================


@dataclass(frozen=True)
class ApprovalRecord:
    """One entry in an expense's approval audit trail. Immutable."""

    approval_id: UUID
    expense_id: UUID
    approver_id: UUID
    step_number: int
    decision_seq: int
    decision: Decision
    comments: str | None = None
    is_override: bool = False
    approved_at: datetime | None = None


@dataclass(frozen=True)
class ExpenseRecord:
    """Immutable snapshot of an expense row."""

    expense_id: UUID
    company_id: UUID
    submitter_id: UUID
    amount: Decimal
    currency: str
    category: str
    status: ExpenseStatus
    current_approver_id: UUID | None
    current_approval_step: int
    version: int
    description: str | None = None
    expense_date: date | None = None
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    resolved_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXPENSE_STATUSES
