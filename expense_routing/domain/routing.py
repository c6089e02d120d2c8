"""
Routing outcomes (``expense_routing.domain.routing``).

An ApprovalStrategy answers "what happens to this expense now?" with one
of three frozen values:

* ``Advance``  -- hand the expense to ``next_approver_id`` at ``next_step``.
* ``Hold``     -- stay pending with the pointer unchanged; more parallel
                  decisions are needed.
* ``Finalize`` -- approve or reject; the expense becomes immutable.

Outcomes are pure data.  The WorkflowEngine applies them to the stored
expense through the ExpenseStateMachine.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from expense_routing.domain.expense import ExpenseStatus


@dataclass(frozen=True)
class Advance:
    """Route to the next approver."""

    next_approver_id: UUID
    next_step: int
    reason: str = ""


@dataclass(frozen=True)
class Hold:
    """Remain pending; any eligible approver may still act."""

    approvals_received: int
    approvals_required: int
    reason: str = ""


@dataclass(frozen=True)
class Finalize:
    """Move the expense to a terminal status."""

    status: ExpenseStatus
    reason: str = ""

    def __post_init__(self) -> None:
        if self.status not in (ExpenseStatus.APPROVED, ExpenseStatus.REJECTED):
            raise ValueError(f"Finalize requires a terminal status, got {self.status}")


Outcome = Advance | Hold | Finalize
