"""
Tests for the pure expense lifecycle: transition table, approver invariant,
decision parsing and routing outcome values.
"""

from uuid import uuid4

import pytest

from expense_routing.domain.expense import (
    EXPENSE_TRANSITIONS,
    TERMINAL_EXPENSE_STATUSES,
    Decision,
    ExpenseStatus,
    check_approver_invariant,
    parse_decision,
    validate_transition,
)
from expense_routing.domain.routing import Finalize
from expense_routing.exceptions import (
    InvalidDecisionError,
    InvalidExpenseTransitionError,
)


class TestTransitionTable:
    @pytest.mark.parametrize("target", [ExpenseStatus.PENDING, ExpenseStatus.APPROVED])
    def test_draft_exits(self, target):
        validate_transition(ExpenseStatus.DRAFT, target)

    def test_draft_cannot_be_rejected(self):
        with pytest.raises(InvalidExpenseTransitionError):
            validate_transition(ExpenseStatus.DRAFT, ExpenseStatus.REJECTED)

    @pytest.mark.parametrize("target", list(ExpenseStatus)[1:])
    def test_pending_exits(self, target):
        validate_transition(ExpenseStatus.PENDING, target)

    def test_pending_cannot_return_to_draft(self):
        with pytest.raises(InvalidExpenseTransitionError) as exc_info:
            validate_transition(ExpenseStatus.PENDING, ExpenseStatus.DRAFT)
        assert exc_info.value.code == "ILLEGAL_STATE"
        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "draft"

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_EXPENSE_STATUSES))
    @pytest.mark.parametrize("target", list(ExpenseStatus))
    def test_terminal_states_absorb(self, terminal, target):
        assert EXPENSE_TRANSITIONS[terminal] == frozenset()
        with pytest.raises(InvalidExpenseTransitionError):
            validate_transition(terminal, target)


class TestApproverInvariant:
    def test_pending_needs_approver(self):
        assert check_approver_invariant(ExpenseStatus.PENDING, uuid4())
        assert not check_approver_invariant(ExpenseStatus.PENDING, None)

    @pytest.mark.parametrize(
        "status", [ExpenseStatus.DRAFT, ExpenseStatus.APPROVED, ExpenseStatus.REJECTED],
    )
    def test_non_pending_has_no_approver(self, status):
        assert check_approver_invariant(status, None)
        assert not check_approver_invariant(status, uuid4())


class TestParseDecision:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("approve", Decision.APPROVED),
            ("Approved", Decision.APPROVED),
            ("  REJECT ", Decision.REJECTED),
            ("rejected", Decision.REJECTED),
            (Decision.APPROVED, Decision.APPROVED),
        ],
    )
    def test_accepted_spellings(self, raw, expected):
        assert parse_decision(raw) is expected

    @pytest.mark.parametrize("raw", ["maybe", "", None, 1])
    def test_rejected_spellings(self, raw):
        with pytest.raises(InvalidDecisionError) as exc_info:
            parse_decision(raw)
        assert exc_info.value.code == "VALIDATION_ERROR"

    def test_final_status(self):
        assert Decision.APPROVED.final_status is ExpenseStatus.APPROVED
        assert Decision.REJECTED.final_status is ExpenseStatus.REJECTED


class TestFinalize:
    def test_requires_terminal_status(self):
        with pytest.raises(ValueError):
            Finalize(ExpenseStatus.PENDING)
