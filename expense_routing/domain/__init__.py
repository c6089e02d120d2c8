"""Pure domain layer: expense lifecycle, rule views and routing outcomes."""

from expense_routing.domain.clock import Clock, DeterministicClock, SystemClock
from expense_routing.domain.expense import (
    EXPENSE_TRANSITIONS,
    TERMINAL_EXPENSE_STATUSES,
    ApprovalRecord,
    Caller,
    Decision,
    ExpenseRecord,
    ExpenseStatus,
    Role,
    parse_decision,
    validate_transition,
)
from expense_routing.domain.routing import Advance, Finalize, Hold, Outcome
from expense_routing.domain.rules import (
    ApprovalType,
    RuleApprover,
    RuleSource,
    RuleView,
    build_rule_view,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "EXPENSE_TRANSITIONS",
    "TERMINAL_EXPENSE_STATUSES",
    "ApprovalRecord",
    "Caller",
    "Decision",
    "ExpenseRecord",
    "ExpenseStatus",
    "Role",
    "parse_decision",
    "validate_transition",
    "Advance",
    "Finalize",
    "Hold",
    "Outcome",
    "ApprovalType",
    "RuleApprover",
    "RuleSource",
    "RuleView",
    "build_rule_view",
]
