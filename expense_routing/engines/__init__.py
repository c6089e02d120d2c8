"""Pure calculation engines.  No I/O, no sessions, no clocks."""

from expense_routing.engines.approval_strategies import (
    ApprovalStrategy,
    HybridStrategy,
    PercentageStrategy,
    SequentialStrategy,
    SpecificApproverStrategy,
    count_approvals,
    eligible_approvers_for,
    evaluate_ungoverned,
    required_approvals,
    strategy_for,
)

__all__ = [
    "ApprovalStrategy",
    "HybridStrategy",
    "PercentageStrategy",
    "SequentialStrategy",
    "SpecificApproverStrategy",
    "count_approvals",
    "eligible_approvers_for",
    "evaluate_ungoverned",
    "required_approvals",
    "strategy_for",
]
