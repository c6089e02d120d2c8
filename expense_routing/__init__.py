"""
expense_routing -- approval-routing engine for multi-approver expenses.

Entry points:
    services.WorkflowEngine.decide          record a decision (caller commits)
    services.DecisionCoordinator.decide     same, in its own retrying transaction
    services.SubmissionService.submit       route a draft to its first approver
    selectors.ExpenseSelector               list_pending / history / eligibility
"""

__version__ = "0.1.0"
