"""Services -- imperative shell.  Every service flushes; none commits."""

from expense_routing.services.decision_coordinator import DecisionCoordinator
from expense_routing.services.rule_resolver import (
    CompanyRuleStep,
    ResolutionStep,
    RuleResolver,
    UserRuleStep,
)
from expense_routing.services.state_machine import ExpenseStateMachine
from expense_routing.services.submission_service import SubmissionService
from expense_routing.services.workflow_engine import DecisionResult, WorkflowEngine

__all__ = [
    "CompanyRuleStep",
    "DecisionCoordinator",
    "DecisionResult",
    "ExpenseStateMachine",
    "ResolutionStep",
    "RuleResolver",
    "SubmissionService",
    "UserRuleStep",
    "WorkflowEngine",
]
