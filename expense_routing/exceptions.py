"""
Typed Exception Hierarchy for the expense approval-routing engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP handlers, job runners, tests) must react to routing failures
without parsing message strings.  Every error therefore:

  1. Has a TYPED exception class (catch by type, not message)
  2. Carries a CODE attribute from the five-way routing taxonomy
     (machine-readable, API-safe)
  3. Carries structured DATA (expense_id, actor_id, ...) as attributes

Example - RIGHT way:
    try:
        engine.decide(expense_id, caller, "approve")
    except ConcurrentDecisionError as e:
        retry_later(e.expense_id)            # CONFLICT is retryable
    except ExpenseRoutingError as e:
        api_response(status=400, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExpenseRoutingError (base)
    |
    +-- RoutingValidationError          VALIDATION_ERROR
    |   +-- InvalidDecisionError
    |   +-- CommentRequiredError
    |   +-- CommentTooLongError
    |   +-- InvalidRuleConfigurationError
    |
    +-- RoutingNotFoundError            NOT_FOUND
    |   +-- ExpenseNotFoundError
    |   +-- SubmitterNotFoundError
    |
    +-- AuthorizationDeniedError        AUTHORIZATION_DENIED
    |   +-- NotEligibleApproverError
    |
    +-- ConcurrencyError                CONFLICT
    |   +-- ConcurrentDecisionError
    |
    +-- IllegalStateError               ILLEGAL_STATE
    |   +-- ExpenseNotPendingError
    |   +-- ExpenseNotDraftError
    |   +-- InvalidExpenseTransitionError
    |
    +-- ImmutabilityViolationError      IMMUTABILITY_VIOLATION

===============================================================================
PROPAGATION
===============================================================================

Every error is raised before or during the decision transaction.  The
transaction owner (DecisionCoordinator, session_scope, or the caller)
rolls back, so no Approval row is ever orphaned from its Expense update.
Only ConcurrencyError is marked ``retryable``; nothing else is retried.
"""

from __future__ import annotations


class ExpenseRoutingError(Exception):
    """
    Base exception for all routing errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_ROUTING_ERROR"
    retryable: bool = False


# Validation-related exceptions


class RoutingValidationError(ExpenseRoutingError):
    """Base exception for malformed input.  No state change."""

    code: str = "VALIDATION_ERROR"


class InvalidDecisionError(RoutingValidationError):
    """Decision value is not one of approve/reject."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Invalid decision {value!r}: expected 'approve' or 'reject'"
        )


class CommentRequiredError(RoutingValidationError):
    """A comment is mandatory for this decision."""

    def __init__(self, decision: str):
        self.decision = decision
        super().__init__(f"A comment is required for decision '{decision}'")


class CommentTooLongError(RoutingValidationError):
    """Comment exceeds the configured maximum length."""

    def __init__(self, length: int, max_length: int):
        self.length = length
        self.max_length = max_length
        super().__init__(
            f"Comment is {length} characters; maximum is {max_length}"
        )


class InvalidRuleConfigurationError(RoutingValidationError):
    """An approval rule cannot be evaluated as configured."""

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Approval rule {rule_id} is invalid: {reason}")


# Lookup-related exceptions


class RoutingNotFoundError(ExpenseRoutingError):
    """Base exception for references that do not resolve."""

    code: str = "NOT_FOUND"


class ExpenseNotFoundError(RoutingNotFoundError):
    """Expense ID doesn't exist."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class SubmitterNotFoundError(RoutingNotFoundError):
    """The expense's submitter is not a known user."""

    def __init__(self, submitter_id: str):
        self.submitter_id = submitter_id
        super().__init__(f"Submitter not found: {submitter_id}")


# Authorization-related exceptions


class AuthorizationDeniedError(ExpenseRoutingError):
    """Base exception for callers not allowed to act."""

    code: str = "AUTHORIZATION_DENIED"


class NotEligibleApproverError(AuthorizationDeniedError):
    """Caller is neither an eligible approver nor an override role."""

    def __init__(self, expense_id: str, actor_id: str):
        self.expense_id = expense_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} is not authorized to decide expense {expense_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(ExpenseRoutingError):
    """Base exception for concurrency-related errors."""

    code: str = "CONFLICT"
    retryable: bool = True


class ConcurrentDecisionError(ConcurrencyError):
    """The expense changed between read and write."""

    def __init__(
        self,
        expense_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.expense_id = expense_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = (
            f"Concurrent modification of expense {expense_id}: "
            "it was changed by another decision"
        )
        if expected_version is not None:
            msg += f" (expected version {expected_version}, found {actual_version})"
        super().__init__(msg)


# State-machine exceptions


class IllegalStateError(ExpenseRoutingError):
    """Base exception for operations invalid in the expense's current state."""

    code: str = "ILLEGAL_STATE"


class ExpenseNotPendingError(IllegalStateError):
    """decide() invoked on an expense that is not pending."""

    def __init__(self, expense_id: str, status: str):
        self.expense_id = expense_id
        self.status = status
        super().__init__(
            f"Expense {expense_id} is {status}; only pending expenses "
            "accept decisions"
        )


class ExpenseNotDraftError(IllegalStateError):
    """submit() invoked on an expense that is not a draft."""

    def __init__(self, expense_id: str, status: str):
        self.expense_id = expense_id
        self.status = status
        super().__init__(
            f"Expense {expense_id} is {status}; only drafts can be submitted"
        )


class InvalidExpenseTransitionError(IllegalStateError):
    """Transition not present in the expense state machine."""

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid expense transition: {from_status} -> {to_status}"
        )


# Immutability-related exceptions


class ImmutabilityViolationError(ExpenseRoutingError):
    """
    Attempted to modify or delete an immutable record.

    Approval records are append-only from creation; expenses are frozen
    once approved or rejected.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
