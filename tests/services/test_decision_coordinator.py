"""
Tests for DecisionCoordinator: commit/rollback ownership and CONFLICT retry.

Uses the file-backed SQLite database so commits are real and every attempt
runs in its own session.
"""

from unittest import mock

import pytest
from sqlalchemy import func, select

from expense_routing.config import RoutingSettings
from expense_routing.domain.expense import ExpenseStatus
from expense_routing.exceptions import ConcurrentDecisionError, NotEligibleApproverError
from expense_routing.models.approval import ApprovalModel
from expense_routing.models.expense import ExpenseModel
from expense_routing.services.decision_coordinator import DecisionCoordinator
from expense_routing.services.workflow_engine import WorkflowEngine
from tests.factories import RoutingFactory


@pytest.fixture
def seeded(session_factory, clock):
    """Percentage rule over three approvers and one pending expense, committed."""
    with session_factory() as session:
        factory = RoutingFactory(session, clock)
        submitter = factory.user(name="submitter")
        approvers = factory.users(3)
        factory.company_rule("PERCENTAGE", approvers, percentage_threshold=60)
        expense = factory.submitted(submitter)
        session.commit()
        return expense.id, [factory.caller(a) for a in approvers], factory.caller(submitter)


def _approvals(session_factory, expense_id) -> int:
    with session_factory() as session:
        return session.scalar(
            select(func.count()).select_from(ApprovalModel)
            .where(ApprovalModel.expense_id == expense_id)
        )


class TestCommitAndRollback:
    def test_success_is_committed(self, session_factory, clock, seeded):
        expense_id, callers, _ = seeded
        coordinator = DecisionCoordinator(session_factory, clock=clock)

        result = coordinator.decide(expense_id, callers[0], "approve")

        assert result.status == ExpenseStatus.PENDING
        assert _approvals(session_factory, expense_id) == 1

    def test_failure_leaves_nothing(self, session_factory, clock, seeded):
        expense_id, _, submitter = seeded
        coordinator = DecisionCoordinator(session_factory, clock=clock)

        with pytest.raises(NotEligibleApproverError):
            coordinator.decide(expense_id, submitter, "approve")

        assert _approvals(session_factory, expense_id) == 0
        with session_factory() as session:
            assert session.get(ExpenseModel, expense_id).status == "pending"

    def test_two_decisions_finalize(self, session_factory, clock, seeded):
        expense_id, callers, _ = seeded
        coordinator = DecisionCoordinator(session_factory, clock=clock)

        coordinator.decide(expense_id, callers[0], "approve")
        result = coordinator.decide(expense_id, callers[2], "approve")

        assert result.status == ExpenseStatus.APPROVED
        assert _approvals(session_factory, expense_id) == 2


class TestConflictRetry:
    def test_conflict_is_retried(self, session_factory, clock, seeded, captured_logs):
        expense_id, callers, _ = seeded
        coordinator = DecisionCoordinator(session_factory, clock=clock)
        real_decide = WorkflowEngine.decide
        calls = {"n": 0}

        def flaky(self, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ConcurrentDecisionError(str(expense_id))
            return real_decide(self, *args, **kwargs)

        with mock.patch.object(WorkflowEngine, "decide", flaky):
            result = coordinator.decide(expense_id, callers[0], "approve")

        assert calls["n"] == 2
        assert result.status == ExpenseStatus.PENDING
        assert _approvals(session_factory, expense_id) == 1
        retries = [r for r in captured_logs() if r["message"] == "decision_conflict_retry"]
        assert len(retries) == 1
        assert retries[0]["attempt"] == 1
        assert "correlation_id" in retries[0]

    def test_gives_up_after_max_retries(self, session_factory, clock, seeded):
        expense_id, callers, _ = seeded
        coordinator = DecisionCoordinator(
            session_factory, clock=clock, settings=RoutingSettings(max_conflict_retries=2),
        )
        calls = {"n": 0}

        def always_conflicts(self, *args, **kwargs):
            calls["n"] += 1
            raise ConcurrentDecisionError(str(expense_id))

        with mock.patch.object(WorkflowEngine, "decide", always_conflicts):
            with pytest.raises(ConcurrentDecisionError):
                coordinator.decide(expense_id, callers[0], "approve")

        assert calls["n"] == 3

    def test_pinned_version_is_not_retried(self, session_factory, clock, seeded):
        expense_id, callers, _ = seeded
        coordinator = DecisionCoordinator(session_factory, clock=clock)

        with pytest.raises(ConcurrentDecisionError) as exc_info:
            coordinator.decide(expense_id, callers[0], "approve", expected_version=1)

        assert exc_info.value.expected_version == 1
        assert _approvals(session_factory, expense_id) == 0

    def test_other_errors_not_retried(self, session_factory, clock, seeded):
        expense_id, _, submitter = seeded
        coordinator = DecisionCoordinator(session_factory, clock=clock)
        calls = {"n": 0}
        real_decide = WorkflowEngine.decide

        def counting(self, *args, **kwargs):
            calls["n"] += 1
            return real_decide(self, *args, **kwargs)

        with mock.patch.object(WorkflowEngine, "decide", counting):
            with pytest.raises(NotEligibleApproverError):
                coordinator.decide(expense_id, submitter, "approve")

        assert calls["n"] == 1
