"""Tests for ExpenseSelector: list_pending, history and derived eligibility."""

from decimal import Decimal
from uuid import uuid4

import pytest

from expense_routing.domain.expense import Caller, Decision, ExpenseStatus
from expense_routing.exceptions import ExpenseNotFoundError
from expense_routing.selectors.expense_selector import ExpenseSelector
from expense_routing.services.workflow_engine import WorkflowEngine


@pytest.fixture
def selector(session):
    return ExpenseSelector(session)


@pytest.fixture
def engine(session, clock):
    return WorkflowEngine(session, clock=clock)


@pytest.fixture
def submitter(factory):
    return factory.user(name="submitter")


class TestListPending:
    def test_sequential_pointer(self, selector, factory, submitter):
        a, b = factory.users(2)
        factory.company_rule("SEQUENTIAL", [a, b])
        expense = factory.submitted(submitter)

        assert [e.expense_id for e in selector.list_pending(factory.caller(a))] == [expense.id]
        assert selector.list_pending(factory.caller(b)) == []

    def test_percentage_eligibility_is_derived(self, selector, engine, factory, submitter):
        a, b, c = factory.users(3)
        factory.company_rule("PERCENTAGE", [a, b, c], percentage_threshold=100)
        expense = factory.submitted(submitter)
        engine.decide(expense.id, factory.caller(b), "approve")

        assert len(selector.list_pending(factory.caller(a))) == 1
        assert selector.list_pending(factory.caller(b)) == []
        assert len(selector.list_pending(factory.caller(c))) == 1

    def test_hybrid_includes_specific_approver(self, selector, factory, submitter):
        x, a = factory.users(2)
        factory.company_rule("HYBRID", [a], percentage_threshold=100, specific_approver=x)
        factory.submitted(submitter)

        assert len(selector.list_pending(factory.caller(x))) == 1

    def test_oldest_first(self, selector, factory, submitter):
        a = factory.user()
        factory.company_rule("SPECIFIC_APPROVER", specific_approver=a)
        first = factory.submitted(submitter)
        second = factory.submitted(submitter)

        listed = selector.list_pending(factory.caller(a))

        assert [e.expense_id for e in listed] == [first.id, second.id]

    def test_finalized_expenses_drop_out(self, selector, engine, factory, submitter):
        a = factory.user()
        factory.company_rule("SPECIFIC_APPROVER", specific_approver=a)
        expense = factory.submitted(submitter)
        engine.decide(expense.id, factory.caller(a), "approve")

        assert selector.list_pending(factory.caller(a)) == []

    def test_admin_sees_company_queue(self, selector, factory, submitter):
        a = factory.user()
        admin = factory.user(role="admin")
        factory.company_rule("SPECIFIC_APPROVER", specific_approver=a)
        factory.submitted(submitter)
        factory.expense(submitter)  # draft, not listed

        listed = selector.list_pending(factory.caller(admin))

        assert len(listed) == 1
        assert listed[0].status == ExpenseStatus.PENDING

    def test_other_company_invisible(self, selector, factory, submitter):
        a = factory.user()
        factory.company_rule("SPECIFIC_APPROVER", specific_approver=a)
        factory.submitted(submitter)

        stranger = Caller(actor_id=a.id, role="admin", company_id=uuid4())

        assert selector.list_pending(stranger) == []

    def test_company_looked_up_when_missing(self, selector, factory, submitter):
        a = factory.user()
        factory.company_rule("SPECIFIC_APPROVER", specific_approver=a)
        factory.submitted(submitter)

        assert len(selector.list_pending(Caller(actor_id=a.id, role="manager"))) == 1
        assert selector.list_pending(Caller(actor_id=uuid4(), role="manager")) == []


class TestHistory:
    def test_ordered_by_step_then_insertion(self, selector, engine, factory, submitter):
        a, b, c = factory.users(3)
        admin = factory.user(role="admin")
        factory.company_rule("SEQUENTIAL", [a, b, c])
        expense = factory.submitted(submitter)
        engine.decide(expense.id, factory.caller(a), "approve")
        engine.decide(expense.id, factory.caller(admin), "approve", comment="covering for b")
        engine.decide(expense.id, factory.caller(c), "reject")

        history = selector.history(expense.id)

        assert [r.step_number for r in history] == [1, 2, 3]
        assert [r.decision_seq for r in history] == [1, 2, 3]
        assert [r.decision for r in history] == [
            Decision.APPROVED, Decision.APPROVED, Decision.REJECTED,
        ]
        assert history[1].is_override is True
        assert history[1].comments == "covering for b"

    def test_parallel_decisions_share_a_step(self, selector, engine, factory, submitter):
        a, b, c = factory.users(3)
        factory.company_rule("PERCENTAGE", [a, b, c], percentage_threshold=100)
        expense = factory.submitted(submitter)
        engine.decide(expense.id, factory.caller(c), "approve")
        engine.decide(expense.id, factory.caller(a), "approve")

        history = selector.history(expense.id)

        assert [r.approver_id for r in history] == [c.id, a.id]
        assert {r.step_number for r in history} == {1}

    def test_unknown_expense(self, selector):
        with pytest.raises(ExpenseNotFoundError):
            selector.history(uuid4())


class TestEligibleApprovers:
    def test_percentage(self, selector, engine, factory, submitter):
        a, b, c = factory.users(3)
        factory.company_rule("PERCENTAGE", [a, b, c], percentage_threshold=100)
        expense = factory.submitted(submitter)
        engine.decide(expense.id, factory.caller(a), "reject")

        assert selector.eligible_approvers(expense.id) == {b.id, c.id}

    def test_sequential(self, selector, factory, submitter):
        a, b = factory.users(2)
        factory.company_rule("SEQUENTIAL", [a, b])
        expense = factory.submitted(submitter)

        assert selector.eligible_approvers(expense.id) == {a.id}

    def test_empty_when_not_pending(self, selector, factory, submitter):
        expense = factory.submitted(submitter)  # no rule: auto-approved
        assert selector.eligible_approvers(expense.id) == frozenset()

    def test_get_expense(self, selector, factory, submitter):
        expense = factory.expense(submitter, amount="42.10", currency="EUR")

        record = selector.get_expense(expense.id)

        assert record.status == ExpenseStatus.DRAFT
        assert record.amount == Decimal("42.10")
        assert record.currency == "EUR"
        assert record.version == 1
