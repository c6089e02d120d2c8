"""
Property-based checks for the approval strategies.

Hypothesis generates thresholds, approver counts and decision orders; the
properties below must hold for every combination:

- required_approvals is the ceiling of threshold * approvers / 100
- Percentage approves exactly when the distinct approval count reaches the
  requirement, and never rejects
- Hybrid never turns a rejection into an approval, with or without an
  approver list
- Sequential walks every configured step before approving
"""

from fractions import Fraction
from math import ceil
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from expense_routing.domain.expense import ApprovalRecord, Decision, ExpenseStatus
from expense_routing.domain.routing import Advance, Finalize, Hold
from expense_routing.domain.rules import RuleApprover, RuleSource, build_rule_view
from expense_routing.engines.approval_strategies import (
    HybridStrategy,
    PercentageStrategy,
    SequentialStrategy,
    required_approvals,
)

thresholds = st.integers(min_value=1, max_value=100)
decisions = st.sampled_from([Decision.APPROVED, Decision.REJECTED])


def _rule(approval_type, approvers, threshold=None, specific=None):
    return build_rule_view(
        rule_id=uuid4(),
        source=RuleSource.COMPANY,
        name="generated",
        approval_type=approval_type,
        approvers=[RuleApprover(a, i) for i, a in enumerate(approvers, start=1)],
        percentage_threshold=threshold,
        specific_approver_id=specific,
    )


def _record(expense_id, approver, decision, seq, step=1):
    return ApprovalRecord(
        approval_id=uuid4(),
        expense_id=expense_id,
        approver_id=approver,
        step_number=step,
        decision_seq=seq,
        decision=decision,
    )


@given(threshold=thresholds, total=st.integers(min_value=0, max_value=200))
def test_required_approvals_is_ceiling(threshold, total):
    assert required_approvals(threshold, total) == ceil(Fraction(threshold * total, 100))


@given(
    threshold=thresholds,
    votes=st.lists(decisions, min_size=1, max_size=12),
    data=st.data(),
)
@settings(max_examples=200)
def test_percentage_outcome_tracks_the_count(threshold, votes, data):
    approvers = [uuid4() for _ in votes]
    order = data.draw(st.permutations(approvers))
    rule = _rule("PERCENTAGE", approvers, threshold)
    required = required_approvals(threshold, len(approvers))
    expense_id = uuid4()
    strategy = PercentageStrategy()

    history: list[ApprovalRecord] = []
    for seq, (approver, vote) in enumerate(zip(order, votes), start=1):
        latest = _record(expense_id, approver, vote, seq)
        history.append(latest)
        outcome = strategy.evaluate(rule, history, latest)

        approvals = sum(1 for r in history if r.decision == Decision.APPROVED)
        if approvals >= required:
            assert isinstance(outcome, Finalize)
            assert outcome.status == ExpenseStatus.APPROVED
            return
        assert isinstance(outcome, Hold)
        assert outcome.approvals_received == approvals
        assert outcome.approvals_required == required


@given(
    threshold=thresholds,
    listed=st.integers(min_value=0, max_value=6),
    votes=st.lists(decisions, min_size=1, max_size=6),
)
def test_hybrid_rejection_never_approves(threshold, listed, votes):
    approvers = [uuid4() for _ in range(listed)]
    rule = _rule("HYBRID", approvers, threshold, specific=uuid4())
    strategy = HybridStrategy()
    expense_id = uuid4()

    history: list[ApprovalRecord] = []
    for seq, vote in enumerate(votes, start=1):
        voter = approvers[seq - 1] if seq <= listed else uuid4()
        latest = _record(expense_id, voter, vote, seq)
        history.append(latest)
        outcome = strategy.evaluate(rule, history, latest)

        if isinstance(outcome, Finalize):
            assert outcome.status == ExpenseStatus.APPROVED
            assert vote == Decision.APPROVED
            assert approvers
            return


@given(total=st.integers(min_value=1, max_value=15))
def test_sequential_visits_every_step(total):
    approvers = [uuid4() for _ in range(total)]
    rule = _rule("SEQUENTIAL", approvers)
    strategy = SequentialStrategy()
    expense_id = uuid4()

    route = strategy.initial_route(rule)
    history: list[ApprovalRecord] = []
    visited = []
    while isinstance(route, Advance):
        visited.append(route.next_approver_id)
        latest = _record(
            expense_id, route.next_approver_id, Decision.APPROVED,
            len(history) + 1, step=route.next_step,
        )
        history.append(latest)
        route = strategy.evaluate(rule, history, latest)

    assert visited == approvers
    assert route.status == ExpenseStatus.APPROVED


@given(total=st.integers(min_value=1, max_value=15), data=st.data())
def test_sequential_rejection_stops_the_walk(total, data):
    approvers = [uuid4() for _ in range(total)]
    rejecting_step = data.draw(st.integers(min_value=1, max_value=total))
    rule = _rule("SEQUENTIAL", approvers)
    strategy = SequentialStrategy()
    expense_id = uuid4()

    history: list[ApprovalRecord] = []
    outcome = None
    for step, approver in enumerate(approvers, start=1):
        vote = Decision.REJECTED if step == rejecting_step else Decision.APPROVED
        latest = _record(expense_id, approver, vote, step, step=step)
        history.append(latest)
        outcome = strategy.evaluate(rule, history, latest)
        if isinstance(outcome, Finalize):
            break

    assert outcome.status == ExpenseStatus.REJECTED
    assert len(history) == rejecting_step
