"""
expense_routing.engines.approval_strategies -- Pure approval routing strategies.

Responsibility:
    Given a normalised rule and an expense's approval history, decide who
    acts next or whether the expense is final.  One strategy per
    ``ApprovalType``; ``strategy_for()`` dispatches.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import expense_routing/domain/ types.

Invariants enforced:
    - The latest decision is already the last element of ``history`` when
      ``evaluate`` runs, so counts include it.
    - Percentage thresholds round UP: ``ceil(threshold * approvers / 100)``.
    - Approvals are counted per distinct approver.
    - ``RuleApprover.is_required`` is never consulted.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - None.  Rule validity is checked when the RuleView is built.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import ClassVar
from uuid import UUID

from expense_routing.domain.expense import ApprovalRecord, Decision, ExpenseStatus
from expense_routing.domain.routing import Advance, Finalize, Hold, Outcome
from expense_routing.domain.rules import ApprovalType, RuleView


def required_approvals(percentage_threshold: int, total_approvers: int) -> int:
    """Approvals needed to meet a percentage threshold (ceiling division)."""
    return (percentage_threshold * total_approvers + 99) // 100


def count_approvals(history: Sequence[ApprovalRecord]) -> int:
    """Number of distinct approvers with an APPROVED record."""
    return len({r.approver_id for r in history if r.decision == Decision.APPROVED})


def decided_approvers(history: Sequence[ApprovalRecord]) -> frozenset[UUID]:
    """Everyone who has recorded any decision."""
    return frozenset(r.approver_id for r in history)


def evaluate_ungoverned(latest: ApprovalRecord) -> Finalize:
    """No rule governs the submitter: the first decision is final."""
    return Finalize(
        latest.decision.final_status,
        reason="No approval rule configured",
    )


class ApprovalStrategy(ABC):
    """Evaluator for one approval type."""

    approval_type: ClassVar[ApprovalType]

    @abstractmethod
    def evaluate(
        self,
        rule: RuleView,
        history: Sequence[ApprovalRecord],
        latest: ApprovalRecord,
    ) -> Outcome:
        """Compute the outcome after ``latest`` was appended to ``history``."""

    @abstractmethod
    def initial_route(self, rule: RuleView) -> Advance | Finalize:
        """Where a freshly submitted expense goes first."""

    def eligible_approvers(
        self,
        rule: RuleView,
        current_approver_id: UUID | None,
        history: Sequence[ApprovalRecord],
    ) -> frozenset[UUID]:
        """Identities allowed to decide right now (override roles aside)."""
        if current_approver_id is None:
            return frozenset()
        return frozenset({current_approver_id})


class SequentialStrategy(ApprovalStrategy):
    """Approvers act one at a time in ``sequence_order``.

    A rejection at any step ends the workflow.  After an approval the
    expense moves to the approver at ``step + 1``; if no approver holds
    that order the expense is approved (gaps in the ordering are not
    skipped).
    """

    approval_type = ApprovalType.SEQUENTIAL

    def evaluate(self, rule, history, latest):
        if latest.decision == Decision.REJECTED:
            return Finalize(
                ExpenseStatus.REJECTED,
                reason=f"Rejected at step {latest.step_number}",
            )

        next_step = latest.step_number + 1
        nxt = rule.approver_at(next_step)
        if nxt is None:
            return Finalize(
                ExpenseStatus.APPROVED,
                reason=f"No approver at step {next_step}; sequence complete",
            )
        return Advance(
            next_approver_id=nxt.approver_id,
            next_step=next_step,
            reason=f"Forwarded to step {next_step}",
        )

    def initial_route(self, rule):
        if not rule.approvers:
            return Finalize(ExpenseStatus.APPROVED, reason="No approvers configured")
        first = rule.approvers[0]
        return Advance(first.approver_id, first.sequence_order)


class PercentageStrategy(ApprovalStrategy):
    """All configured approvers may act in parallel.

    Approved once enough distinct approvers approve.  Rejections never
    end the workflow; if every approver has decided and the threshold
    was missed, the expense stays pending.
    """

    approval_type = ApprovalType.PERCENTAGE

    def evaluate(self, rule, history, latest):
        received = count_approvals(history)
        required = required_approvals(rule.percentage_threshold, len(rule.approvers))

        if received >= required:
            return Finalize(
                ExpenseStatus.APPROVED,
                reason=f"{received}/{required} approvals received",
            )
        return Hold(
            approvals_received=received,
            approvals_required=required,
            reason=f"{received}/{required} approvals received",
        )

    def initial_route(self, rule):
        required = required_approvals(rule.percentage_threshold, len(rule.approvers))
        if required == 0:
            return Finalize(ExpenseStatus.APPROVED, reason="No approvals required")
        return Advance(rule.approvers[0].approver_id, 1)

    def eligible_approvers(self, rule, current_approver_id, history):
        return self._undecided(rule, history)

    def _undecided(self, rule: RuleView, history) -> frozenset[UUID]:
        return frozenset(rule.approver_ids) - decided_approvers(history)


class SpecificApproverStrategy(ApprovalStrategy):
    """The designated approver's decision is final.

    An override-role decision stands in for the designated approver.
    """

    approval_type = ApprovalType.SPECIFIC_APPROVER

    def evaluate(self, rule, history, latest):
        if latest.approver_id == rule.specific_approver_id or latest.is_override:
            return Finalize(
                latest.decision.final_status,
                reason="Decided by the designated approver",
            )
        return Hold(
            approvals_received=count_approvals(history),
            approvals_required=1,
            reason="Awaiting the designated approver",
        )

    def initial_route(self, rule):
        return Advance(rule.specific_approver_id, 1)


class HybridStrategy(ApprovalStrategy):
    """Specific approver OR percentage threshold, whichever comes first.

    The specific approver decides alone, in either direction.  An
    override-role decision stands in for the specific approver, as in
    SpecificApproverStrategy.  Other rejections never end the workflow.
    With no configured approver list there is no threshold to meet, so
    only the specific approver (or an override) can finalize.
    """

    approval_type = ApprovalType.HYBRID

    def evaluate(self, rule, history, latest):
        if latest.approver_id == rule.specific_approver_id or latest.is_override:
            return Finalize(
                latest.decision.final_status,
                reason="Decided by the specific approver",
            )

        received = count_approvals(history)
        required = required_approvals(rule.percentage_threshold, len(rule.approvers))
        if (
            rule.approvers
            and latest.decision == Decision.APPROVED
            and received >= required
        ):
            return Finalize(
                ExpenseStatus.APPROVED,
                reason=f"{received}/{required} approvals received",
            )
        return Hold(
            approvals_received=received,
            approvals_required=required,
            reason=f"Progress: {received}/{required} approvals",
        )

    def initial_route(self, rule):
        if rule.approvers:
            return Advance(rule.approvers[0].approver_id, 1)
        return Advance(rule.specific_approver_id, 1)

    def eligible_approvers(self, rule, current_approver_id, history):
        candidates = frozenset(rule.approver_ids) | {rule.specific_approver_id}
        return candidates - decided_approvers(history)


_STRATEGIES: dict[ApprovalType, ApprovalStrategy] = {
    s.approval_type: s
    for s in (
        SequentialStrategy(),
        PercentageStrategy(),
        SpecificApproverStrategy(),
        HybridStrategy(),
    )
}


def strategy_for(approval_type: ApprovalType) -> ApprovalStrategy:
    """Return the strategy registered for ``approval_type``."""
    return _STRATEGIES[ApprovalType(approval_type)]


def eligible_approvers_for(
    rule: RuleView | None,
    current_approver_id: UUID | None,
    history: Sequence[ApprovalRecord],
) -> frozenset[UUID]:
    """Who may decide a pending expense now, without an override.

    With no governing rule only the current approver may act.
    """
    if rule is None:
        if current_approver_id is None:
            return frozenset()
        return frozenset({current_approver_id})
    return strategy_for(rule.approval_type).eligible_approvers(
        rule, current_approver_id, history,
    )
