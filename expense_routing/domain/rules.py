"""
Approval rule value objects (``expense_routing.domain.rules``).

Company-wide rules and per-submitter overrides are stored in separate
tables but evaluate identically.  Both are normalised into a single
``RuleView`` before any strategy sees them, so the strategies never
branch on where a rule came from.

``RuleView`` validates itself on construction: a rule that cannot be
evaluated (missing threshold, missing specific approver, bad ordering)
raises ``InvalidRuleConfigurationError`` instead of producing a silently
wrong outcome later.

``RuleApprover.is_required`` is carried for display but no strategy
consults it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from uuid import UUID

from expense_routing.exceptions import InvalidRuleConfigurationError


class ApprovalType(str, Enum):
    """How a rule combines its approvers' decisions."""

    SEQUENTIAL = "SEQUENTIAL"
    PERCENTAGE = "PERCENTAGE"
    SPECIFIC_APPROVER = "SPECIFIC_APPROVER"
    HYBRID = "HYBRID"

    @property
    def needs_threshold(self) -> bool:
        return self in (ApprovalType.PERCENTAGE, ApprovalType.HYBRID)

    @property
    def needs_specific_approver(self) -> bool:
        return self in (ApprovalType.SPECIFIC_APPROVER, ApprovalType.HYBRID)


class RuleSource(str, Enum):
    """Which table a RuleView was resolved from."""

    USER = "user"
    COMPANY = "company"


@dataclass(frozen=True)
class RuleApprover:
    """One approver slot in a rule."""

    approver_id: UUID
    sequence_order: int
    is_required: bool = False


@dataclass(frozen=True)
class RuleView:
    """Rule-agnostic view of the approval rule governing one submitter."""

    rule_id: UUID
    source: RuleSource
    name: str
    approval_type: ApprovalType
    approvers: tuple[RuleApprover, ...] = ()
    percentage_threshold: int | None = None
    specific_approver_id: UUID | None = None
    use_sequence: bool = True
    is_manager_approver: bool = False

    def __post_init__(self) -> None:
        rule_id = str(self.rule_id)

        if self.approval_type.needs_threshold:
            threshold = self.percentage_threshold
            if threshold is None:
                raise InvalidRuleConfigurationError(
                    rule_id,
                    f"{self.approval_type.value} rules require percentage_threshold",
                )
            if not 1 <= threshold <= 100:
                raise InvalidRuleConfigurationError(
                    rule_id,
                    f"percentage_threshold must be within 1..100, got {threshold}",
                )

        if self.approval_type.needs_specific_approver and self.specific_approver_id is None:
            raise InvalidRuleConfigurationError(
                rule_id,
                f"{self.approval_type.value} rules require specific_approver_id",
            )

        previous = 0
        for approver in self.approvers:
            if approver.sequence_order <= previous:
                raise InvalidRuleConfigurationError(
                    rule_id,
                    "sequence_order values must start at 1 and strictly increase",
                )
            previous = approver.sequence_order

    @property
    def approver_ids(self) -> tuple[UUID, ...]:
        return tuple(a.approver_id for a in self.approvers)

    def approver_at(self, sequence_order: int) -> RuleApprover | None:
        """The approver holding ``sequence_order``, if any."""
        for approver in self.approvers:
            if approver.sequence_order == sequence_order:
                return approver
        return None

    def with_manager_first(self, manager_id: UUID | None) -> RuleView:
        """Put the submitter's manager at the head of the approver list.

        Applies only when ``is_manager_approver`` is set, a manager exists
        and the manager is not already configured.  The resulting list is
        renumbered 1..n so sequential routing starts with the manager.
        """
        if not self.is_manager_approver or manager_id is None:
            return self
        if manager_id in self.approver_ids:
            return self
        approvers = (RuleApprover(manager_id, 1), *self.approvers)
        renumbered = tuple(
            replace(a, sequence_order=i)
            for i, a in enumerate(approvers, start=1)
        )
        return replace(self, approvers=renumbered)


def build_rule_view(
    *,
    rule_id: UUID,
    source: RuleSource,
    name: str,
    approval_type: ApprovalType | str,
    approvers: list[RuleApprover] | tuple[RuleApprover, ...],
    percentage_threshold: int | None = None,
    specific_approver_id: UUID | None = None,
    use_sequence: bool = True,
    is_manager_approver: bool = False,
) -> RuleView:
    """Normalise raw rule fields into a RuleView.

    Approvers are sorted by ``sequence_order``; an unknown
    ``approval_type`` is a configuration error.
    """
    try:
        kind = ApprovalType(approval_type)
    except ValueError:
        raise InvalidRuleConfigurationError(
            str(rule_id), f"unknown approval_type {approval_type!r}",
        ) from None

    ordered = tuple(sorted(approvers, key=lambda a: a.sequence_order))
    return RuleView(
        rule_id=rule_id,
        source=source,
        name=name,
        approval_type=kind,
        approvers=ordered,
        percentage_threshold=percentage_threshold,
        specific_approver_id=specific_approver_id,
        use_sequence=use_sequence,
        is_manager_approver=is_manager_approver,
    )
