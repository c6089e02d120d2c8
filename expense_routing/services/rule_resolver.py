"""
RuleResolver -- finds the approval rule that governs a submitter.

Responsibility:
    Walk an explicit, ordered list of resolution steps and return the
    first rule found, normalised to a ``RuleView``.  ``None`` means no
    rule governs the submitter and the caller auto-approves.

    Default order:

        1. UserRuleStep     -- active per-submitter rule
        2. CompanyRuleStep  -- active company-wide rule

    When several rules are active at the same level, the most recently
    created one wins (``created_at DESC, id DESC``).

Architecture position:
    Services -- read-only.  Never adds, flushes or commits.

Invariants enforced:
    - Results are memoised per resolver instance.  WorkflowEngine builds a
      fresh resolver for every decision so rule edits are always seen by
      the next decision.
    - Manager-first routing is applied after resolution, from the user
      rule's manager override or the submitter's own manager.

Failure modes:
    - SubmitterNotFoundError (NOT_FOUND) for an unknown submitter.
    - InvalidRuleConfigurationError (VALIDATION_ERROR) for a rule that
      cannot be evaluated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from expense_routing.domain.rules import RuleView
from expense_routing.exceptions import SubmitterNotFoundError
from expense_routing.logging_config import get_logger
from expense_routing.models.rule import ApprovalRuleModel, UserApprovalRuleModel
from expense_routing.models.user import UserModel

logger = get_logger("services.rule_resolver")


@dataclass(frozen=True)
class SubmitterContext:
    """What a resolution step knows about the submitter."""

    submitter_id: UUID
    company_id: UUID
    manager_id: UUID | None


class ResolutionStep(ABC):
    """One stage of rule resolution."""

    name: str = "step"

    @abstractmethod
    def find(self, session: Session, submitter: SubmitterContext) -> RuleView | None:
        """Return the rule this step supplies, or None to fall through."""


class UserRuleStep(ResolutionStep):
    """Per-submitter override rule."""

    name = "user_rule"

    def find(self, session, submitter):
        rule = session.scalars(
            select(UserApprovalRuleModel)
            .where(
                UserApprovalRuleModel.user_id == submitter.submitter_id,
                UserApprovalRuleModel.is_active.is_(True),
            )
            .order_by(
                UserApprovalRuleModel.created_at.desc(),
                UserApprovalRuleModel.id.desc(),
            )
            .limit(1)
        ).first()
        if rule is None:
            return None
        return rule.to_rule_view().with_manager_first(
            rule.manager_id or submitter.manager_id,
        )


class CompanyRuleStep(ResolutionStep):
    """Company-wide default rule."""

    name = "company_rule"

    def find(self, session, submitter):
        rule = session.scalars(
            select(ApprovalRuleModel)
            .where(
                ApprovalRuleModel.company_id == submitter.company_id,
                ApprovalRuleModel.is_active.is_(True),
            )
            .order_by(
                ApprovalRuleModel.created_at.desc(),
                ApprovalRuleModel.id.desc(),
            )
            .limit(1)
        ).first()
        if rule is None:
            return None
        return rule.to_rule_view().with_manager_first(submitter.manager_id)


DEFAULT_STEPS: tuple[ResolutionStep, ...] = (UserRuleStep(), CompanyRuleStep())


class RuleResolver:
    """Resolves the governing rule for a submitter."""

    def __init__(
        self,
        session: Session,
        steps: Sequence[ResolutionStep] = DEFAULT_STEPS,
    ):
        self.session = session
        self._steps = tuple(steps)
        self._memo: dict[UUID, RuleView | None] = {}

    def resolve(self, submitter_id: UUID) -> RuleView | None:
        if submitter_id in self._memo:
            return self._memo[submitter_id]

        submitter = self._load_submitter(submitter_id)
        rule = None
        for step in self._steps:
            rule = step.find(self.session, submitter)
            if rule is not None:
                logger.debug(
                    "rule_resolved",
                    extra={
                        "submitter_id": str(submitter_id),
                        "rule_id": str(rule.rule_id),
                        "step": step.name,
                        "approval_type": rule.approval_type.value,
                    },
                )
                break
        else:
            logger.debug(
                "rule_not_configured",
                extra={"submitter_id": str(submitter_id)},
            )

        self._memo[submitter_id] = rule
        return rule

    def _load_submitter(self, submitter_id: UUID) -> SubmitterContext:
        user = self.session.get(UserModel, submitter_id)
        if user is None:
            raise SubmitterNotFoundError(str(submitter_id))
        return SubmitterContext(
            submitter_id=user.id,
            company_id=user.company_id,
            manager_id=user.manager_id,
        )
