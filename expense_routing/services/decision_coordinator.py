"""
DecisionCoordinator -- owns the transaction around a decision.

Responsibility:
    Opens a session, runs ``WorkflowEngine.decide()``, commits on success
    and rolls back on any error.  A CONFLICT (another decision on the same
    expense won the race) is retried from the read step up to
    ``settings.max_conflict_retries`` times; every other error propagates
    on the first failure.

Architecture position:
    Services -- the outermost unit of work.  Together with
    ``db.engine.session_scope()`` it is the only place that commits.

Invariants enforced:
    - Every attempt runs in a fresh session, so a retry re-reads the
      expense, its history and the rule.
    - An attempt that raised leaves no rows behind.

Usage:
    coordinator = DecisionCoordinator(get_session_factory(), settings=settings)
    result = coordinator.decide(expense_id, caller, "approve", comment="ok")
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from expense_routing.config import RoutingSettings
from expense_routing.domain.clock import Clock, SystemClock
from expense_routing.domain.expense import Caller, Decision
from expense_routing.exceptions import ConcurrentDecisionError
from expense_routing.logging_config import LogContext, get_logger
from expense_routing.services.workflow_engine import DecisionResult, WorkflowEngine

logger = get_logger("services.decision_coordinator")


class DecisionCoordinator:
    """Transactional, conflict-retrying wrapper around WorkflowEngine."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        settings: RoutingSettings | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or RoutingSettings()

    def decide(
        self,
        expense_id: UUID,
        approver: Caller,
        decision: Decision | str,
        comment: str | None = None,
        expected_version: int | None = None,
    ) -> DecisionResult:
        max_retries = self._settings.max_conflict_retries
        # A caller-pinned version would conflict again on every retry
        if expected_version is not None:
            max_retries = 0

        with LogContext.bind(correlation_id=str(uuid4())):
            attempt = 0
            while True:
                try:
                    return self._attempt(
                        expense_id, approver, decision, comment, expected_version,
                    )
                except ConcurrentDecisionError:
                    if attempt >= max_retries:
                        raise
                    attempt += 1
                    logger.info(
                        "decision_conflict_retry",
                        extra={
                            "expense_id": str(expense_id),
                            "attempt": attempt,
                            "max_retries": max_retries,
                        },
                    )

    def _attempt(
        self,
        expense_id: UUID,
        approver: Caller,
        decision: Decision | str,
        comment: str | None,
        expected_version: int | None,
    ) -> DecisionResult:
        session = self._session_factory()
        try:
            engine = WorkflowEngine(session, clock=self._clock, settings=self._settings)
            result = engine.decide(
                expense_id,
                approver,
                decision,
                comment=comment,
                expected_version=expected_version,
            )
            session.commit()
            return result
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
