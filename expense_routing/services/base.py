"""
BaseService -- abstract base for routing services that write.

Responsibility:
    Common constructor and session-handling contract.  Every concrete
    service receives a SQLAlchemy ``Session`` and persists through
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Services flush within the caller's transaction and never commit or
    roll back themselves.  DecisionCoordinator, ``session_scope()`` or the
    test harness owns the transaction.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for routing services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-side queries -- those belong in
          ``expense_routing/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
