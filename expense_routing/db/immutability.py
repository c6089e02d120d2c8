"""
ORM-level immutability enforcement for the approval audit trail.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity      | When Immutable                       | Why
------------|--------------------------------------|-------------------------------
Approval    | ALWAYS (from creation)               | Audit trail is append-only
Expense     | Once status is approved or rejected  | Terminal states are absorbing

SQLAlchemy fires ``before_update`` / ``before_delete`` before SQL reaches the
database.  The listeners below raise ImmutabilityViolationError there, so the
flush fails and the transaction owner rolls back.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete() ---------------------^

Call register_immutability_listeners() once at start-up (create_tables()
does it).  Registration is idempotent.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from expense_routing.exceptions import ImmutabilityViolationError
from expense_routing.logging_config import get_logger

logger = get_logger("db.immutability")

_TERMINAL = ("approved", "rejected")


def _status_value(value) -> str:
    return getattr(value, "value", value)


def _check_approval_immutability(mapper, connection, target):
    """Approval records are never updated."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Approval",
            "entity_id": str(target.id),
            "operation": "UPDATE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approval records are append-only -- cannot modify",
    )


def _check_approval_delete(mapper, connection, target):
    """Approval records are never deleted."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "Approval",
            "entity_id": str(target.id),
            "operation": "DELETE",
        },
    )
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approval records are append-only -- cannot delete",
    )


def _check_expense_immutability(mapper, connection, target):
    """
    Block changes to an expense that was already terminal before this flush.

    The transition INTO approved/rejected is allowed (that is the decision
    being applied).  Once the old value is terminal, every field is frozen.
    """
    status_history = get_history(target, "status")

    if status_history.deleted:
        was_terminal = _status_value(status_history.deleted[0]) in _TERMINAL
    elif not status_history.added:
        was_terminal = _status_value(target.status) in _TERMINAL
    else:
        was_terminal = False

    if not was_terminal:
        return

    for attr in inspect(target).attrs:
        if attr.key in ("updated_at", "version"):
            continue
        if attr.history.has_changes():
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "Expense",
                    "entity_id": str(target.id),
                    "operation": "UPDATE",
                    "field": attr.key,
                },
            )
            raise ImmutabilityViolationError(
                entity_type="Expense",
                entity_id=str(target.id),
                reason=f"Cannot modify field '{attr.key}' on a finalized expense",
            )


def _check_expense_delete(mapper, connection, target):
    """Finalized expenses are never deleted."""
    if _status_value(target.status) in _TERMINAL:
        raise ImmutabilityViolationError(
            entity_type="Expense",
            entity_id=str(target.id),
            reason="Cannot delete a finalized expense",
        )


_LISTENERS = (
    ("Approval", "before_update", _check_approval_immutability),
    ("Approval", "before_delete", _check_approval_delete),
    ("Expense", "before_update", _check_expense_immutability),
    ("Expense", "before_delete", _check_expense_delete),
)


def _models():
    from expense_routing.models.approval import ApprovalModel
    from expense_routing.models.expense import ExpenseModel

    return {"Approval": ApprovalModel, "Expense": ExpenseModel}


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    models = _models()
    for name, event_name, fn in _LISTENERS:
        if not event.contains(models[name], event_name, fn):
            event.listen(models[name], event_name, fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that need to violate the rules on purpose.
    """
    models = _models()
    for name, event_name, fn in _LISTENERS:
        if event.contains(models[name], event_name, fn):
            event.remove(models[name], event_name, fn)
