"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock history must be reconstructable.  The movement ledger is the source of
truth; ``materials.current_stock`` is only a projection of it.  If a fact is
edited, or the projection is written by arbitrary code, the two drift apart
and no replay can tell which one is right.

This module is the FIRST layer of enforcement:

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (database triggers)
    - Catches raw SQL, bulk UPDATE statements, direct database access
    - Fires AT the database level, independent of application code

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule                                   | Layer
------------------|----------------------------------------|-------------
Movement          | ALWAYS immutable, never deleted        | ORM + trigger
StockCorrection   | ALWAYS immutable, never deleted        | ORM + trigger
Material          | current_stock only via the projection  | ORM
                  | write context; never negative          | ORM + CHECK

===============================================================================
HOW THE PROJECTION GUARD WORKS
===============================================================================

StockProjection opens a sanctioned-write context on the session
(``projection_write_context(session)``), which bumps a counter in
``session.info`` and flushes before leaving.  The Material ``before_update``
listener inspects the attribute history of ``current_stock``; a change
outside an open context raises ImmutabilityViolationError.

===============================================================================
USAGE
===============================================================================

Registered by ``Database.__init__``; idempotent:

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY - never in production):

    unregister_immutability_listeners()

===============================================================================
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import event
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

PROJECTION_WRITE_KEY = "stock_projection_writes"


@contextmanager
def projection_write_context(session: Session) -> Generator[Session, None, None]:
    """
    Open a sanctioned window for writing Material.current_stock.

    Pending changes are flushed before the window closes so that the
    before_update listener sees the open context.
    """
    session.info[PROJECTION_WRITE_KEY] = session.info.get(PROJECTION_WRITE_KEY, 0) + 1
    try:
        yield session
        session.flush()
    finally:
        session.info[PROJECTION_WRITE_KEY] -= 1


def _projection_write_open(target) -> bool:
    session = object_session(target)
    if session is None:
        return False
    return session.info.get(PROJECTION_WRITE_KEY, 0) > 0


def _block(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# =============================================================================
# Movement facts
# =============================================================================


def _check_movement_immutability(mapper, connection, target):
    """Movement facts are append-only: any UPDATE is rejected."""
    from stock_kernel.models.movement import Movement

    if not isinstance(target, Movement):
        return

    _block(
        "Movement",
        target.id,
        "UPDATE",
        "Movement facts are immutable; record a compensating movement instead",
    )


def _check_movement_delete(mapper, connection, target):
    """Movement facts can never be deleted."""
    from stock_kernel.models.movement import Movement

    if not isinstance(target, Movement):
        return

    _block("Movement", target.id, "DELETE", "Movement facts cannot be deleted")


# =============================================================================
# Stock corrections
# =============================================================================


def _check_stock_correction_immutability(mapper, connection, target):
    from stock_kernel.models.movement import StockCorrection

    if not isinstance(target, StockCorrection):
        return

    _block(
        "StockCorrection",
        target.id,
        "UPDATE",
        "Stock corrections are immutable audit artifacts",
    )


def _check_stock_correction_delete(mapper, connection, target):
    from stock_kernel.models.movement import StockCorrection

    if not isinstance(target, StockCorrection):
        return

    _block(
        "StockCorrection",
        target.id,
        "DELETE",
        "Stock corrections cannot be deleted",
    )


# =============================================================================
# Material projection
# =============================================================================


def _check_material_projection(mapper, connection, target):
    """
    Guard Material.current_stock.

    - Only the projection write context may change it.
    - It may never go negative (checked before the CHECK constraint fires so
      the caller gets a typed error).
    """
    from stock_kernel.models.material import Material

    if not isinstance(target, Material):
        return

    history = get_history(target, "current_stock")
    if not history.has_changes():
        return

    new_value = history.added[0] if history.added else target.current_stock
    old_value = history.deleted[0] if history.deleted else None

    if not _projection_write_open(target):
        _block(
            "Material",
            target.id,
            "UPDATE",
            "current_stock may only be written by the movement ledger or reconciliation",
            field="current_stock",
            old_value=old_value,
            new_value=new_value,
        )

    if new_value is not None and new_value < 0:
        _block(
            "Material",
            target.id,
            "UPDATE",
            f"current_stock cannot be negative (got {new_value})",
            field="current_stock",
        )


def _check_material_insert(mapper, connection, target):
    """New materials always start at zero stock; stock only comes from facts."""
    from stock_kernel.models.material import Material

    if not isinstance(target, Material):
        return

    if target.current_stock not in (None, 0) and not _projection_write_open(target):
        _block(
            "Material",
            target.id,
            "INSERT",
            "Materials are created with zero stock; record an entry movement instead",
            field="current_stock",
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from stock_kernel.models.material import Material
    from stock_kernel.models.movement import Movement, StockCorrection

    return [
        (Movement, "before_update", _check_movement_immutability),
        (Movement, "before_delete", _check_movement_delete),
        (StockCorrection, "before_update", _check_stock_correction_immutability),
        (StockCorrection, "before_delete", _check_stock_correction_delete),
        (Material, "before_update", _check_material_projection),
        (Material, "before_insert", _check_material_insert),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
