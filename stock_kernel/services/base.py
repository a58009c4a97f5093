"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor for every write-side service: the caller's Session
    and the injected Clock.  Services use ``session.flush()``, never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back themselves.  The facade owns the
    transaction (``Database.session_scope()``), which is what makes a fact
    insert and its projection update a single unit.
    Time: any timestamp a service writes comes from ``self.clock``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Args:
        session: The caller's session; its transaction is the unit of work.
        clock: Time source; SystemClock when omitted.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-side reports; those belong in selectors/.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
