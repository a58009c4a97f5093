"""
ReconciliationService -- rebuilds the stock projection from the ledger.

Responsibility:
    For one material: replay its facts in canonical order, compare with the
    stored projection and, on a difference, overwrite the projection and
    record a StockCorrection audit row.

Architecture position:
    Kernel > Services -- imperative shell.  The StockLedger facade runs one
    call per material, each in its own transaction, so a failing material
    never blocks the rest of the sweep.

Invariants enforced:
    Replay invariant -- after reconcile_material() the projection equals
          the clamped replay of the facts.
    Idempotence -- a second run over unchanged facts corrects nothing.
    Facts are read-only here; only the projection is written.
    The material is locked before the facts are read, so an append cannot
          slip in between the replay and the overwrite.

Failure modes:
    - MaterialNotFoundError: material vanished or belongs to another owner.

Audit relevance:
    Each correction logs ``stock_correction_applied`` (WARNING) and persists
    a StockCorrection row carrying the run id.  A replay that had to clamp a
    negative running total logs ``stock_replay_clamped``: it means history
    contains an exit that the stock at that date could not cover.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import MaterialReconciliation
from stock_kernel.domain.movements import replay_stock
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import StockCorrection
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_projection import StockProjection

logger = get_logger("services.reconciliation")


class ReconciliationService(BaseService[StockCorrection]):
    """Per-material projection repair."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._projection = StockProjection(session)
        self._movements = MovementSelector(session)

    def reconcile_material(
        self,
        owner_id: str,
        material_id: UUID,
        run_id: UUID,
        dry_run: bool = False,
    ) -> MaterialReconciliation:
        """
        Reconcile one material.

        Args:
            owner_id: Tenant.
            material_id: Material to reconcile.
            run_id: Groups the corrections of one sweep.
            dry_run: Compute and report, write nothing.

        Returns:
            The per-material outcome (``corrected`` tells whether the stored
            value differed).
        """
        material = self._projection.lock_material(owner_id, material_id)
        replay = replay_stock(self._movements.facts_for_replay(material.id), presorted=True)

        outcome = MaterialReconciliation(
            material_id=material.id,
            name=material.name,
            previous_stock=material.current_stock,
            corrected_stock=replay.stock,
            clamped=replay.clamped,
        )

        if replay.clamped:
            logger.warning(
                "stock_replay_clamped",
                extra={
                    "material_id": str(material.id),
                    "facts_replayed": replay.facts_replayed,
                },
            )

        if not outcome.corrected:
            logger.debug(
                "stock_reconciled_no_drift",
                extra={"material_id": str(material.id), "stock": replay.stock},
            )
            return outcome

        if dry_run:
            logger.info(
                "stock_drift_detected_dry_run",
                extra={
                    "material_id": str(material.id),
                    "previous_stock": outcome.previous_stock,
                    "corrected_stock": outcome.corrected_stock,
                },
            )
            return outcome

        self._projection.set_stock(material, replay.stock)
        self.session.add(
            StockCorrection(
                run_id=run_id,
                owner_id=owner_id,
                material_id=material.id,
                material_name=material.name,
                previous_stock=outcome.previous_stock,
                corrected_stock=outcome.corrected_stock,
                clamped=replay.clamped,
                created_at=self.clock.now(),
            )
        )
        self.session.flush()

        logger.warning(
            "stock_correction_applied",
            extra={
                "material_id": str(material.id),
                "material_name": material.name,
                "previous_stock": outcome.previous_stock,
                "corrected_stock": outcome.corrected_stock,
                "clamped": replay.clamped,
            },
        )
        return outcome
