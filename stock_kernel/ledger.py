"""
StockLedger -- the public face of the stock kernel.

Responsibility:
    Owns a Database and runs every operation as a complete unit of work:
    record a movement, read the stock, reconcile, value, summarize.  Each
    write is one transaction, retried on concurrency conflicts.

Architecture position:
    Kernel > Facade.  Composes services and selectors; callers (HTTP
    handlers, CLIs, tests) use only this class and the DTOs it returns.

Invariants enforced:
    - No process-wide state: each StockLedger holds its own Database and
      Clock; ``close()`` (or the context manager) releases the engine.
    - Read-your-writes: record_movement() commits before returning.
    - Reconciliation isolates failures per material and keeps going.

Lifecycle:
    with StockLedger(Database(url)) as ledger:
        ledger.record_movement(...)
"""

from __future__ import annotations

from datetime import date, timezone
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from stock_kernel.db.engine import Database
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    CategoryRecord,
    ConsumptionRow,
    DashboardSummary,
    MaterialReconciliation,
    MaterialRecord,
    MovementRecord,
    ReconciliationFailure,
    ReconciliationReport,
    ValuationReport,
)
from stock_kernel.domain.lots import LotPolicy
from stock_kernel.domain.movements import MovementType
from stock_kernel.exceptions import MaterialNotFoundError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.selectors.dashboard_selector import DashboardSelector
from stock_kernel.selectors.material_selector import MaterialSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.valuation_selector import ValuationSelector
from stock_kernel.services.fact_store import FactStore
from stock_kernel.services.reconciliation_service import ReconciliationService
from stock_kernel.services.reference_data import ReferenceDataService
from stock_kernel.services.retry import run_with_retry

logger = get_logger("ledger")


class StockLedger:
    """
    Multi-tenant warehouse stock ledger.

    Args:
        database: The Database this ledger owns (closed with the ledger).
        clock: Time source for fact timestamps and "today".
        max_retries: Attempts per write on concurrency conflicts.
        retry_backoff_seconds: Linear backoff step between attempts.
        lot_policy: Valuation lot attribution policy.
        weighted_average_window: Entries used by the weighted-average policy.
        money_places: Decimal places of valuation subtotals.
        business_timezone: IANA zone defining the dashboard's "today".
    """

    def __init__(
        self,
        database: Database,
        clock: Clock | None = None,
        max_retries: int = 5,
        retry_backoff_seconds: float = 0.05,
        lot_policy: LotPolicy | str = LotPolicy.FIFO,
        weighted_average_window: int = 10,
        money_places: int = 2,
        business_timezone: str = "UTC",
    ):
        self.database = database
        self.clock = clock or SystemClock()
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.lot_policy = LotPolicy(lot_policy)
        self.weighted_average_window = weighted_average_window
        self.money_places = money_places
        self.business_timezone = (
            timezone.utc if business_timezone == "UTC" else ZoneInfo(business_timezone)
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.database.close()

    def __enter__(self) -> StockLedger:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _retry(self, fn, operation: str, entity_id):
        return run_with_retry(
            fn,
            operation=operation,
            entity_id=str(entity_id),
            max_retries=self.max_retries,
            backoff_seconds=self.retry_backoff_seconds,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_movement(
        self,
        owner_id: str,
        material_id: UUID,
        movement_type: MovementType | str,
        quantity: int,
        effective_date: date,
        unit_price=None,
        is_return: bool = False,
        cost_center_id: UUID | None = None,
        supplier_id: UUID | None = None,
        employee_id: UUID | None = None,
        third_party_id: UUID | None = None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> MovementRecord:
        """
        Append a movement fact and update the material's stock atomically.

        Entries add stock, exits remove it, and exits flagged ``is_return``
        put it back.

        Raises:
            InvalidQuantityError: quantity is not an integer > 0.
            ValidationError: missing price or counterpart, return on an entry.
            MaterialNotFoundError: material unknown to this owner.
            InsufficientStockError: exit larger than the stock available on
                its effective date.
            ConcurrencyConflictError: conflicts persisted through all retries.
        """

        def work() -> MovementRecord:
            with self.database.session_scope() as session:
                return FactStore(session, self.clock).append(
                    owner_id,
                    material_id,
                    movement_type,
                    quantity,
                    effective_date,
                    unit_price=unit_price,
                    is_return=is_return,
                    cost_center_id=cost_center_id,
                    supplier_id=supplier_id,
                    employee_id=employee_id,
                    third_party_id=third_party_id,
                    notes=notes,
                    actor_id=actor_id,
                )

        with LogContext.bind(owner_id=owner_id, material_id=material_id, actor_id=actor_id):
            return self._retry(work, "record_movement", material_id)

    def register_category(
        self, owner_id: str, name: str, actor_id: str | None = None
    ) -> CategoryRecord:
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.database.session_scope() as session:
                return ReferenceDataService(session).register_category(owner_id, name, actor_id)

    def register_material(
        self,
        owner_id: str,
        name: str,
        unit: str = "unit",
        category_id: UUID | None = None,
        minimum_stock: int = 0,
        unit_price=None,
        description: str | None = None,
        actor_id: str | None = None,
    ) -> MaterialRecord:
        """Register a material.  It starts with zero stock."""
        with LogContext.bind(owner_id=owner_id, actor_id=actor_id):
            with self.database.session_scope() as session:
                return ReferenceDataService(session).register_material(
                    owner_id,
                    name,
                    unit=unit,
                    category_id=category_id,
                    minimum_stock=minimum_stock,
                    unit_price=unit_price,
                    description=description,
                    actor_id=actor_id,
                )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _reconcile_one(
        self, owner_id: str, material_id: UUID, run_id: UUID, dry_run: bool
    ) -> MaterialReconciliation:
        def work() -> MaterialReconciliation:
            with self.database.session_scope() as session:
                return ReconciliationService(session, self.clock).reconcile_material(
                    owner_id, material_id, run_id, dry_run=dry_run
                )

        with LogContext.bind(material_id=material_id):
            return self._retry(work, "reconcile", material_id)

    def reconcile(
        self,
        owner_id: str,
        material_id: UUID | None = None,
        dry_run: bool = False,
    ) -> ReconciliationReport:
        """
        Rebuild the stock projection from the movement ledger.

        Every material (or just ``material_id``) is replayed and corrected
        in its own transaction.  A failure on one material is recorded in
        the report and the sweep continues.

        Args:
            owner_id: Tenant whose materials to reconcile.
            material_id: Restrict to one material.
            dry_run: Report drift without writing anything.

        Raises:
            MaterialNotFoundError: ``material_id`` given but unknown.
        """
        run_id = uuid4()
        with LogContext.bind(owner_id=owner_id, run_id=run_id):
            if material_id is not None:
                with self.database.session_scope() as session:
                    if MaterialSelector(session).get(owner_id, material_id) is None:
                        raise MaterialNotFoundError(material_id, owner_id)
                material_ids = [material_id]
            else:
                with self.database.session_scope() as session:
                    material_ids = MaterialSelector(session).material_ids(owner_id)

            logger.info(
                "reconciliation_started",
                extra={"materials": len(material_ids), "dry_run": dry_run},
            )

            results: list[MaterialReconciliation] = []
            failures: list[ReconciliationFailure] = []
            for mid in material_ids:
                try:
                    results.append(self._reconcile_one(owner_id, mid, run_id, dry_run))
                except Exception as exc:
                    logger.exception(
                        "reconciliation_material_failed",
                        extra={"failed_material_id": str(mid)},
                    )
                    failures.append(
                        ReconciliationFailure(
                            material_id=mid,
                            code=getattr(exc, "code", type(exc).__name__),
                            message=str(exc),
                        )
                    )

            report = ReconciliationReport(
                run_id=run_id,
                owner_id=owner_id,
                results=tuple(results),
                failures=tuple(failures),
                dry_run=dry_run,
            )

            logger.info(
                "reconciliation_completed",
                extra={
                    "materials_checked": report.materials_checked,
                    "materials_corrected": report.materials_corrected,
                    "failures": len(report.failures),
                    "dry_run": dry_run,
                },
            )
            return report

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_current_stock(self, owner_id: str, material_id: UUID) -> int:
        """
        Raises:
            MaterialNotFoundError: material unknown to this owner.
        """
        with self.database.session_scope() as session:
            return MaterialSelector(session).current_stock(owner_id, material_id)

    def get_material(self, owner_id: str, material_id: UUID) -> MaterialRecord:
        with self.database.session_scope() as session:
            return MaterialSelector(session).get_or_raise(owner_id, material_id)

    def get_financial_valuation(
        self,
        owner_id: str,
        material_name_search: str | None = None,
        category_id: UUID | None = None,
    ) -> ValuationReport:
        """Value the stock on hand, one row per price lot."""
        with self.database.session_scope() as session:
            return ValuationSelector(
                session,
                lot_policy=self.lot_policy,
                weighted_average_window=self.weighted_average_window,
                money_places=self.money_places,
            ).valuation(owner_id, material_name_search, category_id)

    def business_date(self) -> date:
        return self.clock.today(self.business_timezone)

    def get_dashboard_summary(self, owner_id: str) -> DashboardSummary:
        with self.database.session_scope() as session:
            return DashboardSelector(session).summary(owner_id, self.business_date())

    def get_movement_history(
        self,
        owner_id: str,
        material_id: UUID | None = None,
        movement_type: MovementType | str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """Movements newest first."""
        with self.database.session_scope() as session:
            return MovementSelector(session).history(
                owner_id,
                material_id=material_id,
                movement_type=MovementType(movement_type) if movement_type else None,
                start_date=start_date,
                end_date=end_date,
                limit=limit,
            )

    def get_consumption_report(
        self,
        owner_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        category_id: UUID | None = None,
    ) -> list[ConsumptionRow]:
        with self.database.session_scope() as session:
            return MovementSelector(session).consumption(
                owner_id, start_date, end_date, category_id
            )

    def owner_ids(self) -> list[str]:
        with self.database.session_scope() as session:
            return MaterialSelector(session).owner_ids()
