"""
Recording movements through the ledger: the fact append plus the projection
update, committed together.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.movements import MovementType
from stock_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    MaterialNotFoundError,
    ValidationError,
)

from tests.conftest import OTHER_OWNER_ID, OWNER_ID, TODAY


class TestEntries:

    def test_entry_increases_stock(self, ledger, material, receive):
        receive(material.id, 20, "35.50")
        assert ledger.get_current_stock(OWNER_ID, material.id) == 20

    def test_entry_updates_price_and_last_supplier(self, ledger, material, receive, supplier_id):
        receive(material.id, 5, "12.00")
        receive(material.id, 5, "13.25")

        snapshot = ledger.get_material(OWNER_ID, material.id)
        assert snapshot.unit_price == Decimal("13.25")
        assert snapshot.last_supplier_id == supplier_id

    def test_returns_persisted_fact(self, ledger, material, clock, supplier_id):
        record = ledger.record_movement(
            OWNER_ID,
            material.id,
            "entry",
            20,
            TODAY,
            unit_price="35.50",
            supplier_id=supplier_id,
            notes="NF 1234",
            actor_id="user-7",
        )
        assert record.movement_type is MovementType.ENTRY
        assert record.is_entry
        assert record.quantity == 20
        assert record.unit_price == Decimal("35.50")
        assert record.effective_date == TODAY
        assert record.notes == "NF 1234"
        assert record.created_by_id == "user-7"
        assert record.owner_id == OWNER_ID


class TestExits:

    def test_exit_decreases_stock(self, ledger, material, receive, issue):
        receive(material.id, 20)
        issue(material.id, 2)
        assert ledger.get_current_stock(OWNER_ID, material.id) == 18

    def test_return_increases_stock(self, ledger, material, receive, issue):
        receive(material.id, 20)
        issue(material.id, 2)
        record = issue(material.id, 1, is_return=True)
        assert record.is_return
        assert not record.is_exit
        assert ledger.get_current_stock(OWNER_ID, material.id) == 19

    def test_exit_of_entire_stock(self, ledger, material, receive, issue):
        receive(material.id, 7)
        issue(material.id, 7)
        assert ledger.get_current_stock(OWNER_ID, material.id) == 0

    def test_exit_priced_at_material_price(self, ledger, material, receive, issue):
        receive(material.id, 10, "4.20")
        record = issue(material.id, 3)
        assert record.unit_price == Decimal("4.20")

    def test_exit_to_third_party(self, ledger, material, receive, third_party_id):
        receive(material.id, 10)
        record = ledger.record_movement(
            OWNER_ID, material.id, "exit", 4, TODAY, third_party_id=third_party_id
        )
        assert record.third_party_id == third_party_id
        assert record.employee_id is None
        assert ledger.get_current_stock(OWNER_ID, material.id) == 6

    def test_insufficient_stock_rejected(self, ledger, material, receive, issue):
        receive(material.id, 5)
        with pytest.raises(InsufficientStockError) as exc_info:
            issue(material.id, 10)

        assert exc_info.value.requested == 10
        assert exc_info.value.available == 5
        assert exc_info.value.code == "INSUFFICIENT_STOCK"
        assert ledger.get_current_stock(OWNER_ID, material.id) == 5
        assert len(ledger.get_movement_history(OWNER_ID, material_id=material.id)) == 1

    def test_return_allowed_at_zero_stock(self, ledger, material, issue):
        issue(material.id, 3, is_return=True)
        assert ledger.get_current_stock(OWNER_ID, material.id) == 3

    def test_insufficient_stock_is_logged(self, ledger, material, issue, captured_logs):
        with pytest.raises(InsufficientStockError):
            issue(material.id, 1)
        messages = [r["message"] for r in captured_logs()]
        assert "movement_rejected_insufficient_stock" in messages
        assert "movement_recorded" not in messages


class TestBackdatedExits:
    """Exits are checked against the stock on their effective date."""

    def test_exit_before_first_entry_rejected(self, ledger, material, receive, issue):
        receive(material.id, 10, effective_date=TODAY)

        with pytest.raises(InsufficientStockError) as exc_info:
            issue(material.id, 5, effective_date=TODAY - timedelta(days=2))

        assert exc_info.value.available == 0
        assert ledger.get_current_stock(OWNER_ID, material.id) == 10
        report = ledger.reconcile(OWNER_ID, material_id=material.id, dry_run=True)
        assert report.materials_corrected == 0

    def test_backdated_exit_cannot_take_stock_used_later(self, ledger, material, receive, issue):
        receive(material.id, 10, effective_date=TODAY - timedelta(days=5))
        issue(material.id, 8, effective_date=TODAY)

        with pytest.raises(InsufficientStockError) as exc_info:
            issue(material.id, 3, effective_date=TODAY - timedelta(days=2))
        assert exc_info.value.available == 2

        issue(material.id, 2, effective_date=TODAY - timedelta(days=2))
        assert ledger.get_current_stock(OWNER_ID, material.id) == 0

    def test_accepted_backdated_exit_replays_cleanly(self, ledger, material, receive, issue):
        receive(material.id, 10, effective_date=TODAY - timedelta(days=3))
        receive(material.id, 10, effective_date=TODAY)
        issue(material.id, 5, effective_date=TODAY - timedelta(days=1))

        assert ledger.get_current_stock(OWNER_ID, material.id) == 15
        report = ledger.reconcile(OWNER_ID, material_id=material.id)
        assert report.materials_corrected == 0
        assert report.results[0].clamped is False


class TestRejections:
    """Malformed movements leave no fact and no stock change."""

    @pytest.mark.parametrize("quantity", [0, -3, 2.5, True])
    def test_invalid_quantity(self, ledger, material, supplier_id, quantity):
        with pytest.raises(InvalidQuantityError):
            ledger.record_movement(
                OWNER_ID, material.id, "entry", quantity, TODAY,
                unit_price="1.00", supplier_id=supplier_id,
            )
        assert ledger.get_current_stock(OWNER_ID, material.id) == 0
        assert ledger.get_movement_history(OWNER_ID) == []

    def test_entry_without_price(self, ledger, material, supplier_id):
        with pytest.raises(ValidationError):
            ledger.record_movement(OWNER_ID, material.id, "entry", 5, TODAY, supplier_id=supplier_id)

    def test_entry_flagged_as_return(self, ledger, material, supplier_id):
        with pytest.raises(ValidationError):
            ledger.record_movement(
                OWNER_ID, material.id, "entry", 5, TODAY,
                unit_price="1.00", supplier_id=supplier_id, is_return=True,
            )

    def test_exit_without_counterpart(self, ledger, material, receive):
        receive(material.id, 5)
        with pytest.raises(ValidationError):
            ledger.record_movement(OWNER_ID, material.id, "exit", 1, TODAY)
        assert ledger.get_current_stock(OWNER_ID, material.id) == 5

    def test_unknown_material(self, ledger, supplier_id):
        with pytest.raises(MaterialNotFoundError):
            ledger.record_movement(
                OWNER_ID, uuid4(), "entry", 5, TODAY,
                unit_price="1.00", supplier_id=supplier_id,
            )

    def test_other_owners_material_is_invisible(self, ledger, make_material, receive):
        foreign = make_material("Luva", owner=OTHER_OWNER_ID)
        with pytest.raises(MaterialNotFoundError):
            receive(foreign.id, 5)
        with pytest.raises(MaterialNotFoundError):
            ledger.get_current_stock(OWNER_ID, foreign.id)
        assert ledger.get_current_stock(OTHER_OWNER_ID, foreign.id) == 0


class TestAuditTrail:

    def test_movement_recorded_log(self, ledger, material, receive, captured_logs):
        record = receive(material.id, 20, "35.50")

        logs = [r for r in captured_logs() if r["message"] == "movement_recorded"]
        assert len(logs) == 1
        assert logs[0]["movement_id"] == str(record.id)
        assert logs[0]["quantity"] == 20
        assert logs[0]["current_stock"] == 20
        assert logs[0]["owner_id"] == OWNER_ID

    def test_history_is_newest_first(self, ledger, material, receive, issue):
        receive(material.id, 10, effective_date=date(2024, 3, 1))
        issue(material.id, 2, effective_date=date(2024, 3, 5))
        issue(material.id, 1, effective_date=date(2024, 3, 5))

        history = ledger.get_movement_history(OWNER_ID, material_id=material.id)
        assert [m.quantity for m in history] == [1, 2, 10]

        exits = ledger.get_movement_history(OWNER_ID, movement_type="exit")
        assert [m.quantity for m in exits] == [1, 2]

        window = ledger.get_movement_history(OWNER_ID, start_date=date(2024, 3, 2), limit=1)
        assert [m.quantity for m in window] == [1]
