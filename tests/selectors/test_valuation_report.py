"""Financial valuation of the stock on hand, lot by lot."""

from datetime import timedelta
from decimal import Decimal

from stock_kernel.ledger import StockLedger

from tests.conftest import OTHER_OWNER_ID, OWNER_ID, TODAY


class TestFifoValuation:

    def test_two_price_lots(self, ledger, material, receive, issue):
        receive(material.id, 10, "5.00", effective_date=TODAY - timedelta(days=2))
        receive(material.id, 10, "7.00", effective_date=TODAY - timedelta(days=1))
        issue(material.id, 8)

        report = ledger.get_financial_valuation(OWNER_ID)

        assert [(row.unit_price, row.quantity) for row in report.rows] == [
            (Decimal("5.00"), 2),
            (Decimal("7.00"), 10),
        ]
        assert [row.subtotal for row in report.rows] == [Decimal("10.00"), Decimal("70.00")]
        assert report.total_value == Decimal("80.00")
        assert report.total_items == 2
        assert report.lot_policy == "fifo"

    def test_lot_quantities_sum_to_stock(self, ledger, material, receive, issue):
        for qty, price in [(4, "1.10"), (6, "1.25"), (5, "1.10"), (3, "0.95")]:
            receive(material.id, qty, price)
        issue(material.id, 9)

        report = ledger.get_financial_valuation(OWNER_ID)

        assert sum(row.quantity for row in report.rows) == 9
        assert report.total_value == sum(row.subtotal for row in report.rows)

    def test_lots_follow_effective_date_not_recording_order(self, ledger, material, receive):
        receive(material.id, 5, "9.00", effective_date=TODAY)
        # recorded later, but received earlier
        receive(material.id, 5, "3.00", effective_date=TODAY - timedelta(days=10))

        report = ledger.get_financial_valuation(OWNER_ID)

        assert [row.unit_price for row in report.rows] == [Decimal("3.00"), Decimal("9.00")]

    def test_zero_stock_excluded(self, ledger, make_material, receive, issue):
        gone = make_material("Fita Isolante")
        kept = make_material("Luva")
        receive(gone.id, 3)
        issue(gone.id, 3)
        receive(kept.id, 1)

        report = ledger.get_financial_valuation(OWNER_ID)

        assert [row.material_name for row in report.rows] == ["Luva"]

    def test_empty_owner(self, ledger):
        report = ledger.get_financial_valuation(OWNER_ID)
        assert report.rows == ()
        assert report.total_value == Decimal("0")
        assert report.total_items == 0


class TestFiltersAndOrdering:

    def test_ordered_by_category_then_name(self, ledger, make_material, receive):
        abrasives = ledger.register_category(OWNER_ID, "Abrasivos")
        ppe = ledger.register_category(OWNER_ID, "EPI")
        for name, category in [
            ("Luva", ppe.id),
            ("Fita", None),
            ("Disco de Corte", abrasives.id),
            ("Capacete", ppe.id),
        ]:
            receive(make_material(name, category_id=category).id, 1)

        report = ledger.get_financial_valuation(OWNER_ID)

        assert [(row.category, row.material_name) for row in report.rows] == [
            ("Abrasivos", "Disco de Corte"),
            ("EPI", "Capacete"),
            ("EPI", "Luva"),
            (None, "Fita"),
        ]

    def test_name_search_is_case_insensitive_substring(self, ledger, make_material, receive):
        receive(make_material("Disco Corte 7pol").id, 1)
        receive(make_material("Disco Flap").id, 1)
        receive(make_material("Luva").id, 1)

        report = ledger.get_financial_valuation(OWNER_ID, material_name_search="DISCO")

        assert [row.material_name for row in report.rows] == ["Disco Corte 7pol", "Disco Flap"]

    def test_name_search_treats_wildcards_literally(self, ledger, make_material, receive):
        receive(make_material("Fita_Isolante").id, 1)
        receive(make_material("FitaXIsolante").id, 1)

        report = ledger.get_financial_valuation(OWNER_ID, material_name_search="a_i")

        assert [row.material_name for row in report.rows] == ["Fita_Isolante"]

    def test_category_filter(self, ledger, make_material, receive):
        ppe = ledger.register_category(OWNER_ID, "EPI")
        receive(make_material("Luva", category_id=ppe.id).id, 2)
        receive(make_material("Disco de Corte").id, 2)

        report = ledger.get_financial_valuation(OWNER_ID, category_id=ppe.id)

        assert [row.material_name for row in report.rows] == ["Luva"]
        assert report.rows[0].category == "EPI"

    def test_other_owner_excluded(self, ledger, make_material, receive):
        receive(make_material("Luva", owner=OTHER_OWNER_ID).id, 5, owner=OTHER_OWNER_ID)
        assert ledger.get_financial_valuation(OWNER_ID).rows == ()


class TestAlternativePolicies:

    def _receive_two_prices(self, material, receive):
        receive(material.id, 10, "5.00", effective_date=TODAY - timedelta(days=2))
        receive(material.id, 30, "7.00", effective_date=TODAY - timedelta(days=1))

    def test_most_recent(self, database, clock, material, receive):
        self._receive_two_prices(material, receive)
        ledger = StockLedger(database, clock=clock, lot_policy="most_recent")

        report = ledger.get_financial_valuation(OWNER_ID)

        assert [(row.unit_price, row.quantity) for row in report.rows] == [(Decimal("7.00"), 40)]
        assert report.total_value == Decimal("280.00")
        assert report.lot_policy == "most_recent"

    def test_weighted_average(self, database, clock, material, receive):
        self._receive_two_prices(material, receive)
        ledger = StockLedger(database, clock=clock, lot_policy="weighted_average")

        report = ledger.get_financial_valuation(OWNER_ID)

        # (10 * 5 + 30 * 7) / 40 = 6.5
        assert [(row.unit_price, row.quantity) for row in report.rows] == [(Decimal("6.5"), 40)]
        assert report.total_value == Decimal("260.00")
