"""
Tests for overdue invoice selection.
"""

from datetime import date, timedelta
from decimal import Decimal

from payment_reminders.contracts.types import InvoiceKind, InvoiceStatus, RecipientType
from payment_reminders.service.selector import OverdueInvoiceSelector

TODAY = date(2024, 1, 15)


class TestOverdueInvoiceSelector:
    """Tests for the overdue invoice queries."""

    def test_sales_oldest_first(self, db, seed):
        tenant = seed.tenant()
        retailer = seed.retailer(tenant)
        seed.sales_invoice(tenant, retailer, "S-3", date(2024, 1, 10))
        seed.sales_invoice(tenant, retailer, "S-1", date(2023, 12, 1))
        seed.sales_invoice(tenant, retailer, "S-2", date(2024, 1, 2))

        overdue = OverdueInvoiceSelector(db).select(tenant.id, TODAY)

        assert [i.invoice_number for i in overdue.sales] == ["S-1", "S-2", "S-3"]
        assert overdue.purchase == []

    def test_eligibility_filters(self, db, seed):
        tenant = seed.tenant()
        retailer = seed.retailer(tenant)
        seed.sales_invoice(tenant, retailer, "UNPAID", date(2024, 1, 1))
        seed.sales_invoice(tenant, retailer, "PARTIAL", date(2024, 1, 2), status=InvoiceStatus.PARTIALLY_PAID)
        seed.sales_invoice(tenant, retailer, "PAID", date(2024, 1, 3), status=InvoiceStatus.PAID)
        seed.sales_invoice(tenant, retailer, "ZERO", date(2024, 1, 4), outstanding="0")
        seed.sales_invoice(tenant, retailer, "TODAY", TODAY)
        seed.sales_invoice(tenant, retailer, "FUTURE", TODAY + timedelta(days=3))

        overdue = OverdueInvoiceSelector(db).select(tenant.id, TODAY)

        assert [i.invoice_number for i in overdue.sales] == ["UNPAID", "PARTIAL"]

    def test_tenant_isolation(self, db, seed):
        mine = seed.tenant(name="Mine")
        theirs = seed.tenant(name="Theirs")
        seed.sales_invoice(mine, seed.retailer(mine), "MINE-1", date(2024, 1, 1))
        seed.sales_invoice(theirs, seed.retailer(theirs), "THEIRS-1", date(2024, 1, 1))
        seed.purchase_invoice(theirs, seed.vendor(theirs), "THEIRS-P1", date(2024, 1, 1))

        overdue = OverdueInvoiceSelector(db).select(mine.id, TODAY)

        assert [i.invoice_number for i in overdue.sales] == ["MINE-1"]
        assert overdue.purchase == []

    def test_purchase_mapping(self, db, seed):
        tenant = seed.tenant()
        vendor = seed.vendor(tenant, name="Patel Wholesale", phone="9123456780")
        seed.purchase_invoice(tenant, vendor, "P-1", date(2024, 1, 5), outstanding="800.00", total="1200.00")

        overdue = OverdueInvoiceSelector(db).select(tenant.id, TODAY)

        assert len(overdue.purchase) == 1
        invoice = overdue.purchase[0]
        assert invoice.kind is InvoiceKind.PURCHASE
        assert invoice.tenant_id == tenant.id
        assert invoice.total_amount == Decimal("1200.00")
        assert invoice.outstanding_amount == Decimal("800.00")
        assert invoice.recipient.recipient_type is RecipientType.VENDOR
        assert invoice.recipient.id == vendor.id
        assert invoice.recipient.name == "Patel Wholesale"
        assert invoice.recipient.phone == "9123456780"

    def test_missing_recipient_kept(self, db, seed):
        tenant = seed.tenant()
        seed.sales_invoice(tenant, None, "ORPHAN", date(2024, 1, 1))

        overdue = OverdueInvoiceSelector(db).select(tenant.id, TODAY)

        assert overdue.sales[0].recipient is None

    def test_no_cap_and_dispatch_order(self, db, seed):
        tenant = seed.tenant()
        retailer = seed.retailer(tenant)
        vendor = seed.vendor(tenant)
        for n in range(30):
            seed.sales_invoice(tenant, retailer, f"S-{n:02d}", date(2023, 11, 1) + timedelta(days=n))
        seed.purchase_invoice(tenant, vendor, "P-OLDEST", date(2023, 1, 1))

        overdue = OverdueInvoiceSelector(db).select(tenant.id, TODAY)
        ordered = overdue.in_dispatch_order()

        assert overdue.total == 31
        assert ordered[0].invoice_number == "S-00"
        assert ordered[29].invoice_number == "S-29"
        # Purchase invoices come after every sales invoice, whatever their date
        assert ordered[-1].invoice_number == "P-OLDEST"

    def test_get_single_invoice(self, db, seed):
        tenant = seed.tenant()
        retailer = seed.retailer(tenant)
        invoice = seed.sales_invoice(tenant, retailer, "S-9", date(2024, 1, 1), status=InvoiceStatus.PAID)
        selector = OverdueInvoiceSelector(db)

        found = selector.get(tenant.id, InvoiceKind.SALES, invoice.id)
        assert found.invoice_number == "S-9"
        assert selector.get(tenant.id, InvoiceKind.PURCHASE, invoice.id) is None
        assert selector.get("other-tenant", InvoiceKind.SALES, invoice.id) is None
