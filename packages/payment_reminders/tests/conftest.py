"""
Pytest fixtures for payment reminder tests.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from payment_reminders.contracts.types import InvoiceStatus
from payment_reminders.persistence.models import (
    PurchaseInvoice,
    ReminderBase,
    Retailer,
    SalesInvoice,
    Tenant,
    TenantMessagingSettings,
    Vendor,
)
from payment_reminders.providers.stub import StubWhatsAppTransport
from payment_reminders.service.templates import TemplateCatalog

# Monday 15 January 2024, 09:00 UTC
MONDAY_9AM = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class Seed:
    """Inserts business rows for a test."""

    def __init__(self, db):
        self.db = db

    def tenant(
        self,
        name: str = "Sharma Traders",
        enabled: bool = True,
        credit_balance: int = 100,
        settings: bool = True,
        is_active: bool = True,
        **scheduler,
    ) -> Tenant:
        tenant = Tenant(name=name, is_active=is_active)
        self.db.add(tenant)
        self.db.flush()
        if settings:
            self.db.add(
                TenantMessagingSettings(
                    tenant_id=tenant.id,
                    enabled=enabled,
                    credit_balance=credit_balance,
                    **scheduler,
                )
            )
        self.db.commit()
        return tenant

    def retailer(self, tenant: Tenant, name: str = "Gupta Stores", phone: str | None = "9876543210") -> Retailer:
        retailer = Retailer(tenant_id=tenant.id, name=name, phone=phone)
        self.db.add(retailer)
        self.db.commit()
        return retailer

    def vendor(self, tenant: Tenant, name: str = "Patel Wholesale", phone: str | None = "9123456780") -> Vendor:
        vendor = Vendor(tenant_id=tenant.id, name=name, phone=phone)
        self.db.add(vendor)
        self.db.commit()
        return vendor

    def sales_invoice(
        self,
        tenant: Tenant,
        retailer: Retailer | None,
        invoice_number: str,
        invoice_date: date,
        outstanding: str = "1500.00",
        total: str = "2500.00",
        status: InvoiceStatus = InvoiceStatus.UNPAID,
    ) -> SalesInvoice:
        invoice = SalesInvoice(
            tenant_id=tenant.id,
            retailer_id=retailer.id if retailer else None,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            status=status.value,
            total_amount=Decimal(total),
            udhaar_amount=Decimal(outstanding),
        )
        self.db.add(invoice)
        self.db.commit()
        return invoice

    def purchase_invoice(
        self,
        tenant: Tenant,
        vendor: Vendor | None,
        invoice_number: str,
        invoice_date: date,
        outstanding: str = "800.00",
        total: str = "1200.00",
        status: InvoiceStatus = InvoiceStatus.UNPAID,
    ) -> PurchaseInvoice:
        invoice = PurchaseInvoice(
            tenant_id=tenant.id,
            vendor_id=vendor.id if vendor else None,
            invoice_number=invoice_number,
            invoice_date=invoice_date,
            status=status.value,
            net_amount=Decimal(total),
            balance_amount=Decimal(outstanding),
        )
        self.db.add(invoice)
        self.db.commit()
        return invoice


@pytest.fixture
def engine():
    """In-memory SQLite database shared across sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    ReminderBase.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def transport():
    """Stub transport recording every send."""
    return StubWhatsAppTransport()


@pytest.fixture
def templates():
    return TemplateCatalog(
        {
            "sales_invoice": "HXsales000000000000000000000000000",
            "purchase_invoice": "HXpurchase0000000000000000000000000",
            "payment_reminder": "HXreminder0000000000000000000000000",
            "payment_notification": "HXpayment00000000000000000000000000",
        }
    )


@pytest.fixture
def monday_9am():
    return MONDAY_9AM
