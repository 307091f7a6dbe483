"""
Payment Reminder Services

Business logic for the reminder dispatcher:
- Send window evaluation
- Credit ledger (admission, debit, top-up)
- Overdue invoice selection
- Dispatch pipeline
- Tenant cycle orchestration
"""

from payment_reminders.service.credits import CreditCheck, CreditDebit, CreditLedger
from payment_reminders.service.dispatch import DispatchPipeline, DispatchResult
from payment_reminders.service.orchestrator import (
    CycleOutcome,
    TenantCycleOrchestrator,
    TenantCycleResult,
)
from payment_reminders.service.selector import OverdueInvoiceSelector
from payment_reminders.service.templates import TemplateCatalog
from payment_reminders.service.window import WindowDecision, evaluate_window

__all__ = [
    "CreditCheck",
    "CreditDebit",
    "CreditLedger",
    "DispatchPipeline",
    "DispatchResult",
    "CycleOutcome",
    "TenantCycleOrchestrator",
    "TenantCycleResult",
    "OverdueInvoiceSelector",
    "TemplateCatalog",
    "WindowDecision",
    "evaluate_window",
]
