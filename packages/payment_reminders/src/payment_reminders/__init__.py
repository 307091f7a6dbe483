"""
Payment Reminders - Scheduled WhatsApp Reminder Dispatcher

Periodically scans every active tenant and, when the tenant's policy says
"now", sends WhatsApp payment reminders for overdue invoices:
- Send window evaluation (hour, frequency, weekend rules)
- Prepaid credit gate with atomic debits
- Overdue invoice selection (sales then purchase, oldest first)
- Dispatch pipeline with a durable message log
- Scheduler driver aggregating run statistics

Invoices, tenants and retailers/vendors are owned by the business app;
this package only reads them. The message log and credit ledger are
written only here.
"""
