"""
Payment Reminders CLI

Command-line interface for payment reminder administration.

Commands:
- init-db: Create the reminder tables
- run-once: Run one reminder cycle for all tenants now
- check-schedule: Validate the cron schedule and show upcoming runs
- credits show|top-up|history: Inspect and manage tenant credits
- messages list|for-invoice|show: Inspect the message log
- send-reminder: Send a payment reminder for one invoice
"""

import asyncio
import json
from datetime import datetime
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="payment-reminders",
    help="Payment reminder dispatcher CLI",
)
credits_app = typer.Typer(help="Tenant WhatsApp credits")
messages_app = typer.Typer(help="WhatsApp message log")
app.add_typer(credits_app, name="credits")
app.add_typer(messages_app, name="messages")

console = Console()


def get_db():
    """Get database session."""
    from basecore.db import get_db as _get_db
    return next(_get_db())


@app.callback()
def main(
    log_level: str = typer.Option("WARNING", help="Log level for this command"),
):
    """Payment reminder dispatcher administration."""
    from basecore.logging import setup_logging

    setup_logging(level=log_level, fmt="text")


@app.command()
def init_db():
    """
    Create the reminder tables.

    Tables that already exist are left untouched.
    """
    from basecore.db import get_engine
    from payment_reminders.persistence.models import ReminderBase

    engine = get_engine()
    ReminderBase.metadata.create_all(engine)
    rprint(f"[green]Created reminder tables on {engine.url.render_as_string(hide_password=True)}[/green]")


@app.command()
def run_once(
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON"),
):
    """
    Run one reminder cycle for every active tenant, right now.

    Send-hour and frequency rules still apply to each tenant.
    """
    from basecore.settings import get_settings
    from payment_reminders.scheduler.driver import ReminderScheduler

    scheduler = ReminderScheduler.from_settings(get_settings())

    async def run():
        try:
            return await scheduler.run_once()
        finally:
            await scheduler.transport.close()

    summary = asyncio.run(run())

    if as_json:
        print(json.dumps(summary.to_dict(include_tenants=True), indent=2))
    else:
        table = Table(title="Payment reminder run")
        table.add_column("Tenant", style="dim")
        table.add_column("Outcome")
        table.add_column("Sent")
        table.add_column("Failed")
        table.add_column("Remaining")
        table.add_column("Note")

        for result in summary.tenants:
            table.add_row(
                result.tenant_id[:8] + "...",
                str(result.outcome),
                str(result.sent),
                str(result.failures),
                str(result.remaining),
                result.skip_reason or "-",
            )

        console.print(table)
        rprint(
            f"  Tenants: {summary.tenants_processed}  Sent: {summary.reminders_sent}  "
            f"Failures: {summary.failures}  Out of credits: {summary.credit_exhausted_tenants}  "
            f"Duration: {summary.duration_seconds:.1f}s"
        )
        if summary.timed_out:
            rprint("[yellow]Run deadline reached; some invoices were not attempted[/yellow]")

    if summary.aborted:
        rprint(f"[red]Run aborted: {summary.error}[/red]")
        raise typer.Exit(1)


@app.command()
def check_schedule(
    cron: Optional[str] = typer.Option(None, help="Cron expression (defaults to PAYMENT_REMINDER_CRON)"),
    timezone: Optional[str] = typer.Option(None, help="Timezone (defaults to REMINDER_TIMEZONE)"),
    count: int = typer.Option(5, help="Number of upcoming runs to show"),
):
    """
    Validate a reminder schedule.

    The schedule must fire exactly once in every clock hour.
    """
    from basecore.settings import get_settings
    from payment_reminders.scheduler.driver import next_fire_times, validate_schedule
    from payment_reminders.service.errors import ScheduleConfigError

    settings = get_settings()
    cron = cron or settings.PAYMENT_REMINDER_CRON
    timezone = timezone or settings.REMINDER_TIMEZONE

    try:
        trigger = validate_schedule(cron, timezone)
    except ScheduleConfigError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    rprint(f"[green]Schedule {cron!r} ({timezone}) is valid[/green]")
    for fire_time in next_fire_times(trigger, datetime.now(trigger.timezone), count):
        rprint(f"  {fire_time.isoformat()}")


def _print_messages(title: str, messages) -> None:
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Reference")
    table.add_column("Recipient")
    table.add_column("Status")
    table.add_column("Sent")
    table.add_column("Error")

    for message in messages:
        table.add_row(
            message.id,
            message.message_type,
            message.reference_number or message.reference_id[:8],
            message.recipient_phone,
            message.status,
            message.sent_at.strftime("%Y-%m-%d %H:%M") if message.sent_at else "-",
            message.error_message or "-",
        )

    console.print(table)


@credits_app.command("show")
def credits_show(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
):
    """Show a tenant's messaging settings and credit balance."""
    db = get_db()

    try:
        from payment_reminders.persistence.repo import ReminderRepository

        repo = ReminderRepository(db)
        tenant = repo.get_tenant(tenant_id)
        if not tenant:
            rprint(f"[red]Tenant not found: {tenant_id}[/red]")
            raise typer.Exit(1)

        policy = repo.get_policy(tenant_id)

        rprint(f"\n[cyan]Tenant: {tenant.name} ({tenant_id})[/cyan]")
        rprint(f"  Messaging enabled: {policy.enabled}")
        rprint(f"  Credit balance: {policy.credit_balance}")
        rprint(f"  Low credit threshold: {policy.low_credit_threshold}")
        rprint(f"  Scheduler enabled: {policy.scheduler.enabled}")
        rprint(f"  Send hour: {policy.scheduler.preferred_send_hour:02d}:00")
        rprint(f"  Frequency: {policy.scheduler.reminder_frequency}")
        rprint(f"  Send on weekends: {policy.scheduler.send_on_weekends}")
        if policy.enabled and policy.is_low_credit:
            rprint("[yellow]  Balance is at or below the low credit threshold[/yellow]")

    finally:
        db.close()


@credits_app.command("top-up")
def credits_top_up(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    amount: int = typer.Argument(..., help="Credits to add"),
    notes: Optional[str] = typer.Option(None, help="Note stored on the ledger entry"),
):
    """Add purchased credits to a tenant."""
    db = get_db()

    try:
        from payment_reminders.service.credits import CreditLedger
        from payment_reminders.service.errors import ReminderError

        try:
            new_balance = CreditLedger(db).top_up(tenant_id, amount, notes)
        except ReminderError as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)

        rprint(f"[green]Added {amount} credits. New balance: {new_balance}[/green]")

    finally:
        db.close()


@credits_app.command("history")
def credits_history(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    limit: int = typer.Option(20, help="Maximum number of entries to show"),
):
    """List recent credit ledger entries."""
    db = get_db()

    try:
        from payment_reminders.service.credits import CreditLedger

        entries = CreditLedger(db).history(tenant_id, limit=limit)

        if not entries:
            rprint("[yellow]No credit transactions found[/yellow]")
            raise typer.Exit(0)

        table = Table(title=f"Credit transactions for tenant {tenant_id[:8]}...")
        table.add_column("When")
        table.add_column("Type")
        table.add_column("Amount")
        table.add_column("Balance After")
        table.add_column("Reference", style="dim")
        table.add_column("Notes")

        for entry in entries:
            table.add_row(
                entry.created_at.strftime("%Y-%m-%d %H:%M"),
                entry.transaction_type,
                f"{entry.amount:+d}",
                str(entry.balance_after),
                (entry.reference_id or "-")[:8],
                entry.notes or "-",
            )

        console.print(table)

    finally:
        db.close()


@messages_app.command("list")
def messages_list(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    status: Optional[str] = typer.Option(None, help="Filter by status (pending, sent, failed, ...)"),
    message_type: Optional[str] = typer.Option(None, "--type", help="Filter by message type"),
    limit: int = typer.Option(20, help="Maximum number of messages to show"),
):
    """List message attempts for a tenant, newest first."""
    db = get_db()

    try:
        from payment_reminders.contracts.types import MessageStatus
        from payment_reminders.persistence.repo import ReminderRepository

        if status:
            try:
                status = MessageStatus(status).value
            except ValueError:
                rprint(f"[yellow]Unknown status: {status}[/yellow]")

        messages = ReminderRepository(db).list_messages(
            tenant_id,
            status=status,
            message_type=message_type,
            limit=limit,
        )

        if not messages:
            rprint("[yellow]No messages found[/yellow]")
            raise typer.Exit(0)

        _print_messages(f"Messages for tenant {tenant_id[:8]}...", messages)

    finally:
        db.close()


@messages_app.command("for-invoice")
def messages_for_invoice(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    invoice_id: str = typer.Argument(..., help="Invoice ID"),
    kind: str = typer.Option("sales", help="Invoice kind (sales or purchase)"),
):
    """List every message attempt sent about one invoice."""
    from payment_reminders.contracts.types import InvoiceKind
    from payment_reminders.persistence.repo import ReminderRepository

    try:
        invoice_kind = InvoiceKind(kind)
    except ValueError:
        rprint(f"[red]Invalid invoice kind: {kind}[/red]")
        raise typer.Exit(1)

    db = get_db()

    try:
        messages = ReminderRepository(db).get_messages_by_reference(
            tenant_id,
            invoice_kind.reference_type,
            invoice_id,
        )

        if not messages:
            rprint(f"[yellow]No messages found for invoice {invoice_id}[/yellow]")
            raise typer.Exit(0)

        _print_messages(f"Messages for {invoice_kind.value} invoice {invoice_id[:8]}...", messages)

    finally:
        db.close()


@messages_app.command("show")
def messages_show(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    message_id: str = typer.Argument(..., help="Message ID"),
):
    """Show one message attempt with its template variables."""
    db = get_db()

    try:
        from payment_reminders.persistence.repo import ReminderRepository
        from payment_reminders.service.credits import CreditLedger

        message = ReminderRepository(db).get_message(tenant_id, message_id)
        if not message:
            rprint(f"[red]Message not found: {message_id}[/red]")
            raise typer.Exit(1)

        rprint(f"\n[cyan]Message: {message.id}[/cyan]")
        rprint(f"  Type: {message.message_type}")
        rprint(f"  Reference: {message.reference_type} {message.reference_number or message.reference_id}")
        rprint(f"  Recipient: {message.recipient_type} {message.recipient_phone}")
        rprint(f"  Template: {message.template_id}")
        rprint(f"  Status: {message.status}")
        if message.provider_message_id:
            rprint(f"  Provider ID: {message.provider_message_id}")
        if message.sent_at:
            rprint(f"  Sent at: {message.sent_at.isoformat()}")
        if message.error_code:
            rprint(f"[red]  Error: {message.error_code} {message.error_message}[/red]")
        credit = CreditLedger(db).transaction_for_message(tenant_id, message.id)
        if credit:
            rprint(f"  Credit charged: {credit.amount:+d} (balance after {credit.balance_after})")
        rprint("  Variables:")
        for key, value in (message.template_variables or {}).items():
            rprint(f"    {key}: {value}")

    finally:
        db.close()


@app.command()
def send_reminder(
    tenant_id: str = typer.Argument(..., help="Tenant ID"),
    invoice_id: str = typer.Argument(..., help="Invoice ID"),
    kind: str = typer.Option("sales", help="Invoice kind (sales or purchase)"),
):
    """
    Send a payment reminder for one invoice immediately.

    Ignores the tenant's send hour and frequency; credits and phone
    validation still apply.
    """
    from basecore.settings import get_settings
    from payment_reminders.contracts.types import InvoiceKind
    from payment_reminders.providers import get_transport
    from payment_reminders.service.dispatch import DispatchPipeline
    from payment_reminders.service.errors import ReminderError
    from payment_reminders.service.selector import OverdueInvoiceSelector
    from payment_reminders.service.templates import TemplateCatalog

    try:
        invoice_kind = InvoiceKind(kind)
    except ValueError:
        rprint(f"[red]Invalid invoice kind: {kind}[/red]")
        raise typer.Exit(1)

    settings = get_settings()
    db = get_db()

    try:
        invoice = OverdueInvoiceSelector(db).get(tenant_id, invoice_kind, invoice_id)
        if not invoice:
            rprint(f"[red]Invoice not found: {invoice_id}[/red]")
            raise typer.Exit(1)

        transport = get_transport(settings)
        pipeline = DispatchPipeline(
            db,
            transport,
            TemplateCatalog.from_settings(settings),
            default_country_code=settings.DEFAULT_COUNTRY_CODE,
            transport_timeout=settings.REMINDER_TRANSPORT_TIMEOUT_SECONDS,
        )

        async def send():
            try:
                return await pipeline.send_payment_reminder(invoice)
            finally:
                await transport.close()

        try:
            result = asyncio.run(send())
        except ReminderError as e:
            rprint(f"[red]Failed to send reminder[/red]")
            rprint(f"  Error: {e}")
            raise typer.Exit(1)

        rprint(f"[green]Reminder sent for invoice {invoice.invoice_number}![/green]")
        rprint(f"  Message ID: {result.message_id}")
        rprint(f"  Provider ID: {result.provider_message_id}")
        rprint(f"  Credits remaining: {result.remaining_credits}")
        if result.credit_debit_failed:
            rprint(f"[yellow]  Credit deduction failed: {result.debit_error}[/yellow]")

    finally:
        db.close()


if __name__ == "__main__":
    app()
