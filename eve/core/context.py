"""
Eve Assistant — Context Aggregator.

Collects a bounded snapshot of an account's open tasks, upcoming events and
invoices, and renders it as the CURRENT DATA block of the system prompt.
Every entry carries its id so the model can address records exactly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from eve.core.dates import end_of_day, format_datetime, format_short_date, start_of_day
from eve.data.db import Query, Stores
from eve.data.models import Account, Event, Invoice, InvoiceStatus, Task

logger = logging.getLogger(__name__)

# How many entries per section actually make it into the prompt.
PROMPT_ITEMS = 5


@dataclass
class AccountContext:
    account: Account | None
    tasks: list[Task] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    invoices: list[Invoice] = field(default_factory=list)

    @property
    def trade(self) -> str:
        from eve.config import settings

        if self.account and self.account.trade_type:
            return self.account.trade_type
        return settings.DEFAULT_TRADE

    @property
    def latest_invoice(self) -> Invoice | None:
        return self.invoices[0] if self.invoices else None


def gather_context(
    stores: Stores,
    account_id: str,
    now: datetime | None = None,
    limit: int | None = None,
) -> AccountContext:
    """Read the account snapshot: open tasks, this week's events, recent invoices."""
    from eve.config import settings

    now = now or datetime.now()
    limit = limit or settings.CONTEXT_LIMIT

    tasks = stores.tasks.find(
        account_id,
        Query(equals={"completed": False}, sort_by="due_date", limit=limit),
    )
    events = stores.events.find(
        account_id,
        Query(
            equals={"cancelled": False},
            ranges={"start_time": (start_of_day(now), end_of_day(now + timedelta(days=7)))},
            sort_by="start_time",
            limit=limit,
        ),
    )
    invoices = stores.invoices.find(
        account_id,
        Query(sort_by="issue_date", descending=True, limit=limit),
    )

    logger.info(
        "Context for %s: %d tasks, %d events, %d invoices",
        account_id, len(tasks), len(events), len(invoices),
    )
    return AccountContext(
        account=stores.accounts.get(account_id),
        tasks=tasks,
        events=events,
        invoices=invoices,
    )


# ---------------------------------------------------------------------------
# Prompt formatting
# ---------------------------------------------------------------------------


def format_task_line(task: Task, now: datetime) -> str:
    status = "✅ Completed" if task.completed else "🔄 Pending"
    due = format_short_date(task.due_date) if task.due_date else "No due date"
    overdue = ""
    if not task.completed and task.due_date and task.due_date < now:
        overdue = f" ({(now - task.due_date).days} days overdue)"
    return (
        f"- [ID: {task.id}] {task.title} | {status} | Due: {due}{overdue} "
        f"| Priority: {task.priority.value}"
    )


def format_event_line(event: Event) -> str:
    end = event.end_time.strftime("%H:%M") if event.end_time else "no end time"
    location = event.location or "Not specified"
    return (
        f"- [ID: {event.id}] {event.title} | {format_datetime(event.start_time)} - {end} "
        f"| Location: {location}"
    )


def format_invoice_line(invoice: Invoice) -> str:
    line = (
        f"- [ID: {invoice.id}] {invoice.client_name} | ${invoice.amount:.2f} "
        f"| {invoice.status.value} | Due: {format_short_date(invoice.due_date)}"
    )
    if invoice.invoice_number:
        line += f" | No. {invoice.invoice_number}"
    return line


def format_context(context: AccountContext, now: datetime | None = None) -> str:
    """Render the snapshot as the CURRENT DATA block."""
    now = now or datetime.now()
    pending = sum(1 for i in context.invoices if i.status is InvoiceStatus.PENDING)
    overdue = sum(1 for i in context.invoices if i.status is InvoiceStatus.OVERDUE)

    sections = [
        f"UPCOMING EVENTS ({len(context.events)}):",
        *([format_event_line(e) for e in context.events[:PROMPT_ITEMS]] or ["- None"]),
        "",
        f"OPEN TASKS ({len(context.tasks)}):",
        *([format_task_line(t, now) for t in context.tasks[:PROMPT_ITEMS]] or ["- None"]),
        "",
        f"INVOICES ({len(context.invoices)}, {pending} pending, {overdue} overdue):",
        *([format_invoice_line(i) for i in context.invoices[:PROMPT_ITEMS]] or ["- None"]),
    ]
    return "\n".join(sections)
