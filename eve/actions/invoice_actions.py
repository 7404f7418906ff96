"""
Eve Assistant — Invoice actions.

The local record is the source of truth. Mirroring to the accounting
system and emailing the client are best-effort steps after the local
write: their failures are recorded on the envelope (and, for accounting,
on the invoice itself) but never undo the write.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from eve.actions.base import ActionRequest, ResultEnvelope, date_range, run_fetch, search_pattern
from eve.core.dates import parse_loose_date
from eve.core.errors import ExternalSyncError, InvalidParamsError, InvariantViolation
from eve.data.db import Query
from eve.data.models import Invoice, InvoiceStatus, LineItem, new_id
from eve.integrations.email_sender import build_invoice_email, build_payment_email
from eve.integrations.invoice_pdf import invoice_filename, render_invoice_pdf
from eve.ports.email_port import EmailAttachment, EmailError

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 30

_STATUS_ALIASES: dict[str, InvoiceStatus] = {
    "pending": InvoiceStatus.PENDING,
    "unpaid": InvoiceStatus.PENDING,
    "open": InvoiceStatus.PENDING,
    "paid": InvoiceStatus.PAID,
    "overdue": InvoiceStatus.OVERDUE,
}

SORT_FIELDS = {
    "dueDate": "due_date",
    "date": "issue_date",
    "issueDate": "issue_date",
    "amount": "amount",
    "clientName": "client_name",
    "status": "status",
    "createdAt": "created_at",
}


def parse_status(value: str) -> InvoiceStatus:
    status = _STATUS_ALIASES.get(value.strip().lower())
    if status is None:
        raise InvalidParamsError(f"Invalid status: {value}", missing_fields=["status"])
    return status


def _check_amount(amount: float) -> float:
    if amount < 0:
        raise InvariantViolation("Amount cannot be negative")
    return amount


def _line_items(items: list[Any] | None) -> list[LineItem]:
    return [
        LineItem(
            description=item.description,
            quantity=item.quantity,
            unit_amount=item.unit_amount if item.unit_amount is not None else (item.amount or 0),
        )
        for item in items or []
    ]


def accounting_payload(invoice: Invoice) -> dict[str, Any]:
    """Provider-neutral invoice shape handed to the accounting port."""
    items = invoice.items or [
        LineItem(description=invoice.description or "Invoice item", quantity=1,
                 unit_amount=invoice.amount)
    ]
    return {
        "contact_name": invoice.client_name,
        "line_items": [
            {"description": i.description, "quantity": i.quantity, "unit_amount": i.unit_amount}
            for i in items
        ],
        "date": invoice.issue_date.date().isoformat(),
        "due_date": invoice.due_date.date().isoformat(),
        "reference": invoice.invoice_number,
    }


# ---------------------------------------------------------------------------
# Best-effort side channels
# ---------------------------------------------------------------------------


async def mirror_to_accounting(req: ActionRequest, invoice: Invoice, operation: str) -> tuple[str, str | None]:
    """Push one operation to the accounting system; returns (sync_status, error)."""
    session = req.accounting
    if not session.connected:
        return "skipped", None
    if operation != "create" and not invoice.xero_invoice_id:
        return "skipped", None

    client, tenant = session.client, session.tenant_id
    try:
        if operation == "create":
            result = await client.create_invoice(tenant, accounting_payload(invoice))
        elif operation == "update":
            result = await client.update_invoice(
                tenant, invoice.xero_invoice_id, accounting_payload(invoice)
            )
        else:
            result = await client.mark_invoice_as_paid(
                tenant, invoice.xero_invoice_id, invoice.amount,
                (invoice.paid_date or req.now).date().isoformat(),
            )
    except ExternalSyncError as exc:
        error = str(exc)
    except Exception as exc:
        logger.exception("Unexpected accounting failure for invoice %s", invoice.id)
        error = f"Accounting sync failed: {exc}"
    else:
        invoice.xero_invoice_id = result.get("external_id") or invoice.xero_invoice_id
        invoice.xero_status = result.get("status") or invoice.xero_status
        invoice.xero_sync_error = None
        req.stores.invoices.update(invoice)
        logger.info("Invoice %s synced (%s): %s", invoice.id, operation, invoice.xero_invoice_id)
        return "ok", None

    logger.warning("Invoice %s %s sync failed: %s", invoice.id, operation, error)
    invoice.xero_sync_error = error
    req.stores.invoices.update(invoice)
    return "failed", error


async def deliver_invoice_email(req: ActionRequest, invoice: Invoice, to: str) -> None:
    """Email the invoice with its PDF and stamp last_sent/sent_to.

    Raises:
        EmailError: no sender configured, or delivery failed.
    """
    if req.email is None:
        raise EmailError("Email delivery is not configured")

    subject, text, html = build_invoice_email(invoice)
    attachment = EmailAttachment(
        filename=invoice_filename(invoice),
        content_type="application/pdf",
        data=render_invoice_pdf(invoice),
    )
    await req.email.send(to, subject, text=text, html=html, attachments=[attachment])

    invoice.last_sent = req.now
    invoice.sent_to = to
    req.stores.invoices.update(invoice)


async def deliver_payment_email(req: ActionRequest, invoice: Invoice, to: str) -> None:
    """Email a payment receipt for a paid invoice. No attachment.

    Raises:
        EmailError: no sender configured, or delivery failed.
    """
    if req.email is None:
        raise EmailError("Email delivery is not configured")

    subject, text, html = build_payment_email(invoice)
    await req.email.send(to, subject, text=text, html=html)

    invoice.last_sent = req.now
    invoice.sent_to = to
    req.stores.invoices.update(invoice)


async def _optional_email(
    req: ActionRequest, invoice: Invoice, operation: str, envelope: ResultEnvelope
) -> None:
    params = req.intent
    if not params.email or params.send_email is False:
        return
    deliver = deliver_payment_email if operation == "paid" else deliver_invoice_email
    try:
        await deliver(req, invoice, params.email)
    except ExternalSyncError as exc:
        logger.warning("Invoice %s email to %s failed: %s", invoice.id, params.email, exc)
        envelope.email_status, envelope.email_error = "failed", str(exc)
    except Exception as exc:
        logger.exception("Unexpected email failure for invoice %s", invoice.id)
        envelope.email_status, envelope.email_error = "failed", f"Email delivery failed: {exc}"
    else:
        envelope.email_status = "sent"


async def _finish(req: ActionRequest, invoice: Invoice, operation: str) -> ResultEnvelope:
    sync_status, sync_error = await mirror_to_accounting(req, invoice, operation)
    envelope = ResultEnvelope.ok(invoice, sync_status=sync_status, sync_error=sync_error)
    await _optional_email(req, invoice, operation, envelope)
    return envelope


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def create_invoice(req: ActionRequest) -> ResultEnvelope:
    params, now = req.intent, req.now

    invoice = Invoice(
        id=new_id(),
        account_id=req.account_id,
        client_name=params.client_name.strip(),
        amount=_check_amount(params.amount),
        issue_date=parse_loose_date(params.date, default=now, now=now),
        due_date=parse_loose_date(
            params.due_date, default=now + timedelta(days=DEFAULT_DUE_DAYS), now=now
        ),
        status=parse_status(params.status) if params.status else InvoiceStatus.PENDING,
        description=params.description or "",
        invoice_number=params.invoice_number,
        items=_line_items(params.items),
        created_at=now,
    )
    req.stores.invoices.create(invoice)
    logger.info("Invoice created: %s %.2f", invoice.client_name, invoice.amount)
    return await _finish(req, invoice, "create")


async def update_invoice(req: ActionRequest) -> ResultEnvelope:
    params, now = req.intent, req.now
    invoice = req.resolve("invoice", params.invoice_id)

    if params.client_name:
        invoice.client_name = params.client_name.strip()
    if params.amount is not None:
        invoice.amount = _check_amount(params.amount)
    if params.description is not None:
        invoice.description = params.description
    if params.date is not None:
        issued = parse_loose_date(params.date, now=now)
        if issued is None:
            raise InvalidParamsError("Invalid invoice date format", missing_fields=["date"])
        invoice.issue_date = issued
    if params.due_date is not None:
        due = parse_loose_date(params.due_date, now=now)
        if due is None:
            raise InvalidParamsError("Invalid due date format", missing_fields=["dueDate"])
        invoice.due_date = due
    if params.invoice_number is not None:
        invoice.invoice_number = params.invoice_number or None
    if params.items is not None:
        invoice.items = _line_items(params.items)
    if params.status:
        status = parse_status(params.status)
        if status is InvoiceStatus.PAID and invoice.status is not InvoiceStatus.PAID:
            invoice.paid_date = now
        invoice.status = status

    req.stores.invoices.update(invoice)
    operation = "paid" if params.status and invoice.status is InvoiceStatus.PAID else "update"
    return await _finish(req, invoice, operation)


async def mark_invoice_paid(req: ActionRequest) -> ResultEnvelope:
    invoice = req.resolve("invoice", req.intent.invoice_id)
    invoice.status = InvoiceStatus.PAID
    invoice.paid_date = req.now
    req.stores.invoices.update(invoice)
    logger.info("Invoice %s marked paid", invoice.id)
    return await _finish(req, invoice, "paid")


async def send_invoice(req: ActionRequest) -> ResultEnvelope:
    params = req.intent
    invoice = req.resolve("invoice", params.invoice_id)
    try:
        await deliver_invoice_email(req, invoice, params.email)
    except EmailError as exc:
        logger.error("send_invoice %s failed: %s", invoice.id, exc)
        return ResultEnvelope.failure(
            f"Failed to send invoice email: {exc}", email_status="failed", email_error=str(exc)
        )
    logger.info("Invoice %s sent to %s", invoice.id, params.email)
    return ResultEnvelope.ok(invoice, email_status="sent")


async def fetch_invoices(req: ActionRequest) -> ResultEnvelope:
    params = req.intent
    query = Query()

    if params.status:
        query.equals["status"] = parse_status(params.status)
    if params.client_name:
        query.regex["client_name"] = search_pattern(params.client_name)
    window = date_range(params.start_date, params.end_date, req.now)
    if window is not None:
        query.ranges["due_date"] = window
    if params.search:
        query.search = (("client_name", "description", "invoice_number"), search_pattern(params.search))

    return run_fetch(req.stores.invoices, req.account_id, query, params,
                     SORT_FIELDS, "due_date")
