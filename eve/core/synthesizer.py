"""
Eve Assistant — Response Synthesizer.

Turns an intent plus its ResultEnvelope into the reply text and the side
effects the channel should render. The core only decides *that* a PDF or a
spoken reply is warranted; the channel decides how.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from eve.actions.base import ResultEnvelope
from eve.core.dates import format_datetime, format_short_date
from eve.core.intents import Intent
from eve.data.models import Event, Invoice, Task


class SideEffect(Enum):
    ATTACH_INVOICE_PDF = "attach_invoice_pdf"
    SPEAK_REPLY = "speak_reply"


@dataclass
class Reply:
    """What the channel gets back for one turn."""

    text: str
    side_effects: list[SideEffect] = field(default_factory=list)
    invoice: Invoice | None = None       # set with ATTACH_INVOICE_PDF
    envelope: ResultEnvelope | None = None


def failure_text(error: str | None) -> str:
    return f"I couldn't complete that action: {error or 'Unknown error'}"


def _describe(record: object) -> str:
    if isinstance(record, Task):
        state = "done" if record.completed else record.status.value
        return f"• {record.title} (due {format_short_date(record.due_date)}, {record.priority.value}, {state})"
    if isinstance(record, Event):
        where = f" @ {record.location}" if record.location else ""
        flag = " [cancelled]" if record.cancelled else ""
        return f"• {record.title}: {format_datetime(record.start_time)}{where}{flag}"
    if isinstance(record, Invoice):
        return (
            f"• {record.client_name}: ${record.amount:,.2f} "
            f"({record.status.value}, due {format_short_date(record.due_date)})"
        )
    return f"• {record}"


def _template(intent: Intent, data: object) -> str:
    action = intent.action
    if isinstance(data, Event):
        if action == "cancel_event":
            return f'Event "{data.title}" cancelled.'
        if action == "delete_event":
            return f'Event "{data.title}" deleted.'
        return f'Event "{data.title}" scheduled for {format_datetime(data.start_time)}.'
    if isinstance(data, Invoice):
        if action == "send_invoice":
            return f"Invoice sent successfully to {data.sent_to} for {data.client_name}."
        return f"Invoice processed successfully for {data.client_name}."
    if isinstance(data, Task):
        return f'Task "{data.title}" processed successfully.'
    return "Action completed successfully."


def _fetch_text(intent: Intent, envelope: ResultEnvelope) -> str:
    header = intent.response.strip() or "Here are the results:"
    records = envelope.data or []
    if not records:
        return f"{header}\nNothing found."
    lines = [_describe(r) for r in records]
    meta = envelope.meta or {}
    if meta.get("total", 0) > len(records):
        lines.append(f"(showing {len(records)} of {meta['total']})")
    return "\n".join([header, *lines])


def _is_complete_new_invoice(intent: Intent, envelope: ResultEnvelope) -> bool:
    invoice = envelope.data
    return (
        intent.action == "create_invoice"
        and isinstance(invoice, Invoice)
        and bool(invoice.client_name)
        and invoice.amount is not None
        and invoice.amount > 0
        and isinstance(invoice.issue_date, datetime)
    )


def synthesize(intent: Intent, envelope: ResultEnvelope, voice_input: bool = False) -> Reply:
    """Build the reply text and side effects for one dispatched intent."""
    effects: list[SideEffect] = []
    invoice: Invoice | None = None

    if not envelope.success:
        text = failure_text(envelope.error)
    elif intent.is_fetch:
        text = _fetch_text(intent, envelope)
    else:
        text = intent.response.strip() or _template(intent, envelope.data)
        if envelope.sync_status == "failed":
            text += f"\n\nNote: accounting sync failed ({envelope.sync_error}). Saved locally."
        if envelope.email_status == "failed":
            text += f"\n\nNote: the email could not be sent ({envelope.email_error})."
        if _is_complete_new_invoice(intent, envelope):
            effects.append(SideEffect.ATTACH_INVOICE_PDF)
            invoice = envelope.data

    if voice_input:
        effects.append(SideEffect.SPEAK_REPLY)
    return Reply(text=text, side_effects=effects, invoice=invoice, envelope=envelope)
