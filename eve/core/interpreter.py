"""
Eve Assistant — Action Interpreter.

Turns one user utterance (plus account context and conversation history)
into a typed Intent or a ClarificationRequest with a single LLM call.
Malformed model output is never retried: it becomes UpstreamParseError.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any

from eve.core.context import AccountContext, format_context
from eve.core.errors import InvalidParamsError, NotFoundError, UpstreamParseError
from eve.core.intents import (
    ClarificationRequest,
    Intent,
    SendInvoice,
    parse_clarification,
    parse_intent,
)
from eve.core.llm import History, complete
from eve.data.models import Message

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

# Which parameter identifies the target record in each domain.
_TARGET_FIELDS: dict[str, tuple[str, str]] = {
    "event": ("title", "event_id"),
    "invoice": ("client_name", "invoice_id"),
    "task": ("title", "task_id"),
}

_ACTION_GUIDE = """\
ACTIONS (use exactly one per reply):

TASKS — work and to-do items
- create_task: title (required), description, dueDate, priority (High|Medium|Low),
  status (Not Started|In Progress|Completed|On Hold), tags [list], projectId,
  allowPastDue (true only if the user explicitly wants a past due date)
- update_task: taskId (required: ID or exact title), plus any create_task field, completed (true|false)
- complete_task: taskId (required)
- reopen_task: taskId (required), status (defaults to In Progress)
- fetch_tasks: status, completed, priority, tag, tags [all must match], projectId,
  startDate/endDate (due date range), search, includeCompleted, sortBy, sortOrder (asc|desc), limit, skip

EVENTS — calendar and scheduling
- create_event: title (required), startTime (required), endTime, location, description
- update_event: eventId (required: ID or title), plus any create_event field
- cancel_event: eventId (required)
- delete_event: eventId (required)
- fetch_events: startDate/endDate, search, location, includeCancelled, sortBy, sortOrder, limit, skip

INVOICES — money and billing
- create_invoice: clientName (required), amount (required), dueDate, date, description,
  invoiceNumber, items [{description, quantity, unitAmount}], email (send right after creating)
- update_invoice: invoiceId (required: ID, client name, amount or date), plus any create_invoice field, status
- mark_invoice_paid: invoiceId (required)
- send_invoice: invoiceId (required), email (required)
- fetch_invoices: status (Pending|Paid|Overdue), clientName, startDate/endDate (due date range),
  search, sortBy, sortOrder, limit, skip

OTHER
- none: plain conversation, no data changes

RULES
- Scheduling words mean an event action; money or billing means an invoice action;
  work or to-do items mean a task action.
- Prefer the [ID: ...] values from CURRENT DATA when referring to existing records.
- Dates: "YYYY-MM-DD HH:MM", ISO-8601, or today/tomorrow/yesterday/next week/next month.
- "Send him the invoice" means send_invoice for the most recent relevant invoice.
- If the request is ambiguous or a required value is unknown, ask with needsClarification.
"""

_RESPONSE_FORMAT = """\
RESPONSE FORMAT (one JSON object, no prose around it):
{
  "action": "<action name or none>",
  "params": { ... },
  "response": "Your natural language confirmation",
  "needsClarification": {"field": "...", "question": "...", "options": ["...", "..."]}
}
Omit needsClarification unless you need more information.
"""


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------


def build_system_prompt(context: AccountContext, now: datetime | None = None) -> str:
    from eve.config import settings

    now = now or datetime.now()
    account = context.account
    profile = [
        f"- Name: {account.display_name if account else 'Unknown'}",
        f"- Trade: {context.trade}",
        f"- Email: {account.email if account and account.email else 'Not provided'}",
    ]
    return "\n".join([
        f"You are Eve, an AI assistant specialized for {context.trade}s.",
        "",
        "User Profile:",
        *profile,
        "",
        f"Current Date: {now.strftime('%A, %B %d, %Y')}",
        f"Current Time: {now.strftime('%H:%M')}",
        f"Timezone: {settings.TIMEZONE}",
        "",
        _ACTION_GUIDE,
        "CURRENT DATA:",
        "",
        format_context(context, now),
        "",
        _RESPONSE_FORMAT,
    ])


def history_to_turns(history: list[Message]) -> History:
    """Role-tagged turns for the model, starting with a user turn."""
    turns = [
        {"role": "user" if m.sender == "user" else "assistant", "content": m.text}
        for m in history
    ]
    while turns and turns[0]["role"] != "user":
        turns.pop(0)
    return turns


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def _clean_llm_response(raw: str) -> str:
    """Strip markdown code fences and whitespace from an LLM response."""
    text = (raw or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        text = text.rsplit("```", 1)[0]
    text = text.strip()
    # Some models wrap the object in prose; keep the outermost braces.
    if not text.startswith("{") and "{" in text and "}" in text:
        text = text[text.index("{"): text.rindex("}") + 1]
    return text


def parse_model_reply(raw: str) -> Intent | ClarificationRequest:
    try:
        payload: Any = json.loads(_clean_llm_response(raw))
    except json.JSONDecodeError as exc:
        raise UpstreamParseError(str(exc)) from exc
    if not isinstance(payload, dict):
        raise UpstreamParseError("Model reply is not a JSON object")

    clarification = parse_clarification(payload)
    if clarification is not None:
        return clarification
    return parse_intent(payload)


async def interpret(
    account_id: str,
    context: AccountContext,
    history: list[Message],
    utterance: str,
    now: datetime | None = None,
) -> Intent | ClarificationRequest:
    """One model call → Intent or ClarificationRequest.

    Raises:
        UpstreamParseError: the reply isn't one JSON object of a known action.
    """
    system = build_system_prompt(context, now)
    raw = await complete(
        system,
        utterance,
        history=history_to_turns(history),
        max_tokens=1024,
        json_mode=True,
        temperature=0.2,
    )
    logger.info("Interpreter raw reply for %s: %s", account_id, (raw or "")[:200])

    result = parse_model_reply(raw)
    if isinstance(result, ClarificationRequest):
        logger.info("Clarification requested on field %r", result.field)
    else:
        logger.info("Interpreted action %s for %s", result.action, account_id)
    return result


def clarification_reply(request: ClarificationRequest) -> str:
    if request.response and request.question in request.response:
        text = request.response
    elif request.response:
        text = f"{request.response}\n\n{request.question}"
    else:
        text = f"I need more information: {request.question}"
    if request.options:
        numbered = "\n".join(f"{i}. {o}" for i, o in enumerate(request.options, 1))
        text += f"\n\nOptions:\n{numbered}"
    return text


# ---------------------------------------------------------------------------
# Pre-dispatch checks
# ---------------------------------------------------------------------------


def extract_email(context: AccountContext, history: list[Message]) -> str | None:
    """Account email first, then the newest history message carrying one."""
    if context.account and context.account.email:
        return context.account.email
    for message in reversed(history):
        match = EMAIL_RE.search(message.text)
        if match:
            return match.group(0)
    return None


def prepare_intent(
    intent: Intent,
    context: AccountContext,
    history: list[Message],
) -> Intent:
    """Validate the target reference and fill send_invoice defaults.

    Raises:
        InvalidParamsError: no title/id to act on, or no recipient email.
        NotFoundError: send_invoice with no invoice to fall back on.
    """
    if isinstance(intent, SendInvoice):
        return _prepare_send_invoice(intent, context, history)

    if intent.is_fetch or intent.domain not in _TARGET_FIELDS:
        return intent

    name_field, id_field = _TARGET_FIELDS[intent.domain]
    fields = type(intent).model_fields
    has_name = name_field in fields and intent.present(name_field)
    has_id = id_field in fields and intent.present(id_field)
    if not (has_name or has_id):
        label = "clientName" if name_field == "client_name" else name_field
        raise InvalidParamsError(
            f"{intent.domain.capitalize()} actions require either {label} "
            f"or {intent.domain}Id",
            missing_fields=[f"{intent.domain}Id"],
        )

    # With no id, a title/client name on a mutation is the record reference.
    if has_name and not has_id and id_field in fields:
        intent = intent.model_copy(
            update={id_field: getattr(intent, name_field), name_field: None}
        )
    return intent


def _prepare_send_invoice(
    intent: SendInvoice,
    context: AccountContext,
    history: list[Message],
) -> SendInvoice:
    updates: dict[str, Any] = {}

    if not intent.present("email"):
        email = extract_email(context, history)
        if email is None:
            raise InvalidParamsError(
                "I need an email address to send the invoice to.",
                missing_fields=["email"],
            )
        logger.info("send_invoice: using extracted email %s", email)
        updates["email"] = email

    if not intent.present("invoice_id"):
        if intent.present("client_name"):
            updates["invoice_id"] = intent.client_name
        else:
            latest = context.latest_invoice
            if latest is None:
                raise NotFoundError("invoice")
            logger.info("send_invoice: defaulting to latest invoice %s", latest.id)
            updates["invoice_id"] = latest.id

    return intent.model_copy(update=updates) if updates else intent
