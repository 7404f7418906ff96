"""
Eve Assistant — Meeting extraction.

Batch path: one transcript in, a summary plus candidate tasks, events and
invoices out. Unlike direct commands, this path repairs bad values instead
of rejecting them (past event times roll forward, end <= start becomes a
one-hour slot, bad amounts become 0).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from eve.core.dates import parse_loose_date
from eve.core.interpreter import _clean_llm_response
from eve.core.llm import complete
from eve.data.db import Stores
from eve.data.models import Event, Invoice, Priority, Task, new_id

logger = logging.getLogger(__name__)

MAX_TRANSCRIPT_CHARS = 4000

_SYSTEM_PROMPT = """\
You are a helpful meeting assistant that analyzes meeting transcripts and extracts:
1. A concise summary ("summary": string)
2. Action points ("actionPoints": array of strings)
3. Tasks ("tasks": array of {{title, description, dueDate, priority}})
4. Events ("events": array of {{title, description, location, startTime, endTime}})
5. Invoices ("invoices": array of {{clientName, amount, description, dueDate}})

For dates and times:
- Use the current date/time as reference point (now is {now})
- For events: startTime must be before endTime
- For tasks: dueDate should be in the future
- For invoices: dueDate should be at least 7 days in the future

Always respond with a valid JSON object containing these fields, even if some arrays are empty.
Use ISO 8601 for every date."""


@dataclass
class MeetingTask:
    title: str
    due_date: datetime
    description: str = ""
    priority: Priority = Priority.MEDIUM


@dataclass
class MeetingEvent:
    title: str
    start_time: datetime
    end_time: datetime
    description: str = ""
    location: str = ""


@dataclass
class MeetingInvoice:
    client_name: str
    amount: float
    due_date: datetime
    description: str = ""


@dataclass
class MeetingDetails:
    summary: str
    action_points: list[str] = field(default_factory=list)
    tasks: list[MeetingTask] = field(default_factory=list)
    events: list[MeetingEvent] = field(default_factory=list)
    invoices: list[MeetingInvoice] = field(default_factory=list)
    message: str = "Meeting processed successfully"


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _text(value: Any, default: str = "") -> str:
    return value.strip() if isinstance(value, str) else default


def _date_or_offset(value: Any, offset_days: int, now: datetime) -> datetime:
    return parse_loose_date(value, default=now + timedelta(days=offset_days), now=now)


def roll_forward(moment: datetime, now: datetime) -> datetime:
    """A past event time moves to today at the same clock time, or tomorrow."""
    if moment >= now:
        return moment
    adjusted = now.replace(hour=moment.hour, minute=moment.minute, second=0, microsecond=0)
    if adjusted < now:
        adjusted += timedelta(days=1)
    return adjusted


def _normalize_task(raw: dict, now: datetime) -> MeetingTask | None:
    title = _text(raw.get("title"))
    description = _text(raw.get("description"))
    if not title and not description:
        return None
    priority = raw.get("priority")
    return MeetingTask(
        title=title or "Untitled Task",
        description=description,
        due_date=_date_or_offset(raw.get("dueDate"), 7, now),
        priority=Priority(priority) if priority in {p.value for p in Priority} else Priority.MEDIUM,
    )


def _normalize_event(raw: dict, now: datetime) -> MeetingEvent | None:
    title = _text(raw.get("title"))
    description = _text(raw.get("description"))
    if not title and not description:
        return None
    start = roll_forward(_date_or_offset(raw.get("startTime"), 1, now), now)
    end = None
    if raw.get("endTime"):
        end = roll_forward(_date_or_offset(raw.get("endTime"), 1, now), now)
    if end is None or end <= start:
        end = start + timedelta(hours=1)
    return MeetingEvent(
        title=title or "Untitled Event",
        description=description,
        location=_text(raw.get("location")),
        start_time=start,
        end_time=end,
    )


def _normalize_invoice(raw: dict, now: datetime) -> MeetingInvoice | None:
    client = _text(raw.get("clientName"))
    amount = raw.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount < 0:
        amount = 0
    if not client and amount <= 0:
        return None
    return MeetingInvoice(
        client_name=client or "Unknown Client",
        amount=float(amount),
        description=_text(raw.get("description")),
        due_date=_date_or_offset(raw.get("dueDate"), 30, now),
    )


def normalize_meeting_payload(payload: dict, now: datetime) -> MeetingDetails:
    def items(key: str) -> list[dict]:
        value = payload.get(key)
        return [i for i in value if isinstance(i, dict)] if isinstance(value, list) else []

    points = payload.get("actionPoints")
    return MeetingDetails(
        summary=_text(payload.get("summary"), "No summary generated") or "No summary generated",
        action_points=[p for p in points if isinstance(p, str)] if isinstance(points, list) else [],
        tasks=[t for t in (_normalize_task(r, now) for r in items("tasks")) if t],
        events=[e for e in (_normalize_event(r, now) for r in items("events")) if e],
        invoices=[i for i in (_normalize_invoice(r, now) for r in items("invoices")) if i],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def extract_meeting_details(transcript: str, now: datetime | None = None) -> MeetingDetails:
    """Summarize a meeting transcript and pull out actionable items.

    Never raises: model or parse failures return a fallback MeetingDetails.
    """
    now = now or datetime.now()
    if not transcript or not transcript.strip():
        return MeetingDetails(
            summary="Failed to generate detailed summary. Please try again.",
            message="Processing completed with errors: Empty transcript provided",
        )

    try:
        raw = await complete(
            _SYSTEM_PROMPT.format(now=now.isoformat(timespec="minutes")),
            "Analyze this meeting transcript and extract the required details in JSON format:\n\n"
            + transcript[:MAX_TRANSCRIPT_CHARS],
            max_tokens=2000,
            json_mode=True,
            temperature=0.3,
        )
        payload = json.loads(_clean_llm_response(raw))
        if not isinstance(payload, dict):
            raise ValueError("Meeting details must be a JSON object")
    except Exception as exc:
        logger.error("Meeting extraction failed: %s", exc)
        return MeetingDetails(
            summary="Failed to generate detailed summary. Please try again.",
            message=f"Processing completed with errors: {exc}",
        )

    details = normalize_meeting_payload(payload, now)
    logger.info(
        "Meeting extracted: %d tasks, %d events, %d invoices",
        len(details.tasks), len(details.events), len(details.invoices),
    )
    return details


def save_meeting_items(stores: Stores, account_id: str, details: MeetingDetails) -> dict[str, int]:
    """Persist every extracted item for the account; returns per-kind counts."""
    for item in details.tasks:
        stores.tasks.create(Task(
            id=new_id(), account_id=account_id, title=item.title,
            description=item.description, due_date=item.due_date, priority=item.priority,
        ))
    for item in details.events:
        stores.events.create(Event(
            id=new_id(), account_id=account_id, title=item.title,
            description=item.description, location=item.location,
            start_time=item.start_time, end_time=item.end_time,
        ))
    for item in details.invoices:
        stores.invoices.create(Invoice(
            id=new_id(), account_id=account_id, client_name=item.client_name,
            amount=item.amount, description=item.description, due_date=item.due_date,
        ))
    counts = {
        "tasks": len(details.tasks),
        "events": len(details.events),
        "invoices": len(details.invoices),
    }
    logger.info("Saved meeting items for %s: %s", account_id, counts)
    return counts


def format_meeting_summary(details: MeetingDetails) -> str:
    lines = [f"📝 {details.summary}"]
    if details.action_points:
        lines += ["", "Action points:", *[f"• {p}" for p in details.action_points]]
    lines += [
        "",
        f"Saved {len(details.tasks)} task(s), {len(details.events)} event(s) "
        f"and {len(details.invoices)} invoice(s).",
    ]
    return "\n".join(lines)
