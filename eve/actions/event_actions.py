"""
Eve Assistant — Event actions.

Direct user commands reject an end time that isn't after the start time.
(The meeting-extraction path auto-corrects instead; see eve.core.meeting.)
"""

from __future__ import annotations

import logging
from datetime import datetime

from eve.actions.base import ActionRequest, ResultEnvelope, date_range, run_fetch, search_pattern
from eve.core.dates import parse_loose_date
from eve.core.errors import InvariantViolation
from eve.data.db import Query
from eve.data.models import Event, new_id

logger = logging.getLogger(__name__)

SORT_FIELDS = {
    "startTime": "start_time",
    "endTime": "end_time",
    "createdAt": "created_at",
    "title": "title",
}


def _parse_required_time(value: str | None, label: str, now: datetime) -> datetime:
    parsed = parse_loose_date(value, now=now)
    if parsed is None:
        raise InvariantViolation(f"Invalid {label} time format")
    return parsed


def _check_order(start: datetime, end: datetime | None) -> None:
    if end is not None and end <= start:
        raise InvariantViolation("End time must be after start time")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def create_event(req: ActionRequest) -> ResultEnvelope:
    params, now = req.intent, req.now

    start = _parse_required_time(params.start_time, "start", now)
    end = _parse_required_time(params.end_time, "end", now) if params.end_time else None
    _check_order(start, end)

    event = Event(
        id=new_id(),
        account_id=req.account_id,
        title=params.title.strip(),
        start_time=start,
        end_time=end,
        description=params.description or "",
        location=params.location or "",
        created_at=now,
    )
    req.stores.events.create(event)
    logger.info("Event created: %s at %s", event.title, event.start_time)
    return ResultEnvelope.ok(event)


async def update_event(req: ActionRequest) -> ResultEnvelope:
    params, now = req.intent, req.now
    event = req.resolve("event", params.event_id)

    if params.title:
        event.title = params.title.strip()
    if params.description is not None:
        event.description = params.description
    if params.location is not None:
        event.location = params.location

    if params.start_time:
        new_start = _parse_required_time(params.start_time, "start", now)
        # Moving only the start keeps the original duration.
        if event.end_time is not None and not params.end_time:
            event.end_time = new_start + (event.end_time - event.start_time)
        event.start_time = new_start
    if params.end_time:
        event.end_time = _parse_required_time(params.end_time, "end", now)
    _check_order(event.start_time, event.end_time)

    req.stores.events.update(event)
    return ResultEnvelope.ok(event)


async def cancel_event(req: ActionRequest) -> ResultEnvelope:
    event = req.resolve("event", req.intent.event_id)
    event.cancelled = True
    req.stores.events.update(event)
    logger.info("Event cancelled: %s", event.id)
    return ResultEnvelope.ok(event)


async def delete_event(req: ActionRequest) -> ResultEnvelope:
    event = req.resolve("event", req.intent.event_id)
    req.stores.events.delete(req.account_id, event.id)
    logger.info("Event deleted: %s", event.id)
    return ResultEnvelope.ok(event)


async def fetch_events(req: ActionRequest) -> ResultEnvelope:
    params = req.intent
    query = Query()

    if not params.include_cancelled:
        query.equals["cancelled"] = False
    window = date_range(params.start_date, params.end_date, req.now)
    if window is not None:
        query.ranges["start_time"] = window
    if params.location:
        query.regex["location"] = search_pattern(params.location)
    if params.search:
        query.search = (("title", "description", "location"), search_pattern(params.search))

    return run_fetch(req.stores.events, req.account_id, query, params,
                     SORT_FIELDS, "start_time")
