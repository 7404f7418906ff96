"""
Eve Assistant — Task actions.

Every mutation goes through Task.mark_completed()/reopen() so the
completed flag, status and completion time never drift apart.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from eve.actions.base import ActionRequest, ResultEnvelope, date_range, run_fetch, search_pattern
from eve.core.dates import parse_loose_date
from eve.core.errors import InvalidParamsError, InvariantViolation
from eve.data.db import Query
from eve.data.models import Priority, Task, TaskStatus, new_id

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 7

_STATUS_ALIASES: dict[str, TaskStatus] = {
    "not started": TaskStatus.NOT_STARTED,
    "pending": TaskStatus.NOT_STARTED,
    "todo": TaskStatus.NOT_STARTED,
    "to do": TaskStatus.NOT_STARTED,
    "in progress": TaskStatus.IN_PROGRESS,
    "in-progress": TaskStatus.IN_PROGRESS,
    "started": TaskStatus.IN_PROGRESS,
    "completed": TaskStatus.COMPLETED,
    "complete": TaskStatus.COMPLETED,
    "done": TaskStatus.COMPLETED,
    "on hold": TaskStatus.ON_HOLD,
    "on-hold": TaskStatus.ON_HOLD,
    "paused": TaskStatus.ON_HOLD,
}

SORT_FIELDS = {
    "dueDate": "due_date",
    "createdAt": "created_at",
    "completedAt": "completed_at",
    "priority": "priority",
    "title": "title",
    "status": "status",
}


def parse_status(value: str) -> TaskStatus:
    status = _STATUS_ALIASES.get(value.strip().lower())
    if status is None:
        raise InvalidParamsError(f"Invalid status: {value}", missing_fields=["status"])
    return status


def parse_priority(value: str | None, default: Priority | None) -> Priority | None:
    """Case-insensitive priority; anything unrecognised yields ``default``."""
    if not value:
        return default
    for priority in Priority:
        if priority.value.lower() == value.strip().lower():
            return priority
    logger.info("Unknown priority %r, using %s", value, default)
    return default


def _apply_status(task: Task, status: TaskStatus, now: datetime) -> None:
    if status is TaskStatus.COMPLETED:
        task.mark_completed(now)
    else:
        task.reopen(status)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def create_task(req: ActionRequest) -> ResultEnvelope:
    params, now = req.intent, req.now

    due = parse_loose_date(params.due_date, default=now + timedelta(days=DEFAULT_DUE_DAYS), now=now)
    if due < now and not params.allow_past_due:
        raise InvariantViolation("Due date cannot be in the past")

    task = Task(
        id=new_id(),
        account_id=req.account_id,
        title=params.title.strip(),
        description=params.description or "",
        due_date=due,
        priority=parse_priority(params.priority, Priority.MEDIUM),
        tags=params.tags or [],
        project_id=params.project_id,
        created_at=now,
    )
    if params.status:
        _apply_status(task, parse_status(params.status), now)

    req.stores.tasks.create(task)
    logger.info("Task created: %s (due %s)", task.title, task.due_date)
    return ResultEnvelope.ok(task)


async def update_task(req: ActionRequest) -> ResultEnvelope:
    params, now = req.intent, req.now
    task = req.resolve("task", params.task_id)

    if params.title:
        task.title = params.title.strip()
    if params.description is not None:
        task.description = params.description
    if params.due_date is not None:
        due = parse_loose_date(params.due_date, now=now)
        if due is None:
            raise InvalidParamsError("Invalid due date format", missing_fields=["dueDate"])
        task.due_date = due
    if params.priority:
        task.priority = parse_priority(params.priority, task.priority)
    if params.tags is not None:
        task.tags = params.tags
    if params.project_id is not None:
        task.project_id = params.project_id or None

    if params.completed is True:
        task.mark_completed(now)
    elif params.completed is False:
        task.reopen(parse_status(params.status) if params.status else TaskStatus.IN_PROGRESS)
    elif params.status:
        _apply_status(task, parse_status(params.status), now)

    req.stores.tasks.update(task)
    return ResultEnvelope.ok(task)


async def complete_task(req: ActionRequest) -> ResultEnvelope:
    task = req.resolve("task", req.intent.task_id)
    task.mark_completed(req.now)
    req.stores.tasks.update(task)
    logger.info("Task completed: %s", task.id)
    return ResultEnvelope.ok(task)


async def reopen_task(req: ActionRequest) -> ResultEnvelope:
    params = req.intent
    task = req.resolve("task", params.task_id)
    task.reopen(parse_status(params.status) if params.status else TaskStatus.IN_PROGRESS)
    req.stores.tasks.update(task)
    return ResultEnvelope.ok(task)


async def fetch_tasks(req: ActionRequest) -> ResultEnvelope:
    params, now = req.intent, req.now
    query = Query()

    if params.status:
        lowered = params.status.strip().lower()
        if lowered in ("open", "pending"):
            query.equals["completed"] = False
        elif lowered == "overdue":
            query.equals["completed"] = False
            query.ranges["due_date"] = (None, now)
        else:
            query.equals["status"] = parse_status(params.status)
    if params.completed is not None:
        query.equals["completed"] = params.completed

    priority = parse_priority(params.priority, None)
    if priority is not None:
        query.equals["priority"] = priority
    if params.tag:
        query.tags_all.append(params.tag)
    if params.tags:
        query.tags_all.extend(params.tags)
    if params.project_id:
        query.equals["project_id"] = params.project_id

    window = date_range(params.start_date, params.end_date, now)
    if window is not None:
        low, high = window
        if "due_date" in query.ranges:
            high = min(h for h in (high, now) if h is not None)
        query.ranges["due_date"] = (low, high)
    if params.search:
        query.search = (("title", "description"), search_pattern(params.search))

    if params.include_completed and not params.status:
        return run_fetch(req.stores.tasks, req.account_id, query, params,
                         SORT_FIELDS, "completed_at", default_descending=True)
    return run_fetch(req.stores.tasks, req.account_id, query, params,
                     SORT_FIELDS, "due_date")
