"""
Eve Assistant — Intent types.

The closed set of actions the model may ask for. Raw model JSON is turned
into one of these at the boundary; anything that doesn't fit is an
UpstreamParseError.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from eve.core.errors import UpstreamParseError


class _Params(BaseModel):
    """Base for every intent: camelCase on the wire, unknown keys dropped."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    action: str = ""
    response: str = ""

    @property
    def domain(self) -> str:
        for name in ("task", "event", "invoice"):
            if name in self.action:
                return name
        return "other"

    @property
    def is_fetch(self) -> bool:
        return "fetch" in self.action

    def present(self, name: str) -> bool:
        """True when the parameter (snake_case name) carries a usable value."""
        value = getattr(self, name, None)
        if isinstance(value, str):
            return bool(value.strip())
        return value is not None


# Dates stay as raw strings here; handlers run them through parse_loose_date.
DateInput = Union[str, None]


class _FetchParams(_Params):
    start_date: DateInput = None
    end_date: DateInput = None
    search: str | None = None
    sort_by: str | None = None
    sort_order: str | None = None
    limit: int | None = Field(default=None, ge=0)
    skip: int | None = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class _TaskFields(_Params):
    title: str | None = None
    description: str | None = None
    due_date: DateInput = None
    priority: str | None = None
    status: str | None = None
    tags: list[str] | None = None
    project_id: str | None = None


class CreateTask(_TaskFields):
    action: Literal["create_task"] = "create_task"
    allow_past_due: bool = False


class UpdateTask(_TaskFields):
    action: Literal["update_task"] = "update_task"
    task_id: str | None = None
    completed: bool | None = None


class CompleteTask(_Params):
    action: Literal["complete_task"] = "complete_task"
    task_id: str | None = None
    title: str | None = None


class ReopenTask(_Params):
    action: Literal["reopen_task"] = "reopen_task"
    task_id: str | None = None
    title: str | None = None
    status: str | None = None


class FetchTasks(_FetchParams):
    action: Literal["fetch_tasks"] = "fetch_tasks"
    status: str | None = None
    completed: bool | None = None
    priority: str | None = None
    tag: str | None = None
    tags: list[str] | None = None
    project_id: str | None = None
    include_completed: bool = False


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class _EventFields(_Params):
    title: str | None = None
    description: str | None = None
    location: str | None = None
    start_time: DateInput = None
    end_time: DateInput = None


class CreateEvent(_EventFields):
    action: Literal["create_event"] = "create_event"


class UpdateEvent(_EventFields):
    action: Literal["update_event"] = "update_event"
    event_id: str | None = None


class CancelEvent(_Params):
    action: Literal["cancel_event"] = "cancel_event"
    event_id: str | None = None
    title: str | None = None


class DeleteEvent(_Params):
    action: Literal["delete_event"] = "delete_event"
    event_id: str | None = None
    title: str | None = None


class FetchEvents(_FetchParams):
    action: Literal["fetch_events"] = "fetch_events"
    location: str | None = None
    include_cancelled: bool = False


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


class LineItemParams(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    description: str = "Invoice item"
    quantity: float = 1
    unit_amount: float | None = None
    amount: float | None = None


class _InvoiceFields(_Params):
    client_name: str | None = None
    amount: float | None = None
    description: str | None = None
    date: DateInput = None
    due_date: DateInput = None
    status: str | None = None
    invoice_number: str | None = None
    items: list[LineItemParams] | None = None
    email: str | None = None
    send_email: bool | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def strip_currency(cls, v: Any) -> Any:
        if isinstance(v, str):
            cleaned = v.replace("$", "").replace(",", "").strip()
            return cleaned or None
        return v


class CreateInvoice(_InvoiceFields):
    action: Literal["create_invoice"] = "create_invoice"


class UpdateInvoice(_InvoiceFields):
    action: Literal["update_invoice"] = "update_invoice"
    invoice_id: str | None = None


class MarkInvoicePaid(_Params):
    action: Literal["mark_invoice_paid"] = "mark_invoice_paid"
    invoice_id: str | None = None
    client_name: str | None = None
    email: str | None = None
    send_email: bool | None = None


class SendInvoice(_Params):
    action: Literal["send_invoice"] = "send_invoice"
    invoice_id: str | None = None
    client_name: str | None = None
    email: str | None = None


class FetchInvoices(_FetchParams):
    action: Literal["fetch_invoices"] = "fetch_invoices"
    status: str | None = None
    client_name: str | None = None


# ---------------------------------------------------------------------------
# Chat-only turn and clarification
# ---------------------------------------------------------------------------


class NoAction(_Params):
    """The model answered conversationally; nothing to dispatch."""

    action: Literal["none"] = "none"


class ClarificationRequest(BaseModel):
    field: str = ""
    question: str
    options: list[str] = []
    response: str = ""


Intent = Union[
    CreateTask, UpdateTask, CompleteTask, ReopenTask, FetchTasks,
    CreateEvent, UpdateEvent, CancelEvent, DeleteEvent, FetchEvents,
    CreateInvoice, UpdateInvoice, MarkInvoicePaid, SendInvoice, FetchInvoices,
    NoAction,
]

INTENT_TYPES: dict[str, type[_Params]] = {
    cls.model_fields["action"].default: cls
    for cls in (
        CreateTask, UpdateTask, CompleteTask, ReopenTask, FetchTasks,
        CreateEvent, UpdateEvent, CancelEvent, DeleteEvent, FetchEvents,
        CreateInvoice, UpdateInvoice, MarkInvoicePaid, SendInvoice, FetchInvoices,
        NoAction,
    )
}

ACTION_ALIASES: dict[str, str] = {
    "uncomplete_task": "reopen_task",
    "pay_invoice": "mark_invoice_paid",
    "resend_invoice": "send_invoice",
    "": "none",
    "chat": "none",
    "respond": "none",
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _flatten_fetch_params(params: dict[str, Any]) -> dict[str, Any]:
    """Lift the model's nested ``filter``/``sort`` objects to flat keys."""
    flat = {k: v for k, v in params.items() if k not in ("filter", "sort")}

    filt = params.get("filter")
    if isinstance(filt, dict):
        date_range = filt.get("dateRange")
        for key, value in filt.items():
            if key != "dateRange":
                flat.setdefault(key, value)
        if isinstance(date_range, dict):
            flat.setdefault("startDate", date_range.get("start"))
            flat.setdefault("endDate", date_range.get("end"))

    sort = params.get("sort")
    if isinstance(sort, dict):
        flat.setdefault("sortBy", sort.get("field"))
        flat.setdefault("sortOrder", sort.get("order"))

    return flat


def _normalize_tags(params: dict[str, Any]) -> None:
    tags = params.get("tags")
    if isinstance(tags, str):
        params["tags"] = [t.strip() for t in tags.split(",") if t.strip()]


def parse_clarification(payload: dict[str, Any]) -> ClarificationRequest | None:
    raw = payload.get("needsClarification")
    if not raw:
        return None
    if isinstance(raw, str):
        raw = {"question": raw}
    if not isinstance(raw, dict) or not raw.get("question"):
        raise UpstreamParseError("needsClarification must carry a question")
    try:
        return ClarificationRequest(
            field=raw.get("field") or "",
            question=raw["question"],
            options=[str(o) for o in raw.get("options") or []],
            response=payload.get("response") or "",
        )
    except ValidationError as exc:
        raise UpstreamParseError(f"Invalid clarification: {exc}") from exc


def parse_intent(payload: dict[str, Any]) -> Intent:
    """Map the model's ``{action, params, response}`` object onto an Intent."""
    if not isinstance(payload, dict):
        raise UpstreamParseError("Model reply is not a JSON object")

    action = payload.get("action") or ""
    if not isinstance(action, str):
        raise UpstreamParseError(f"Invalid action: {action!r}")
    action = action.strip().lower()
    action = ACTION_ALIASES.get(action, action)

    intent_type = INTENT_TYPES.get(action)
    if intent_type is None:
        raise UpstreamParseError(f"Unknown action: {action}")

    params = payload.get("params") or {}
    if not isinstance(params, dict):
        raise UpstreamParseError("params must be a JSON object")
    params = _flatten_fetch_params(params)
    _normalize_tags(params)
    params.pop("action", None)

    try:
        return intent_type.model_validate(
            {**params, "response": payload.get("response") or ""}
        )
    except ValidationError as exc:
        raise UpstreamParseError(f"Invalid parameters for {action}: {exc}") from exc
