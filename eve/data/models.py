"""
Eve Assistant — Data Models.

Every task, event and invoice is owned by exactly one account; stores
scope all lookups by account id.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def new_id() -> str:
    return uuid.uuid4().hex


def is_valid_id(value: object) -> bool:
    """True when ``value`` looks like an internal id rather than free text."""
    return isinstance(value, str) and bool(_ID_RE.match(value))


class TaskStatus(str, Enum):
    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class InvoiceStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"


@dataclass
class Account:
    """The end user. Created at signup or lazily from a messaging contact."""

    id: str
    display_name: str
    trade_type: str = "Other"       # personalizes the system prompt
    email: str | None = None
    phone: str | None = None
    password_hash: str | None = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Conversation:
    """Exactly one per account."""

    id: str
    account_id: str
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)


@dataclass
class Message:
    id: str
    conversation_id: str
    account_id: str
    sender: str                     # "user" | "assistant"
    text: str
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Task:
    """A to-do item.

    ``completed`` is True iff ``status`` is Completed iff ``completed_at``
    is set; use mark_completed()/reopen() rather than poking the fields.
    """

    id: str
    account_id: str
    title: str
    description: str = ""
    completed: bool = False
    completed_at: datetime | None = None
    due_date: datetime | None = None
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.NOT_STARTED
    tags: list[str] = field(default_factory=list)
    project_id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def mark_completed(self, now: datetime) -> None:
        self.completed = True
        self.status = TaskStatus.COMPLETED
        if self.completed_at is None:
            self.completed_at = now

    def reopen(self, status: TaskStatus = TaskStatus.IN_PROGRESS) -> None:
        if status is TaskStatus.COMPLETED:
            status = TaskStatus.IN_PROGRESS
        self.completed = False
        self.completed_at = None
        self.status = status


@dataclass
class Event:
    """A calendar entry. ``end_time``, when set, is strictly after ``start_time``."""

    id: str
    account_id: str
    title: str
    start_time: datetime
    end_time: datetime | None = None
    description: str = ""
    location: str = ""
    cancelled: bool = False
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class LineItem:
    description: str
    quantity: float = 1
    unit_amount: float = 0

    @property
    def line_total(self) -> float:
        return self.quantity * self.unit_amount


@dataclass
class Invoice:
    """A client invoice, optionally mirrored into Xero."""

    id: str
    account_id: str
    client_name: str
    amount: float
    due_date: datetime
    issue_date: datetime = field(default_factory=datetime.now)
    status: InvoiceStatus = InvoiceStatus.PENDING
    paid_date: datetime | None = None
    description: str = ""
    invoice_number: str | None = None
    items: list[LineItem] = field(default_factory=list)
    last_sent: datetime | None = None
    sent_to: str | None = None
    xero_invoice_id: str | None = None
    xero_status: str | None = None
    xero_sync_error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def apply_status_rules(self, now: datetime) -> None:
        """Overdue when past due and unpaid; paid_date set iff Paid."""
        if self.status is InvoiceStatus.PAID:
            if self.paid_date is None:
                self.paid_date = now
            return
        self.paid_date = None
        if self.due_date < now:
            self.status = InvoiceStatus.OVERDUE
        elif self.status is InvoiceStatus.OVERDUE:
            self.status = InvoiceStatus.PENDING

    @property
    def identifier(self) -> str:
        """Human-facing reference: '#INV-7' or '(ID: ...)'."""
        if self.invoice_number:
            return f"#{self.invoice_number}"
        return f"(ID: {self.id})"
