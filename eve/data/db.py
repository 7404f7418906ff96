"""
Eve Assistant — SQLite storage.

One table per entity. Every lookup is scoped by account id, so a record
owned by someone else is simply not found.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Generic, TypeVar

from eve.core.errors import InvariantViolation
from eve.data.models import (
    Account,
    Conversation,
    Event,
    Invoice,
    InvoiceStatus,
    LineItem,
    Message,
    Priority,
    Task,
    TaskStatus,
    new_id,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Column helpers
# ---------------------------------------------------------------------------


def _ts(value: datetime | None) -> str | None:
    # Fixed-width ISO strings sort chronologically in SQL.
    return value.isoformat(timespec="microseconds") if value else None


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _sql_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return _ts(value)
    return value


def _regexp(pattern: str, value: Any) -> bool:
    if value is None:
        return False
    return re.search(pattern, str(value), re.IGNORECASE) is not None


def _resolve_db_path(db_path: str | None) -> str:
    if db_path is None:
        from eve.config import settings
        db_path = settings.DATABASE_PATH
    if db_path == ":memory:" or db_path.startswith("file::memory:"):
        raise ValueError(
            "DATABASE_PATH must be a file path: in-memory SQLite is not supported "
            "because every store call opens its own connection"
        )
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    return db_path


def _connect(db_path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.create_function("REGEXP", 2, _regexp)
    return conn


# ---------------------------------------------------------------------------
# Query builder
# ---------------------------------------------------------------------------


@dataclass
class Query:
    """Read filter for entity stores.

    ``regex`` and ``search`` patterns are matched case-insensitively;
    ``search`` matches when any of its columns matches.
    """

    equals: dict[str, Any] = field(default_factory=dict)
    ranges: dict[str, tuple[datetime | None, datetime | None]] = field(default_factory=dict)
    regex: dict[str, str] = field(default_factory=dict)
    search: tuple[tuple[str, ...], str] | None = None
    tags_all: list[str] = field(default_factory=list)
    sort_by: str | None = None
    descending: bool = False
    skip: int = 0
    limit: int | None = None


class _EntityStore(Generic[T]):
    """Shared CRUD for account-owned records."""

    _TABLE = ""
    _SCHEMA = ""
    _COLUMNS: tuple[str, ...] = ()
    _DEFAULT_SORT = "created_at"

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_db_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return _connect(self._db_path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(self._SCHEMA)
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self._TABLE}_account "
                f"ON {self._TABLE} (account_id)"
            )

    # Subclass hooks ---------------------------------------------------------

    def _to_row(self, record: T) -> dict[str, Any]:
        raise NotImplementedError

    def _row_to_record(self, row: sqlite3.Row) -> T:
        raise NotImplementedError

    def _before_write(self, record: T) -> None:
        pass

    def _before_read(self, conn: sqlite3.Connection, account_id: str) -> None:
        pass

    # Query translation -----------------------------------------------------

    def _column(self, name: str) -> str:
        if name not in self._COLUMNS:
            raise ValueError(f"Unknown column for {self._TABLE}: {name!r}")
        return name

    def _where(self, account_id: str, query: Query) -> tuple[str, list[Any]]:
        clauses = ["account_id = ?"]
        params: list[Any] = [account_id]

        for name, value in query.equals.items():
            col = self._column(name)
            if value is None:
                clauses.append(f"{col} IS NULL")
            else:
                clauses.append(f"{col} = ?")
                params.append(_sql_value(value))

        for name, (low, high) in query.ranges.items():
            col = self._column(name)
            if low is not None:
                clauses.append(f"{col} >= ?")
                params.append(_sql_value(low))
            if high is not None:
                clauses.append(f"{col} <= ?")
                params.append(_sql_value(high))

        for name, pattern in query.regex.items():
            clauses.append(f"{self._column(name)} REGEXP ?")
            params.append(pattern)

        if query.search is not None:
            cols, pattern = query.search
            clauses.append(
                "(" + " OR ".join(f"{self._column(c)} REGEXP ?" for c in cols) + ")"
            )
            params.extend([pattern] * len(cols))

        for tag in query.tags_all:
            clauses.append(
                f"EXISTS (SELECT 1 FROM json_each({self._TABLE}.tags) "
                "WHERE json_each.value = ?)"
            )
            params.append(tag)

        return " AND ".join(clauses), params

    # Public API -------------------------------------------------------------

    def create(self, record: T) -> T:
        self._before_write(record)
        row = self._to_row(record)
        cols = ", ".join(row)
        marks = ", ".join(f":{c}" for c in row)
        with self._connect() as conn:
            conn.execute(f"INSERT INTO {self._TABLE} ({cols}) VALUES ({marks})", row)
        logger.info("Created %s id=%s", self._TABLE[:-1], row["id"])
        return record

    def update(self, record: T) -> T:
        self._before_write(record)
        row = self._to_row(record)
        assignments = ", ".join(f"{c} = :{c}" for c in row if c not in ("id", "account_id"))
        with self._connect() as conn:
            conn.execute(
                f"UPDATE {self._TABLE} SET {assignments} "
                "WHERE id = :id AND account_id = :account_id",
                row,
            )
        return record

    def get(self, account_id: str, record_id: str) -> T | None:
        with self._connect() as conn:
            self._before_read(conn, account_id)
            row = conn.execute(
                f"SELECT * FROM {self._TABLE} WHERE id = ? AND account_id = ?",
                (record_id, account_id),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def delete(self, account_id: str, record_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self._TABLE} WHERE id = ? AND account_id = ?",
                (record_id, account_id),
            )
        return cursor.rowcount > 0

    def find(self, account_id: str, query: Query | None = None) -> list[T]:
        query = query or Query()
        where, params = self._where(account_id, query)
        sort_col = self._column(query.sort_by or self._DEFAULT_SORT)
        direction = "DESC" if query.descending else "ASC"
        sql = (
            f"SELECT * FROM {self._TABLE} WHERE {where} "
            f"ORDER BY {sort_col} IS NULL, {sort_col} {direction}, created_at DESC"
        )
        if query.limit is not None or query.skip:
            sql += " LIMIT ? OFFSET ?"
            params.extend([query.limit if query.limit is not None else -1, query.skip])
        with self._connect() as conn:
            self._before_read(conn, account_id)
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_record(r) for r in rows]

    def find_one(self, account_id: str, query: Query) -> T | None:
        """Most recently created match, or None."""
        query.sort_by = "created_at"
        query.descending = True
        query.limit = 1
        matches = self.find(account_id, query)
        return matches[0] if matches else None

    def count(self, account_id: str, query: Query | None = None) -> int:
        where, params = self._where(account_id, query or Query())
        with self._connect() as conn:
            self._before_read(conn, account_id)
            row = conn.execute(
                f"SELECT COUNT(*) FROM {self._TABLE} WHERE {where}", params
            ).fetchone()
        return row[0]


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskDB(_EntityStore[Task]):
    """SQLite-backed storage for tasks."""

    _TABLE = "tasks"
    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS tasks (
            id           TEXT PRIMARY KEY,
            account_id   TEXT NOT NULL,
            title        TEXT NOT NULL,
            description  TEXT NOT NULL DEFAULT '',
            completed    INTEGER NOT NULL DEFAULT 0,
            completed_at TEXT,
            due_date     TEXT,
            priority     TEXT NOT NULL DEFAULT 'Medium',
            status       TEXT NOT NULL DEFAULT 'Not Started',
            tags         TEXT NOT NULL DEFAULT '[]',
            project_id   TEXT,
            created_at   TEXT NOT NULL
        )
    """
    _COLUMNS = (
        "id", "account_id", "title", "description", "completed", "completed_at",
        "due_date", "priority", "status", "tags", "project_id", "created_at",
    )
    _DEFAULT_SORT = "due_date"

    def _to_row(self, task: Task) -> dict[str, Any]:
        return {
            "id": task.id,
            "account_id": task.account_id,
            "title": task.title,
            "description": task.description,
            "completed": int(task.completed),
            "completed_at": _ts(task.completed_at),
            "due_date": _ts(task.due_date),
            "priority": task.priority.value,
            "status": task.status.value,
            "tags": json.dumps(task.tags),
            "project_id": task.project_id,
            "created_at": _ts(task.created_at),
        }

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            account_id=row["account_id"],
            title=row["title"],
            description=row["description"],
            completed=bool(row["completed"]),
            completed_at=_dt(row["completed_at"]),
            due_date=_dt(row["due_date"]),
            priority=Priority(row["priority"]),
            status=TaskStatus(row["status"]),
            tags=json.loads(row["tags"]),
            project_id=row["project_id"],
            created_at=_dt(row["created_at"]),
        )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventDB(_EntityStore[Event]):
    """SQLite-backed storage for calendar events."""

    _TABLE = "events"
    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS events (
            id          TEXT PRIMARY KEY,
            account_id  TEXT NOT NULL,
            title       TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            location    TEXT NOT NULL DEFAULT '',
            start_time  TEXT NOT NULL,
            end_time    TEXT,
            cancelled   INTEGER NOT NULL DEFAULT 0,
            created_at  TEXT NOT NULL
        )
    """
    _COLUMNS = (
        "id", "account_id", "title", "description", "location",
        "start_time", "end_time", "cancelled", "created_at",
    )
    _DEFAULT_SORT = "start_time"

    def _before_write(self, event: Event) -> None:
        if event.end_time is not None and event.end_time <= event.start_time:
            raise InvariantViolation("End time must be after start time")

    def _to_row(self, event: Event) -> dict[str, Any]:
        return {
            "id": event.id,
            "account_id": event.account_id,
            "title": event.title,
            "description": event.description,
            "location": event.location,
            "start_time": _ts(event.start_time),
            "end_time": _ts(event.end_time),
            "cancelled": int(event.cancelled),
            "created_at": _ts(event.created_at),
        }

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Event:
        return Event(
            id=row["id"],
            account_id=row["account_id"],
            title=row["title"],
            description=row["description"],
            location=row["location"],
            start_time=_dt(row["start_time"]),
            end_time=_dt(row["end_time"]),
            cancelled=bool(row["cancelled"]),
            created_at=_dt(row["created_at"]),
        )


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


class InvoiceDB(_EntityStore[Invoice]):
    """SQLite-backed storage for invoices.

    The overdue rule runs on every write and before every read, so callers
    always see Overdue for unpaid invoices past their due date.
    """

    _TABLE = "invoices"
    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS invoices (
            id              TEXT PRIMARY KEY,
            account_id      TEXT NOT NULL,
            client_name     TEXT NOT NULL,
            amount          REAL NOT NULL,
            status          TEXT NOT NULL DEFAULT 'Pending',
            issue_date      TEXT NOT NULL,
            due_date        TEXT NOT NULL,
            paid_date       TEXT,
            description     TEXT NOT NULL DEFAULT '',
            invoice_number  TEXT,
            items           TEXT NOT NULL DEFAULT '[]',
            last_sent       TEXT,
            sent_to         TEXT,
            xero_invoice_id TEXT,
            xero_status     TEXT,
            xero_sync_error TEXT,
            created_at      TEXT NOT NULL
        )
    """
    _COLUMNS = (
        "id", "account_id", "client_name", "amount", "status", "issue_date",
        "due_date", "paid_date", "description", "invoice_number", "items",
        "last_sent", "sent_to", "xero_invoice_id", "xero_status",
        "xero_sync_error", "created_at",
    )
    _DEFAULT_SORT = "due_date"

    def _before_write(self, invoice: Invoice) -> None:
        if invoice.amount < 0:
            raise InvariantViolation("Amount cannot be negative")
        invoice.apply_status_rules(datetime.now())

    def _before_read(self, conn: sqlite3.Connection, account_id: str) -> None:
        conn.execute(
            "UPDATE invoices SET status = ? "
            "WHERE account_id = ? AND status = ? AND due_date < ?",
            (InvoiceStatus.OVERDUE.value, account_id,
             InvoiceStatus.PENDING.value, _ts(datetime.now())),
        )

    def _to_row(self, invoice: Invoice) -> dict[str, Any]:
        return {
            "id": invoice.id,
            "account_id": invoice.account_id,
            "client_name": invoice.client_name,
            "amount": invoice.amount,
            "status": invoice.status.value,
            "issue_date": _ts(invoice.issue_date),
            "due_date": _ts(invoice.due_date),
            "paid_date": _ts(invoice.paid_date),
            "description": invoice.description,
            "invoice_number": invoice.invoice_number,
            "items": json.dumps([
                {"description": i.description, "quantity": i.quantity, "unit_amount": i.unit_amount}
                for i in invoice.items
            ]),
            "last_sent": _ts(invoice.last_sent),
            "sent_to": invoice.sent_to,
            "xero_invoice_id": invoice.xero_invoice_id,
            "xero_status": invoice.xero_status,
            "xero_sync_error": invoice.xero_sync_error,
            "created_at": _ts(invoice.created_at),
        }

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> Invoice:
        invoice = Invoice(
            id=row["id"],
            account_id=row["account_id"],
            client_name=row["client_name"],
            amount=row["amount"],
            status=InvoiceStatus(row["status"]),
            issue_date=_dt(row["issue_date"]),
            due_date=_dt(row["due_date"]),
            paid_date=_dt(row["paid_date"]),
            description=row["description"],
            invoice_number=row["invoice_number"],
            items=[LineItem(**item) for item in json.loads(row["items"])],
            last_sent=_dt(row["last_sent"]),
            sent_to=row["sent_to"],
            xero_invoice_id=row["xero_invoice_id"],
            xero_status=row["xero_status"],
            xero_sync_error=row["xero_sync_error"],
            created_at=_dt(row["created_at"]),
        )
        invoice.apply_status_rules(datetime.now())
        return invoice


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class AccountDB:
    """SQLite-backed storage for accounts."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_db_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return _connect(self._db_path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS accounts (
                    id            TEXT PRIMARY KEY,
                    display_name  TEXT NOT NULL,
                    trade_type    TEXT NOT NULL DEFAULT 'Other',
                    email         TEXT UNIQUE,
                    phone         TEXT UNIQUE,
                    password_hash TEXT,
                    created_at    TEXT NOT NULL
                )
            """)

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            display_name=row["display_name"],
            trade_type=row["trade_type"],
            email=row["email"],
            phone=row["phone"],
            password_hash=row["password_hash"],
            created_at=_dt(row["created_at"]),
        )

    def create(
        self,
        display_name: str,
        trade_type: str = "Other",
        email: str | None = None,
        phone: str | None = None,
        password_hash: str | None = None,
    ) -> Account:
        account = Account(
            id=new_id(),
            display_name=display_name,
            trade_type=trade_type,
            email=email,
            phone=phone,
            password_hash=password_hash,
        )
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO accounts
                   (id, display_name, trade_type, email, phone, password_hash, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (account.id, display_name, trade_type, email, phone,
                 password_hash, _ts(account.created_at)),
            )
        logger.info("Created account id=%s (%s)", account.id, display_name)
        return account

    def get(self, account_id: str) -> Account | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE id = ?", (account_id,)
            ).fetchone()
        return self._row_to_account(row) if row else None

    def get_by_phone(self, phone: str) -> Account | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM accounts WHERE phone = ?", (phone,)
            ).fetchone()
        return self._row_to_account(row) if row else None

    def get_or_create_by_phone(self, phone: str, display_name: str | None = None) -> Account:
        """Look up a messaging contact, creating an account on first contact."""
        account = self.get_by_phone(phone)
        if account is not None:
            return account

        from eve.config import settings

        return self.create(
            display_name=display_name or f"User {phone}",
            trade_type=settings.DEFAULT_TRADE,
            email=f"channel.{phone}@eveai.ai",
            phone=phone,
        )


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class ConversationDB:
    """One conversation per account plus its ordered messages."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = _resolve_db_path(db_path)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return _connect(self._db_path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id         TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS messages (
                    id              TEXT PRIMARY KEY,
                    conversation_id TEXT NOT NULL,
                    account_id      TEXT NOT NULL,
                    sender          TEXT NOT NULL,
                    text            TEXT NOT NULL,
                    created_at      TEXT NOT NULL
                )
            """)

    @staticmethod
    def _row_to_conversation(row: sqlite3.Row) -> Conversation:
        return Conversation(
            id=row["id"],
            account_id=row["account_id"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            account_id=row["account_id"],
            sender=row["sender"],
            text=row["text"],
            created_at=_dt(row["created_at"]),
        )

    def get_or_create(self, account_id: str) -> Conversation:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE account_id = ?", (account_id,)
            ).fetchone()
            if row:
                return self._row_to_conversation(row)
            conversation = Conversation(id=new_id(), account_id=account_id)
            conn.execute(
                "INSERT OR IGNORE INTO conversations (id, account_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (conversation.id, account_id,
                 _ts(conversation.created_at), _ts(conversation.updated_at)),
            )
            row = conn.execute(
                "SELECT * FROM conversations WHERE account_id = ?", (account_id,)
            ).fetchone()
        return self._row_to_conversation(row)

    def add_message(self, conversation: Conversation, sender: str, text: str) -> Message:
        message = Message(
            id=new_id(),
            conversation_id=conversation.id,
            account_id=conversation.account_id,
            sender=sender,
            text=text,
        )
        with self._connect() as conn:
            conn.execute(
                """INSERT INTO messages
                   (id, conversation_id, account_id, sender, text, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (message.id, message.conversation_id, message.account_id,
                 sender, text, _ts(message.created_at)),
            )
            conn.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?",
                (_ts(message.created_at), conversation.id),
            )
        return message

    def history(self, account_id: str, limit: int | None = None) -> list[Message]:
        """Messages in ascending creation order; ``limit`` keeps the newest N."""
        sql = (
            "SELECT * FROM messages WHERE account_id = ? "
            "ORDER BY created_at DESC, rowid DESC"
        )
        params: list[Any] = [account_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._row_to_message(r) for r in reversed(rows)]

    def clear(self, account_id: str) -> int:
        """Purge all messages, keeping the conversation itself."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM messages WHERE account_id = ?", (account_id,)
            )
        logger.info("Cleared %d messages for account %s", cursor.rowcount, account_id)
        return cursor.rowcount


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


@dataclass
class Stores:
    accounts: AccountDB
    conversations: ConversationDB
    tasks: TaskDB
    events: EventDB
    invoices: InvoiceDB

    @classmethod
    def open(cls, db_path: str | None = None) -> Stores:
        db_path = _resolve_db_path(db_path)
        return cls(
            accounts=AccountDB(db_path),
            conversations=ConversationDB(db_path),
            tasks=TaskDB(db_path),
            events=EventDB(db_path),
            invoices=InvoiceDB(db_path),
        )
