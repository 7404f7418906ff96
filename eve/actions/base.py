"""
Eve Assistant — Shared action plumbing.

Request/result types every domain handler uses, plus the fetch-query helper
shared by fetch_tasks, fetch_events and fetch_invoices.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from eve.core.dates import end_of_day, parse_loose_date
from eve.core.errors import InvalidParamsError, NotFoundError
from eve.core.resolver import EntityLocator
from eve.data.db import Query, Stores
from eve.ports.accounting_port import AccountingSession
from eve.ports.email_port import EmailPort

logger = logging.getLogger(__name__)

DEFAULT_FETCH_LIMIT = 100


@dataclass
class ResultEnvelope:
    """Uniform dispatcher result.

    ``sync_status`` is "ok", "skipped" or "failed" for the accounting mirror;
    ``email_status`` is "sent", "failed" or None when no email was asked for.
    """

    success: bool
    action: str = ""
    data: Any = None
    error: str | None = None
    missing_fields: list[str] = field(default_factory=list)
    meta: dict[str, int] | None = None
    email_status: str | None = None
    email_error: str | None = None
    sync_status: str = "skipped"
    sync_error: str | None = None

    @classmethod
    def ok(cls, data: Any = None, **kwargs: Any) -> ResultEnvelope:
        return cls(success=True, data=data, **kwargs)

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> ResultEnvelope:
        return cls(success=False, error=error, **kwargs)


@dataclass
class ActionRequest:
    """Everything a handler needs for one dispatched intent."""

    account_id: str
    intent: Any
    stores: Stores
    now: datetime
    accounting: AccountingSession = field(default_factory=AccountingSession)
    email: EmailPort | None = None

    def resolve(self, domain: str, reference: str | None):
        """Locate the target record, or raise NotFoundError."""
        record = EntityLocator(self.stores).resolve(self.account_id, domain, reference)
        if record is None:
            raise NotFoundError(domain)
        return record


# ---------------------------------------------------------------------------
# Fetch helpers
# ---------------------------------------------------------------------------


def date_range(
    start: str | None, end: str | None, now: datetime
) -> tuple[datetime | None, datetime | None] | None:
    """Parse an inclusive date range; a bare end date covers its whole day."""
    if not start and not end:
        return None
    low = parse_loose_date(start, now=now) if start else None
    high = parse_loose_date(end, now=now) if end else None
    if start and low is None:
        raise InvalidParamsError("Invalid start date format", missing_fields=["startDate"])
    if end and high is None:
        raise InvalidParamsError("Invalid end date format", missing_fields=["endDate"])
    if high is not None and high.time() == datetime.min.time():
        high = end_of_day(high)
    return low, high


def search_pattern(text: str) -> str:
    return re.escape(text.strip())


def run_fetch(
    store: Any,
    account_id: str,
    query: Query,
    params: Any,
    sort_fields: dict[str, str],
    default_sort: str,
    default_descending: bool = False,
) -> ResultEnvelope:
    """Apply sort/pagination from ``params`` and return data plus meta."""
    sort_col = sort_fields.get(params.sort_by or "", None)
    if sort_col is None:
        query.sort_by, query.descending = default_sort, default_descending
    else:
        query.sort_by = sort_col
        query.descending = (params.sort_order or "asc").lower() in ("desc", "descending", "-1")

    limit = params.limit if params.limit is not None else DEFAULT_FETCH_LIMIT
    skip = params.skip or 0
    query.limit, query.skip = limit, skip

    total = store.count(account_id, query)
    records = store.find(account_id, query)
    logger.info("Fetched %d/%d records for %s", len(records), total, account_id)
    return ResultEnvelope.ok(
        records,
        meta={"total": total, "returned": len(records), "limit": limit, "skip": skip},
    )
