"""
Eve Assistant — Entity resolution.

Maps a loose reference ("the dentist appointment", "$250", "Acme") or an id
onto one stored record. An id always wins; otherwise each domain tries its
strategies in order and the first non-empty match set decides, picking the
most recently created record.

Task titles match exactly (case-insensitive); event titles match as a
substring ("meeting with Dana" finds "Site meeting with Dana").
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from dateutil import parser as date_parser

from eve.core.dates import start_of_day
from eve.data.db import Query, Stores
from eve.data.models import is_valid_id

logger = logging.getLogger(__name__)

_AMOUNT_RE = re.compile(r"\$?(\d+(?:\.\d{1,2})?)")

# A strategy turns an identifier into candidate queries, tried in order;
# an empty list means the strategy doesn't apply.
Strategy = Callable[[str], "list[Query]"]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def exact_title(identifier: str) -> list[Query]:
    return [Query(regex={"title": f"^{re.escape(identifier)}$"})]


def partial_title(identifier: str) -> list[Query]:
    return [Query(regex={"title": re.escape(identifier)})]


def invoice_amount(identifier: str) -> list[Query]:
    match = _AMOUNT_RE.search(identifier)
    if not match:
        return []
    return [Query(equals={"amount": float(match.group(1))})]


def invoice_date(identifier: str) -> list[Query]:
    try:
        parsed = date_parser.parse(identifier, default=start_of_day(datetime.now()))
    except (ValueError, OverflowError):
        return []
    day = start_of_day(parsed.replace(tzinfo=None))
    window = (day, day + timedelta(days=1) - timedelta(microseconds=1))
    return [Query(ranges={"issue_date": window}), Query(ranges={"due_date": window})]


def partial_client(identifier: str) -> list[Query]:
    return [Query(regex={"client_name": re.escape(identifier)})]


@dataclass(frozen=True)
class DomainStrategies:
    store_attr: str
    strategies: tuple[Strategy, ...]


DOMAIN_STRATEGIES: dict[str, DomainStrategies] = {
    "task": DomainStrategies("tasks", (exact_title,)),
    "event": DomainStrategies("events", (partial_title,)),
    "invoice": DomainStrategies("invoices", (invoice_amount, invoice_date, partial_client)),
}


# ---------------------------------------------------------------------------
# Locator
# ---------------------------------------------------------------------------


class EntityLocator:
    """Finds the single best-matching record for a reference."""

    def __init__(self, stores: Stores) -> None:
        self._stores = stores

    def resolve(self, account_id: str, domain: str, identifier: str | None):
        """Return the matching record, or None when nothing matches."""
        if domain not in DOMAIN_STRATEGIES:
            raise ValueError(f"Unknown domain: {domain!r}")
        if identifier is None or not str(identifier).strip():
            return None

        identifier = str(identifier).strip()
        config = DOMAIN_STRATEGIES[domain]
        store = getattr(self._stores, config.store_attr)

        if is_valid_id(identifier):
            return store.get(account_id, identifier)

        for strategy in config.strategies:
            for query in strategy(identifier):
                record = store.find_one(account_id, query)
                if record is not None:
                    logger.info(
                        "Resolved %s %r via %s -> %s",
                        domain, identifier, strategy.__name__, record.id,
                    )
                    return record

        logger.info("No %s matches %r", domain, identifier)
        return None
