"""Tests for eve.core.resolver — mapping loose references onto records."""

from datetime import datetime, timedelta

import pytest

from eve.core.resolver import EntityLocator, invoice_amount, invoice_date
from eve.data.models import Event, Invoice, Task, new_id


@pytest.fixture
def locator(stores):
    return EntityLocator(stores)


def _add_task(stores, account_id, title, created_at=None):
    return stores.tasks.create(Task(id=new_id(), account_id=account_id, title=title,
                                    created_at=created_at or datetime.now()))


def _add_event(stores, account_id, title):
    return stores.events.create(Event(id=new_id(), account_id=account_id, title=title,
                                      start_time=datetime(2026, 6, 1, 10)))


def _add_invoice(stores, account_id, client="Acme", amount=250.0, issued=None, created_at=None):
    return stores.invoices.create(Invoice(
        id=new_id(), account_id=account_id, client_name=client, amount=amount,
        issue_date=issued or datetime.now(), due_date=datetime.now() + timedelta(days=30),
        created_at=created_at or datetime.now(),
    ))


class TestResolveById:
    @pytest.mark.parametrize("domain", ["task", "event", "invoice"])
    def test_id_returns_that_exact_record(self, stores, account, locator, domain):
        records = {
            "task": lambda: _add_task(stores, account.id, "Same"),
            "event": lambda: _add_event(stores, account.id, "Same"),
            "invoice": lambda: _add_invoice(stores, account.id),
        }
        first = records[domain]()
        records[domain]()
        assert locator.resolve(account.id, domain, first.id).id == first.id

    def test_id_of_other_account_not_found(self, stores, account, other_account, locator):
        task = _add_task(stores, other_account.id, "Theirs")
        assert locator.resolve(account.id, "task", task.id) is None

    def test_id_never_falls_back_to_heuristics(self, stores, account, locator):
        _add_task(stores, account.id, "Real task")
        assert locator.resolve(account.id, "task", new_id()) is None


class TestTaskResolution:
    def test_exact_title_case_insensitive(self, stores, account, locator):
        task = _add_task(stores, account.id, "Order Tiles")
        assert locator.resolve(account.id, "task", "order tiles").id == task.id

    def test_partial_title_does_not_match(self, stores, account, locator):
        _add_task(stores, account.id, "Order tiles for kitchen")
        assert locator.resolve(account.id, "task", "order tiles") is None

    def test_regex_characters_are_literal(self, stores, account, locator):
        _add_task(stores, account.id, "Fix sink")
        assert locator.resolve(account.id, "task", ".*") is None

    def test_most_recent_wins(self, stores, account, locator):
        _add_task(stores, account.id, "Dup", created_at=datetime(2026, 1, 1))
        newer = _add_task(stores, account.id, "Dup", created_at=datetime(2026, 2, 1))
        assert locator.resolve(account.id, "task", "dup").id == newer.id


class TestEventResolution:
    def test_partial_title_matches(self, stores, account, locator):
        event = _add_event(stores, account.id, "Site meeting with Dana")
        assert locator.resolve(account.id, "event", "meeting with dana").id == event.id

    def test_scoped_by_account(self, stores, account, other_account, locator):
        _add_event(stores, other_account.id, "Site meeting")
        assert locator.resolve(account.id, "event", "site meeting") is None


class TestInvoiceResolution:
    def test_amount_first(self, stores, account, locator):
        match = _add_invoice(stores, account.id, "Acme", 250.0)
        _add_invoice(stores, account.id, "Beta", 100.5)
        assert locator.resolve(account.id, "invoice", "$250").id == match.id

    def test_decimal_amount(self, stores, account, locator):
        match = _add_invoice(stores, account.id, "Beta", 100.5)
        assert locator.resolve(account.id, "invoice", "the 100.50 one").id == match.id

    def test_date_matches_issue_day(self, stores, account, locator):
        match = _add_invoice(stores, account.id, "Acme", issued=datetime(2026, 4, 2, 15, 0))
        _add_invoice(stores, account.id, "Beta", issued=datetime(2026, 4, 3, 9, 0))
        assert locator.resolve(account.id, "invoice", "April 2 2026").id == match.id

    def test_partial_client_name(self, stores, account, locator):
        match = _add_invoice(stores, account.id, "Acme Plumbing Supplies")
        assert locator.resolve(account.id, "invoice", "acme").id == match.id

    def test_nothing_matches(self, stores, account, locator):
        _add_invoice(stores, account.id, "Acme")
        assert locator.resolve(account.id, "invoice", "Globex") is None


class TestLocatorEdges:
    def test_blank_identifier(self, account, locator):
        assert locator.resolve(account.id, "task", "  ") is None
        assert locator.resolve(account.id, "task", None) is None

    def test_unknown_domain(self, account, locator):
        with pytest.raises(ValueError):
            locator.resolve(account.id, "project", "x")


class TestStrategies:
    def test_amount_strategy_skips_text(self):
        assert invoice_amount("Acme") == []

    def test_amount_strategy_extracts(self):
        assert invoice_amount("$99.99")[0].equals == {"amount": 99.99}

    def test_date_strategy_skips_text(self):
        assert invoice_date("Acme") == []

    def test_date_strategy_builds_day_windows(self):
        issue, due = invoice_date("2026-04-02")
        low, high = issue.ranges["issue_date"]
        assert low == datetime(2026, 4, 2)
        assert high.date() == low.date()
        assert "due_date" in due.ranges
