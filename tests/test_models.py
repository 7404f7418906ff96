"""Tests for eve.data.models — dataclasses and their state rules."""

from datetime import datetime, timedelta

from eve.data.models import (
    Invoice,
    InvoiceStatus,
    LineItem,
    Task,
    TaskStatus,
    is_valid_id,
    new_id,
)

NOW = datetime(2026, 3, 10, 12, 0)


def _invoice(**overrides):
    fields = dict(
        id=new_id(), account_id="acc", client_name="Acme", amount=100.0,
        due_date=NOW + timedelta(days=10),
    )
    fields.update(overrides)
    return Invoice(**fields)


class TestIds:
    def test_new_id_is_valid(self):
        assert is_valid_id(new_id())

    def test_new_ids_are_unique(self):
        assert new_id() != new_id()

    def test_free_text_is_not_an_id(self):
        assert not is_valid_id("Dentist appointment")
        assert not is_valid_id("")
        assert not is_valid_id(None)
        assert not is_valid_id(123)


class TestTaskCompletion:
    def test_mark_completed_sets_all_three(self):
        task = Task(id=new_id(), account_id="acc", title="Order tiles")
        task.mark_completed(NOW)
        assert task.completed is True
        assert task.status is TaskStatus.COMPLETED
        assert task.completed_at == NOW

    def test_mark_completed_keeps_first_completion_time(self):
        task = Task(id=new_id(), account_id="acc", title="Order tiles")
        task.mark_completed(NOW)
        task.mark_completed(NOW + timedelta(hours=1))
        assert task.completed_at == NOW

    def test_reopen_clears_completion(self):
        task = Task(id=new_id(), account_id="acc", title="Order tiles")
        task.mark_completed(NOW)
        task.reopen()
        assert task.completed is False
        assert task.completed_at is None
        assert task.status is TaskStatus.IN_PROGRESS

    def test_reopen_never_lands_on_completed(self):
        task = Task(id=new_id(), account_id="acc", title="Order tiles")
        task.mark_completed(NOW)
        task.reopen(TaskStatus.COMPLETED)
        assert task.status is TaskStatus.IN_PROGRESS
        assert task.completed is False


class TestInvoiceStatusRules:
    def test_past_due_becomes_overdue(self):
        invoice = _invoice(due_date=NOW - timedelta(days=1))
        invoice.apply_status_rules(NOW)
        assert invoice.status is InvoiceStatus.OVERDUE

    def test_future_due_stays_pending(self):
        invoice = _invoice()
        invoice.apply_status_rules(NOW)
        assert invoice.status is InvoiceStatus.PENDING

    def test_overdue_reverts_when_due_moves_out(self):
        invoice = _invoice(status=InvoiceStatus.OVERDUE)
        invoice.apply_status_rules(NOW)
        assert invoice.status is InvoiceStatus.PENDING

    def test_paid_is_never_overdue(self):
        invoice = _invoice(due_date=NOW - timedelta(days=5), status=InvoiceStatus.PAID)
        invoice.apply_status_rules(NOW)
        assert invoice.status is InvoiceStatus.PAID
        assert invoice.paid_date == NOW

    def test_unpaid_clears_paid_date(self):
        invoice = _invoice(paid_date=NOW)
        invoice.apply_status_rules(NOW)
        assert invoice.paid_date is None


class TestInvoiceIdentifier:
    def test_uses_invoice_number(self):
        assert _invoice(invoice_number="INV-7").identifier == "#INV-7"

    def test_falls_back_to_id(self):
        invoice = _invoice()
        assert invoice.identifier == f"(ID: {invoice.id})"


class TestLineItem:
    def test_line_total(self):
        assert LineItem(description="Pipe", quantity=3, unit_amount=12.5).line_total == 37.5
