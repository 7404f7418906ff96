"""Tests for eve.core.context — account snapshot and its prompt rendering."""

from datetime import datetime, timedelta

from eve.core.context import (
    AccountContext,
    format_context,
    format_task_line,
    gather_context,
)
from eve.data.models import Event, Invoice, Task, new_id


class TestGatherContext:
    def test_open_tasks_only_sorted_by_due(self, stores, account, now):
        later = Task(id=new_id(), account_id=account.id, title="Later",
                     due_date=now + timedelta(days=5))
        sooner = Task(id=new_id(), account_id=account.id, title="Sooner",
                      due_date=now + timedelta(days=1))
        done = Task(id=new_id(), account_id=account.id, title="Done")
        done.mark_completed(now)
        for task in (later, sooner, done):
            stores.tasks.create(task)

        context = gather_context(stores, account.id, now)
        assert [t.title for t in context.tasks] == ["Sooner", "Later"]

    def test_events_within_the_coming_week(self, stores, account, now):
        def add(title, start, cancelled=False):
            stores.events.create(Event(id=new_id(), account_id=account.id, title=title,
                                       start_time=start, cancelled=cancelled))

        add("Tomorrow", now + timedelta(days=1))
        add("Earlier today", now - timedelta(hours=2))
        add("Far away", now + timedelta(days=20))
        add("Called off", now + timedelta(days=2), cancelled=True)

        context = gather_context(stores, account.id, now)
        assert [e.title for e in context.events] == ["Earlier today", "Tomorrow"]

    def test_invoices_most_recent_first(self, stores, account, now):
        for client, issued in (("Old", datetime(2026, 1, 1)), ("New", datetime(2026, 2, 1))):
            stores.invoices.create(Invoice(
                id=new_id(), account_id=account.id, client_name=client, amount=10,
                issue_date=issued, due_date=datetime.now() + timedelta(days=30),
            ))
        context = gather_context(stores, account.id, now)
        assert [i.client_name for i in context.invoices] == ["New", "Old"]
        assert context.latest_invoice.client_name == "New"

    def test_limit(self, stores, account, now):
        for i in range(4):
            stores.tasks.create(Task(id=new_id(), account_id=account.id, title=f"t{i}"))
        assert len(gather_context(stores, account.id, now, limit=2).tasks) == 2

    def test_scoped_by_account(self, stores, account, other_account, now):
        stores.tasks.create(Task(id=new_id(), account_id=other_account.id, title="Theirs"))
        assert gather_context(stores, account.id, now).tasks == []

    def test_account_and_trade(self, stores, account, now):
        context = gather_context(stores, account.id, now)
        assert context.account.id == account.id
        assert context.trade == "Electrician"


class TestFormatContext:
    def test_empty_sections(self):
        text = format_context(AccountContext(account=None))
        assert "UPCOMING EVENTS (0):" in text
        assert "OPEN TASKS (0):" in text
        assert "INVOICES (0, 0 pending, 0 overdue):" in text
        assert text.count("- None") == 3

    def test_lines_carry_ids(self, now):
        task = Task(id=new_id(), account_id="a", title="Order tiles", due_date=now)
        event = Event(id=new_id(), account_id="a", title="Visit", start_time=now,
                      end_time=now + timedelta(hours=1), location="Main St")
        invoice = Invoice(id=new_id(), account_id="a", client_name="Acme", amount=250,
                          due_date=now + timedelta(days=3), invoice_number="INV-9")
        text = format_context(
            AccountContext(account=None, tasks=[task], events=[event], invoices=[invoice]), now
        )
        assert f"[ID: {task.id}] Order tiles" in text
        assert f"[ID: {event.id}] Visit" in text
        assert "Location: Main St" in text
        assert f"[ID: {invoice.id}] Acme | $250.00 | Pending" in text
        assert "No. INV-9" in text

    def test_overdue_task_annotated(self, now):
        task = Task(id=new_id(), account_id="a", title="Late", due_date=now - timedelta(days=3))
        assert "(3 days overdue)" in format_task_line(task, now)

    def test_only_first_five_rendered(self, now):
        tasks = [Task(id=new_id(), account_id="a", title=f"task-{i}") for i in range(7)]
        text = format_context(AccountContext(account=None, tasks=tasks), now)
        assert "OPEN TASKS (7):" in text
        assert "task-4" in text
        assert "task-5" not in text
