"""Tests for eve.core.dispatcher — the action table and envelope contract."""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from eve.core.dispatcher import ACTION_TABLE, ActionDispatcher, missing_fields
from eve.core.intents import (
    INTENT_TYPES,
    CancelEvent,
    CompleteTask,
    CreateEvent,
    CreateInvoice,
    CreateTask,
    FetchTasks,
    MarkInvoicePaid,
    NoAction,
    SendInvoice,
)


@pytest.fixture
def dispatcher(stores):
    return ActionDispatcher(stores)


class TestActionTable:
    def test_every_intent_has_a_handler(self):
        assert set(ACTION_TABLE) == set(INTENT_TYPES)

    def test_required_fields_exist_on_intent(self):
        from pydantic.alias_generators import to_snake

        for name, spec in ACTION_TABLE.items():
            fields = INTENT_TYPES[name].model_fields
            for required in spec.required:
                assert to_snake(required) in fields, (name, required)

    @pytest.mark.parametrize("action, required", [
        ("create_task", ("title",)),
        ("update_task", ("taskId",)),
        ("complete_task", ("taskId",)),
        ("cancel_event", ("eventId",)),
        ("mark_invoice_paid", ("invoiceId",)),
        ("send_invoice", ("invoiceId", "email")),
    ])
    def test_required_lists(self, action, required):
        assert ACTION_TABLE[action].required == required

    def test_fetch_actions_require_nothing(self):
        assert all(not spec.required for name, spec in ACTION_TABLE.items() if "fetch" in name)

    def test_missing_fields_helper(self):
        assert missing_fields(ACTION_TABLE["send_invoice"], SendInvoice(invoice_id="x")) == ["email"]


class TestDispatch:
    @pytest.mark.asyncio
    async def test_missing_fields_short_circuit(self, dispatcher, account):
        envelope = await dispatcher.dispatch(account.id, SendInvoice())
        assert envelope.success is False
        assert envelope.missing_fields == ["invoiceId", "email"]
        assert envelope.error == "Missing required fields: invoiceId, email"
        assert envelope.action == "send_invoice"

    @pytest.mark.asyncio
    async def test_blank_string_counts_as_missing(self, dispatcher, account):
        envelope = await dispatcher.dispatch(account.id, CreateTask(title="  "))
        assert envelope.missing_fields == ["title"]

    @pytest.mark.asyncio
    async def test_handler_not_called_when_fields_missing(self, dispatcher, account):
        handler = AsyncMock()
        spec = ACTION_TABLE["complete_task"]
        with patch.dict(ACTION_TABLE, {"complete_task": spec.__class__(
                spec.name, spec.domain, spec.required, handler)}):
            await dispatcher.dispatch(account.id, CompleteTask())
        handler.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success(self, dispatcher, account, stores):
        envelope = await dispatcher.dispatch(account.id, CreateTask(title="Order tiles"))
        assert envelope.success
        assert envelope.action == "create_task"
        assert stores.tasks.get(account.id, envelope.data.id).title == "Order tiles"

    @pytest.mark.asyncio
    async def test_domain_error_becomes_failure(self, dispatcher, account):
        yesterday = (datetime.now() - timedelta(days=1)).isoformat()
        envelope = await dispatcher.dispatch(
            account.id, CreateTask(title="Late", due_date=yesterday))
        assert envelope.success is False
        assert envelope.error == "Due date cannot be in the past"

    @pytest.mark.asyncio
    async def test_not_found_becomes_failure(self, dispatcher, account):
        envelope = await dispatcher.dispatch(account.id, MarkInvoicePaid(invoice_id="Globex"))
        assert envelope.success is False
        assert envelope.error == "Invoice not found or no permission"

    @pytest.mark.asyncio
    async def test_invalid_params_carry_missing_fields(self, dispatcher, account):
        envelope = await dispatcher.dispatch(account.id, FetchTasks(status="someday"))
        assert envelope.success is False
        assert envelope.missing_fields == ["status"]

    @pytest.mark.asyncio
    async def test_invariant_violation(self, dispatcher, account):
        envelope = await dispatcher.dispatch(account.id, CreateEvent(
            title="Visit", start_time="2026-06-01 10:00", end_time="2026-06-01 09:00"))
        assert envelope.error == "End time must be after start time"

    @pytest.mark.asyncio
    async def test_unexpected_exception_never_escapes(self, dispatcher, account):
        spec = ACTION_TABLE["cancel_event"]
        boom = AsyncMock(side_effect=RuntimeError("disk on fire"))
        with patch.dict(ACTION_TABLE, {"cancel_event": spec.__class__(
                spec.name, spec.domain, spec.required, boom)}):
            envelope = await dispatcher.dispatch(account.id, CancelEvent(event_id="x"))
        assert envelope.success is False
        assert envelope.error == "Unexpected error: disk on fire"

    @pytest.mark.asyncio
    async def test_no_action(self, dispatcher, account):
        envelope = await dispatcher.dispatch(account.id, NoAction(response="Hi!"))
        assert envelope.success
        assert envelope.action == "none"

    @pytest.mark.asyncio
    async def test_email_port_passed_through(self, stores, account):
        sender = AsyncMock()
        sender.send = AsyncMock(return_value={"success": True, "response": "id"})
        dispatcher = ActionDispatcher(stores, email=sender)
        envelope = await dispatcher.dispatch(account.id, CreateInvoice(
            client_name="Acme", amount=10, email="c@acme.com"))
        assert envelope.email_status == "sent"
        sender.send.assert_awaited_once()
