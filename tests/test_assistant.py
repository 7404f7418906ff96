"""Tests for eve.core.assistant — one conversational turn end to end."""

import json
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from eve.core.assistant import GENERIC_ERROR_REPLY, Assistant
from eve.core.dispatcher import ActionDispatcher
from eve.core.synthesizer import SideEffect
from eve.data.models import Invoice, new_id


def _model(action="none", params=None, response="", **extra):
    return AsyncMock(return_value=json.dumps(
        {"action": action, "params": params or {}, "response": response, **extra}))


def _senders(history):
    return [(m.sender, m.text) for m in history]


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_create_task_flow(self, stores, account):
        assistant = Assistant(stores)
        llm = _model("create_task", {"title": "Order tiles"}, "Added 'Order tiles' to your list.")

        with patch("eve.core.interpreter.complete", llm):
            reply = await assistant.handle_message(account.id, "remind me to order tiles")

        assert reply.text == "Added 'Order tiles' to your list."
        assert reply.envelope.success
        assert [t.title for t in stores.tasks.find(account.id)] == ["Order tiles"]
        assert _senders(stores.conversations.history(account.id)) == [
            ("user", "remind me to order tiles"),
            ("assistant", "Added 'Order tiles' to your list."),
        ]

    @pytest.mark.asyncio
    async def test_history_excludes_current_message(self, stores, account):
        assistant = Assistant(stores)
        with patch("eve.core.interpreter.complete", _model(response="Hi Dana")):
            await assistant.handle_message(account.id, "hello")

        llm = _model(response="Sure")
        with patch("eve.core.interpreter.complete", llm):
            await assistant.handle_message(account.id, "second")

        kwargs = llm.call_args.kwargs
        assert kwargs["history"] == [
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "Hi Dana"},
        ]
        assert llm.call_args.args[1] == "second"

    @pytest.mark.asyncio
    async def test_clarification_skips_dispatch(self, stores, account):
        dispatcher = ActionDispatcher(stores)
        dispatcher.dispatch = AsyncMock()
        assistant = Assistant(stores, dispatcher=dispatcher)
        llm = _model(
            "send_invoice", {},
            needsClarification={"field": "email", "question": "What email should I use?"},
        )

        with patch("eve.core.interpreter.complete", llm):
            reply = await assistant.handle_message(account.id, "send the invoice")

        assert "What email should I use?" in reply.text
        dispatcher.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unparseable_reply_apologizes(self, stores, account):
        assistant = Assistant(stores)
        llm = AsyncMock(return_value="definitely not json")

        with patch("eve.core.interpreter.complete", llm):
            reply = await assistant.handle_message(account.id, "hmm")

        assert reply.text.startswith(
            "I encountered an issue processing your request. Please try again.")
        assert "Error:" in reply.text
        history = stores.conversations.history(account.id)
        assert [m.sender for m in history] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_llm_outage_gets_generic_reply(self, stores, account):
        assistant = Assistant(stores)
        llm = AsyncMock(side_effect=RuntimeError("provider down"))

        with patch("eve.core.interpreter.complete", llm):
            reply = await assistant.handle_message(account.id, "hello")

        assert reply.text == GENERIC_ERROR_REPLY
        assert len(stores.conversations.history(account.id)) == 2

    @pytest.mark.asyncio
    async def test_failed_action_reply(self, stores, account):
        assistant = Assistant(stores)
        llm = _model("complete_task", {"taskId": "ghost task"}, "Done!")

        with patch("eve.core.interpreter.complete", llm):
            reply = await assistant.handle_message(account.id, "finish ghost task")

        assert reply.text == "I couldn't complete that action: Task not found or no permission"

    @pytest.mark.asyncio
    async def test_pre_dispatch_check_failure(self, stores, account):
        assistant = Assistant(stores)
        llm = _model("update_task", {})

        with patch("eve.core.interpreter.complete", llm):
            reply = await assistant.handle_message(account.id, "change it")

        assert reply.text.startswith("I couldn't complete that action:")
        assert "taskId" in reply.text

    @pytest.mark.asyncio
    async def test_voice_input_requests_speech(self, stores, account):
        assistant = Assistant(stores)
        with patch("eve.core.interpreter.complete", _model(response="Hi")):
            reply = await assistant.handle_message(account.id, "hello", voice_input=True)
        assert SideEffect.SPEAK_REPLY in reply.side_effects

    @pytest.mark.asyncio
    async def test_voice_input_speaks_errors_too(self, stores, account):
        assistant = Assistant(stores)
        with patch("eve.core.interpreter.complete", AsyncMock(return_value="nope")):
            reply = await assistant.handle_message(account.id, "hello", voice_input=True)
        assert reply.side_effects == [SideEffect.SPEAK_REPLY]

    @pytest.mark.asyncio
    async def test_create_invoice_attaches_pdf(self, stores, account):
        assistant = Assistant(stores)
        due = (datetime.now() + timedelta(days=14)).strftime("%Y-%m-%d")
        llm = _model("create_invoice", {"clientName": "Acme", "amount": 300, "dueDate": due})

        with patch("eve.core.interpreter.complete", llm):
            reply = await assistant.handle_message(account.id, "invoice Acme 300")

        assert reply.side_effects == [SideEffect.ATTACH_INVOICE_PDF]
        assert reply.invoice.client_name == "Acme"
        assert reply.text == "Invoice processed successfully for Acme."

    @pytest.mark.asyncio
    async def test_send_invoice_uses_account_email(self, stores):
        owner = stores.accounts.create("Bob", trade_type="Plumber", email="bob@example.com")
        invoice = stores.invoices.create(Invoice(
            id=new_id(), account_id=owner.id, client_name="Acme", amount=120.0,
            due_date=datetime.now() + timedelta(days=10),
        ))
        sender = AsyncMock()
        sender.send = AsyncMock(return_value={"success": True, "response": "msg-1"})
        assistant = Assistant(stores, dispatcher=ActionDispatcher(stores, email=sender))

        with patch("eve.core.interpreter.complete", _model("send_invoice", {})):
            reply = await assistant.handle_message(owner.id, "send my latest invoice")

        assert reply.text == "Invoice sent successfully to bob@example.com for Acme."
        assert sender.send.call_args.args[0] == "bob@example.com"
        assert stores.invoices.get(owner.id, invoice.id).sent_to == "bob@example.com"


class TestClearConversation:
    @pytest.mark.asyncio
    async def test_clear(self, stores, account):
        assistant = Assistant(stores)
        with patch("eve.core.interpreter.complete", _model(response="Hi")):
            await assistant.handle_message(account.id, "hello")

        assert assistant.clear_conversation(account.id) == 2
        assert stores.conversations.history(account.id) == []
