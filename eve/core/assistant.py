"""
Eve Assistant — Conversation entry point.

Every channel (Telegram text, voice notes, ...) calls handle_message() with
an account id and plain text, and gets back a Reply. Each turn persists the
user message and exactly one assistant message, even when everything in
between fails.
"""

from __future__ import annotations

import logging
from datetime import datetime

from eve.core.context import gather_context
from eve.core.dispatcher import ActionDispatcher
from eve.core.errors import EveError, UpstreamParseError
from eve.core.intents import ClarificationRequest
from eve.core.interpreter import clarification_reply, interpret, prepare_intent
from eve.core.synthesizer import Reply, SideEffect, failure_text, synthesize
from eve.data.db import Stores
from eve.data.models import Message
from eve.ports.accounting_port import AccountingSession

logger = logging.getLogger(__name__)

PARSE_ERROR_REPLY = (
    "I encountered an issue processing your request. Please try again.\n\nError: {error}"
)
GENERIC_ERROR_REPLY = "Sorry, something went wrong on my side. Please try again in a moment."


class Assistant:
    """Runs one conversational turn end to end."""

    def __init__(
        self,
        stores: Stores,
        dispatcher: ActionDispatcher | None = None,
        accounting: AccountingSession | None = None,
    ) -> None:
        self._stores = stores
        self._dispatcher = dispatcher or ActionDispatcher(stores)
        self._accounting = accounting or AccountingSession()

    async def handle_message(
        self, account_id: str, text: str, voice_input: bool = False
    ) -> Reply:
        """Interpret, dispatch and answer one utterance; never raises on domain errors."""
        from eve.config import settings

        conversations = self._stores.conversations
        conversation = conversations.get_or_create(account_id)
        history = conversations.history(account_id, limit=settings.HISTORY_LIMIT)
        conversations.add_message(conversation, "user", text)

        try:
            reply = await self._run_turn(account_id, text, history, voice_input)
        except UpstreamParseError as exc:
            logger.warning("Unparseable model reply for %s: %s", account_id, exc)
            reply = Reply(text=PARSE_ERROR_REPLY.format(error=exc))
        except EveError as exc:
            logger.info("Turn for %s ended with domain error: %s", account_id, exc)
            reply = Reply(text=failure_text(str(exc)))
        except Exception:
            logger.exception("Turn failed for %s", account_id)
            reply = Reply(text=GENERIC_ERROR_REPLY)

        if voice_input and SideEffect.SPEAK_REPLY not in reply.side_effects:
            reply.side_effects.append(SideEffect.SPEAK_REPLY)

        conversations.add_message(conversation, "assistant", reply.text)
        return reply

    async def _run_turn(
        self,
        account_id: str,
        text: str,
        history: list[Message],
        voice_input: bool,
    ) -> Reply:
        now = datetime.now()
        context = gather_context(self._stores, account_id, now)

        result = await interpret(account_id, context, history, text, now)
        if isinstance(result, ClarificationRequest):
            return Reply(text=clarification_reply(result))

        intent = prepare_intent(result, context, history)
        envelope = await self._dispatcher.dispatch(account_id, intent, self._accounting, now)
        return synthesize(intent, envelope, voice_input)

    def clear_conversation(self, account_id: str) -> int:
        """Purge the account's messages; the conversation itself stays."""
        return self._stores.conversations.clear(account_id)
