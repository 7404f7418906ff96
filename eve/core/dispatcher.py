"""
Eve Assistant — Action Dispatcher.

A table maps every action name to its handler, required parameters and
entity domain. dispatch() checks required fields, runs the handler and
always returns a ResultEnvelope: domain errors become failure envelopes,
never exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable

from pydantic.alias_generators import to_snake

from eve.actions import event_actions, invoice_actions, task_actions
from eve.actions.base import ActionRequest, ResultEnvelope
from eve.core.errors import EveError, InvalidParamsError
from eve.core.intents import Intent
from eve.data.db import Stores
from eve.ports.accounting_port import AccountingSession
from eve.ports.email_port import EmailPort

logger = logging.getLogger(__name__)

Handler = Callable[[ActionRequest], Awaitable[ResultEnvelope]]


@dataclass(frozen=True)
class ActionSpec:
    name: str
    domain: str
    required: tuple[str, ...]    # camelCase parameter names
    handler: Handler


async def _no_action(req: ActionRequest) -> ResultEnvelope:
    return ResultEnvelope.ok()


ACTION_TABLE: dict[str, ActionSpec] = {
    spec.name: spec
    for spec in (
        ActionSpec("create_task", "task", ("title",), task_actions.create_task),
        ActionSpec("update_task", "task", ("taskId",), task_actions.update_task),
        ActionSpec("complete_task", "task", ("taskId",), task_actions.complete_task),
        ActionSpec("reopen_task", "task", ("taskId",), task_actions.reopen_task),
        ActionSpec("fetch_tasks", "task", (), task_actions.fetch_tasks),
        ActionSpec("create_event", "event", ("title", "startTime"), event_actions.create_event),
        ActionSpec("update_event", "event", ("eventId",), event_actions.update_event),
        ActionSpec("cancel_event", "event", ("eventId",), event_actions.cancel_event),
        ActionSpec("delete_event", "event", ("eventId",), event_actions.delete_event),
        ActionSpec("fetch_events", "event", (), event_actions.fetch_events),
        ActionSpec("create_invoice", "invoice", ("clientName", "amount"), invoice_actions.create_invoice),
        ActionSpec("update_invoice", "invoice", ("invoiceId",), invoice_actions.update_invoice),
        ActionSpec("mark_invoice_paid", "invoice", ("invoiceId",), invoice_actions.mark_invoice_paid),
        ActionSpec("send_invoice", "invoice", ("invoiceId", "email"), invoice_actions.send_invoice),
        ActionSpec("fetch_invoices", "invoice", (), invoice_actions.fetch_invoices),
        ActionSpec("none", "other", (), _no_action),
    )
}


def missing_fields(spec: ActionSpec, intent: Intent) -> list[str]:
    return [name for name in spec.required if not intent.present(to_snake(name))]


class ActionDispatcher:
    """Routes typed intents to their domain handlers."""

    def __init__(self, stores: Stores, email: EmailPort | None = None) -> None:
        self._stores = stores
        self._email = email

    async def dispatch(
        self,
        account_id: str,
        intent: Intent,
        accounting: AccountingSession | None = None,
        now: datetime | None = None,
    ) -> ResultEnvelope:
        spec = ACTION_TABLE.get(intent.action)
        if spec is None:
            return ResultEnvelope.failure(f"Unknown action: {intent.action}", action=intent.action)

        missing = missing_fields(spec, intent)
        if missing:
            logger.info("%s missing required fields: %s", spec.name, missing)
            return ResultEnvelope.failure(
                f"Missing required fields: {', '.join(missing)}",
                action=spec.name,
                missing_fields=missing,
            )

        request = ActionRequest(
            account_id=account_id,
            intent=intent,
            stores=self._stores,
            now=now or datetime.now(),
            accounting=accounting or AccountingSession(),
            email=self._email,
        )

        try:
            envelope = await spec.handler(request)
        except InvalidParamsError as exc:
            logger.info("%s rejected: %s", spec.name, exc)
            envelope = ResultEnvelope.failure(str(exc), missing_fields=exc.missing_fields)
        except EveError as exc:
            logger.info("%s failed: %s", spec.name, exc)
            envelope = ResultEnvelope.failure(str(exc))
        except Exception as exc:
            logger.exception("Unexpected error in %s", spec.name)
            envelope = ResultEnvelope.failure(f"Unexpected error: {exc}")

        envelope.action = spec.name
        logger.info(
            "Dispatched %s for %s: success=%s sync=%s",
            spec.name, account_id, envelope.success, envelope.sync_status,
        )
        return envelope
