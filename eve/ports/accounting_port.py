"""Accounting port — abstract interface for mirroring invoices externally.

The dispatcher depends on this protocol and on AccountingSession, never on
a specific accounting provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from eve.core.errors import ExternalSyncError


class AccountingErrorKind(str, Enum):
    AUTH_EXPIRED = "auth_expired"
    PERMISSION_DENIED = "permission_denied"
    BAD_REQUEST = "bad_request"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    UNKNOWN = "unknown"


class AccountingError(ExternalSyncError):
    """Raised when any accounting provider operation fails."""

    def __init__(self, kind: AccountingErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class AccountingPort(Protocol):
    """Abstract accounting interface used by the invoice handlers.

    Each call returns a dict with at least ``external_id``, ``status`` and
    ``total``.
    """

    async def create_invoice(self, tenant_id: str, invoice: dict[str, Any]) -> dict: ...

    async def update_invoice(
        self, tenant_id: str, external_id: str, invoice: dict[str, Any]
    ) -> dict: ...

    async def mark_invoice_as_paid(
        self, tenant_id: str, external_id: str, amount: float, paid_on: str
    ) -> dict: ...


@dataclass(frozen=True)
class AccountingSession:
    """The active accounting connection, handed to the dispatcher per call."""

    client: AccountingPort | None = None
    tenant_id: str | None = None

    @property
    def connected(self) -> bool:
        return self.client is not None and bool(self.tenant_id)
