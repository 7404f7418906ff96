"""Email port — abstract interface for outbound email."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from eve.core.errors import ExternalSyncError


class EmailError(ExternalSyncError):
    """Raised when an email could not be delivered."""


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content_type: str
    data: bytes


class EmailPort(Protocol):
    async def send(
        self,
        to: str,
        subject: str,
        text: str = "",
        html: str = "",
        attachments: list[EmailAttachment] | None = None,
    ) -> dict: ...
