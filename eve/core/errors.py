"""Domain error taxonomy.

Handlers raise these; the dispatcher turns them into failure envelopes and
the assistant entry point turns anything left into a safe reply.
"""

from __future__ import annotations

NOT_FOUND_MESSAGE = "not found or no permission"


class EveError(Exception):
    """Base class for every recoverable domain error."""


class InvalidParamsError(EveError):
    """A required parameter is missing or malformed."""

    def __init__(self, message: str, missing_fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing_fields = missing_fields or []


class NotFoundError(EveError):
    """Entity resolution failed, or the record belongs to another account.

    Both causes share one message so record existence never leaks.
    """

    def __init__(self, domain: str) -> None:
        super().__init__(f"{domain.capitalize()} {NOT_FOUND_MESSAGE}")
        self.domain = domain


class UpstreamParseError(EveError):
    """The language model reply was not valid structured output."""


class ExternalSyncError(EveError):
    """Accounting or email delivery failed."""


class InvariantViolation(EveError):
    """A write would break an entity invariant (end before start, negative amount)."""
