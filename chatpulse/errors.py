"""
chatpulse.errors — Failure Taxonomy
====================================

Every failure path in the services layer raises one of these, so callers
(cogs, tests) can tell a rejected input from a storage outage from a
business-rule refusal.
"""

from __future__ import annotations


class ChatPulseError(Exception):
    """Base class for all ChatPulse failures."""


class ValidationError(ChatPulseError, ValueError):
    """Malformed identifier or out-of-range quantity; nothing was mutated."""


class StorageError(ChatPulseError):
    """The database was unreachable or a write failed.

    The transaction in flight has been rolled back.  The original
    SQLAlchemy exception is chained as ``__cause__``.
    """


class StateInvariantViolation(ChatPulseError):
    """A mutation would break a ledger invariant."""


class InsufficientFunds(StateInvariantViolation):
    """Spend or removal exceeds the current balance."""

    def __init__(self, requested: int, available: int, currency: str = "coins") -> None:
        self.requested = requested
        self.available = available
        self.currency = currency
        super().__init__(
            f"Insufficient {currency}: requested {requested}, available {available}"
        )


class UserNotFound(ChatPulseError, LookupError):
    """Administrative operation targeted a user with no record."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")
