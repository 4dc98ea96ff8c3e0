# Overview: Error taxonomy for the ledger core; callers match on ``exc.kind``.

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CREDIT_LIMIT_EXCEEDED = "CREDIT_LIMIT_EXCEEDED"
    PERSISTENCE_UNAVAILABLE = "PERSISTENCE_UNAVAILABLE"
    ENGINE_NOT_READY = "ENGINE_NOT_READY"
    ALREADY_APPLIED = "ALREADY_APPLIED"
    REMOTE_UNAVAILABLE = "REMOTE_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    CONFLICT_OR_VALIDATION = "CONFLICT_OR_VALIDATION"


class LedgerError(Exception):
    """Base class for ledger core errors."""

    kind: ErrorKind

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind.value, "details": self.details}


class NotFound(LedgerError):
    """Party, product or outbox row is unknown."""
    kind = ErrorKind.NOT_FOUND


class CreditLimitExceeded(LedgerError):
    """
    A debt-increasing entry would push a customer over the credit limit.

    The entry is rejected, never clamped.
    """
    kind = ErrorKind.CREDIT_LIMIT_EXCEEDED

    def __init__(self, party_id: str, balance_cents: int, limit_cents: int, attempted_balance_cents: int):
        super().__init__(
            f"Credit limit exceeded for customer {party_id}: "
            f"balance {balance_cents}, limit {limit_cents}, new balance would be {attempted_balance_cents}",
            details={
                "party_id": party_id,
                "balance_cents": balance_cents,
                "limit_cents": limit_cents,
                "attempted_balance_cents": attempted_balance_cents,
            },
        )
        self.party_id = party_id
        self.balance_cents = balance_cents
        self.limit_cents = limit_cents
        self.attempted_balance_cents = attempted_balance_cents


class PersistenceUnavailable(LedgerError):
    """Local storage rejected a write; in-memory state has still advanced."""
    kind = ErrorKind.PERSISTENCE_UNAVAILABLE


class EngineNotReady(LedgerError):
    """Balance engine was used before its projections were loaded."""
    kind = ErrorKind.ENGINE_NOT_READY


class AlreadyApplied(LedgerError):
    """Remote idempotency marker exists; the event was applied before."""
    kind = ErrorKind.ALREADY_APPLIED


class RemoteUnavailable(LedgerError):
    """Remote store could not be reached or kept timing out."""
    kind = ErrorKind.REMOTE_UNAVAILABLE


class NetworkError(RemoteUnavailable):
    """Connection to the remote store dropped mid-transaction."""
    kind = ErrorKind.NETWORK_ERROR


class ConflictOrValidation(LedgerError):
    """Payload or constraint problem that needs an operator to look at it."""
    kind = ErrorKind.CONFLICT_OR_VALIDATION


HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CREDIT_LIMIT_EXCEEDED: 409,
    ErrorKind.ALREADY_APPLIED: 409,
    ErrorKind.CONFLICT_OR_VALIDATION: 422,
    ErrorKind.PERSISTENCE_UNAVAILABLE: 503,
    ErrorKind.ENGINE_NOT_READY: 503,
    ErrorKind.REMOTE_UNAVAILABLE: 503,
    ErrorKind.NETWORK_ERROR: 503,
}


def http_status(exc: LedgerError) -> int:
    return HTTP_STATUS.get(exc.kind, 400)
