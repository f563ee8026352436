# backend/bookflow/errors.py
"""
Typed failures of the availability & booking engine.

Every error carries the HTTP status it maps to and a JSON payload.
Routers let them propagate; main.py renders them with a single handler.

Replays (idempotency key or ledger uniqueness hit) are NOT errors:
they come back as result flags (BookingResult.created, EntitlementDebit.already_debited).
"""

from typing import Any, Optional


class BookingError(Exception):
    """Base class for engine failures surfaced to the caller."""

    status_code = 500
    headers: Optional[dict[str, str]] = None

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.message, **self.extra}


class ValidationError(BookingError):
    """Malformed input. Never retried silently."""

    status_code = 400


class AuthenticationRequired(BookingError):
    """No caller identity on a route that needs one."""

    status_code = 401

    def __init__(self, message: str = "Authentication required."):
        super().__init__(message)


class NotFoundError(BookingError):
    status_code = 404


class ConflictError(BookingError):
    """Contention: re-query availability and pick again, do not blindly retry."""

    status_code = 409


class BookingConflict(ConflictError):
    def __init__(self, conflicts: list[dict], message: str = "Booking conflicts with an existing booking."):
        super().__init__(message, conflicts=conflicts)
        self.conflicts = conflicts


class BlackoutConflict(ConflictError):
    def __init__(self, blackout: dict, message: str = "This time window is blocked."):
        super().__init__(message, blackout=blackout)
        self.blackout = blackout


class InvalidStatusTransition(ConflictError):
    def __init__(self, from_status: str, to_status: str):
        super().__init__(f"Invalid status transition: {from_status} → {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class ProfileIncomplete(ConflictError):
    def __init__(self, fields: list[str]):
        super().__init__(
            "Phone number required before booking.",
            code="PROFILE_INCOMPLETE",
            fields=fields,
        )


class InsufficientEntitlement(ConflictError):
    """Membership balance problem. User-actionable."""


class NoEligibleEntitlement(InsufficientEntitlement):
    def __init__(self, message: str = "No eligible membership entitlement found."):
        super().__init__(message)


class InsufficientBalance(InsufficientEntitlement):
    def __init__(self, message: str = "Insufficient membership balance."):
        super().__init__(message)


class TransientStoreError(BookingError):
    """Lock timeout / connection trouble. Safe to retry the whole transaction."""

    status_code = 503
    headers = {"Retry-After": "1"}

    def __init__(self, message: str = "The booking store is busy, please retry."):
        super().__init__(message, retryable=True)
