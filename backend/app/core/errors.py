"""
Centralized error handling for the automation engine.
Exception types, predicates and a reusable mapper so routes and services stay thin and new
error types are easy to add.
"""
from __future__ import annotations

from typing import Callable

from fastapi import HTTPException

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class AutomationError(Exception):
    """Base class for errors raised by the automation engine."""


class PeriodNotFound(AutomationError):
    pass


class PeriodAlreadyExists(AutomationError):
    """A period with the same label exists (labels are unique)."""


class PersistenceReadError(AutomationError):
    """A read from the period/settings/recipient stores failed. Aborts the period for this tick."""


class LedgerWriteError(AutomationError):
    """Ledger write failed for a reason other than the uniqueness constraint."""


class TransportNotConfigured(AutomationError):
    """No email provider configured (RESEND_API_KEY or SMTP_HOST missing)."""


# ---------------------------------------------------------------------------
# Constants: status codes
# ---------------------------------------------------------------------------

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_SERVICE_UNAVAILABLE = 503  # store down, retry on next tick
STATUS_INTERNAL_ERROR = 500

# Postgres SQLSTATE for unique_violation
PG_UNIQUE_VIOLATION = "23505"


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def is_throttle_message(msg: str) -> bool:
    """True for provider responses that mean 'slow down' (retry later, not a permanent failure)."""
    lower = msg.lower()
    return (
        "429" in msg
        or "rate limit" in lower
        or "too many requests" in lower
    )


def is_unique_violation(exc: Exception) -> bool:
    """
    True when a DB error is a uniqueness violation. Works for psycopg2 (pgcode) and sqlite
    (message only). Anything else (relation missing, connection lost) is a real write failure.
    """
    orig = getattr(exc, "orig", None) or exc
    if getattr(orig, "pgcode", None) == PG_UNIQUE_VIOLATION:
        return True
    lower = str(orig).lower()
    return "unique constraint" in lower or "duplicate key value" in lower


# ---------------------------------------------------------------------------
# Error rules: (predicate, status_code). First match wins.
# Add new rules here instead of scattering checks in routes.
# ---------------------------------------------------------------------------

AUTOMATION_ERROR_RULES: list[tuple[Callable[[Exception], bool], int]] = [
    (lambda e: isinstance(e, PeriodNotFound), STATUS_NOT_FOUND),
    (lambda e: isinstance(e, PeriodAlreadyExists), STATUS_CONFLICT),
    (lambda e: isinstance(e, PersistenceReadError), STATUS_SERVICE_UNAVAILABLE),
    (lambda e: isinstance(e, TransportNotConfigured), STATUS_SERVICE_UNAVAILABLE),
    (lambda e: isinstance(e, ValueError), STATUS_BAD_REQUEST),
]


def automation_error_to_http(exc: Exception) -> HTTPException:
    """
    Map an exception from an automation service into an HTTPException.
    Uses AUTOMATION_ERROR_RULES for known error types; otherwise returns 500 with the exception message.
    """
    msg = str(exc) or exc.__class__.__name__
    for predicate, status_code in AUTOMATION_ERROR_RULES:
        if predicate(exc):
            return HTTPException(status_code=status_code, detail=msg)
    return HTTPException(status_code=STATUS_INTERNAL_ERROR, detail=msg)
