# carbonledger/core/errors.py
"""
Failure taxonomy for ledger operations.

A raised LedgerError always means the operation was rejected as a whole:
the ledger is left exactly as it was before the call.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for every rejected ledger operation."""

    code = "ledger_error"

    def __init__(self, message: str, credit_id: Optional[int] = None):
        super().__init__(message)
        self.credit_id = credit_id


class InvalidAmount(LedgerError):
    code = "invalid_amount"


class InvalidVintage(LedgerError):
    code = "invalid_vintage"


class InvalidPrincipal(LedgerError):
    code = "invalid_principal"


class NotFound(LedgerError):
    code = "not_found"


class Unauthorized(LedgerError):
    code = "unauthorized"


class AlreadyRetired(LedgerError):
    code = "already_retired"


class StaleLedger(LedgerError):
    """Storage was written by another ledger instance since this one loaded."""
    code = "stale_ledger"
