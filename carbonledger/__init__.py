# carbonledger/__init__.py
"""
Carbonledger — a minimal registry for tokenized carbon-credit records.
Mint credits, move them between principals, retire them for good.

Every accepted mutation lands in a hash-chained journal so a persisted ledger
can be audited offline.
"""

from carbonledger.core.errors import (
    AlreadyRetired,
    InvalidAmount,
    InvalidPrincipal,
    InvalidVintage,
    LedgerError,
    NotFound,
    StaleLedger,
    Unauthorized,
)
from carbonledger.core.types import Credit, CreditStatus, LedgerEvent
from carbonledger.registry.ledger import CreditLedger
from carbonledger.verify.verifier import LedgerVerifier

__version__ = "0.1.0-dev"

__all__ = [
    "CreditLedger",
    "LedgerVerifier",
    "Credit",
    "CreditStatus",
    "LedgerEvent",
    "LedgerError",
    "InvalidAmount",
    "InvalidVintage",
    "InvalidPrincipal",
    "NotFound",
    "StaleLedger",
    "Unauthorized",
    "AlreadyRetired",
]
