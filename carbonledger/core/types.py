# carbonledger/core/types.py
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Literal, Optional


class CreditStatus(str, Enum):
    """Lifecycle tag of a credit. RETIRED is terminal."""
    ACTIVE = "active"
    RETIRED = "retired"


EventKind = Literal["mint", "transfer", "retire"]


@dataclass(frozen=True)
class Credit:
    """Single tokenized carbon-credit record."""
    id: int                         # assigned by the ledger, 0-based
    amount: int                     # tonnes CO2e, > 0
    vintage: int                    # issuance date as YYYYMMDD
    owner: str                      # principal
    status: CreditStatus = CreditStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status is CreditStatus.ACTIVE

    @property
    def is_retired(self) -> bool:
        return self.status is CreditStatus.RETIRED

    def to_dict(self) -> dict:
        """Plain dict for canonicalization / export."""
        d = asdict(self)
        d["status"] = self.status.value
        return d


@dataclass(frozen=True)
class LedgerEvent:
    """One accepted mutation in the hash-chained journal."""
    sequence: int
    kind: EventKind
    credit_id: int
    caller: str
    amount: Optional[int] = None        # mint only
    vintage: Optional[int] = None       # mint only
    new_owner: Optional[str] = None     # transfer only
    prev_hash: str = ""                 # hex(sha256) of previous event, empty for the first

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "LedgerEvent":
        return cls(**d)
