# carbonledger/core/hashing.py
import hashlib

from carbonledger.core.types import Credit, LedgerEvent
from carbonledger.core.canon import canonical_json


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def event_hash(event: LedgerEvent) -> str:
    """Hash of the full canonical event, prev_hash included, so the journal chains."""
    return sha256_hex(canonical_json(event.to_dict()))


def credit_digest(credit: Credit) -> str:
    return sha256_hex(canonical_json(credit.to_dict()))
