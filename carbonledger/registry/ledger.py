# carbonledger/registry/ledger.py
import logging
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Union

from carbonledger.core.errors import (
    AlreadyRetired,
    InvalidAmount,
    InvalidPrincipal,
    InvalidVintage,
    NotFound,
    StaleLedger,
    Unauthorized,
)
from carbonledger.core.hashing import event_hash
from carbonledger.core.types import Credit, CreditStatus, LedgerEvent
from carbonledger.storage import StorageBackend, create_storage

logger = logging.getLogger(__name__)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_principal(value, role: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidPrincipal(f"{role} must be a non-empty principal, got {value!r}")


class CreditLedger:
    """
    Owns every credit record, the next-id counter and the event journal.

    All mutations run under one lock, so ids are handed out gap-free and
    transfer/retire on the same credit never interleave. When a storage
    backend is attached each accepted mutation is committed before the
    call returns; a failed commit rolls the in-memory change back.
    """

    def __init__(self, storage: Optional[Union[StorageBackend, str]] = None):
        self._lock = threading.RLock()
        self._credits: Dict[int, Credit] = {}
        self._events: List[LedgerEvent] = []
        self._next_id = 0

        # Plain file path → SQLite, same as an explicit sqlite:// URI
        if isinstance(storage, str):
            stripped = storage.strip()
            if not stripped:
                storage = None
            elif "://" in stripped:
                storage = create_storage(stripped)
            else:
                storage = create_storage(f"sqlite://{stripped}")
        self.storage: Optional[StorageBackend] = storage

        if self.storage is not None:
            try:
                self._load()
            except Exception:
                self.close()
                raise

    def _load(self) -> None:
        credits = self.storage.load_credits()
        self._credits = {c.id: c for c in credits}
        self._events = self.storage.load_events()
        self._next_id = self.storage.load_counter()
        logger.info(
            "Loaded %d credits and %d events (next id %d)",
            len(self._credits), len(self._events), self._next_id,
        )

    # ── queries

    @property
    def next_id(self) -> int:
        with self._lock:
            return self._next_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._credits)

    def __contains__(self, credit_id) -> bool:
        with self._lock:
            return credit_id in self._credits

    def get(self, credit_id: int) -> Credit:
        with self._lock:
            credit = self._credits.get(credit_id)
        if credit is None:
            raise NotFound(f"No credit with id {credit_id}", credit_id)
        return credit

    def credits(
        self,
        owner: Optional[str] = None,
        status: Optional[CreditStatus] = None,
    ) -> List[Credit]:
        """Credits ordered by id, optionally filtered by owner and/or status."""
        with self._lock:
            snapshot = [self._credits[k] for k in sorted(self._credits)]
        if owner is not None:
            snapshot = [c for c in snapshot if c.owner == owner]
        if status is not None:
            status = CreditStatus(status)
            snapshot = [c for c in snapshot if c.status is status]
        return snapshot

    def balance(self, owner: str) -> int:
        """Total amount of active credits held by owner."""
        return sum(c.amount for c in self.credits(owner=owner, status=CreditStatus.ACTIVE))

    def retired_total(self, owner: Optional[str] = None) -> int:
        return sum(c.amount for c in self.credits(owner=owner, status=CreditStatus.RETIRED))

    def history(self, credit_id: Optional[int] = None) -> List[LedgerEvent]:
        """Copy of the journal, or only the events touching one credit."""
        with self._lock:
            events = list(self._events)
        if credit_id is None:
            return events
        return [e for e in events if e.credit_id == credit_id]

    def get_last_hash(self) -> Optional[str]:
        with self._lock:
            if not self._events:
                return None
            return event_hash(self._events[-1])

    # ── mutations

    def mint(self, amount: int, vintage: int, caller: str) -> int:
        """Create a new active credit owned by caller. Returns its id."""
        if not _is_int(amount) or amount <= 0:
            logger.debug("mint rejected: amount=%r", amount)
            raise InvalidAmount(f"Amount must be a positive integer, got {amount!r}")
        if not _is_int(vintage) or vintage <= 0:
            logger.debug("mint rejected: vintage=%r", vintage)
            raise InvalidVintage(f"Vintage must be a positive integer date, got {vintage!r}")
        _check_principal(caller, "caller")

        def build():
            credit_id = self._next_id
            credit = Credit(id=credit_id, amount=amount, vintage=vintage, owner=caller)
            event = self._new_event("mint", credit_id, caller, amount=amount, vintage=vintage)
            return credit, credit_id + 1, event

        credit = self._mutate(build)
        logger.info("Minted credit %d (%d @ %d) for %s", credit.id, amount, vintage, caller)
        return credit.id

    def transfer(self, credit_id: int, new_owner: str, caller: str) -> bool:
        """Move an active credit from caller to new_owner. Self-transfer is a no-op."""
        def build():
            credit = self._require_mutable(credit_id, caller)
            _check_principal(new_owner, "new_owner")
            event = self._new_event("transfer", credit_id, caller, new_owner=new_owner)
            return replace(credit, owner=new_owner), self._next_id, event

        self._mutate(build)
        logger.info("Transferred credit %d from %s to %s", credit_id, caller, new_owner)
        return True

    def retire(self, credit_id: int, caller: str) -> bool:
        """Permanently retire an active credit. There is no way back."""
        def build():
            credit = self._require_mutable(credit_id, caller)
            event = self._new_event("retire", credit_id, caller)
            return replace(credit, status=CreditStatus.RETIRED), self._next_id, event

        credit = self._mutate(build)
        logger.info("Retired credit %d (%d) by %s", credit_id, credit.amount, caller)
        return True

    def _mutate(self, build) -> Credit:
        """
        Check and apply one mutation under the lock. build() runs the checks
        against current state and returns (credit, next_id, event).

        If another ledger instance wrote to the same storage since we loaded
        (a taken journal slot, or a credit minted elsewhere), reload and run
        build() once more, so the checks see fresh state.
        """
        with self._lock:
            try:
                return self._apply(*build())
            except (StaleLedger, NotFound):
                if self.storage is None:
                    raise
                logger.info("Reloading ledger from storage and retrying")
                self._load()
                return self._apply(*build())

    # ── internals (caller holds the lock)

    def _require_mutable(self, credit_id: int, caller: str) -> Credit:
        """The only gate into a mutation of an existing credit."""
        credit = self._credits.get(credit_id)
        if credit is None:
            logger.debug("credit %r not found", credit_id)
            raise NotFound(f"No credit with id {credit_id}", credit_id)
        if credit.is_retired:
            logger.debug("credit %d already retired", credit_id)
            raise AlreadyRetired(f"Credit {credit_id} is retired", credit_id)
        if caller != credit.owner:
            logger.debug("caller %r does not own credit %d", caller, credit_id)
            raise Unauthorized(f"{caller!r} is not the owner of credit {credit_id}", credit_id)
        return credit

    def _new_event(self, kind: str, credit_id: int, caller: str, **fields) -> LedgerEvent:
        prev_hash = event_hash(self._events[-1]) if self._events else ""
        return LedgerEvent(
            sequence=len(self._events),
            kind=kind,
            credit_id=credit_id,
            caller=caller,
            prev_hash=prev_hash,
            **fields,
        )

    def _apply(self, credit: Credit, next_id: int, event: LedgerEvent) -> Credit:
        previous = self._credits.get(credit.id)
        previous_next_id = self._next_id

        self._credits[credit.id] = credit
        self._next_id = next_id
        self._events.append(event)

        if self.storage is None:
            return credit
        try:
            self.storage.commit(credit, next_id, event)
        except Exception:
            # Undo so memory never runs ahead of what was persisted
            self._events.pop()
            self._next_id = previous_next_id
            if previous is None:
                del self._credits[credit.id]
            else:
                self._credits[credit.id] = previous
            logger.error("Failed to persist %s of credit %d, rolled back", event.kind, credit.id)
            raise
        return credit

    # ── lifecycle

    def close(self) -> None:
        if self.storage is not None:
            self.storage.close()
            self.storage = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
