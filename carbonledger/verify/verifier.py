# carbonledger/verify/verifier.py
from typing import List, Optional
from dataclasses import dataclass

from carbonledger.core.errors import LedgerError
from carbonledger.core.types import Credit, CreditStatus, LedgerEvent
from carbonledger.core.hashing import event_hash
from carbonledger.registry.ledger import CreditLedger
from carbonledger.storage import StorageBackend


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # "ids", "fields", "sequence", "hash_chain", "replay", "storage"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = None

    def __post_init__(self):
        if self.failures is None:
            self.failures = []

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, index: int, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(index, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Ledger is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class LedgerVerifier:
    """
    Offline auditor for a persisted credit ledger.
    Checks record shape, the journal hash chain, and that replaying the
    journal from scratch reproduces every stored credit.
    """

    def verify(
        self,
        credits: List[Credit],
        events: List[LedgerEvent],
        next_id: int,
    ) -> VerificationResult:
        result = VerificationResult(True)

        # 1. Ids are 0..n-1 and the counter sits right after them
        for i, credit in enumerate(credits):
            if credit.id != i:
                result.fail(i, f"Id gap: expected {i}, got {credit.id}", "ids")
        if next_id != len(credits):
            result.fail(-1, f"Counter is {next_id} but {len(credits)} credits exist", "ids")

        # 2. Field sanity; SQLite columns are loosely typed, so check types before values
        for credit in credits:
            if not _is_int(credit.amount):
                result.fail(credit.id, f"Amount is not an integer: {credit.amount!r}", "fields")
            elif credit.amount <= 0:
                result.fail(credit.id, f"Non-positive amount {credit.amount}", "fields")
            if not _is_int(credit.vintage):
                result.fail(credit.id, f"Vintage is not an integer: {credit.vintage!r}", "fields")
            elif credit.vintage <= 0:
                result.fail(credit.id, f"Non-positive vintage {credit.vintage}", "fields")
            if not isinstance(credit.owner, str) or not credit.owner:
                result.fail(credit.id, "Missing owner", "fields")
            if not isinstance(credit.status, CreditStatus):
                result.fail(credit.id, f"Unknown status {credit.status!r}", "fields")

        # 3. Journal order and hash chain
        for i, event in enumerate(events):
            if event.sequence != i:
                result.fail(i, f"Sequence mismatch: expected {i}, got {event.sequence}", "sequence")
            expected_prev = event_hash(events[i - 1]) if i else ""
            if event.prev_hash != expected_prev:
                result.fail(i, "prev_hash does not match previous event hash", "hash_chain")

        if not result.is_valid:
            result.message = f"Failed with {len(result.failures)} issues"
            return result

        # 4. Replay
        self._replay(credits, events, result)

        result.message = (
            f"{len(credits)} credits, {len(events)} events"
            if result.is_valid else f"Failed with {len(result.failures)} issues"
        )
        return result

    def _replay(self, credits: List[Credit], events: List[LedgerEvent], result: VerificationResult):
        scratch = CreditLedger()
        for event in events:
            try:
                if event.kind == "mint":
                    new_id = scratch.mint(event.amount, event.vintage, event.caller)
                    if new_id != event.credit_id:
                        result.fail(event.sequence, f"Mint recorded id {event.credit_id}, replay assigned {new_id}", "replay")
                elif event.kind == "transfer":
                    scratch.transfer(event.credit_id, event.new_owner, event.caller)
                elif event.kind == "retire":
                    scratch.retire(event.credit_id, event.caller)
                else:
                    result.fail(event.sequence, f"Unknown event kind {event.kind!r}", "replay")
            except LedgerError as e:
                result.fail(event.sequence, f"Replay rejected {event.kind}: {e}", "replay")
            except Exception as e:
                result.fail(event.sequence, f"Malformed {event.kind!r} event: {str(e)}", "replay")

        replayed = {c.id: c for c in scratch.credits()}
        for credit in credits:
            expected = replayed.pop(credit.id, None)
            if expected is None:
                result.fail(credit.id, "Credit has no mint event", "replay")
            elif expected != credit:
                result.fail(credit.id, f"Stored {credit.to_dict()} differs from journal {expected.to_dict()}", "replay")
        for missing_id in sorted(replayed):
            result.fail(missing_id, "Journal mints a credit that is not stored", "replay")

    def verify_from_storage(self, storage: StorageBackend) -> VerificationResult:
        """
        Load the ledger from persistent storage and verify it.
        Load errors are reported as a failed result, not raised.
        """
        try:
            credits = storage.load_credits()
            events = storage.load_events()
            next_id = storage.load_counter()
        except Exception as e:
            return VerificationResult(
                False,
                f"Failed to load ledger from storage: {str(e)}",
                [VerificationFailure(-1, str(e), "storage")]
            )

        return self.verify(credits, events, next_id)
