# examples/registry_demo.py
# Run with: python examples/registry_demo.py

import logging
import sqlite3
import tempfile
from pathlib import Path

from carbonledger import CreditLedger, LedgerVerifier, AlreadyRetired, Unauthorized
from carbonledger.storage import SQLiteStorage


# =============================================================================
# DEMO
# =============================================================================

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[carbonledger] %(message)s")

    db_path = Path(tempfile.mkdtemp()) / "demo-credits.db"
    ledger = CreditLedger(storage=f"sqlite://{db_path}")

    cid = ledger.mint(100, 20240129, "wallet_1")
    ledger.mint(250, 20230815, "wallet_1")
    ledger.transfer(cid, "wallet_2", "wallet_1")

    try:
        ledger.retire(cid, "wallet_1")
    except Unauthorized as e:
        print(f"Rejected as expected: {e}")

    ledger.retire(cid, "wallet_2")
    try:
        ledger.retire(cid, "wallet_2")
    except AlreadyRetired as e:
        print(f"Rejected as expected: {e}")

    print(f"wallet_1 active balance: {ledger.balance('wallet_1')}")
    print(f"wallet_2 retired total:  {ledger.retired_total('wallet_2')}")
    ledger.close()

    with SQLiteStorage(db_path) as storage:
        print(LedgerVerifier().verify_from_storage(storage))

    # Un-retire credit 0 behind the ledger's back
    conn = sqlite3.connect(db_path)
    conn.execute("UPDATE credits SET status = 'active' WHERE id = 0")
    conn.commit()
    conn.close()

    with SQLiteStorage(db_path) as storage:
        print(LedgerVerifier().verify_from_storage(storage))
