# tests/test_cli.py
import json
import sqlite3
from pathlib import Path

import pytest
from typer.testing import CliRunner

from carbonledger.cli.main import app
from carbonledger.registry.ledger import CreditLedger
from carbonledger.storage import SQLiteStorage

runner = CliRunner()


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    return tmp_path / "test-cli.db"


@pytest.fixture
def populated_db(temp_db: Path) -> Path:
    """DB with two credits: 0 transferred to wallet_2, 1 retired."""
    with CreditLedger(storage=str(temp_db)) as ledger:
        ledger.mint(100, 20240129, "wallet_1")
        ledger.mint(40, 20230101, "wallet_1")
        ledger.transfer(0, "wallet_2", "wallet_1")
        ledger.retire(1, "wallet_1")
    return temp_db


def test_list_no_db(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("CARBON_LEDGER_DB_PATH", str(tmp_path / "missing.db"))
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 1
    assert "not found" in result.stdout.lower()
    assert "to get started" in result.stdout.lower()


def test_mint_creates_db(temp_db: Path):
    result = runner.invoke(app, ["mint", "100", "20240129", "--as", "wallet_1", "--db", str(temp_db)])
    assert result.exit_code == 0, result.stdout
    assert "Minted credit 0" in result.stdout
    assert temp_db.exists()

    with CreditLedger(storage=str(temp_db)) as ledger:
        assert ledger.get(0).owner == "wallet_1"


def test_mint_zero_amount_rejected(temp_db: Path):
    result = runner.invoke(app, ["mint", "0", "20240129", "--as", "wallet_1", "--db", str(temp_db)])
    assert result.exit_code == 1
    assert "InvalidAmount" in result.stdout


def test_transfer_and_retire_flow(temp_db: Path):
    db = ["--db", str(temp_db)]
    assert runner.invoke(app, ["mint", "100", "20240129", "--as", "wallet1", *db]).exit_code == 0

    result = runner.invoke(app, ["transfer", "0", "wallet2", "--as", "wallet1", *db])
    assert result.exit_code == 0
    assert "transferred to wallet2" in result.stdout

    result = runner.invoke(app, ["retire", "0", "--as", "wallet2", *db])
    assert result.exit_code == 0
    assert "retired" in result.stdout

    result = runner.invoke(app, ["retire", "0", "--as", "wallet2", *db])
    assert result.exit_code == 1
    assert "AlreadyRetired" in result.stdout


def test_transfer_unauthorized(populated_db: Path):
    result = runner.invoke(app, ["transfer", "0", "wallet_3", "--as", "wallet_1", "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "Unauthorized" in result.stdout


def test_show_unknown(populated_db: Path):
    result = runner.invoke(app, ["show", "42", "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "NotFound" in result.stdout


def test_show_credit(populated_db: Path):
    result = runner.invoke(app, ["show", "0", "--db", str(populated_db)])
    assert result.exit_code == 0
    assert "wallet_2" in result.stdout
    assert "20240129" in result.stdout
    assert "transfer" in result.stdout


def test_list_with_filters(populated_db: Path):
    result = runner.invoke(app, ["list", "--db", str(populated_db)])
    assert result.exit_code == 0
    assert "Carbon Credits" in result.stdout
    assert "wallet_2" in result.stdout

    result = runner.invoke(app, ["list", "--status", "retired", "--db", str(populated_db)])
    assert result.exit_code == 0
    assert "retired" in result.stdout
    assert "wallet_2" not in result.stdout

    result = runner.invoke(app, ["list", "--owner", "nobody", "--db", str(populated_db)])
    assert result.exit_code == 0
    assert "No credits found" in result.stdout


def test_history(populated_db: Path):
    result = runner.invoke(app, ["history", "--db", str(populated_db)])
    assert result.exit_code == 0
    for kind in ("MINT", "TRANSFER", "RETIRE"):
        assert kind in result.stdout


def test_verify_valid(populated_db: Path):
    result = runner.invoke(app, ["verify", "--db", str(populated_db)])
    assert result.exit_code == 0
    assert "valid" in result.stdout.lower()


def test_export_creates_jsonl(populated_db: Path, tmp_path: Path):
    output_file = tmp_path / "export-test.jsonl"

    result = runner.invoke(
        app,
        ["export", "--db", str(populated_db), "--output", str(output_file)]
    )

    assert result.exit_code == 0
    assert "Exported 2 credits" in result.stdout

    with open(output_file, "r", encoding="utf-8") as f:
        lines = [json.loads(line) for line in f]
    assert [line["id"] for line in lines] == [0, 1]
    assert lines[1]["status"] == "retired"


def test_mint_negative_amount_after_double_dash(temp_db: Path):
    result = runner.invoke(app, ["mint", "--as", "wallet_1", "--db", str(temp_db), "--", "-5", "20240129"])
    assert result.exit_code == 1
    assert "InvalidAmount" in result.stdout


@pytest.mark.parametrize("command", [
    ["transfer", "42", "wallet_3", "--as", "wallet_1"],
    ["retire", "42", "--as", "wallet_1"],
])
def test_mutation_on_unknown_id(populated_db: Path, command):
    result = runner.invoke(app, [*command, "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "NotFound" in result.stdout


def test_verify_tampered_db(populated_db: Path):
    conn = sqlite3.connect(populated_db)
    conn.execute("UPDATE credits SET status = 'active' WHERE id = 1")
    conn.commit()
    conn.close()

    result = runner.invoke(app, ["verify", "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "verification failed" in result.stdout.lower()
    assert "replay" in result.stdout


def test_verify_wrong_column_type(populated_db: Path):
    conn = sqlite3.connect(populated_db)
    conn.execute("UPDATE credits SET amount = 'lots' WHERE id = 0")
    conn.commit()
    conn.close()

    result = runner.invoke(app, ["verify", "--db", str(populated_db)])
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "fields" in result.stdout


def test_unreadable_status_reported(populated_db: Path):
    conn = sqlite3.connect(populated_db)
    conn.execute("UPDATE credits SET status = 'bogus' WHERE id = 0")
    conn.commit()
    conn.close()

    result = runner.invoke(app, ["list", "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "failed to open database" in result.stdout.lower()


def test_storage_error_on_mutation(populated_db: Path):
    conn = sqlite3.connect(populated_db)
    conn.execute("""
        CREATE TRIGGER freeze_credits BEFORE UPDATE ON credits
        BEGIN SELECT RAISE(ABORT, 'credits are frozen'); END
    """)
    conn.commit()
    conn.close()

    result = runner.invoke(app, ["retire", "0", "--as", "wallet_2", "--db", str(populated_db)])
    assert result.exit_code == 1
    assert "Storage error" in result.stdout
    assert "frozen" in result.stdout


def test_cli_mint_while_ledger_open(temp_db: Path):
    with CreditLedger(storage=SQLiteStorage(temp_db)) as ledger:
        assert ledger.mint(10, 20240129, "wallet_1") == 0
        result = runner.invoke(app, ["mint", "20", "20240129", "--as", "wallet_2", "--db", str(temp_db)])
        assert result.exit_code == 0
        assert "Minted credit 1" in result.stdout
        assert ledger.mint(30, 20240129, "wallet_1") == 2
