from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import pytest

from nexus_ledger import cli
from nexus_ledger.ledger.store import CURRENT_SCHEMA_VERSION


@pytest.fixture
def run(tmp_path: Path):
    db_path = str(tmp_path / "ledger.db")
    config_path = str(tmp_path / "missing-config.yaml")

    def _run(*argv: str) -> int:
        command, *rest = argv
        return cli.main([command, "--db-path", db_path, "--config", config_path, *rest])

    _run.db_path = db_path
    return _run


def _seed_schema_version(db_path: str, version: str) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute("CREATE TABLE meta (key TEXT PRIMARY KEY, value TEXT)")
        conn.execute(
            "INSERT INTO meta (key, value) VALUES ('schema_version', ?)",
            (version,),
        )
        conn.commit()


def test_add_then_stats(run, capsys: pytest.CaptureFixture[str]) -> None:
    assert run("add", "buy", "--amount", "1000", "--price", "10", "--date", "2024-03-01T10:00:00Z") == 0
    assert run("add", "sell", "--quantity", "50", "--price", "12", "--date", "2024-03-02T10:00:00Z") == 0
    capsys.readouterr()

    assert run("stats") == 0

    out = capsys.readouterr().out
    assert "Balance: 50.0000 USDT" in out
    assert "Average cost: 10.0000 MXN" in out
    assert "Realized profit: 100.00 MXN" in out


def test_oversized_sale_is_rejected(run, capsys: pytest.CaptureFixture[str]) -> None:
    run("add", "buy", "--amount", "100", "--price", "10", "--date", "2024-03-01T10:00:00Z")

    exit_code = run("add", "sell", "--quantity", "11", "--price", "10", "--date", "2024-03-02T10:00:00Z")

    assert exit_code == 1
    assert "Insufficient balance" in capsys.readouterr().out


def test_history_and_remove(run, capsys: pytest.CaptureFixture[str]) -> None:
    run("add", "buy", "--amount", "100", "--price", "10", "--date", "2024-03-01T10:00:00Z", "--note", "first")
    capsys.readouterr()

    assert run("history") == 0
    line = capsys.readouterr().out.strip()
    assert "BUY" in line and "# first" in line

    transaction_id = line.split()[0]
    assert run("remove", transaction_id) == 0
    assert run("remove", transaction_id) == 1
    capsys.readouterr()

    run("history")
    assert "No transactions recorded." in capsys.readouterr().out


def test_view_and_adjust(run, capsys: pytest.CaptureFixture[str]) -> None:
    run("add", "buy", "--amount", "1000", "--price", "10", "--portfolio", "trading", "--date", "2024-03-01T10:00:00Z")

    assert run("view", "all") == 0
    assert run("adjust", "90") == 1
    assert "Unknown portfolio" in capsys.readouterr().out

    assert run("adjust", "90", "--portfolio", "trading") == 0
    assert "-10.0000" in capsys.readouterr().out

    assert run("view") == 0
    assert "Active view: all" in capsys.readouterr().out


def test_scenarios_and_simulate(run, capsys: pytest.CaptureFixture[str]) -> None:
    run("add", "buy", "--amount", "250", "--price", "10", "--date", "2024-03-01T10:00:00Z")
    capsys.readouterr()

    assert run("scenarios", "--target-price", "12") == 0
    out = capsys.readouterr().out
    assert "+10%" in out
    assert "target" in out
    assert "profit=50.00" in out

    assert run("simulate", "--quantity", "5", "--price", "11") == 0
    assert "profit=5.00" in capsys.readouterr().out


def test_monthly_reports_status(run, capsys: pytest.CaptureFixture[str]) -> None:
    assert run("monthly") == 0

    out = capsys.readouterr().out
    assert "Status: nominal" in out
    assert "Remaining: 291853.13" in out


def test_export_writes_csv(run, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    run("add", "buy", "--amount", "100", "--price", "10", "--date", "2024-03-01T10:00:00Z")
    output = tmp_path / "ledger.csv"

    assert run("export", "--output", str(output)) == 0

    lines = output.read_text().splitlines()
    assert lines[0].startswith("date,time,portfolio,kind")
    assert lines[1].startswith("2024-03-01,10:00,Main investment,BUY")
    assert "Exported 1 rows" in capsys.readouterr().out


def test_dump_and_import_json(run, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    run("add", "buy", "--amount", "100", "--price", "10", "--date", "2024-03-01T10:00:00Z")
    run("view", "trading")
    snapshot = tmp_path / "snapshot.json"

    assert run("dump-json", "--output", str(snapshot)) == 0
    payload = json.loads(snapshot.read_text())
    assert payload["activeView"] == "trading"
    assert len(payload["transactions"]) == 1

    payload["transactions"].append(
        {
            "id": "imported",
            "portfolioId": "main",
            "date": "2024-03-05T10:00:00Z",
            "type": "VENTA",
            "amountPesos": 60,
            "pricePerUsdt": 12,
            "amountUsdt": 5,
        }
    )
    snapshot.write_text(json.dumps(payload))
    capsys.readouterr()

    assert run("import-json", str(snapshot)) == 0
    assert "Imported 2 transactions (active view: trading)" in capsys.readouterr().out


def test_import_missing_snapshot(run, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run("import-json", str(tmp_path / "nope.json")) == 1
    assert "Snapshot not found" in capsys.readouterr().out


def test_schema_version_initializes_missing_meta(run, capsys: pytest.CaptureFixture[str]) -> None:
    assert run("schema-version") == 0

    assert f"initialized to {CURRENT_SCHEMA_VERSION}" in capsys.readouterr().out


def test_schema_version_reports_incompatible_value(run, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_schema_version(run.db_path, "7")

    assert run("schema-version") == 1
    assert "stored value 7 is incompatible" in capsys.readouterr().out


def test_incompatible_schema_fails_ledger_commands(run, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_schema_version(run.db_path, "not-a-number")

    assert run("stats") == 1
    assert "Unsupported ledger schema version" in capsys.readouterr().out


def test_db_backup_keeps_recent_copies(run, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    run("add", "buy", "--amount", "100", "--price", "10", "--date", "2024-03-01T10:00:00Z")
    for stamp in ("202401010000", "202401020000", "202401030000"):
        (tmp_path / f"ledger.db.{stamp}.bak").write_text("old")

    assert run("db-backup", "--keep", "2") == 0

    backups = sorted(p.name for p in tmp_path.glob("ledger.db.*.bak"))
    assert len(backups) == 2
    assert "ledger.db.202401030000.bak" in backups
    assert "Removed old backups:" in capsys.readouterr().out


def test_db_backup_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(
        ["db-backup", "--db-path", str(tmp_path / "absent.db"), "--config", str(tmp_path / "c.yaml")]
    )

    assert exit_code == 1
    assert "DB file not found" in capsys.readouterr().out


def test_serve_builds_app_and_runs_uvicorn(run, monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict = {}

    class _FakeServer:
        def __init__(self, config) -> None:
            captured["config"] = config

        def run(self) -> None:
            captured["ran"] = True

    monkeypatch.setattr(cli.uvicorn, "Server", _FakeServer)
    monkeypatch.setattr(cli, "configure_logging", lambda **_: None)

    assert run("serve", "--port", "9123") == 0

    assert captured["ran"] is True
    assert captured["config"].port == 9123
    assert captured["config"].host == "127.0.0.1"


def _write_duplicate_snapshot(path: Path) -> None:
    record = {
        "id": "dup",
        "portfolioId": "main",
        "date": "2024-03-05T10:00:00Z",
        "type": "BUY",
        "amount": 50,
        "unitPrice": 10,
        "quantity": 5,
    }
    path.write_text(json.dumps({"transactions": [record, dict(record)], "activeView": "main"}))


def test_import_duplicate_ids_leaves_ledger_unchanged(
    run, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    run("add", "buy", "--amount", "100", "--price", "10", "--date", "2024-03-01T10:00:00Z")
    snapshot = tmp_path / "duplicates.json"
    _write_duplicate_snapshot(snapshot)
    capsys.readouterr()

    assert run("import-json", str(snapshot)) == 1
    assert "ledger left unchanged" in capsys.readouterr().out

    assert run("stats") == 0
    assert "Balance: 10.0000" in capsys.readouterr().out


def test_import_reports_storage_errors(
    run, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    snapshot = tmp_path / "snapshot.json"
    _write_duplicate_snapshot(snapshot)
    payload = json.loads(snapshot.read_text())
    payload["transactions"][1]["id"] = "other"
    snapshot.write_text(json.dumps(payload))

    def _fail(self, transactions):
        raise sqlite3.IntegrityError("UNIQUE constraint failed: transactions.id")

    monkeypatch.setattr(cli.SQLiteLedgerStore, "persist", _fail)

    assert run("import-json", str(snapshot)) == 1
    assert "Failed to import snapshot: UNIQUE constraint failed" in capsys.readouterr().out
