import csv
import io
from datetime import UTC, datetime

from nexus_ledger.ledger.export import EXPORT_COLUMNS, export_rows, write_csv
from nexus_ledger.ledger.models import PortfolioId, TransactionKind
from nexus_ledger.ledger.processor import replay


def test_rows_are_formatted_and_most_recent_first(make_tx):
    ledger = [
        make_tx(
            TransactionKind.ACQUIRE,
            quantity=100,
            unit_price=10,
            amount=1000,
            date=datetime(2024, 3, 1, 9, 5, tzinfo=UTC),
        ),
        make_tx(
            TransactionKind.DISPOSE,
            quantity=50,
            unit_price=12,
            amount=600,
            date=datetime(2024, 3, 2, 18, 45, tzinfo=UTC),
            portfolio=PortfolioId.TRADING,
        ),
    ]

    rows = export_rows(replay(ledger).entries)

    assert list(rows[0]) == EXPORT_COLUMNS
    assert rows[0]["date"] == "2024-03-02"
    assert rows[0]["time"] == "18:45"
    assert rows[0]["portfolio"] == "Trading / P2P"
    assert rows[0]["quantity"] == "50.0000"
    assert rows[0]["unit_price"] == "12.00"
    # The trading book was empty, so the whole sale is profit.
    assert rows[0]["realized_profit"] == "600.00"
    assert rows[1]["kind"] == "BUY"
    assert rows[1]["realized_profit_pct"] == ""


def test_custom_labels_fall_back_to_portfolio_id(make_tx):
    rows = export_rows(
        replay([make_tx(TransactionKind.ACQUIRE, quantity=1, unit_price=10)]).entries,
        labels={"trading": "Desk"},
    )

    assert rows[0]["portfolio"] == "main"


def test_write_csv_emits_header_and_rows(make_tx):
    rows = export_rows(replay([make_tx(TransactionKind.ACQUIRE, quantity=1, unit_price=10)]).entries)
    buffer = io.StringIO()

    count = write_csv(rows, buffer)

    assert count == 1
    parsed = list(csv.DictReader(io.StringIO(buffer.getvalue())))
    assert parsed[0]["amount"] == "10.00"
    assert list(parsed[0]) == EXPORT_COLUMNS
