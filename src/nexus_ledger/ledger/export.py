"""Row export of the annotated ledger for downstream reporting."""

from __future__ import annotations

import csv
from datetime import UTC
from typing import IO, Dict, Iterable, List, Mapping, Optional

from nexus_ledger.ledger.models import LedgerEntry, PortfolioId, TransactionKind

EXPORT_COLUMNS = [
    "date",
    "time",
    "portfolio",
    "kind",
    "quantity",
    "unit_price",
    "amount",
    "realized_profit",
    "realized_profit_pct",
]

DEFAULT_PORTFOLIO_LABELS: Dict[str, str] = {
    PortfolioId.MAIN.value: "Main investment",
    PortfolioId.TRADING.value: "Trading / P2P",
}


def _fixed(value: Optional[float], places: int) -> str:
    return "" if value is None else f"{value:.{places}f}"


def export_rows(
    entries: Iterable[LedgerEntry], labels: Optional[Mapping[str, str]] = None
) -> List[Dict[str, str]]:
    """Flatten ledger entries into export rows, most recent first."""

    labels = labels or DEFAULT_PORTFOLIO_LABELS
    ordered = sorted(entries, key=lambda e: e.transaction.sort_key, reverse=True)

    rows: List[Dict[str, str]] = []
    for entry in ordered:
        tx = entry.transaction
        when = tx.date.astimezone(UTC)
        is_disposal = tx.kind is TransactionKind.DISPOSE
        rows.append(
            {
                "date": when.strftime("%Y-%m-%d"),
                "time": when.strftime("%H:%M"),
                "portfolio": labels.get(tx.portfolio_id.value, tx.portfolio_id.value),
                "kind": tx.kind.value,
                "quantity": _fixed(tx.quantity, 4),
                "unit_price": _fixed(tx.unit_price, 2),
                "amount": _fixed(tx.amount, 2),
                "realized_profit": _fixed(entry.realized_profit, 2) if is_disposal else "",
                "realized_profit_pct": _fixed(entry.realized_profit_pct, 2) if is_disposal else "",
            }
        )
    return rows


def write_csv(rows: Iterable[Mapping[str, str]], stream: IO[str]) -> int:
    """Write export rows as CSV with a header; returns the number of data rows."""

    writer = csv.DictWriter(stream, fieldnames=EXPORT_COLUMNS)
    writer.writeheader()
    count = 0
    for row in rows:
        writer.writerow(row)
        count += 1
    return count


__all__ = ["DEFAULT_PORTFOLIO_LABELS", "EXPORT_COLUMNS", "export_rows", "write_csv"]
