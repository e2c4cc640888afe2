"""Monthly acquisition spend against a fixed ceiling."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Iterable, Optional

from nexus_ledger.ledger.models import (
    MonthlySpend,
    SpendStatus,
    Transaction,
    TransactionKind,
    parse_timestamp,
)
from nexus_ledger.ledger.processor import chronological

DEFAULT_MONTHLY_CEILING = 291853.13
DEFAULT_CAUTION_PCT = 70.0
DEFAULT_CRITICAL_PCT = 90.0


def spend_status(
    consumed_pct: float,
    caution_pct: float = DEFAULT_CAUTION_PCT,
    critical_pct: float = DEFAULT_CRITICAL_PCT,
) -> SpendStatus:
    if consumed_pct > critical_pct:
        return SpendStatus.CRITICAL
    if consumed_pct >= caution_pct:
        return SpendStatus.CAUTION
    return SpendStatus.NOMINAL


def monthly_spend(
    transactions: Iterable[Transaction],
    ceiling: float = DEFAULT_MONTHLY_CEILING,
    now: Optional[datetime] = None,
    caution_pct: float = DEFAULT_CAUTION_PCT,
    critical_pct: float = DEFAULT_CRITICAL_PCT,
) -> MonthlySpend:
    """Sum this UTC calendar month's acquisitions across every portfolio."""

    now = parse_timestamp(now or datetime.now(UTC))

    month_acquisitions = [
        tx
        for tx in chronological(transactions)
        if tx.kind is TransactionKind.ACQUIRE
        and tx.date.year == now.year
        and tx.date.month == now.month
    ]
    amounts = [tx.amount for tx in month_acquisitions]
    spent = sum(amounts)

    if ceiling > 0:
        consumed_pct = min(100.0, spent / ceiling * 100)
    else:
        consumed_pct = 100.0 if spent > 0 else 0.0

    return MonthlySpend(
        year=now.year,
        month=now.month,
        ceiling=ceiling,
        spent=spent,
        consumed_pct=consumed_pct,
        remaining=max(0.0, ceiling - spent),
        status=spend_status(consumed_pct, caution_pct, critical_pct),
        amounts=amounts,
    )


__all__ = [
    "DEFAULT_CAUTION_PCT",
    "DEFAULT_CRITICAL_PCT",
    "DEFAULT_MONTHLY_CEILING",
    "monthly_spend",
    "spend_status",
]
