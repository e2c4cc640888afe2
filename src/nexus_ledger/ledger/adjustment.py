"""Reconciliation of tracked balances against an observed true balance."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from typing import Any, Optional

from nexus_ledger.ledger.exceptions import InvalidPortfolioError
from nexus_ledger.ledger.models import (
    LedgerView,
    PortfolioId,
    Transaction,
    TransactionKind,
    parse_timestamp,
    resolve_portfolio_id,
)
from nexus_ledger.logging_config import structured_log_extra

logger = logging.getLogger(__name__)

BALANCE_EPSILON = 1e-4


def build_adjustment(
    target: Any,
    current_balance: float,
    average_cost: float,
    true_balance: float,
    now: Optional[datetime] = None,
    note: Optional[str] = None,
    epsilon: float = BALANCE_EPSILON,
) -> Optional[Transaction]:
    """Create the ADJUST transaction that moves ``current_balance`` to ``true_balance``.

    The adjustment carries no amount and is priced at the book's current
    average cost, so replaying it leaves the average cost unchanged. Returns
    ``None`` when the discrepancy is below ``epsilon``.

    Raises:
        InvalidPortfolioError: if ``target`` is the consolidated ``all`` view or
            not a known portfolio.
    """

    if target is LedgerView.ALL or (isinstance(target, str) and target.strip().lower() == "all"):
        raise InvalidPortfolioError(target)
    portfolio_id: PortfolioId = resolve_portfolio_id(target)

    delta = true_balance - current_balance
    if abs(delta) < epsilon:
        logger.info(
            "Balance discrepancy below tolerance; no adjustment emitted",
            extra=structured_log_extra(
                event="adjustment_skipped", portfolio_id=portfolio_id.value, delta=delta
            ),
        )
        return None

    return Transaction(
        id=str(uuid.uuid4()),
        portfolio_id=portfolio_id,
        date=parse_timestamp(now or datetime.now(UTC)),
        kind=TransactionKind.ADJUST,
        amount=0.0,
        unit_price=average_cost,
        quantity=delta,
        note=note,
    )


__all__ = ["BALANCE_EPSILON", "build_adjustment"]
