# src/nexus_ledger/ledger/stats.py

from __future__ import annotations

from typing import Iterable, Optional

from nexus_ledger.ledger.models import (
    LedgerView,
    PortfolioState,
    PortfolioStats,
    ReplayResult,
    Transaction,
    TransactionKind,
)
from nexus_ledger.ledger.processor import replay, replay_merged

DEFAULT_REFERENCE_PRICE = 19.50


def reference_price(
    replayed: ReplayResult, view: LedgerView, fallback: float = DEFAULT_REFERENCE_PRICE
) -> float:
    """Unit price of the most recent priced (non-adjustment) transaction in ``view``."""

    for entry in replayed.entries_for(view):
        if entry.transaction.kind is not TransactionKind.ADJUST:
            return entry.transaction.unit_price
    return fallback


def compute_stats(
    transactions: Iterable[Transaction],
    view: LedgerView,
    *,
    fallback_price: float = DEFAULT_REFERENCE_PRICE,
    replayed: Optional[ReplayResult] = None,
) -> PortfolioStats:
    """Reduce the ledger into a :class:`PortfolioStats` for ``view``.

    A concrete portfolio reports the running totals of its own book. The
    ``all`` view replays the union of every book as one ledger, so disposals
    are costed at the blended average a single holder would see.
    """

    transactions = list(transactions)
    if replayed is None:
        replayed = replay(transactions)

    portfolio_id = view.portfolio_id
    if portfolio_id is None:
        state = replay_merged(transactions)
    else:
        state = replayed.state_for(portfolio_id)

    return stats_from_state(state, view, reference_price(replayed, view, fallback_price))


def stats_from_state(state: PortfolioState, view: LedgerView, price: float) -> PortfolioStats:
    estimated_value = state.balance * price
    return PortfolioStats(
        view=view,
        total_invested_local=state.cost_basis,
        current_balance=state.balance,
        average_cost=state.average_cost,
        total_realized_profit=state.realized_profit,
        unrealized_profit=estimated_value - state.cost_basis,
        estimated_value=estimated_value,
        reference_price=price,
    )


__all__ = ["DEFAULT_REFERENCE_PRICE", "compute_stats", "reference_price", "stats_from_state"]
