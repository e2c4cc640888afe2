"""Weighted-average cost replay of the ledger.

Every statistic in the application is derived from :func:`replay`, which
walks the full transaction set in chronological order and keeps one running
:class:`~nexus_ledger.ledger.models.PortfolioState` per book.  Nothing is
cached between calls; callers that want memoization do it on top (see
:class:`~nexus_ledger.ledger.service.LedgerService`).

Transactions sharing a timestamp are ordered ACQUIRE, DISPOSE, ADJUST so that
inflows are visible to outflows dated at the same instant.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from nexus_ledger.ledger.models import (
    LedgerEntry,
    PortfolioId,
    PortfolioState,
    ReplayResult,
    Transaction,
    TransactionKind,
)


def chronological(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Return transactions in replay order (oldest first)."""

    return sorted(transactions, key=lambda tx: tx.sort_key)


def apply_transaction(
    state: PortfolioState, tx: Transaction
) -> Tuple[Optional[float], Optional[float]]:
    """Apply ``tx`` to ``state`` in place.

    Returns ``(realized_profit, realized_profit_pct)`` for disposals and
    ``(None, None)`` otherwise. A disposal against an empty book uses an
    average cost of zero, so the full proceeds count as realized profit.
    """

    avg = state.average_cost

    if tx.kind is TransactionKind.ACQUIRE:
        state.balance += tx.quantity
        state.cost_basis += tx.amount
        return None, None

    if tx.kind is TransactionKind.DISPOSE:
        cost = tx.quantity * avg
        realized = tx.amount - cost
        pct = (tx.unit_price / avg - 1) * 100 if avg > 0 else 0.0
        state.realized_profit += realized
        state.balance -= tx.quantity
        state.cost_basis -= cost
        return realized, pct

    delta = tx.quantity
    if delta > 0:
        state.balance += delta
        state.cost_basis += delta * avg
    elif delta < 0:
        ratio = abs(delta) / state.balance if state.balance > 0 else 0.0
        state.cost_basis -= state.cost_basis * ratio
        state.balance -= abs(delta)
    return None, None


def replay(transactions: Iterable[Transaction]) -> ReplayResult:
    """Replay ``transactions`` and annotate each one with realized profit.

    The result lists entries most recent first, alongside the final state of
    every book that appeared in the input.
    """

    states: Dict[PortfolioId, PortfolioState] = {}
    entries: List[LedgerEntry] = []

    for tx in chronological(transactions):
        state = states.setdefault(tx.portfolio_id, PortfolioState())
        realized, pct = apply_transaction(state, tx)
        entries.append(
            LedgerEntry(
                transaction=tx,
                realized_profit=realized,
                realized_profit_pct=pct,
                balance_after=state.balance,
                cost_basis_after=state.cost_basis,
            )
        )

    entries.reverse()
    return ReplayResult(entries=entries, states=states)


def replay_merged(transactions: Iterable[Transaction]) -> PortfolioState:
    """Replay every transaction as a single book, ignoring portfolio ids."""

    state = PortfolioState()
    for tx in chronological(transactions):
        apply_transaction(state, tx)
    return state


def balance_as_of(
    transactions: Iterable[Transaction], candidate: Transaction
) -> PortfolioState:
    """State of ``candidate``'s book immediately before it would be applied.

    Only transactions of the same portfolio that sort at or before the
    candidate are replayed, so back-dated entries are checked against the
    history as it stood on their own date.
    """

    cutoff = candidate.sort_key
    prior = [
        tx
        for tx in transactions
        if tx.portfolio_id is candidate.portfolio_id
        and tx.id != candidate.id
        and tx.sort_key <= cutoff
    ]
    state = PortfolioState()
    for tx in chronological(prior):
        apply_transaction(state, tx)
    return state


__all__ = [
    "apply_transaction",
    "balance_as_of",
    "chronological",
    "replay",
    "replay_merged",
]
