"""Construction and insertion-time validation of user-entered transactions."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, replace
from typing import Any, Iterable, Optional

from nexus_ledger.ledger.exceptions import InsufficientBalanceError, InvalidTransactionError
from nexus_ledger.ledger.models import (
    Transaction,
    TransactionKind,
    parse_timestamp,
    resolve_kind,
    resolve_portfolio_id,
)
from nexus_ledger.ledger.processor import balance_as_of

BALANCE_TOLERANCE = 1e-4


@dataclass(frozen=True)
class AcquisitionPreview:
    new_average_cost: float
    average_cost_change: float


@dataclass(frozen=True)
class DisposalPreview:
    realized_profit: float
    realized_profit_pct: float
    proceeds: float


def _require_positive(value: float, name: str) -> float:
    if not math.isfinite(value) or value <= 0:
        raise InvalidTransactionError(f"{name} must be greater than zero")
    return value


def _trade_kind(kind: Any) -> TransactionKind:
    resolved = resolve_kind(kind)
    if resolved is TransactionKind.ADJUST:
        raise InvalidTransactionError("Adjustments are generated from an observed balance")
    return resolved


def build_trade(
    kind: Any,
    amount: float,
    unit_price: float,
    date: Any,
    portfolio_id: Any = None,
    note: Optional[str] = None,
) -> Transaction:
    """Build an ACQUIRE/DISPOSE from a local-currency amount and unit price."""

    resolved_kind = _trade_kind(kind)
    amount = _require_positive(float(amount), "amount")
    unit_price = _require_positive(float(unit_price), "unit_price")
    return Transaction(
        id=str(uuid.uuid4()),
        portfolio_id=resolve_portfolio_id(portfolio_id),
        date=parse_timestamp(date),
        kind=resolved_kind,
        amount=amount,
        unit_price=unit_price,
        quantity=amount / unit_price,
        note=note,
    )


def build_trade_from_quantity(
    kind: Any,
    quantity: float,
    unit_price: float,
    date: Any,
    portfolio_id: Any = None,
    note: Optional[str] = None,
) -> Transaction:
    """Build an ACQUIRE/DISPOSE from an asset quantity and unit price."""

    quantity = _require_positive(float(quantity), "quantity")
    unit_price = _require_positive(float(unit_price), "unit_price")
    trade = build_trade(kind, quantity * unit_price, unit_price, date, portfolio_id, note)
    # Keep the quantity exactly as entered rather than re-deriving it.
    return replace(trade, quantity=quantity)


def validate_transaction(
    existing: Iterable[Transaction],
    candidate: Transaction,
    tolerance: float = BALANCE_TOLERANCE,
) -> None:
    """Reject a disposal larger than its book's balance as of its own date.

    Raises:
        InsufficientBalanceError: when ``candidate`` is a DISPOSE whose quantity
            exceeds the point-in-time balance by more than ``tolerance``.
    """

    if candidate.kind is not TransactionKind.DISPOSE:
        return

    available = balance_as_of(existing, candidate).balance
    if candidate.quantity > available + tolerance:
        raise InsufficientBalanceError(
            requested=candidate.quantity,
            available=available,
            portfolio_id=candidate.portfolio_id.value,
        )


def preview_acquisition(
    balance: float, average_cost: float, amount: float, unit_price: float
) -> AcquisitionPreview:
    """Average cost after a hypothetical purchase of ``amount`` at ``unit_price``."""

    quantity = amount / unit_price if unit_price > 0 else 0.0
    total_quantity = balance + quantity
    total_basis = balance * average_cost + amount
    new_average = total_basis / total_quantity if total_quantity > 0 else unit_price
    return AcquisitionPreview(
        new_average_cost=new_average,
        average_cost_change=new_average - average_cost,
    )


def preview_disposal(quantity: float, average_cost: float, unit_price: float) -> DisposalPreview:
    proceeds = quantity * unit_price
    return DisposalPreview(
        realized_profit=proceeds - quantity * average_cost,
        realized_profit_pct=(unit_price / average_cost - 1) * 100 if average_cost > 0 else 0.0,
        proceeds=proceeds,
    )


__all__ = [
    "AcquisitionPreview",
    "BALANCE_TOLERANCE",
    "DisposalPreview",
    "build_trade",
    "build_trade_from_quantity",
    "preview_acquisition",
    "preview_disposal",
    "validate_transaction",
]
