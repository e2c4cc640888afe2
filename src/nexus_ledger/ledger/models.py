# src/nexus_ledger/ledger/models.py

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .exceptions import InvalidPortfolioError, InvalidTransactionError


class PortfolioId(str, Enum):
    MAIN = "main"
    TRADING = "trading"


class LedgerView(str, Enum):
    MAIN = "main"
    TRADING = "trading"
    ALL = "all"

    @property
    def portfolio_id(self) -> Optional[PortfolioId]:
        if self is LedgerView.ALL:
            return None
        return PortfolioId(self.value)


class TransactionKind(str, Enum):
    ACQUIRE = "BUY"
    DISPOSE = "SELL"
    ADJUST = "ADJUSTMENT"

    @property
    def sort_rank(self) -> int:
        """Ordering of kinds sharing a timestamp: inflows before outflows."""

        return _KIND_RANKS[self]


_KIND_RANKS = {
    TransactionKind.ACQUIRE: 0,
    TransactionKind.DISPOSE: 1,
    TransactionKind.ADJUST: 2,
}

# Tokens written by earlier releases of the ledger.
_LEGACY_KIND_TOKENS = {
    "COMPRA": TransactionKind.ACQUIRE,
    "VENTA": TransactionKind.DISPOSE,
    "AJUSTE": TransactionKind.ADJUST,
}


def resolve_portfolio_id(value: Any) -> PortfolioId:
    """Map an external portfolio identifier onto the closed set of books.

    Missing or empty values resolve to ``main``; anything else that is not a
    known identifier raises :class:`InvalidPortfolioError`.
    """

    if value is None or value == "":
        return PortfolioId.MAIN
    if isinstance(value, PortfolioId):
        return value
    if isinstance(value, Enum):
        value = value.value
    try:
        return PortfolioId(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidPortfolioError(value) from exc


def resolve_view(value: Any) -> LedgerView:
    if value is None or value == "":
        return LedgerView.MAIN
    if isinstance(value, LedgerView):
        return value
    if isinstance(value, Enum):
        value = value.value
    try:
        return LedgerView(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidPortfolioError(value) from exc


def resolve_kind(value: Any) -> TransactionKind:
    if isinstance(value, TransactionKind):
        return value
    if value is None:
        raise InvalidTransactionError("Missing transaction type")
    token = str(value).strip().upper()
    if token in _LEGACY_KIND_TOKENS:
        return _LEGACY_KIND_TOKENS[token]
    try:
        return TransactionKind(token)
    except ValueError as exc:
        raise InvalidTransactionError(f"Unknown transaction type: {value!r}") from exc


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp; values without an offset are taken as UTC."""

    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidTransactionError(f"Invalid date: {value!r}") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _finite_float(record: Dict[str, Any], *keys: str) -> float:
    for key in keys:
        if key in record and record[key] is not None:
            try:
                number = float(record[key])
            except (TypeError, ValueError) as exc:
                raise InvalidTransactionError(f"Field {key} is not numeric") from exc
            if not math.isfinite(number):
                raise InvalidTransactionError(f"Field {key} is not finite")
            return number
    raise InvalidTransactionError(f"Missing field: {keys[0]}")


@dataclass(frozen=True)
class Transaction:
    id: str
    portfolio_id: PortfolioId
    date: datetime  # UTC
    kind: TransactionKind
    amount: float
    unit_price: float
    quantity: float
    note: Optional[str] = None

    @property
    def sort_key(self) -> tuple[datetime, int]:
        return (self.date, self.kind.sort_rank)

    def to_record(self) -> Dict[str, Any]:
        """Serialize the authoritative fields using the external record shape."""

        record: Dict[str, Any] = {
            "id": self.id,
            "portfolioId": self.portfolio_id.value,
            "date": format_timestamp(self.date),
            "type": self.kind.value,
            "amount": self.amount,
            "unitPrice": self.unit_price,
            "quantity": self.quantity,
        }
        if self.note:
            record["note"] = self.note
        return record


def transaction_from_record(record: Dict[str, Any]) -> Transaction:
    """Build a :class:`Transaction` from its external record shape.

    Advisory ``realizedProfit``/``realizedProfitPct`` values are ignored; they
    are always recomputed by the processor.
    """

    if not isinstance(record, dict):
        raise InvalidTransactionError("Transaction record must be a mapping")

    tx_id = record.get("id")
    if not tx_id:
        raise InvalidTransactionError("Missing field: id")
    if "date" not in record:
        raise InvalidTransactionError("Missing field: date")
    if "type" not in record:
        raise InvalidTransactionError("Missing field: type")

    note = record.get("note")
    transaction = Transaction(
        id=str(tx_id),
        portfolio_id=resolve_portfolio_id(record.get("portfolioId")),
        date=parse_timestamp(record["date"]),
        kind=resolve_kind(record["type"]),
        amount=_finite_float(record, "amount", "amountPesos"),
        unit_price=_finite_float(record, "unitPrice", "pricePerUsdt"),
        quantity=_finite_float(record, "quantity", "amountUsdt"),
        note=str(note) if note else None,
    )
    _check_record_values(transaction)
    return transaction


def _check_record_values(tx: Transaction) -> None:
    # ADJUST quantity is a signed balance delta priced at the average cost.
    if tx.kind is TransactionKind.ADJUST:
        if tx.amount != 0:
            raise InvalidTransactionError(f"Adjustment {tx.id} must carry a zero amount")
        if tx.unit_price < 0:
            raise InvalidTransactionError(f"Adjustment {tx.id} has a negative unit price")
        return

    if tx.amount < 0:
        raise InvalidTransactionError(f"Transaction {tx.id} has a negative amount")
    if tx.unit_price <= 0:
        raise InvalidTransactionError(f"Transaction {tx.id} needs a positive unit price")
    if tx.quantity < 0:
        raise InvalidTransactionError(f"Transaction {tx.id} has a negative quantity")


@dataclass
class PortfolioState:
    balance: float = 0.0
    cost_basis: float = 0.0
    realized_profit: float = 0.0

    @property
    def average_cost(self) -> float:
        return self.cost_basis / self.balance if self.balance > 0 else 0.0


@dataclass(frozen=True)
class LedgerEntry:
    transaction: Transaction
    realized_profit: Optional[float]
    realized_profit_pct: Optional[float]
    balance_after: float
    cost_basis_after: float

    def to_record(self) -> Dict[str, Any]:
        record = self.transaction.to_record()
        if self.realized_profit is not None:
            record["realizedProfit"] = self.realized_profit
            record["realizedProfitPct"] = self.realized_profit_pct
        return record


@dataclass(frozen=True)
class ReplayResult:
    entries: List[LedgerEntry]  # most recent first
    states: Dict[PortfolioId, PortfolioState]

    def state_for(self, portfolio_id: PortfolioId) -> PortfolioState:
        return self.states.get(portfolio_id, PortfolioState())

    def entries_for(self, view: LedgerView) -> List[LedgerEntry]:
        if view is LedgerView.ALL:
            return list(self.entries)
        return [e for e in self.entries if e.transaction.portfolio_id.value == view.value]


@dataclass(frozen=True)
class PortfolioStats:
    view: LedgerView
    total_invested_local: float
    current_balance: float
    average_cost: float
    total_realized_profit: float
    unrealized_profit: float
    estimated_value: float
    reference_price: float


class SpendStatus(str, Enum):
    NOMINAL = "nominal"
    CAUTION = "caution"
    CRITICAL = "critical"


@dataclass(frozen=True)
class MonthlySpend:
    year: int
    month: int
    ceiling: float
    spent: float
    consumed_pct: float
    remaining: float
    status: SpendStatus
    amounts: List[float] = field(default_factory=list)

    @property
    def max_amount(self) -> float:
        return max(self.amounts) if self.amounts else 0.0


@dataclass(frozen=True)
class ScenarioResult:
    quantity: float
    average_cost: float
    candidate_price: float
    profit: float
    profit_pct: float
    proceeds: float
    label: Optional[str] = None
