from __future__ import annotations

from datetime import datetime
from typing import Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


class ApiEnvelope(BaseModel, Generic[T]):
    """Standard API envelope for UI responses."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    data: Optional[T]
    error: Optional[str] = None


class TransactionPayload(BaseModel):
    id: str
    portfolio_id: str
    date: datetime
    kind: str
    amount: float
    unit_price: float
    quantity: float
    note: Optional[str] = None
    realized_profit: Optional[float] = None
    realized_profit_pct: Optional[float] = None
    balance_after: Optional[float] = None


class NewTradePayload(BaseModel):
    kind: Literal["BUY", "SELL"]
    unit_price: float = Field(gt=0)
    amount: Optional[float] = Field(default=None, gt=0)
    quantity: Optional[float] = Field(default=None, gt=0)
    date: Optional[datetime] = None
    portfolio_id: Optional[str] = None
    note: Optional[str] = None


class StatsPayload(BaseModel):
    view: str
    total_invested_local: float
    current_balance: float
    average_cost: float
    total_realized_profit: float
    unrealized_profit: float
    estimated_value: float
    reference_price: float


class ViewPayload(BaseModel):
    view: str


class MonthlySpendPayload(BaseModel):
    year: int
    month: int
    ceiling: float
    spent: float
    consumed_pct: float
    remaining: float
    status: str
    amounts: List[float]
    max_amount: float


class ScenarioPayload(BaseModel):
    label: Optional[str] = None
    quantity: float
    average_cost: float
    candidate_price: float
    profit: float
    profit_pct: float
    proceeds: float


class SimulationRequest(BaseModel):
    quantity: float
    sale_price: float
    view: Optional[str] = None


class AdjustmentRequest(BaseModel):
    true_balance: float = Field(ge=0)
    portfolio_id: Optional[str] = None
    note: Optional[str] = None


class AdjustmentPayload(BaseModel):
    emitted: bool
    transaction: Optional[TransactionPayload] = None


class ExportRowPayload(BaseModel):
    date: str
    time: str
    portfolio: str
    kind: str
    quantity: str
    unit_price: str
    amount: str
    realized_profit: str
    realized_profit_pct: str
