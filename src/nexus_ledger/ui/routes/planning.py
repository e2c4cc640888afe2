"""Planning endpoints: monthly spend, sale scenarios, previews and reconciliation."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request

from nexus_ledger.ledger.exceptions import LedgerError
from nexus_ledger.ledger.models import ScenarioResult
from nexus_ledger.ui.logging import build_request_log_extra
from nexus_ledger.ui.models import (
    AdjustmentPayload,
    AdjustmentRequest,
    ApiEnvelope,
    MonthlySpendPayload,
    ScenarioPayload,
    SimulationRequest,
)
from nexus_ledger.ui.routes.ledger import transaction_payload

logger = logging.getLogger(__name__)

router = APIRouter()


def _context(request: Request):
    return request.app.state.context


def _scenario_payload(result: ScenarioResult) -> ScenarioPayload:
    return ScenarioPayload(
        label=result.label,
        quantity=result.quantity,
        average_cost=result.average_cost,
        candidate_price=result.candidate_price,
        profit=result.profit,
        profit_pct=result.profit_pct,
        proceeds=result.proceeds,
    )


def _float_param(request: Request, name: str) -> Optional[float]:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return None
    return float(raw)


@router.get("/monthly", response_model=ApiEnvelope[MonthlySpendPayload])
async def get_monthly_spend(request: Request) -> ApiEnvelope[MonthlySpendPayload]:
    ctx = _context(request)
    try:
        spend = ctx.ledger.monthly_spend()
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception(
            "Failed to compute monthly spend",
            extra=build_request_log_extra(request, event="monthly_spend_failed"),
        )
        return ApiEnvelope(data=None, error=str(exc))

    data = MonthlySpendPayload(
        year=spend.year,
        month=spend.month,
        ceiling=spend.ceiling,
        spent=spend.spent,
        consumed_pct=spend.consumed_pct,
        remaining=spend.remaining,
        status=spend.status.value,
        amounts=list(spend.amounts),
        max_amount=spend.max_amount,
    )
    return ApiEnvelope(data=data, error=None)


@router.get("/scenarios", response_model=ApiEnvelope[List[ScenarioPayload]])
async def get_scenarios(request: Request) -> ApiEnvelope[List[ScenarioPayload]]:
    ctx = _context(request)
    try:
        target_price = _float_param(request, "target_price")
    except ValueError:
        return ApiEnvelope(data=None, error="target_price must be a number")

    try:
        results = ctx.ledger.scenarios(request.query_params.get("view"), target_price=target_price)
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    return ApiEnvelope(data=[_scenario_payload(r) for r in results], error=None)


@router.post("/simulate", response_model=ApiEnvelope[ScenarioPayload])
async def simulate(request: Request) -> ApiEnvelope[ScenarioPayload]:
    ctx = _context(request)
    try:
        payload = SimulationRequest(**await request.json())
    except Exception:  # pragma: no cover - malformed body
        return ApiEnvelope(data=None, error="Invalid JSON payload")

    try:
        result = ctx.ledger.simulate(payload.quantity, payload.sale_price, payload.view)
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    return ApiEnvelope(data=_scenario_payload(result), error=None)


@router.get("/preview", response_model=ApiEnvelope[Dict[str, Any]])
async def preview_trade(request: Request) -> ApiEnvelope[Dict[str, Any]]:
    """Preview the effect of a prospective trade without recording it.

    ``kind=BUY`` takes ``amount`` and reports the new average cost; ``kind=SELL``
    takes ``quantity`` and reports the realized profit.
    """

    ctx = _context(request)
    params = request.query_params
    kind = (params.get("kind") or "BUY").upper()
    portfolio = params.get("portfolio_id")
    try:
        unit_price = _float_param(request, "unit_price")
        if kind == "BUY":
            amount = _float_param(request, "amount")
            if amount is None or unit_price is None:
                return ApiEnvelope(data=None, error="amount and unit_price are required")
            preview = ctx.ledger.preview_acquisition(amount, unit_price, portfolio)
            data = {
                "new_average_cost": preview.new_average_cost,
                "average_cost_change": preview.average_cost_change,
            }
        elif kind == "SELL":
            quantity = _float_param(request, "quantity")
            if quantity is None or unit_price is None:
                return ApiEnvelope(data=None, error="quantity and unit_price are required")
            preview = ctx.ledger.preview_disposal(quantity, unit_price, portfolio)
            data = {
                "realized_profit": preview.realized_profit,
                "realized_profit_pct": preview.realized_profit_pct,
                "proceeds": preview.proceeds,
            }
        else:
            return ApiEnvelope(data=None, error=f"Unsupported preview kind '{kind}'")
    except ValueError:
        return ApiEnvelope(data=None, error="Numeric parameters must be numbers")
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    return ApiEnvelope(data=data, error=None)


@router.post("/adjust", response_model=ApiEnvelope[AdjustmentPayload])
async def adjust_balance(request: Request) -> ApiEnvelope[AdjustmentPayload]:
    ctx = _context(request)
    if ctx.config.ui.read_only:
        logger.warning(
            "Balance adjustment blocked: API read-only",
            extra=build_request_log_extra(request, event="adjustment_blocked"),
        )
        return ApiEnvelope(data=None, error="API is in read-only mode")

    try:
        payload = AdjustmentRequest(**await request.json())
    except Exception:  # pragma: no cover - malformed body
        return ApiEnvelope(data=None, error="Invalid JSON payload")

    try:
        adjustment = ctx.ledger.reconcile_balance(
            payload.true_balance, portfolio=payload.portfolio_id, note=payload.note
        )
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))

    if adjustment is None:
        return ApiEnvelope(data=AdjustmentPayload(emitted=False), error=None)
    return ApiEnvelope(
        data=AdjustmentPayload(emitted=True, transaction=transaction_payload(adjustment)),
        error=None,
    )


__all__ = ["router"]
