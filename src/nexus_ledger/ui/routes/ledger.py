"""Ledger HTTP endpoints: history, intake, stats and the active view."""

from __future__ import annotations

import io
import logging
from datetime import UTC, datetime
from typing import List

from fastapi import APIRouter, Request
from fastapi.responses import Response

from nexus_ledger.ledger.exceptions import InsufficientBalanceError, LedgerError
from nexus_ledger.ledger.export import write_csv
from nexus_ledger.ledger.models import LedgerEntry, PortfolioStats, Transaction
from nexus_ledger.ui.logging import build_request_log_extra
from nexus_ledger.ui.models import (
    ApiEnvelope,
    ExportRowPayload,
    NewTradePayload,
    StatsPayload,
    TransactionPayload,
    ViewPayload,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _context(request: Request):
    return request.app.state.context


def transaction_payload(tx: Transaction) -> TransactionPayload:
    return TransactionPayload(
        id=tx.id,
        portfolio_id=tx.portfolio_id.value,
        date=tx.date,
        kind=tx.kind.value,
        amount=tx.amount,
        unit_price=tx.unit_price,
        quantity=tx.quantity,
        note=tx.note,
    )


def _entry_payload(entry: LedgerEntry) -> TransactionPayload:
    return transaction_payload(entry.transaction).model_copy(
        update={
            "realized_profit": entry.realized_profit,
            "realized_profit_pct": entry.realized_profit_pct,
            "balance_after": entry.balance_after,
        }
    )


def _stats_payload(stats: PortfolioStats) -> StatsPayload:
    return StatsPayload(
        view=stats.view.value,
        total_invested_local=stats.total_invested_local,
        current_balance=stats.current_balance,
        average_cost=stats.average_cost,
        total_realized_profit=stats.total_realized_profit,
        unrealized_profit=stats.unrealized_profit,
        estimated_value=stats.estimated_value,
        reference_price=stats.reference_price,
    )


def _read_only_blocked(request: Request, event: str) -> bool:
    if _context(request).config.ui.read_only:
        logger.warning(
            "Ledger mutation blocked: API read-only",
            extra=build_request_log_extra(request, event=event),
        )
        return True
    return False


@router.get("/transactions", response_model=ApiEnvelope[List[TransactionPayload]])
async def get_transactions(request: Request) -> ApiEnvelope[List[TransactionPayload]]:
    ctx = _context(request)
    try:
        entries = ctx.ledger.history(request.query_params.get("view"))
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    return ApiEnvelope(data=[_entry_payload(entry) for entry in entries], error=None)


@router.post("/transactions", response_model=ApiEnvelope[TransactionPayload])
async def create_transaction(request: Request) -> ApiEnvelope[TransactionPayload]:
    if _read_only_blocked(request, "transaction_create_blocked"):
        return ApiEnvelope(data=None, error="API is in read-only mode")

    ctx = _context(request)
    try:
        payload = NewTradePayload(**await request.json())
    except Exception:  # pragma: no cover - malformed body
        return ApiEnvelope(data=None, error="Invalid JSON payload")

    if (payload.amount is None) == (payload.quantity is None):
        return ApiEnvelope(data=None, error="Provide exactly one of amount or quantity")

    date = payload.date or datetime.now(UTC)
    try:
        if payload.amount is not None:
            stored = ctx.ledger.record_trade(
                payload.kind,
                payload.amount,
                payload.unit_price,
                date,
                portfolio=payload.portfolio_id,
                note=payload.note,
            )
        else:
            stored = ctx.ledger.record_trade_quantity(
                payload.kind,
                payload.quantity,
                payload.unit_price,
                date,
                portfolio=payload.portfolio_id,
                note=payload.note,
            )
    except InsufficientBalanceError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    except LedgerError as exc:
        logger.warning(
            "Rejected transaction payload",
            extra=build_request_log_extra(request, event="transaction_invalid", reason=str(exc)),
        )
        return ApiEnvelope(data=None, error=str(exc))

    return ApiEnvelope(data=transaction_payload(stored), error=None)


@router.delete("/transactions/{transaction_id}", response_model=ApiEnvelope[bool])
async def delete_transaction(transaction_id: str, request: Request) -> ApiEnvelope[bool]:
    if _read_only_blocked(request, "transaction_delete_blocked"):
        return ApiEnvelope(data=None, error="API is in read-only mode")

    removed = _context(request).ledger.remove_transaction(transaction_id)
    if not removed:
        return ApiEnvelope(data=False, error=f"Transaction '{transaction_id}' not found")
    return ApiEnvelope(data=True, error=None)


@router.get("/stats", response_model=ApiEnvelope[StatsPayload])
async def get_stats(request: Request) -> ApiEnvelope[StatsPayload]:
    ctx = _context(request)
    try:
        stats = ctx.ledger.stats(request.query_params.get("view"))
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception(
            "Failed to compute ledger stats",
            extra=build_request_log_extra(request, event="stats_failed"),
        )
        return ApiEnvelope(data=None, error=str(exc))
    return ApiEnvelope(data=_stats_payload(stats), error=None)


@router.get("/view", response_model=ApiEnvelope[ViewPayload])
async def get_view(request: Request) -> ApiEnvelope[ViewPayload]:
    view = _context(request).ledger.get_active_view()
    return ApiEnvelope(data=ViewPayload(view=view.value), error=None)


@router.put("/view", response_model=ApiEnvelope[ViewPayload])
async def set_view(request: Request) -> ApiEnvelope[ViewPayload]:
    if _read_only_blocked(request, "view_update_blocked"):
        return ApiEnvelope(data=None, error="API is in read-only mode")

    try:
        payload = ViewPayload(**await request.json())
    except Exception:  # pragma: no cover - malformed body
        return ApiEnvelope(data=None, error="Invalid JSON payload")

    try:
        view = _context(request).ledger.set_active_view(payload.view)
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    return ApiEnvelope(data=ViewPayload(view=view.value), error=None)


@router.get("/export", response_model=ApiEnvelope[List[ExportRowPayload]])
async def get_export(request: Request) -> ApiEnvelope[List[ExportRowPayload]]:
    try:
        rows = _context(request).ledger.export_rows(request.query_params.get("view"))
    except LedgerError as exc:
        return ApiEnvelope(data=None, error=str(exc))
    return ApiEnvelope(data=[ExportRowPayload(**row) for row in rows], error=None)


@router.get("/export.csv")
async def get_export_csv(request: Request) -> Response:
    try:
        rows = _context(request).ledger.export_rows(request.query_params.get("view"))
    except LedgerError as exc:
        return Response(content=str(exc), status_code=400, media_type="text/plain")

    buffer = io.StringIO()
    write_csv(rows, buffer)
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="ledger.csv"'},
    )


__all__ = ["router"]
