"""Shared fixtures for ledger tests."""
from __future__ import annotations

import itertools
from datetime import UTC, datetime, timedelta
from typing import Callable

import pytest

from nexus_ledger.config_models import LedgerConfig
from nexus_ledger.ledger.models import PortfolioId, Transaction, TransactionKind
from nexus_ledger.ledger.service import LedgerService
from nexus_ledger.ledger.store import InMemoryLedgerStore

BASE_DATE = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_tx() -> Callable[..., Transaction]:
    """Factory for transactions with sequential ids and hourly dates."""

    counter = itertools.count(1)

    def _make(
        kind: TransactionKind,
        *,
        quantity: float,
        unit_price: float,
        amount: float | None = None,
        portfolio: PortfolioId = PortfolioId.MAIN,
        date: datetime | None = None,
        hours: int | None = None,
        tx_id: str | None = None,
    ) -> Transaction:
        n = next(counter)
        if date is None:
            date = BASE_DATE + timedelta(hours=n if hours is None else hours)
        if amount is None:
            amount = 0.0 if kind is TransactionKind.ADJUST else quantity * unit_price
        return Transaction(
            id=tx_id or f"tx-{n}",
            portfolio_id=portfolio,
            date=date,
            kind=kind,
            amount=amount,
            unit_price=unit_price,
            quantity=quantity,
        )

    return _make


@pytest.fixture
def memory_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def service(memory_store: InMemoryLedgerStore) -> LedgerService:
    return LedgerService(memory_store, LedgerConfig())
