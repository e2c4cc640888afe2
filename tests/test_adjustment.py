from datetime import UTC, datetime

import pytest

from nexus_ledger.ledger.adjustment import build_adjustment
from nexus_ledger.ledger.exceptions import InvalidPortfolioError
from nexus_ledger.ledger.models import LedgerView, PortfolioId, TransactionKind
from nexus_ledger.ledger.processor import replay

NOW = datetime(2024, 6, 1, 8, 0, tzinfo=UTC)


def test_adjustment_moves_balance_and_keeps_average(make_tx):
    ledger = [make_tx(TransactionKind.ACQUIRE, quantity=100, unit_price=10)]

    adjustment = build_adjustment(PortfolioId.MAIN, 100, 10, 80, now=NOW, note="exchange audit")

    assert adjustment is not None
    assert adjustment.kind is TransactionKind.ADJUST
    assert adjustment.amount == 0.0
    assert adjustment.unit_price == 10
    assert adjustment.quantity == pytest.approx(-20)
    assert adjustment.date == NOW
    assert adjustment.note == "exchange audit"

    state = replay(ledger + [adjustment]).state_for(PortfolioId.MAIN)
    assert state.balance == pytest.approx(80)
    assert state.average_cost == pytest.approx(10)


def test_discrepancy_below_epsilon_is_a_no_op(caplog):
    with caplog.at_level("INFO"):
        assert build_adjustment("trading", 50.0, 10.0, 50.00005, now=NOW) is None

    assert any(getattr(r, "event", None) == "adjustment_skipped" for r in caplog.records)


@pytest.mark.parametrize("target", [LedgerView.ALL, "all", "ALL"])
def test_consolidated_view_is_rejected(target):
    with pytest.raises(InvalidPortfolioError):
        build_adjustment(target, 10, 10, 20, now=NOW)


def test_unknown_portfolio_is_rejected():
    with pytest.raises(InvalidPortfolioError):
        build_adjustment("savings", 10, 10, 20, now=NOW)


def test_adjustment_ids_are_unique():
    first = build_adjustment("main", 0, 0, 5, now=NOW)
    second = build_adjustment("main", 0, 0, 5, now=NOW)

    assert first.id != second.id


@pytest.mark.parametrize("prior_balance", [0.5, 12.0, 100.0, 2500.0])
@pytest.mark.parametrize("delta", [-0.25, 3.0, 40.0])
def test_adjustment_leaves_average_cost_unchanged(make_tx, prior_balance, delta):
    ledger = [
        make_tx(TransactionKind.ACQUIRE, quantity=prior_balance * 0.6, unit_price=18.2),
        make_tx(TransactionKind.ACQUIRE, quantity=prior_balance * 0.4, unit_price=19.9),
    ]
    before = replay(ledger).state_for(PortfolioId.MAIN)

    adjustment = build_adjustment(
        PortfolioId.MAIN, before.balance, before.average_cost, before.balance + delta, now=NOW
    )
    after = replay(ledger + [adjustment]).state_for(PortfolioId.MAIN)

    assert after.balance == pytest.approx(prior_balance + delta)
    assert after.average_cost == pytest.approx(before.average_cost)


def test_naive_now_is_taken_as_utc():
    adjustment = build_adjustment("main", 10, 10, 12, now=datetime(2024, 6, 1, 8, 0))

    assert adjustment.date == NOW
