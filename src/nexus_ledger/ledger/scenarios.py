# src/nexus_ledger/ledger/scenarios.py

from __future__ import annotations

from typing import Iterable, List, Optional

from nexus_ledger.ledger.models import ScenarioResult

DEFAULT_MARKUP_PRESETS = (0.0, 2.0, 5.0, 10.0)


def project_sale(
    quantity: float, average_cost: float, candidate_price: float, label: Optional[str] = None
) -> ScenarioResult:
    """Outcome of selling ``quantity`` units held at ``average_cost`` for ``candidate_price``."""

    profit_pct = (candidate_price / average_cost - 1) * 100 if average_cost > 0 else 0.0
    return ScenarioResult(
        quantity=quantity,
        average_cost=average_cost,
        candidate_price=candidate_price,
        profit=quantity * (candidate_price - average_cost),
        profit_pct=profit_pct,
        proceeds=quantity * candidate_price,
        label=label,
    )


def markup_label(markup_pct: float) -> str:
    if markup_pct == 0:
        return "break-even"
    return f"{markup_pct:+g}%"


def markup_scenarios(
    balance: float,
    average_cost: float,
    presets: Iterable[float] = DEFAULT_MARKUP_PRESETS,
) -> List[ScenarioResult]:
    """Project selling the whole balance at fixed markups over the average cost."""

    return [
        project_sale(balance, average_cost, average_cost * (1 + pct / 100), label=markup_label(pct))
        for pct in presets
    ]


def target_price_scenario(balance: float, average_cost: float, target_price: float) -> ScenarioResult:
    return project_sale(balance, average_cost, target_price, label="target")


def simulate_sale(quantity: float, average_cost: float, sale_price: float) -> ScenarioResult:
    # Advisory only: the quantity is not checked against the held balance.
    return project_sale(quantity, average_cost, sale_price, label="simulation")


__all__ = [
    "DEFAULT_MARKUP_PRESETS",
    "markup_label",
    "markup_scenarios",
    "project_sale",
    "simulate_sale",
    "target_price_scenario",
]
