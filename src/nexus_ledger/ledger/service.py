# src/nexus_ledger/ledger/service.py

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from nexus_ledger.config_models import LedgerConfig
from nexus_ledger.logging_config import structured_log_extra
from .adjustment import build_adjustment
from .exceptions import InsufficientBalanceError, InvalidPortfolioError
from .export import export_rows
from .intake import (
    AcquisitionPreview,
    DisposalPreview,
    build_trade,
    build_trade_from_quantity,
    preview_acquisition,
    preview_disposal,
    validate_transaction,
)
from .models import (
    LedgerEntry,
    LedgerView,
    MonthlySpend,
    PortfolioId,
    PortfolioStats,
    ReplayResult,
    ScenarioResult,
    Transaction,
    resolve_portfolio_id,
    resolve_view,
)
from .processor import replay
from .scenarios import markup_scenarios, simulate_sale, target_price_scenario
from .spend import monthly_spend
from .stats import compute_stats
from .store import LedgerStore

logger = logging.getLogger(__name__)


class LedgerService:
    """Composes the store with the replay engine and its derived views.

    Every read re-derives from the full transaction set. The last replay is
    reused only while the store's revision is unchanged.
    """

    def __init__(self, store: LedgerStore, config: Optional[LedgerConfig] = None):
        self.store = store
        self.config = config or LedgerConfig()
        self._cache: Optional[Tuple[int, List[Transaction], ReplayResult]] = None

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------
    def _snapshot(self) -> Tuple[List[Transaction], ReplayResult]:
        revision = self.store.revision
        if self._cache is not None and self._cache[0] == revision:
            return self._cache[1], self._cache[2]

        transactions = self.store.load()
        replayed = replay(transactions)
        self._cache = (revision, transactions, replayed)
        return transactions, replayed

    def transactions(self) -> List[Transaction]:
        return list(self._snapshot()[0])

    def replay(self) -> ReplayResult:
        return self._snapshot()[1]

    def _view(self, view: Any) -> LedgerView:
        return self.get_active_view() if view is None else resolve_view(view)

    def _target_portfolio(self, portfolio: Any) -> PortfolioId:
        """Concrete book for new entries; the consolidated view books into ``main``."""

        if portfolio is None:
            view = self.get_active_view()
            return view.portfolio_id or PortfolioId.MAIN
        return resolve_portfolio_id(portfolio)

    # ------------------------------------------------------------------
    # View selector
    # ------------------------------------------------------------------
    def get_active_view(self) -> LedgerView:
        return self.store.get_active_view()

    def set_active_view(self, view: Any) -> LedgerView:
        resolved = resolve_view(view)
        self.store.set_active_view(resolved)
        logger.info(
            "Active view changed",
            extra=structured_log_extra(event="active_view_changed", view=resolved.value),
        )
        return resolved

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def history(self, view: Any = None) -> List[LedgerEntry]:
        return self.replay().entries_for(self._view(view))

    def stats(self, view: Any = None) -> PortfolioStats:
        transactions, replayed = self._snapshot()
        return compute_stats(
            transactions,
            self._view(view),
            fallback_price=self.config.fallback_reference_price,
            replayed=replayed,
        )

    def monthly_spend(self, now: Optional[datetime] = None) -> MonthlySpend:
        return monthly_spend(
            self._snapshot()[0],
            ceiling=self.config.monthly_ceiling,
            now=now,
            caution_pct=self.config.caution_threshold_pct,
            critical_pct=self.config.critical_threshold_pct,
        )

    def scenarios(self, view: Any = None, target_price: Optional[float] = None) -> List[ScenarioResult]:
        stats = self.stats(view)
        results = markup_scenarios(
            stats.current_balance, stats.average_cost, self.config.markup_presets
        )
        if target_price is not None:
            results.append(
                target_price_scenario(stats.current_balance, stats.average_cost, target_price)
            )
        return results

    def simulate(self, quantity: float, sale_price: float, view: Any = None) -> ScenarioResult:
        stats = self.stats(view)
        return simulate_sale(quantity, stats.average_cost, sale_price)

    def preview_acquisition(
        self, amount: float, unit_price: float, portfolio: Any = None
    ) -> AcquisitionPreview:
        stats = self.stats(self._target_portfolio(portfolio).value)
        return preview_acquisition(stats.current_balance, stats.average_cost, amount, unit_price)

    def preview_disposal(
        self, quantity: float, unit_price: float, portfolio: Any = None
    ) -> DisposalPreview:
        stats = self.stats(self._target_portfolio(portfolio).value)
        return preview_disposal(quantity, stats.average_cost, unit_price)

    def export_rows(self, view: Any = None) -> List[Dict[str, str]]:
        return export_rows(self.history(view), self.config.portfolio_labels)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_transaction(self, candidate: Transaction) -> Transaction:
        """Validate ``candidate`` against its own date and append it.

        Raises:
            InsufficientBalanceError: if a disposal exceeds the point-in-time
                balance of its portfolio. The ledger is left unchanged.
        """

        try:
            validate_transaction(self._snapshot()[0], candidate)
        except InsufficientBalanceError as exc:
            logger.warning(
                "Rejected disposal: %s",
                exc,
                extra=structured_log_extra(
                    event="transaction_rejected",
                    portfolio_id=candidate.portfolio_id.value,
                    requested=exc.requested,
                    available=exc.available,
                ),
            )
            raise

        stored = self.store.append(candidate)
        logger.info(
            "Transaction appended",
            extra=structured_log_extra(
                event="transaction_appended",
                portfolio_id=stored.portfolio_id.value,
                transaction_id=stored.id,
                kind=stored.kind.value,
            ),
        )
        return stored

    def record_trade(
        self,
        kind: Any,
        amount: float,
        unit_price: float,
        date: Any,
        portfolio: Any = None,
        note: Optional[str] = None,
    ) -> Transaction:
        trade = build_trade(kind, amount, unit_price, date, self._target_portfolio(portfolio), note)
        return self.add_transaction(trade)

    def record_trade_quantity(
        self,
        kind: Any,
        quantity: float,
        unit_price: float,
        date: Any,
        portfolio: Any = None,
        note: Optional[str] = None,
    ) -> Transaction:
        trade = build_trade_from_quantity(
            kind, quantity, unit_price, date, self._target_portfolio(portfolio), note
        )
        return self.add_transaction(trade)

    def remove_transaction(self, transaction_id: str) -> bool:
        removed = self.store.remove(transaction_id)
        logger.info(
            "Transaction removed" if removed else "Transaction not found",
            extra=structured_log_extra(
                event="transaction_removed" if removed else "transaction_missing",
                transaction_id=transaction_id,
            ),
        )
        return removed

    def reconcile_balance(
        self,
        true_balance: float,
        portfolio: Any = None,
        now: Optional[datetime] = None,
        note: Optional[str] = None,
    ) -> Optional[Transaction]:
        """Append the adjustment that aligns a book with an observed balance.

        Returns the stored adjustment, or ``None`` when the discrepancy is below
        the configured tolerance.

        Raises:
            InvalidPortfolioError: when targeting the consolidated view.
        """

        if portfolio is None:
            view = self.get_active_view()
            if view.portfolio_id is None:
                raise InvalidPortfolioError(view.value)
            portfolio = view.portfolio_id

        target = resolve_view(portfolio)
        if target.portfolio_id is None:
            raise InvalidPortfolioError(portfolio)

        stats = self.stats(target)
        adjustment = build_adjustment(
            target.portfolio_id,
            stats.current_balance,
            stats.average_cost,
            true_balance,
            now=now,
            note=note,
            epsilon=self.config.balance_epsilon,
        )
        if adjustment is None:
            return None

        stored = self.store.append(adjustment)
        logger.info(
            "Balance adjustment appended",
            extra=structured_log_extra(
                event="adjustment_appended",
                portfolio_id=stored.portfolio_id.value,
                transaction_id=stored.id,
                delta=stored.quantity,
            ),
        )
        return stored

    def replace_all(self, transactions: List[Transaction], view: Optional[LedgerView] = None) -> None:
        """Whole-ledger snapshot replace, e.g. when importing a JSON dump."""

        self.store.persist(transactions)
        if view is not None:
            self.store.set_active_view(view)
        logger.info(
            "Ledger replaced",
            extra=structured_log_extra(event="ledger_replaced", count=len(transactions)),
        )


__all__ = ["LedgerService"]
