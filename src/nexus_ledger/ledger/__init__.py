"""Ledger accounting engine.

The package replays buy/sell/adjustment transactions with the weighted
average cost method (:mod:`~nexus_ledger.ledger.processor`) and derives the
per-view statistics, monthly spend, sale scenarios and balance adjustments
from that replay. :class:`LedgerService` wires those pieces to a
:class:`~nexus_ledger.ledger.store.LedgerStore`.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import LedgerService

__all__ = ["LedgerService"]


def __getattr__(name):  # pragma: no cover - lightweight lazy import helper
    if name == "LedgerService":
        from .service import LedgerService

        return LedgerService
    raise AttributeError(name)
