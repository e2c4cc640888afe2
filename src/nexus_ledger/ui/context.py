"""UI application context helpers."""

from dataclasses import dataclass
from typing import Optional

from nexus_ledger.config import AppConfig, load_config
from nexus_ledger.ledger.service import LedgerService
from nexus_ledger.ledger.store import SQLiteLedgerStore


@dataclass
class AppContext:
    """Bundled services and configuration for API consumers."""

    config: AppConfig
    ledger: LedgerService


def build_app_context(config: Optional[AppConfig] = None) -> AppContext:
    """Open the configured SQLite ledger and wrap it in a :class:`LedgerService`.

    Args:
        config: Pre-loaded configuration. When omitted, :func:`load_config` is
            used.

    Returns:
        A ready :class:`AppContext`.
    """

    config = config or load_config()
    store = SQLiteLedgerStore(db_path=config.ledger.db_path)
    return AppContext(config=config, ledger=LedgerService(store, config.ledger))


__all__ = ["AppContext", "build_app_context"]
