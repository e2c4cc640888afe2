from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from nexus_ledger.ledger.adjustment import BALANCE_EPSILON
from nexus_ledger.ledger.export import DEFAULT_PORTFOLIO_LABELS
from nexus_ledger.ledger.scenarios import DEFAULT_MARKUP_PRESETS
from nexus_ledger.ledger.spend import (
    DEFAULT_CAUTION_PCT,
    DEFAULT_CRITICAL_PCT,
    DEFAULT_MONTHLY_CEILING,
)
from nexus_ledger.ledger.stats import DEFAULT_REFERENCE_PRICE


@dataclass
class LedgerConfig:
    db_path: str = "ledger.db"
    asset_symbol: str = "USDT"
    local_currency: str = "MXN"
    monthly_ceiling: float = DEFAULT_MONTHLY_CEILING
    caution_threshold_pct: float = DEFAULT_CAUTION_PCT
    critical_threshold_pct: float = DEFAULT_CRITICAL_PCT
    fallback_reference_price: float = DEFAULT_REFERENCE_PRICE
    balance_epsilon: float = BALANCE_EPSILON
    markup_presets: List[float] = field(default_factory=lambda: list(DEFAULT_MARKUP_PRESETS))
    portfolio_labels: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_PORTFOLIO_LABELS)
    )


@dataclass
class UIAuthConfig:
    enabled: bool = False
    token: str = ""


@dataclass
class UIConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    base_path: str = "/"
    auth: UIAuthConfig = field(default_factory=UIAuthConfig)
    read_only: bool = False


@dataclass
class AppConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    env: str = "dev"
