from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import appdirs  # type: ignore[import-untyped]
import yaml  # type: ignore[import-untyped]

from nexus_ledger.config_models import AppConfig, LedgerConfig, UIAuthConfig, UIConfig
from nexus_ledger.ledger.models import PortfolioId

APP_NAME = "nexus_ledger"
ALLOWED_ENVS = {"dev", "prod"}


def get_config_dir() -> Path:
    """
    Returns the OS-specific configuration directory for the ledger using appdirs.
    """
    return Path(appdirs.user_config_dir(APP_NAME))


def get_default_db_path() -> str:
    """
    Default SQLite ledger location inside the user-specific data directory.
    """
    return str(Path(appdirs.user_data_dir(APP_NAME)) / "ledger.db")


def _deep_merge_dicts(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    merged = base.copy()
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml_mapping(path: Path, event: str, logger: logging.Logger) -> Dict[str, Any]:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        logger.warning(
            "Configuration file is not a mapping; ignoring it",
            extra={"event": event, "config_path": str(path)},
        )
        return {}
    return data


def load_config(
    config_path: Optional[Path] = None, env: Optional[str] = None
) -> AppConfig:
    """
    Loads the application configuration from the default location or a specified path.
    """
    logger = logging.getLogger(__name__)

    if config_path is None:
        config_path = get_config_dir() / "config.yaml"
    config_path = Path(config_path).expanduser()

    initial_env = env if env is not None else os.environ.get("NEXUS_LEDGER_ENV")
    if initial_env not in ALLOWED_ENVS:
        if initial_env is not None:
            logger.warning(
                "Invalid environment '%s'; defaulting to 'dev'",
                initial_env,
                extra={"event": "config_invalid_env", "config_path": str(config_path)},
            )
        effective_env = "dev"
    else:
        effective_env = initial_env

    if not config_path.exists():
        logger.info(
            "Configuration file not found; using defaults",
            extra={"event": "config_missing_file", "config_path": str(config_path)},
        )
        raw_config: Dict[str, Any] = {}
    else:
        raw_config = _read_yaml_mapping(config_path, "config_invalid_format", logger)

    env_config_path = config_path.parent / f"config.{effective_env}.yaml"
    if env_config_path.exists():
        env_config = _read_yaml_mapping(env_config_path, "config_invalid_env_file", logger)
        raw_config = _deep_merge_dicts(raw_config, env_config)

    def _section(name: str) -> Dict[str, Any]:
        data = raw_config.get(name) or {}
        if not isinstance(data, dict):
            logger.warning(
                "%s config is not a mapping; using defaults",
                name,
                extra={"event": f"config_invalid_{name}", "config_path": str(config_path)},
            )
            return {}
        return data

    def _number(data: Dict[str, Any], key: str, default: float, *, positive: bool = True) -> float:
        value = data.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logger.warning(
                "%s is not numeric; using default",
                key,
                extra={"event": "config_invalid_number", "field": key, "config_path": str(config_path)},
            )
            return default
        if positive and value <= 0:
            logger.warning(
                "%s must be positive; using default",
                key,
                extra={"event": "config_invalid_number", "field": key, "config_path": str(config_path)},
            )
            return default
        return float(value)

    ledger_data = _section("ledger")
    defaults = LedgerConfig()

    caution = _number(ledger_data, "caution_threshold_pct", defaults.caution_threshold_pct)
    critical = _number(ledger_data, "critical_threshold_pct", defaults.critical_threshold_pct)
    if caution > critical:
        logger.warning(
            "caution_threshold_pct exceeds critical_threshold_pct; using default bands",
            extra={"event": "config_invalid_thresholds", "config_path": str(config_path)},
        )
        caution, critical = defaults.caution_threshold_pct, defaults.critical_threshold_pct

    raw_presets = ledger_data.get("markup_presets", defaults.markup_presets)
    presets: List[float] = []
    if isinstance(raw_presets, list):
        for preset in raw_presets:
            if isinstance(preset, (int, float)) and not isinstance(preset, bool):
                presets.append(float(preset))
            else:
                logger.warning(
                    "Skipping non-numeric markup preset %r",
                    preset,
                    extra={"event": "config_invalid_markup_preset", "config_path": str(config_path)},
                )
    else:
        logger.warning(
            "markup_presets should be a list; using defaults",
            extra={"event": "config_invalid_markup_presets", "config_path": str(config_path)},
        )
        presets = list(defaults.markup_presets)

    labels = dict(defaults.portfolio_labels)
    raw_labels = ledger_data.get("portfolio_labels") or {}
    if isinstance(raw_labels, dict):
        known = {p.value for p in PortfolioId}
        for key, label in raw_labels.items():
            if key not in known:
                logger.warning(
                    "Label references unknown portfolio %s; skipping",
                    key,
                    extra={"event": "config_unknown_portfolio_label", "config_path": str(config_path)},
                )
                continue
            labels[key] = str(label)

    ledger_config = LedgerConfig(
        db_path=str(ledger_data.get("db_path") or get_default_db_path()),
        asset_symbol=str(ledger_data.get("asset_symbol", defaults.asset_symbol)),
        local_currency=str(ledger_data.get("local_currency", defaults.local_currency)),
        monthly_ceiling=_number(ledger_data, "monthly_ceiling", defaults.monthly_ceiling),
        caution_threshold_pct=caution,
        critical_threshold_pct=critical,
        fallback_reference_price=_number(
            ledger_data, "fallback_reference_price", defaults.fallback_reference_price
        ),
        balance_epsilon=_number(ledger_data, "balance_epsilon", defaults.balance_epsilon),
        markup_presets=presets,
        portfolio_labels=labels,
    )

    ui_data = _section("ui")
    auth_data = ui_data.get("auth") or {}
    if not isinstance(auth_data, dict):
        auth_data = {}
    default_ui = UIConfig()

    port = ui_data.get("port", default_ui.port)
    if not isinstance(port, int) or isinstance(port, bool) or not 0 < port < 65536:
        logger.warning(
            "ui.port is invalid; using default",
            extra={"event": "config_invalid_port", "config_path": str(config_path)},
        )
        port = default_ui.port

    ui_config = UIConfig(
        host=str(ui_data.get("host", default_ui.host)),
        port=port,
        base_path=str(ui_data.get("base_path", default_ui.base_path)),
        auth=UIAuthConfig(
            enabled=bool(auth_data.get("enabled", False)),
            token=str(auth_data.get("token", "")),
        ),
        read_only=bool(ui_data.get("read_only", default_ui.read_only)),
    )

    return AppConfig(ledger=ledger_config, ui=ui_config, env=effective_env)
