import logging

import pytest
import yaml

from nexus_ledger import config, config_loader
from nexus_ledger.ledger.spend import DEFAULT_MONTHLY_CEILING


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    monkeypatch.delenv("NEXUS_LEDGER_ENV", raising=False)
    monkeypatch.setattr(config_loader.appdirs, "user_data_dir", lambda _: str(tmp_path / "data"))
    return tmp_path / "config.yaml"


def _write(path, data):
    path.write_text(yaml.safe_dump(data))


def test_missing_file_uses_defaults(config_path, tmp_path):
    cfg = config.load_config(config_path)

    assert cfg.env == "dev"
    assert cfg.ledger.monthly_ceiling == DEFAULT_MONTHLY_CEILING
    assert cfg.ledger.markup_presets == [0.0, 2.0, 5.0, 10.0]
    assert cfg.ledger.db_path == str(tmp_path / "data" / "ledger.db")
    assert cfg.ui.port == 8080
    assert cfg.ui.auth.enabled is False


def test_values_are_loaded_from_yaml(config_path):
    _write(
        config_path,
        {
            "ledger": {
                "db_path": "/srv/ledger.db",
                "monthly_ceiling": 50000,
                "fallback_reference_price": 18.75,
                "markup_presets": [1, 3],
                "portfolio_labels": {"trading": "Desk"},
            },
            "ui": {"port": 9000, "read_only": True, "auth": {"enabled": True, "token": "s3cret"}},
        },
    )

    cfg = config.load_config(config_path)

    assert cfg.ledger.db_path == "/srv/ledger.db"
    assert cfg.ledger.monthly_ceiling == 50000.0
    assert cfg.ledger.fallback_reference_price == 18.75
    assert cfg.ledger.markup_presets == [1.0, 3.0]
    assert cfg.ledger.portfolio_labels == {"main": "Main investment", "trading": "Desk"}
    assert cfg.ui.port == 9000
    assert cfg.ui.read_only is True
    assert cfg.ui.auth.token == "s3cret"


def test_env_overlay_is_merged(config_path):
    _write(config_path, {"ledger": {"monthly_ceiling": 1000, "asset_symbol": "USDC"}})
    _write(config_path.parent / "config.prod.yaml", {"ledger": {"monthly_ceiling": 2000}})

    cfg = config.load_config(config_path, env="prod")

    assert cfg.env == "prod"
    assert cfg.ledger.monthly_ceiling == 2000.0
    assert cfg.ledger.asset_symbol == "USDC"


def test_env_is_read_from_environment(config_path, monkeypatch):
    monkeypatch.setenv("NEXUS_LEDGER_ENV", "prod")

    assert config.load_config(config_path).env == "prod"


def test_invalid_env_falls_back_to_dev(config_path, caplog):
    with caplog.at_level(logging.WARNING):
        cfg = config.load_config(config_path, env="staging")

    assert cfg.env == "dev"
    assert any(getattr(r, "event", None) == "config_invalid_env" for r in caplog.records)


def test_invalid_values_fall_back_to_defaults(config_path, caplog):
    _write(
        config_path,
        {
            "ledger": {
                "monthly_ceiling": "lots",
                "caution_threshold_pct": 95,
                "critical_threshold_pct": 80,
                "markup_presets": [5, "ten"],
                "portfolio_labels": {"savings": "Nope"},
            },
            "ui": {"port": 70000},
        },
    )

    with caplog.at_level(logging.WARNING):
        cfg = config.load_config(config_path)

    assert cfg.ledger.monthly_ceiling == DEFAULT_MONTHLY_CEILING
    assert (cfg.ledger.caution_threshold_pct, cfg.ledger.critical_threshold_pct) == (70.0, 90.0)
    assert cfg.ledger.markup_presets == [5.0]
    assert "savings" not in cfg.ledger.portfolio_labels
    assert cfg.ui.port == 8080
    events = {getattr(r, "event", None) for r in caplog.records}
    assert {"config_invalid_number", "config_invalid_thresholds", "config_invalid_port"} <= events


def test_non_mapping_file_is_ignored(config_path):
    config_path.write_text("- just\n- a list\n")

    cfg = config.load_config(config_path)

    assert cfg.ledger.monthly_ceiling == DEFAULT_MONTHLY_CEILING
