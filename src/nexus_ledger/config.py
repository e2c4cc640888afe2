from __future__ import annotations

# Re-export loader helpers
from .config_loader import (
    get_config_dir,
    get_default_db_path,
    load_config,
)

# Re-export config models
from .config_models import (
    AppConfig,
    LedgerConfig,
    UIAuthConfig,
    UIConfig,
)

__all__ = [
    # models
    "AppConfig",
    "LedgerConfig",
    "UIAuthConfig",
    "UIConfig",
    # loader
    "get_config_dir",
    "get_default_db_path",
    "load_config",
]
