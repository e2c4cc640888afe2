"""Shared API fixtures for FastAPI route tests."""

from __future__ import annotations

import pytest

pytest.importorskip("httpx")

from starlette.testclient import TestClient  # noqa: E402

from nexus_ledger.config import AppConfig, LedgerConfig, UIAuthConfig, UIConfig  # noqa: E402
from nexus_ledger.ledger.service import LedgerService  # noqa: E402
from nexus_ledger.ledger.store import InMemoryLedgerStore  # noqa: E402
from nexus_ledger.ui.api import create_api  # noqa: E402
from nexus_ledger.ui.context import AppContext  # noqa: E402


def _build_app_config(*, auth_enabled: bool, auth_token: str, read_only: bool) -> AppConfig:
    """Create a lightweight in-memory :class:`AppConfig` for API tests."""

    return AppConfig(
        ledger=LedgerConfig(db_path=":memory:", monthly_ceiling=10000.0),
        ui=UIConfig(
            host="127.0.0.1",
            port=8080,
            base_path="/",
            auth=UIAuthConfig(enabled=auth_enabled, token=auth_token),
            read_only=read_only,
        ),
    )


def build_test_context(*, auth_enabled: bool, auth_token: str, read_only: bool) -> AppContext:
    """Construct an :class:`AppContext` over an in-memory ledger."""

    config = _build_app_config(
        auth_enabled=auth_enabled, auth_token=auth_token, read_only=read_only
    )
    ledger = LedgerService(InMemoryLedgerStore(), config.ledger)
    return AppContext(config=config, ledger=ledger)


@pytest.fixture
def ui_auth_token(request: pytest.FixtureRequest) -> str:
    """Per-test override for the API auth token."""

    return getattr(request, "param", "test-token")


@pytest.fixture
def ui_auth_enabled(request: pytest.FixtureRequest) -> bool:
    """Toggle the auth middleware for a given test."""

    return bool(getattr(request, "param", False))


@pytest.fixture
def ui_read_only(request: pytest.FixtureRequest) -> bool:
    """Toggle read-only mode for mutation endpoints."""

    return bool(getattr(request, "param", False))


@pytest.fixture
def app_context(ui_auth_enabled: bool, ui_auth_token: str, ui_read_only: bool) -> AppContext:
    return build_test_context(
        auth_enabled=ui_auth_enabled, auth_token=ui_auth_token, read_only=ui_read_only
    )


@pytest.fixture
def ledger(app_context: AppContext) -> LedgerService:
    return app_context.ledger


@pytest.fixture
def client(app_context: AppContext) -> TestClient:
    """A FastAPI test client wired with an in-memory :class:`AppContext`."""

    return TestClient(create_api(app_context))
