"""FastAPI application factory for the ledger API."""

from __future__ import annotations

import logging
from typing import Callable
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware import Middleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from nexus_ledger import APP_VERSION
from nexus_ledger.ui.context import AppContext
from nexus_ledger.ui.logging import build_request_log_extra
from nexus_ledger.ui.routes import ledger_router, planning_router

logger = logging.getLogger(__name__)


class AuthMiddleware(BaseHTTPMiddleware):
    """Bearer-token guard for everything under ``/api``."""

    def __init__(self, app, token: str):
        super().__init__(app)
        self._token = token

    async def dispatch(self, request: Request, call_next: Callable):  # type: ignore[override]
        if "/api" in request.url.path:
            expected = f"Bearer {self._token}" if self._token else ""
            if request.headers.get("Authorization") != expected:
                logger.warning(
                    "Rejected unauthenticated request",
                    extra=build_request_log_extra(request, event="auth_rejected"),
                )
                return JSONResponse({"data": None, "error": "Unauthorized"}, status_code=401)
        return await call_next(request)


def create_api(context: AppContext) -> FastAPI:
    """Build the FastAPI app with the ledger and planning routers mounted."""

    middleware = []
    auth_config = context.config.ui.auth
    if auth_config.enabled:
        middleware.append(Middleware(AuthMiddleware, token=auth_config.token))

    app = FastAPI(title="nexus-ledger", version=APP_VERSION, middleware=middleware)
    app.state.context = context

    base_path = context.config.ui.base_path.rstrip("/") or ""

    app.include_router(ledger_router, prefix=f"{base_path}/api/ledger")
    app.include_router(planning_router, prefix=f"{base_path}/api/planning")

    @app.middleware("http")
    async def inject_request_id(request: Request, call_next):
        request.state.request_id = request.headers.get("X-Request-ID") or str(uuid4())
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    @app.get(f"{base_path}/api/health")
    async def healthcheck():
        return {"data": {"status": "ok", "version": APP_VERSION}, "error": None}

    logger.info(
        "Ledger API initialized",
        extra=build_request_log_extra(
            None,
            event="api_initialized",
            base_path=base_path or "/",
            auth=auth_config.enabled,
            read_only=context.config.ui.read_only,
        ),
    )
    return app


__all__ = ["AuthMiddleware", "create_api"]
