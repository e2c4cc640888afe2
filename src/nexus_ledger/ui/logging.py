"""Request-scoped logging extras for the HTTP API."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from nexus_ledger.logging_config import get_log_environment, structured_log_extra


def _route_metadata(request: Request) -> Dict[str, Any]:
    route = request.scope.get("route")
    metadata = {
        "http_method": request.method,
        "path": request.url.path,
        "route_name": getattr(route, "name", None),
        "view": request.query_params.get("view"),
    }
    return {key: value for key, value in metadata.items() if value is not None}


def build_request_log_extra(request: Request | None, event: str | None = None, **kwargs: Any):
    """Structured ``extra`` for API logs, tagged with the request id and route.

    The ``view`` query parameter, when present, is carried so ledger reads can
    be traced per portfolio.
    """

    metadata: Dict[str, Any] = {}
    request_id = None
    if request is not None:
        request_id = getattr(request.state, "request_id", None) or request.headers.get(
            "X-Request-ID"
        )
        metadata = _route_metadata(request)

    metadata.update(kwargs)
    return structured_log_extra(
        env=get_log_environment(),
        request_id=request_id,
        event=event or "http_request",
        **metadata,
    )


__all__ = ["build_request_log_extra"]
