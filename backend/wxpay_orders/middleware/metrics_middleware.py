from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..services.prometheus_metrics import prometheus_metrics

_SKIP_PREFIXES = ("/metrics", "/docs", "/redoc", "/openapi.json", "/health")


def _route_label(request: Request) -> str:
    """把路径参数还原成 {name}，按完整路由模板聚合，避免订单号进入标签"""
    path = str(request.scope.get("path") or request.url.path)
    params = {str(v): k for k, v in dict(request.scope.get("path_params") or {}).items() if str(v)}
    if not params:
        return path
    return "/".join(f"{{{params[seg]}}}" if seg in params else seg for seg in path.split("/"))


def _record(request: Request, status_code: int, start: float) -> None:
    path = request.url.path
    if path.startswith(_SKIP_PREFIXES):
        return
    prometheus_metrics.record_http(
        method=str(request.method or "GET"),
        route=_route_label(request),
        status_code=status_code,
        duration_seconds=max(0.0, time.perf_counter() - start),
    )


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            _record(request, 500, start)
            raise
        _record(request, int(getattr(response, "status_code", 0) or 0), start)
        return response
