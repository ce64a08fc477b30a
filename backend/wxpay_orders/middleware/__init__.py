"""中间件模块"""
from .logging_middleware import ErrorLoggingMiddleware, RequestLoggingMiddleware
from .metrics_middleware import MetricsMiddleware
from .request_id_middleware import RequestIdMiddleware

__all__ = ["ErrorLoggingMiddleware", "RequestLoggingMiddleware", "MetricsMiddleware", "RequestIdMiddleware"]
