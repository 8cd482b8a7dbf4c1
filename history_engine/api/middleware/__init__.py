"""HTTP middleware."""

from history_engine.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
