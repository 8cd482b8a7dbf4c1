"""
Request correlation for learner-facing routes.

Takes the X-Request-ID header (or mints one), echoes it on the response and
binds it, with the learner id from ``{prefix}/users/{user_id}/...`` paths, to
the logging context for the duration of the request.
"""

import re
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from history_engine.config import get_settings
from history_engine.logging_config import get_logger, learner_id_var, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def learner_from_path(path: str, prefix: str) -> Optional[str]:
    match = re.match(rf"^{re.escape(prefix)}/users/([^/]+)/", path)
    return match.group(1) if match else None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Correlate each request's log lines; warn when a request runs slow."""

    def __init__(self, app, slow_request_ms: Optional[int] = None, api_prefix: Optional[str] = None):
        super().__init__(app)
        settings = get_settings()
        self.slow_request_ms = slow_request_ms if slow_request_ms is not None else settings.slow_request_ms
        self.api_prefix = api_prefix if api_prefix is not None else settings.api_v1_prefix

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        request_token = request_id_var.set(request_id)
        learner_token = learner_id_var.set(learner_from_path(request.url.path, self.api_prefix))

        try:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id

            fields = {
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 1),
            }
            if duration_ms > self.slow_request_ms:
                # Usually a quiz transaction waiting on another request's record lock
                logger.warning("Slow request", extra=fields)
            else:
                logger.debug("Request handled", extra=fields)
            return response
        finally:
            learner_id_var.reset(learner_token)
            request_id_var.reset(request_token)
