from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

log = logging.getLogger("request")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One line per request; reuses or mints ``X-Request-ID``. Bodies are never logged."""

    async def dispatch(self, request: Request, call_next):
        t0 = time.perf_counter()
        rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = rid

        response: Response = await call_next(request)
        dt_ms = int((time.perf_counter() - t0) * 1000)
        response.headers["X-Request-ID"] = rid
        log.info(
            "rid=%s method=%s path=%s status=%s duration_ms=%s",
            rid, request.method, request.url.path, response.status_code, dt_ms,
        )
        return response
