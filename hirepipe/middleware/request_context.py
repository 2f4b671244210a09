from __future__ import annotations

import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_HEADER = "X-Actor-Id"

logger = logging.getLogger("hirepipe.request")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id and logs one line per completed request.

    The id is taken from `X-Request-ID` when the caller sends one, echoed on
    the response and available to handlers as `request.state.request_id`.
    """

    async def dispatch(self, request: Request, call_next):
        incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        request_id = incoming[:64] or uuid4().hex
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 1)

        response.headers[REQUEST_ID_HEADER] = request_id
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "request_completed",
            extra={
                "request_id": request_id,
                "actor": request.headers.get(ACTOR_HEADER),
                "route": f"{request.method} {request.url.path}",
                "status_code": response.status_code,
                "elapsed_ms": elapsed_ms,
            },
        )
        return response
