"""Request correlation id middleware."""

from __future__ import annotations

import logging
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Expose ``request.state.request_id`` and echo it in the response.

    A client-supplied ``X-Request-ID`` is kept; otherwise a new UUID is used.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[HEADER] = request_id
        logger.debug(
            "%s %s -> %s [%s]",
            request.method,
            request.url.path,
            response.status_code,
            request_id,
        )
        return response
