"""X-Request-ID handling and access logging.

Each request gets one correlation id: the caller's X-Request-ID when it is a
safe token, otherwise a fresh UUID4. The id is bound into the logging context
before the route runs, so conversion events and error envelopes carry it, and
it is echoed on every response.
"""

import re
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from epubsplit.logging import clear_request_context, get_logger, set_request_context

REQUEST_ID_HEADER = "X-Request-ID"

# ASCII only, so 128 characters is also 128 bytes
_TOKEN_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)

logger = get_logger(__name__)


def resolve_request_id(incoming: str | None) -> str:
    """Pick the correlation id for a request from its X-Request-ID header.

    Tokens of up to 128 characters from ``[A-Za-z0-9._-]`` are kept, UUIDs
    lowercased. Anything else is replaced by a new UUID4.
    """
    if incoming and _TOKEN_RE.match(incoming):
        return incoming.lower() if _UUID_RE.match(incoming) else incoming
    return str(uuid.uuid4())


def _request_bytes(request: Request) -> int | None:
    value = request.headers.get("content-length")
    return int(value) if value and value.isdigit() else None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Outermost middleware: correlation id, context binding, access log."""

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.monotonic()
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        set_request_context(request_id, path=request.url.path, method=request.method)

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("request_failed")
            clear_request_context()
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        if self.log_requests:
            logger.info(
                "request_completed",
                status_code=response.status_code,
                request_bytes=_request_bytes(request),
                duration_ms=round((time.monotonic() - started) * 1000, 2),
            )
        clear_request_context()
        return response
