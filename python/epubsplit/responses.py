"""Response envelopes and exception handlers.

Conversion routes return their schema as the body. The health check wraps its
payload in ``{"data": ...}``, and every failure, whatever raised it, is
rendered as ``{"error": {"code", "message", "request_id"}}``.
"""

from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from epubsplit.errors import ApiError, ApiErrorCode
from epubsplit.logging import get_logger, get_request_id

logger = get_logger(__name__)


def success_response(data: Any) -> dict[str, Any]:
    return {"data": data}


def error_response(
    code: ApiErrorCode, message: str, request_id: str | None = None
) -> dict[str, Any]:
    """Build the error envelope; request_id defaults to the current request's."""
    error = {"code": code.value, "message": message}
    request_id = request_id or get_request_id()
    if request_id:
        error["request_id"] = request_id
    return {"error": error}


def _error_json(status_code: int, code: ApiErrorCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Upload, archive and rendering failures raised by the services."""
    if exc.status_code >= 500:
        logger.error("api_error", code=exc.code.value, message=exc.message)
    else:
        logger.info("api_error", code=exc.code.value, message=exc.message)
    return _error_json(exc.status_code, exc.code, exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Router misses: unknown path (404) or wrong method (405)."""
    code = ApiErrorCode.E_NOT_FOUND if exc.status_code == 404 else ApiErrorCode.E_INVALID_REQUEST
    return _error_json(exc.status_code, code, str(exc.detail))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """A missing ``file`` part or an unknown ``format`` value.

    Reported as 400 E_INVALID_REQUEST naming the offending fields, never 422.
    """
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = f"Invalid or missing field: {', '.join(fields)}" if fields else "Invalid request"
    return _error_json(400, ApiErrorCode.E_INVALID_REQUEST, message)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a bug: log the traceback, return a bare 500."""
    logger.exception("unhandled_exception", error_type=type(exc).__name__)
    return _error_json(500, ApiErrorCode.E_INTERNAL, "Internal server error")
