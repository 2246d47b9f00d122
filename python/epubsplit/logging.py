"""structlog setup for the conversion service.

Two layers of ContextVar state are merged into every event:
- request: ``request_id``, ``path``, ``method`` (set by RequestIDMiddleware)
- conversion: ``upload_filename``, ``upload_bytes``, ``output_format`` (bound
  by the upload service once an upload passes validation)

A warning such as ``epub_content_parse_failed`` therefore names the book and
the request it came from without every stage passing them along.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

import structlog

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
path_var: ContextVar[str | None] = ContextVar("path", default=None)
method_var: ContextVar[str | None] = ContextVar("method", default=None)

upload_filename_var: ContextVar[str | None] = ContextVar("upload_filename", default=None)
upload_bytes_var: ContextVar[int | None] = ContextVar("upload_bytes", default=None)
output_format_var: ContextVar[str | None] = ContextVar("output_format", default=None)

_REQUEST_VARS: tuple[tuple[str, ContextVar], ...] = (
    ("request_id", request_id_var),
    ("path", path_var),
    ("method", method_var),
)
_CONVERSION_VARS: tuple[tuple[str, ContextVar], ...] = (
    ("upload_filename", upload_filename_var),
    ("upload_bytes", upload_bytes_var),
    ("output_format", output_format_var),
)

# Per-part multipart parsing and uvicorn's own access lines
_QUIET_LOGGERS = ("multipart", "uvicorn.access")


def add_request_context(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """structlog processor: copy set ContextVars into the event.

    Keys passed explicitly to the log call win over the context.
    """
    for key, var in _REQUEST_VARS + _CONVERSION_VARS:
        value = var.get()
        if value is not None:
            event_dict.setdefault(key, value)
    return event_dict


def configure_logging(json_format: bool = True) -> None:
    """Route structlog and stdlib records through one stdout handler.

    JSON lines in deployments, ConsoleRenderer for local runs and tests.
    """
    pre_chain = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_request_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    renderer = (
        structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_context(
    request_id: str | None,
    path: str | None = None,
    method: str | None = None,
) -> None:
    """Bind the request's correlation id, path (no query string) and method."""
    request_id_var.set(request_id)
    if path is not None:
        path_var.set(path)
    if method is not None:
        method_var.set(method)


def clear_request_context() -> None:
    """Reset request and conversion context at the end of a request."""
    for _, var in _REQUEST_VARS + _CONVERSION_VARS:
        var.set(None)


def get_request_id() -> str | None:
    return request_id_var.get()


@contextmanager
def conversion_context(
    upload_filename: str | None,
    upload_bytes: int,
    output_format: str,
) -> Iterator[None]:
    """Bind one upload's identity to every log event emitted inside the block.

    The previous values are restored on exit, including on error.
    """
    tokens = [
        (upload_filename_var, upload_filename_var.set(upload_filename)),
        (upload_bytes_var, upload_bytes_var.set(upload_bytes)),
        (output_format_var, output_format_var.set(output_format)),
    ]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)
