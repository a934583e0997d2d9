"""
Logging setup

Standard library logging with a per-request id carried in a context variable.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

REQUEST_ID_HEADER = "X-Request-ID"

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [req=%(request_id)s] %(message)s"


def get_request_id() -> Optional[str]:
    return _request_id.get()


class RequestIDFilter(logging.Filter):
    """Inject the current request id into every record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get() or "-"
        return True


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging once. Safe to call repeatedly."""
    from fitsocial.core.config import settings

    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    if any(getattr(h, "_fitsocial", False) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIDFilter())
    handler._fitsocial = True
    root.addHandler(handler)

    # Quiet chatty libraries unless we are debugging SQL
    if not settings.db_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id to the logging context and the response headers"""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = _request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
