"""
HTTP middleware and log formatting for the walk-forward API.

Provides:
- Request correlation IDs (X-Request-ID) available to every log line
- JSON log lines via StructuredFormatter
- slowapi rate limiter shared by the routers
"""
import json
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")

# attributes every LogRecord carries; anything else arrived through `extra=`
_STANDARD_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

# in-memory counters; single process only
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with the violated limit and a retry hint."""
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "retry_after": str(getattr(exc, "retry_after", 60)),
        },
    )


def _incoming_request_id(request: Request) -> str:
    supplied = request.headers.get(REQUEST_ID_HEADER, "").strip()
    return supplied or uuid.uuid4().hex[:16]


async def correlation_id_middleware(request: Request, call_next) -> Response:
    """
    Bind a correlation ID for the duration of the request, echo it in the
    response header and log the request duration.
    """
    rid = _incoming_request_id(request)
    reset_token = request_id_ctx.set(rid)
    started = time.monotonic()
    try:
        response: Response = await call_next(request)
    except Exception:
        logger.exception(
            "req=%s %s %s failed after %.1fms",
            rid,
            request.method,
            request.url.path,
            (time.monotonic() - started) * 1000,
        )
        raise
    else:
        response.headers[REQUEST_ID_HEADER] = rid
        # job polling is GET-heavy
        level = logging.DEBUG if request.method == "GET" else logging.INFO
        logger.log(
            level,
            "req=%s %s %s -> %d in %.1fms",
            rid,
            request.method,
            request.url.path,
            response.status_code,
            (time.monotonic() - started) * 1000,
        )
        return response
    finally:
        request_id_ctx.reset(reset_token)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per log line.

    Includes the request ID when logging inside a request and any `extra=`
    fields, e.g. the walk-forward phase and period from the CLI progress log.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = request_id_ctx.get("")
        if rid:
            entry["request_id"] = rid
        entry.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """
    Switch every root handler to StructuredFormatter and make sure one
    console handler exists.
    """
    root = logging.getLogger()
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    root.setLevel(level)

    formatter = StructuredFormatter()
    has_console = False
    for handler in root.handlers:
        handler.setFormatter(formatter)
        if type(handler) is logging.StreamHandler:
            has_console = True

    if not has_console:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(formatter)
        root.addHandler(console)
