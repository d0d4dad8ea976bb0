"""
Walk-Forward Analyzer FastAPI Backend
Main application entry point.

Features:
- Health check with job bookkeeping
- Request correlation IDs for log tracing
- Structured JSON logging
- Rate limiting
- Graceful shutdown that cancels running jobs
"""
import asyncio
import logging
import threading
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from api.health import build_health_response, mark_startup
from api.middleware import (
    configure_structured_logging,
    correlation_id_middleware,
    limiter,
    rate_limit_exceeded_handler,
)
from api.models import StatusResponse
from api.routes import cancel_all_jobs, router as walk_forward_router
from config.settings import get_settings
from services.logging_service import cleanup_old_files, configure_file_logging

logger = logging.getLogger(__name__)

# ── Graceful Shutdown State ──────────────────────────────────────────────────
_shutdown_event = threading.Event()


def _is_shutting_down() -> bool:
    return _shutdown_event.is_set()


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    """Configure logging on startup, cancel running jobs on shutdown."""
    settings = get_settings()
    try:
        # retention runs before the handler reopens walkforward.log
        removed = cleanup_old_files(settings.resolved_log_directory(), settings.log_retention_days)
        log_dir = configure_file_logging(settings.resolved_log_directory())
        if removed:
            logger.info("Removed %d expired log files from %s", removed, log_dir)
    except OSError:
        logger.warning("File logging unavailable; continuing with console logging", exc_info=True)
    configure_structured_logging(settings.log_level)
    mark_startup()
    _shutdown_event.clear()
    logger.info("Walk-forward backend starting up (env=%s)", settings.environment)

    yield

    _shutdown_event.set()
    logger.info("Graceful shutdown initiated")
    signalled = cancel_all_jobs()
    if signalled:
        logger.info("Signalled %d running walk-forward jobs to stop", signalled)
    # let worker threads observe the token
    await asyncio.sleep(0.5)
    logger.info("Graceful shutdown complete")


app = FastAPI(
    title="Walk-Forward Analyzer API",
    description="Walk-forward optimization of position-sizing parameters over historical trades",
    version="0.1.0",
    lifespan=_lifespan,
    openapi_tags=[
        {"name": "WalkForward", "description": "Walk-forward analysis and background jobs"},
    ],
)

# ── Rate Limiter ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Compress responses >= 500 bytes; period results are large
app.add_middleware(GZipMiddleware, minimum_size=500)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:1420", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _correlation_id(request: Request, call_next):
    return await correlation_id_middleware(request, call_next)


@app.middleware("http")
async def shutdown_rejection_middleware(request: Request, call_next):
    """Reject new jobs during graceful shutdown."""
    if _is_shutting_down() and request.method == "POST":
        return JSONResponse(
            status_code=503,
            content={"detail": "Server is shutting down. Please retry shortly."},
        )
    return await call_next(request)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Walk-Forward Analyzer API"}


@app.get("/status", response_model=StatusResponse)
async def status():
    """Health check with uptime and job counts."""
    return build_health_response()


app.include_router(walk_forward_router)


if __name__ == "__main__":
    uvicorn.run(
        "app:app",
        host="127.0.0.1",
        port=8000,
        reload=False,
    )
