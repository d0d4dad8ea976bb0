"""
API Routes.
Defines the walk-forward REST endpoints: synchronous analysis, background
jobs with status polling, cancellation and result export, plus presets and
auto-configuration of the run config.
"""
from datetime import datetime, timezone
import logging
import secrets
import threading
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import Response

from config.settings import get_settings
from config.walk_forward_config import (
    WalkForwardComputation,
    WalkForwardPhase,
    WalkForwardProgressEvent,
)
from config.walk_forward_presets import WALK_FORWARD_PRESETS, default_walk_forward_config
from engine.cancellation import CancellationToken
from engine.errors import WalkForwardCancelledError, WalkForwardError
from services.walk_forward_analyzer import WalkForwardAnalyzer
from services.walk_forward_autoconfig import resolve_walk_forward_config
from services.walk_forward_export import ExportFormat, export_computation

from .middleware import limiter
from .models import (
    WalkForwardAnalyzeRequest,
    WalkForwardAutoConfigRequest,
    WalkForwardAutoConfigResponse,
    WalkForwardJobCancelResponse,
    WalkForwardJobStartResponse,
    WalkForwardJobStatusResponse,
    WalkForwardPresetsResponse,
)

router = APIRouter(prefix="/walk-forward", tags=["WalkForward"])
logger = logging.getLogger(__name__)

# ============================================================================
# Background Job Registry
# ============================================================================

_walk_forward_jobs: Dict[str, Dict[str, Any]] = {}
_walk_forward_jobs_lock = threading.Lock()
_FINISHED_STATUSES = {"completed", "failed", "canceled"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _prune_jobs_locked() -> None:
    """Keep in-memory job history bounded."""
    max_history = max(1, int(get_settings().max_job_history))
    if len(_walk_forward_jobs) <= max_history:
        return
    finished = [
        (job_id, row)
        for job_id, row in _walk_forward_jobs.items()
        if str(row.get("status")) in _FINISHED_STATUSES
    ]
    finished.sort(key=lambda item: str(item[1].get("completed_at") or item[1].get("created_at") or ""))
    while len(_walk_forward_jobs) > max_history and finished:
        job_id, _ = finished.pop(0)
        _walk_forward_jobs.pop(job_id, None)


def _create_job(request_payload: WalkForwardAnalyzeRequest) -> Dict[str, Any]:
    """Create and register a queued walk-forward job."""
    job_id = secrets.token_hex(12)
    row = {
        "job_id": job_id,
        "status": "queued",
        "phase": None,
        "current_period": 0,
        "total_periods": 0,
        "tested_combinations": 0,
        "total_combinations": 0,
        "progress_pct": 0.0,
        "message": "Queued",
        "error": None,
        "created_at": _now_iso(),
        "started_at": None,
        "completed_at": None,
        "request": request_payload,
        "token": CancellationToken(),
        "result": None,
    }
    with _walk_forward_jobs_lock:
        _walk_forward_jobs[job_id] = row
        _prune_jobs_locked()
    return dict(row)


def _get_job(job_id: str) -> Optional[Dict[str, Any]]:
    """Get job snapshot by ID."""
    with _walk_forward_jobs_lock:
        row = _walk_forward_jobs.get(job_id)
        return dict(row) if row else None


def _update_job(job_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Atomically update job fields and return snapshot."""
    with _walk_forward_jobs_lock:
        row = _walk_forward_jobs.get(job_id)
        if row is None:
            return None
        row.update(updates)
        return dict(row)


def _job_snapshot(row: Dict[str, Any]) -> WalkForwardJobStatusResponse:
    """Normalize an in-memory job row to the API response model."""
    token: CancellationToken = row["token"]
    return WalkForwardJobStatusResponse(
        job_id=str(row["job_id"]),
        status=row["status"],
        phase=row.get("phase"),
        current_period=int(row.get("current_period") or 0),
        total_periods=int(row.get("total_periods") or 0),
        tested_combinations=int(row.get("tested_combinations") or 0),
        total_combinations=int(row.get("total_combinations") or 0),
        progress_pct=float(row.get("progress_pct") or 0.0),
        message=str(row.get("message") or ""),
        error=row.get("error"),
        cancel_requested=token.is_cancelled,
        created_at=str(row["created_at"]),
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        result=row.get("result"),
    )


def job_counts() -> Dict[str, int]:
    """Number of tracked jobs per status."""
    counts = {status: 0 for status in ("queued", "running", "completed", "failed", "canceled")}
    with _walk_forward_jobs_lock:
        for row in _walk_forward_jobs.values():
            status = str(row.get("status"))
            counts[status] = counts.get(status, 0) + 1
    return counts


def cancel_all_jobs(reason: str = "Server shutting down") -> int:
    """Signal every unfinished job to stop. Returns the number signalled."""
    signalled = 0
    with _walk_forward_jobs_lock:
        for row in _walk_forward_jobs.values():
            if str(row.get("status")) in _FINISHED_STATUSES:
                continue
            row["token"].cancel(reason)
            signalled += 1
    return signalled


def _progress_pct(event: WalkForwardProgressEvent) -> float:
    """Overall completion estimate from one progress event."""
    if event.phase == WalkForwardPhase.COMPLETED:
        return 100.0
    total = max(1, event.total_periods)
    if event.phase == WalkForwardPhase.EVALUATING:
        done = float(event.current_period)
    elif event.phase == WalkForwardPhase.OPTIMIZING:
        fraction = 0.0
        if event.total_combinations:
            fraction = (event.tested_combinations or 0) / event.total_combinations
        done = max(0, event.current_period - 1) + fraction
    else:
        done = 0.0
    return round(min(100.0, done / total * 100.0), 2)


def _run_walk_forward_job(job_id: str) -> None:
    """Background worker for walk-forward jobs."""
    row = _get_job(job_id)
    if not row:
        return
    request: WalkForwardAnalyzeRequest = row["request"]
    token: CancellationToken = row["token"]

    _update_job(
        job_id,
        {
            "status": "running",
            "started_at": _now_iso(),
            "message": "Segmenting trade history",
        },
    )

    def _progress_update(event: WalkForwardProgressEvent) -> None:
        updates: Dict[str, Any] = {
            "phase": event.phase,
            "current_period": event.current_period,
            "total_periods": event.total_periods,
            "progress_pct": _progress_pct(event),
            "message": event.message or {
                WalkForwardPhase.SEGMENTING: "Segmenting trade history",
                WalkForwardPhase.OPTIMIZING: "Evaluating parameter combinations",
                WalkForwardPhase.EVALUATING: "Evaluating out-of-sample window",
                WalkForwardPhase.COMPLETED: "Finalizing results",
            }[event.phase],
        }
        if event.tested_combinations is not None:
            updates["tested_combinations"] = event.tested_combinations
        if event.total_combinations is not None:
            updates["total_combinations"] = event.total_combinations
        _update_job(job_id, updates)

    try:
        computation = WalkForwardAnalyzer.from_settings().analyze(
            request.trades,
            request.config,
            cancellation_token=token,
            progress_callback=_progress_update,
        )
        _update_job(
            job_id,
            {
                "status": "completed",
                "phase": WalkForwardPhase.COMPLETED,
                "progress_pct": 100.0,
                "message": "Completed",
                "completed_at": _now_iso(),
                "result": computation,
            },
        )
    except WalkForwardCancelledError:
        _update_job(
            job_id,
            {
                "status": "canceled",
                "message": token.reason or "Canceled by user",
                "completed_at": _now_iso(),
                "error": None,
            },
        )
    except WalkForwardError as exc:
        _update_job(
            job_id,
            {
                "status": "failed",
                "message": "Invalid walk-forward configuration",
                "completed_at": _now_iso(),
                "error": str(exc),
            },
        )
    except Exception as exc:
        logger.exception("Walk-forward job crashed job_id=%s", job_id)
        _update_job(
            job_id,
            {
                "status": "failed",
                "message": "Failed",
                "completed_at": _now_iso(),
                "error": str(exc),
            },
        )


# ============================================================================
# Walk-Forward Endpoints
# ============================================================================

@router.post("/analyze", response_model=WalkForwardComputation)
@limiter.limit("30/minute")
async def analyze_walk_forward(request: Request, payload: WalkForwardAnalyzeRequest):
    """Run a walk-forward analysis and return the full computation."""
    analyzer = WalkForwardAnalyzer.from_settings()
    try:
        return await analyzer.analyze_async(payload.trades, payload.config)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/jobs", response_model=WalkForwardJobStartResponse)
@limiter.limit("30/minute")
async def start_walk_forward_job(request: Request, payload: WalkForwardAnalyzeRequest):
    """Start a background walk-forward job and return its id for status polling."""
    job = _create_job(payload)
    thread = threading.Thread(
        target=_run_walk_forward_job,
        args=(str(job["job_id"]),),
        daemon=True,
        name=f"walk-forward-{job['job_id']}",
    )
    thread.start()
    logger.info("Walk-forward job queued job_id=%s trades=%d", job["job_id"], len(payload.trades))
    return WalkForwardJobStartResponse(
        job_id=str(job["job_id"]),
        status="queued",
        created_at=str(job["created_at"]),
    )


@router.get("/jobs/{job_id}", response_model=WalkForwardJobStatusResponse)
async def get_walk_forward_job_status(job_id: str):
    """Fetch current walk-forward job status."""
    row = _get_job(job_id)
    if not row:
        raise HTTPException(status_code=404, detail="Walk-forward job not found")
    return _job_snapshot(row)


@router.post("/jobs/{job_id}/cancel", response_model=WalkForwardJobCancelResponse)
async def cancel_walk_forward_job(job_id: str):
    """Request cancellation for a walk-forward job."""
    row = _get_job(job_id)
    if not row:
        raise HTTPException(status_code=404, detail="Walk-forward job not found")
    status = str(row.get("status") or "failed")
    if status in _FINISHED_STATUSES:
        return WalkForwardJobCancelResponse(
            success=False,
            job_id=job_id,
            status=status,  # type: ignore[arg-type]
            message=f"Job already {status}",
        )
    row["token"].cancel("Canceled by user")
    _update_job(job_id, {"message": "Cancellation requested"})
    logger.info("Walk-forward job cancellation requested job_id=%s", job_id)
    return WalkForwardJobCancelResponse(
        success=True,
        job_id=job_id,
        status=status,  # type: ignore[arg-type]
        message="Cancellation requested",
    )


@router.get("/jobs/{job_id}/export")
async def export_walk_forward_job(
    job_id: str,
    export_format: ExportFormat = Query("json", alias="format"),
):
    """Download a completed job's computation as JSON or CSV."""
    row = _get_job(job_id)
    if not row:
        raise HTTPException(status_code=404, detail="Walk-forward job not found")
    computation = row.get("result")
    if row.get("status") != "completed" or computation is None:
        raise HTTPException(status_code=409, detail=f"Job is {row.get('status')}; nothing to export")
    media_type = "text/csv" if export_format == "csv" else "application/json"
    return Response(
        content=export_computation(computation, export_format),
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="walk-forward-{job_id}.{export_format}"'},
    )


# ============================================================================
# Presets and Auto-Configuration Endpoints
# ============================================================================

@router.get("/presets", response_model=WalkForwardPresetsResponse)
async def list_walk_forward_presets():
    """Default config and the named presets."""
    return WalkForwardPresetsResponse(
        default_config=default_walk_forward_config(),
        presets=WALK_FORWARD_PRESETS,
    )


@router.post("/auto-config", response_model=WalkForwardAutoConfigResponse)
@limiter.limit("30/minute")
async def auto_configure_walk_forward(request: Request, payload: WalkForwardAutoConfigRequest):
    """Resolve a run config from a base config, a preset and the trade frequency."""
    config, frequency = resolve_walk_forward_config(
        payload.config,
        preset=payload.preset,
        trades=payload.trades if payload.auto_config else None,
    )
    return WalkForwardAutoConfigResponse(
        config=config,
        frequency=frequency,
        auto_config_applied=frequency is not None,
    )
