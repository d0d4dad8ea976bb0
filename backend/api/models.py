"""
API Data Models and Contracts.
Defines Pydantic models for request/response validation.
"""
from typing import Any, Dict, Optional, List, Literal

from pydantic import BaseModel, Field

from config.walk_forward_config import (
    Trade,
    WalkForwardComputation,
    WalkForwardConfig,
    WalkForwardPhase,
)
from config.walk_forward_presets import WalkForwardPreset, WalkForwardPresetKey
from services.walk_forward_autoconfig import TradeFrequency


JobStatus = Literal["queued", "running", "completed", "failed", "canceled"]


class StatusResponse(BaseModel):
    """Health check payload returned by /status."""
    status: str = Field(..., description="Service status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    uptime_seconds: float = Field(..., ge=0.0)
    started_at: str
    timestamp: str
    checks: Dict[str, Any] = Field(default_factory=dict, description="Per-subsystem health, e.g. jobs")


# ============================================================================
# Walk-Forward Models
# ============================================================================

class WalkForwardAnalyzeRequest(BaseModel):
    """Trades plus run configuration for one walk-forward analysis."""
    trades: List[Trade] = Field(default_factory=list, description="Closed trades, any order")
    config: WalkForwardConfig


class WalkForwardJobStartResponse(BaseModel):
    """Background walk-forward job accepted."""
    job_id: str
    status: JobStatus = "queued"
    created_at: str


class WalkForwardJobStatusResponse(BaseModel):
    """Polling snapshot of a background walk-forward job."""
    job_id: str
    status: JobStatus
    phase: Optional[WalkForwardPhase] = None
    current_period: int = 0
    total_periods: int = 0
    tested_combinations: int = 0
    total_combinations: int = 0
    progress_pct: float = Field(default=0.0, ge=0.0, le=100.0)
    message: str = ""
    error: Optional[str] = None
    cancel_requested: bool = False
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    result: Optional[WalkForwardComputation] = None


class WalkForwardJobCancelResponse(BaseModel):
    """Result of a cancellation request."""
    success: bool
    job_id: str
    status: JobStatus
    message: str


# ============================================================================
# Presets and Auto-Configuration
# ============================================================================

class WalkForwardPresetsResponse(BaseModel):
    """Default config plus the named presets that can be layered onto it."""
    default_config: WalkForwardConfig
    presets: Dict[str, WalkForwardPreset]


class WalkForwardAutoConfigRequest(BaseModel):
    """
    Config resolution request: base config (default when omitted), then the
    preset, then auto-configuration from the trades.
    """
    trades: List[Trade] = Field(default_factory=list)
    config: Optional[WalkForwardConfig] = None
    preset: Optional[WalkForwardPresetKey] = None
    auto_config: bool = True


class WalkForwardAutoConfigResponse(BaseModel):
    """Resolved run config and the trade frequency it was sized from."""
    config: WalkForwardConfig
    frequency: Optional[TradeFrequency] = None
    auto_config_applied: bool = False
