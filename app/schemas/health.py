"""Pydantic schemas for health check responses."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field


class RateLimitPolicyStats(BaseModel):
    window_ms: int
    max_requests: int
    tracked_keys: int = Field(..., description="Client counters currently held in memory.")


class RateLimitHealth(BaseModel):
    enabled: bool
    policies: Dict[str, RateLimitPolicyStats] = Field(default_factory=dict)


class SystemInfo(BaseModel):
    python_version: str
    platform: str
    environment: str


class DetailedHealthResponse(BaseModel):
    """Extended health payload for operators and dashboards."""

    status: str = Field("healthy", description="Overall service status.")
    timestamp: str = Field(..., description="ISO-8601 UTC time of the check.")
    uptime_seconds: float = Field(..., description="Seconds since the app was created.")
    system: SystemInfo
    rate_limit: RateLimitHealth
