"""
Pydantic schemas for admin API request/response validation.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


# ─── Request Schemas ─────────────────────────────────────────────────────────

class SyncRequest(BaseModel):
    provider_slug: Optional[str] = Field(None, description="airalo | esim-access | esim-go | maya; empty = all")


class CompareRequest(BaseModel):
    destination_id: Optional[int] = None
    region_id: Optional[int] = None


class ToggleRequest(BaseModel):
    enabled: bool


class AlternativesRequest(BaseModel):
    data_mb: Optional[int] = Field(None, ge=0, description="None = unlimited")
    validity_days: int = Field(..., ge=1)
    destination_id: int
    max_results: int = Field(5, ge=1, le=20)
    use_ai: bool = True


# ─── Response Schemas ────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    version: str
    ai_configured: bool
    timestamp: datetime
