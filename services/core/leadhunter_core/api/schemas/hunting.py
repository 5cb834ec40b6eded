"""Hunting session API schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class HuntingSessionResponse(BaseModel):
    """Response schema for a tenant's hunting session."""

    status: str
    subreddits: list[str]
    keywords: list[str]
    min_relevance_score: int = Field(..., description="Minimum score on the 1-10 scale")
    max_post_age_hours: int
    comment_style: str
    require_approval: bool
    posts_scanned: int
    leads_found: int
    dms_started: int
    last_run_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UpdateSessionConfigRequest(BaseModel):
    """Request schema for updating session config. Omitted fields are unchanged."""

    subreddits: Optional[list[str]] = Field(default=None, max_length=50)
    keywords: Optional[list[str]] = Field(default=None, max_length=50)
    min_relevance_score: Optional[int] = Field(default=None, ge=1, le=10)
    max_post_age_hours: Optional[int] = Field(default=None, ge=1, le=168)
    comment_style: Optional[str] = Field(default=None, description="friendly, professional or expert")
    require_approval: Optional[bool] = None


class PauseSessionRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class RunQueuedResponse(BaseModel):
    """Response schema for a manually queued hunting run."""

    job_id: str = Field(..., description="Celery task ID")
    status: str = Field(default="queued")
