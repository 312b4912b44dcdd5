"""
app/schemas/scans.py

Request and response schemas for scan control endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AutoResumeSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    delay_minutes: float = Field(default=0.0, ge=0, alias="delayMinutes")
    repeat: int | None = Field(
        default=0,
        ge=0,
        description="Number of automatic resumes; null means unbounded.",
    )


class ScanStartRequest(BaseModel):
    """
    Body of ``POST /scan``.
    """

    model_config = ConfigDict(populate_by_name=True)

    start_url: str = Field(..., min_length=1, alias="startUrl")
    max_pages: int | None = Field(default=None, ge=1, alias="maxPages")
    concurrency: int | None = Field(default=None, ge=1)
    mode: Literal["new", "resume"] = "new"
    is_aggressive: bool = Field(default=True, alias="isAggressive")
    auto_resume: AutoResumeSettings | None = Field(default=None, alias="autoResume")


class ScanStartedResponse(BaseModel):
    id: str


class ScanStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exists: bool
    status: str
    running: bool = False
    visited_count: int = Field(default=0, ge=0, alias="visitedCount")
    queue_count: int = Field(default=0, ge=0, alias="queueCount")
    domains_checked: int = Field(default=0, ge=0, alias="domainsChecked")
    auto_resume: dict[str, Any] | None = Field(default=None, alias="autoResume")
    next_resume_at: datetime | None = Field(default=None, alias="nextResumeAt")
    last_error: str | None = Field(default=None, alias="lastError")


class ScanInterruptResponse(BaseModel):
    interrupted: bool


class AutoResumeCancelResponse(BaseModel):
    cancelled: bool
