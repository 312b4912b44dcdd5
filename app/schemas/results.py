"""
app/schemas/results.py

Response schemas for liveness result queries.
"""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class LivenessResultResponse(BaseModel):
    """
    One persisted no-dns finding.
    """

    model_config = ConfigDict(populate_by_name=True)

    website: str
    domain: str
    tld: str
    status: str
    code: str | None = None
    expiry_date: date | None = Field(default=None, alias="expiryDate")
    expiry_date_reason: str | None = Field(default=None, alias="expiryDateReason")
    found_at: datetime = Field(..., alias="foundAt")


class SiteSummaryResponse(BaseModel):
    website: str
    count: int = Field(..., ge=0)
