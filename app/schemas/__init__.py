"""
app/schemas package marker.
"""

from app.schemas.results import LivenessResultResponse, SiteSummaryResponse
from app.schemas.scans import (
    AutoResumeCancelResponse,
    AutoResumeSettings,
    ScanInterruptResponse,
    ScanStartedResponse,
    ScanStartRequest,
    ScanStatusResponse,
)

__all__ = [
    "AutoResumeCancelResponse",
    "AutoResumeSettings",
    "LivenessResultResponse",
    "ScanInterruptResponse",
    "ScanStartRequest",
    "ScanStartedResponse",
    "ScanStatusResponse",
    "SiteSummaryResponse",
]
