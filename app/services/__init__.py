"""
app/services package marker.
"""

from app.services.scan_service import (
    AutoResumeRequest,
    ScanRequest,
    ScanService,
    get_scan_service,
)

__all__ = [
    "AutoResumeRequest",
    "ScanRequest",
    "ScanService",
    "get_scan_service",
]
