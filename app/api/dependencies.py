"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Query, status

from app.scanner.errors import InvalidSeedUrlError
from app.scanner.fetcher import site_identity
from app.scanner.storage.base import ResultStore
from app.services.scan_service import ScanService, get_scan_service


def get_start_url(
    start_url: str = Query(..., alias="startUrl", min_length=1, description="Seed URL of the scan"),
) -> str:
    """
    Validate that `startUrl` is an absolute http(s) URL.
    """

    try:
        site_identity(start_url)
    except InvalidSeedUrlError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid startUrl",
        ) from exc
    return start_url


def get_result_store(service: ScanService = Depends(get_scan_service)) -> ResultStore:
    return service.result_store
