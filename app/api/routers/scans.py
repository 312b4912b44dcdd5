"""
app/api/routers/scans.py

Scan control and progress streaming endpoints.
"""

from __future__ import annotations

import json
from collections.abc import Iterator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_start_url
from app.scanner.errors import ScanAlreadyRunningError
from app.scanner.events import ChannelEventSink, Event
from app.schemas.scans import (
    AutoResumeCancelResponse,
    ScanInterruptResponse,
    ScanStartedResponse,
    ScanStartRequest,
    ScanStatusResponse,
)
from app.services.scan_service import (
    AutoResumeRequest,
    ScanRequest,
    ScanService,
    get_scan_service,
)

router = APIRouter(tags=["scans"])

SSE_POLL_SECONDS = 15.0


@router.post("/scan", response_model=ScanStartedResponse)
def start_scan(
    payload: ScanStartRequest,
    scan_service: ScanService = Depends(get_scan_service),
) -> ScanStartedResponse:
    """
    Start (or resume) one crawl batch in the background.
    """

    auto_resume = None
    if payload.auto_resume is not None:
        auto_resume = AutoResumeRequest(
            enabled=payload.auto_resume.enabled,
            delay_minutes=payload.auto_resume.delay_minutes,
            repeat=payload.auto_resume.repeat,
        )
    request = ScanRequest(
        start_url=payload.start_url,
        batch_size=payload.max_pages,
        concurrency=payload.concurrency,
        mode=payload.mode,
        aggressive=payload.is_aggressive,
        auto_resume=auto_resume,
    )

    try:
        scan_id = scan_service.start_scan(request)
    except ScanAlreadyRunningError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return ScanStartedResponse(id=scan_id)


@router.get("/scan/status", response_model=ScanStatusResponse)
def scan_status(
    start_url: str = Depends(get_start_url),
    scan_service: ScanService = Depends(get_scan_service),
) -> ScanStatusResponse:
    return ScanStatusResponse(**scan_service.status(start_url))


@router.post("/scan/interrupt", response_model=ScanInterruptResponse)
def interrupt_scan(
    start_url: str = Depends(get_start_url),
    scan_service: ScanService = Depends(get_scan_service),
) -> ScanInterruptResponse:
    """
    Stop a running batch after its in-flight tasks and disable auto-resume.
    """

    return ScanInterruptResponse(interrupted=scan_service.interrupt(start_url))


@router.delete("/scan/auto-resume", response_model=AutoResumeCancelResponse)
def cancel_auto_resume(
    start_url: str = Depends(get_start_url),
    scan_service: ScanService = Depends(get_scan_service),
) -> AutoResumeCancelResponse:
    return AutoResumeCancelResponse(cancelled=scan_service.cancel_auto_resume(start_url))


@router.get("/events/{scan_id}")
def stream_events(
    scan_id: str,
    scan_service: ScanService = Depends(get_scan_service),
) -> StreamingResponse:
    """
    Server-sent event stream of one scan run, replayed from its first event.
    """

    channel = scan_service.channel(scan_id)
    if channel is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown scan id")

    return StreamingResponse(
        iter_sse(channel, poll_seconds=SSE_POLL_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


def format_sse(event: Event) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


def iter_sse(channel: ChannelEventSink, *, poll_seconds: float) -> Iterator[str]:
    yield format_sse({"type": "connected", "id": channel.scan_id})
    cursor = 0
    while True:
        events, cursor, closed = channel.read(cursor, timeout=poll_seconds)
        for event in events:
            yield format_sse(event)
        if closed and not events:
            return
        if not events:
            yield ": keep-alive\n\n"
