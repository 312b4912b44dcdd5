"""
app/api/routers/results.py

Read-only endpoints over persisted liveness findings.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_result_store
from app.scanner.storage.base import ResultStore
from app.schemas.results import LivenessResultResponse, SiteSummaryResponse

router = APIRouter(tags=["results"])


@router.get("/results", response_model=list[LivenessResultResponse])
def list_results(
    website: str | None = Query(default=None, description="Case-insensitive site substring"),
    tld: str | None = Query(default=None, description="Case-insensitive TLD substring"),
    reason: str | None = Query(
        default=None,
        description="Exact expiry reason, or 'has-expiry-date' for rows with a date",
    ),
    result_store: ResultStore = Depends(get_result_store),
) -> list[LivenessResultResponse]:
    findings = result_store.find(website=website, tld=tld, reason=reason)
    return [
        LivenessResultResponse(
            website=finding.site,
            domain=finding.domain,
            tld=finding.tld,
            status=finding.status,
            code=finding.error_code,
            expiry_date=finding.expiry_date,
            expiry_date_reason=finding.expiry_reason,
            found_at=finding.found_at,
        )
        for finding in findings
    ]


@router.get("/results/reasons", response_model=list[str])
def list_reasons(result_store: ResultStore = Depends(get_result_store)) -> list[str]:
    return result_store.distinct_reasons()


@router.get("/summary", response_model=list[SiteSummaryResponse])
def site_summary(
    result_store: ResultStore = Depends(get_result_store),
) -> list[SiteSummaryResponse]:
    return [
        SiteSummaryResponse(website=site, count=count)
        for site, count in result_store.summary()
    ]
