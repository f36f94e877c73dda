"""
Deadline API endpoints.

Serves the aggregated deadline list (projects, appointments, goals) with
urgency tiers and the summary counters shown above it.
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query

from backend.dependencies import get_deadline_aggregator
from backend.schemas import (
    DeadlineItemResponse,
    DeadlineListResponse,
    DeadlineSummaryResponse,
)
from dataponto.deadlines import FILTERS, DeadlineAggregator, DeadlineSummary

router = APIRouter(prefix="/deadlines", tags=["deadlines"])


def _summary_response(summary: DeadlineSummary) -> DeadlineSummaryResponse:
    return DeadlineSummaryResponse(
        overdue=summary.overdue,
        today=summary.today,
        urgent=summary.urgent,
        total=summary.total,
    )


@router.get("/", response_model=DeadlineListResponse)
async def list_deadlines(
    filter_name: str = Query("all", alias="filter", description="Filter to apply"),
    user_id: Optional[str] = Query(None, description="Viewer identity"),
    aggregator: DeadlineAggregator = Depends(get_deadline_aggregator),
):
    """
    List aggregated deadlines.

    Filters: all, overdue, today, urgent (includes today), week,
    project, appointment, goal. The summary always counts the
    unfiltered list.
    """
    if filter_name not in FILTERS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown filter '{filter_name}'. Use one of: {', '.join(FILTERS)}",
        )

    deadlines = aggregator.aggregate(viewer_id=user_id)
    items = deadlines.filter(filter_name)

    return DeadlineListResponse(
        filter=filter_name,
        items=[DeadlineItemResponse(**item.to_dict()) for item in items],
        summary=_summary_response(deadlines.summary()),
        failed_sources=list(deadlines.failed_sources),
        generated_at=deadlines.generated_at.isoformat(),
    )


@router.get("/summary", response_model=DeadlineSummaryResponse)
async def deadline_summary(
    user_id: Optional[str] = Query(None, description="Viewer identity"),
    aggregator: DeadlineAggregator = Depends(get_deadline_aggregator),
):
    """Overdue, today, urgent and total counters."""
    return _summary_response(aggregator.aggregate(viewer_id=user_id).summary())
