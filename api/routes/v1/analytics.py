"""
api/routes/v1/analytics.py -- Admin reporting over hackathons, votes and prizes.

Routes:
  GET /admin/analytics/overview              -- every report plus the resolved time range
  GET /admin/analytics/participation-trends  -- registrations and submissions per day
  GET /admin/analytics/voting-statistics     -- score histogram and per-judge activity
  GET /admin/analytics/prize-distribution    -- pool vs. paid out, by rank
  GET /admin/analytics/export/{dataset}      -- raw rows as JSON or CSV

All routes take date_range (default last_30_days), start_date/end_date for
custom ranges, and hackathon_id. Admin only.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    AnalyticsReport,
    ExportMetadata,
    ExportResponse,
    ParticipationTrends,
    PrizeDistribution,
    VotingStatistics,
)
from api.routes.v1.hackathons import error, get_store
from auth.dependencies import require_admin
from auth.store import AuthStore
from core.models import utcnow
from hackathons import analytics
from hackathons.analytics import DateRange, ExportDataset, Window

logger = logging.getLogger("hackafi.analytics")

router = APIRouter(dependencies=[Depends(require_admin)])


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"


def get_window(
    date_range: DateRange = DateRange.LAST_30_DAYS,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Window:
    try:
        return analytics.resolve_window(date_range, start_date, end_date)
    except ValueError as e:
        raise error(400, "invalid_date_range", str(e)) from e


def _names(request: Request, ds: analytics.Dataset) -> dict[str, str]:
    auth_store: AuthStore = request.app.state.auth_store
    profiles = auth_store.get_profiles(analytics.addresses_in(ds))
    return {address: p.username for address, p in profiles.items() if p.username}


@router.get("/admin/analytics/overview", response_model=AnalyticsReport)
def analytics_overview(
    request: Request,
    hackathon_id: Optional[int] = None,
    window: Window = Depends(get_window),
) -> AnalyticsReport:
    ds = analytics.load(get_store(request), window, hackathon_id)
    return AnalyticsReport.model_validate(analytics.report(ds, window, _names(request, ds)))


@router.get("/admin/analytics/participation-trends", response_model=ParticipationTrends)
def analytics_participation(
    request: Request,
    hackathon_id: Optional[int] = None,
    window: Window = Depends(get_window),
) -> ParticipationTrends:
    ds = analytics.load(get_store(request), window, hackathon_id)
    return ParticipationTrends.model_validate(analytics.participation_trends(ds))


@router.get("/admin/analytics/voting-statistics", response_model=VotingStatistics)
def analytics_voting(
    request: Request,
    hackathon_id: Optional[int] = None,
    window: Window = Depends(get_window),
) -> VotingStatistics:
    ds = analytics.load(get_store(request), window, hackathon_id)
    return VotingStatistics.model_validate(analytics.voting_statistics(ds, _names(request, ds)))


@router.get("/admin/analytics/prize-distribution", response_model=PrizeDistribution)
def analytics_prizes(
    request: Request,
    hackathon_id: Optional[int] = None,
    window: Window = Depends(get_window),
) -> PrizeDistribution:
    ds = analytics.load(get_store(request), window, hackathon_id)
    return PrizeDistribution.model_validate(analytics.prize_distribution(ds))


@router.get("/admin/analytics/export/{dataset}", response_model=ExportResponse)
def analytics_export(
    request: Request,
    dataset: ExportDataset,
    export_format: ExportFormat = Query(default=ExportFormat.JSON, alias="format"),
    hackathon_id: Optional[int] = None,
    window: Window = Depends(get_window),
):
    """Rows for one dataset. CSV downloads as an attachment; JSON adds metadata."""
    ds = analytics.load(get_store(request), window, hackathon_id)
    rows = analytics.export_rows(ds, dataset, _names(request, ds))
    now = utcnow()
    logger.info("Analytics export: %s as %s, %d rows", dataset.value, export_format.value, len(rows))

    if export_format == ExportFormat.CSV:
        filename = f"hacka-fi-{dataset.value}-{now.date().isoformat()}.csv"
        return Response(
            content=analytics.to_csv(rows, analytics.EXPORT_COLUMNS[dataset]),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    return ExportResponse(
        dataset=dataset.value,
        rows=rows,
        metadata=ExportMetadata(
            exported_at=now.isoformat(),
            date_range=window.describe(),
            total_records=len(rows),
        ),
    )
