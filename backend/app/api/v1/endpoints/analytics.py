"""
Visitor Analytics Endpoints

Public:  /online, /today, /site-stats
Staff:   /weekly, /monthly, /popular-pages, /referrers, /online-details, /dashboard

Read failures degrade to zeroed or empty payloads; these endpoints do not
return errors for storage problems.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime
from typing import Any, Awaitable, Dict

from app.core.database import get_db
from app.core.logging_config import logger
from app.models.staff import Staff, StaffKind
from app.models.student import Student
from app.modules.auth.policy import teacher_only
from app.services.analytics_service import AnalyticsService
from app.services.visit_log import empty_window_stats


router = APIRouter(prefix="/analytics", tags=["Analytics"])


def get_analytics(request: Request) -> AnalyticsService:
    return request.app.state.analytics


async def _safe(awaitable: Awaitable, default: Any, label: str) -> Any:
    try:
        return await awaitable
    except Exception as e:
        logger.error(f"[Analytics] {label} failed: {e}")
        return default


def _change(today: int, yesterday: int) -> float:
    """Percent change, one decimal; 0 when there is no baseline"""
    if not yesterday:
        return 0
    return round((today - yesterday) / yesterday * 100, 1)


async def _account_totals(db: AsyncSession) -> Dict[str, int]:
    staff_total = (await db.execute(select(func.count(Staff.id)))).scalar() or 0
    teachers = (await db.execute(
        select(func.count(Staff.id)).where(Staff.kind == StaffKind.TEACHER)
    )).scalar() or 0
    students = (await db.execute(select(func.count(Student.id)))).scalar() or 0
    return {"totalUsers": staff_total, "totalTeachers": teachers, "totalStudents": students}


# ============================================
# Public
# ============================================

@router.get("/online")
async def online_users(analytics: AnalyticsService = Depends(get_analytics)):
    stats = await analytics.presence.online_stats()
    return {"success": True, "data": stats}


@router.get("/today")
async def today_stats(analytics: AnalyticsService = Depends(get_analytics)):
    """Everything on this page covers the current UTC calendar day"""
    visits = analytics.visits
    start, end = visits.today_bounds()
    data = dict(await _safe(visits.window_stats(start, end), empty_window_stats(), "today stats"))
    data["onlineUsers"] = await analytics.presence.online_stats()
    data["popularPages"] = await _safe(
        visits.popular_pages(limit=10, start=start, end=end), [], "popular pages"
    )
    data["deviceStats"] = await _safe(visits.breakdown("device", start=start, end=end), [], "device stats")
    data["browserStats"] = await _safe(visits.breakdown("browser", start=start, end=end), [], "browser stats")
    data["locationStats"] = await _safe(
        visits.breakdown("country", start=start, end=end), [], "location stats"
    )
    return {"success": True, "data": data}


@router.get("/site-stats")
async def site_stats(
    analytics: AnalyticsService = Depends(get_analytics),
    db: AsyncSession = Depends(get_db)
):
    totals = await _safe(
        _account_totals(db),
        {"totalUsers": 0, "totalTeachers": 0, "totalStudents": 0},
        "account totals"
    )
    data = {
        **totals,
        "totalVisitors": await _safe(analytics.visits.total_visitors(), 0, "visitor total"),
        "totalPageViews": await _safe(analytics.visits.total_page_views(), 0, "page view total"),
        "onlineUsers": await analytics.presence.online_stats(),
        "lastUpdated": datetime.utcnow().isoformat(),
    }
    return {"success": True, "data": data}


# ============================================
# Staff only
# ============================================

@router.get("/weekly", dependencies=[Depends(teacher_only)])
async def weekly_stats(analytics: AnalyticsService = Depends(get_analytics)):
    data = await _safe(analytics.visits.weekly_stats(), [], "weekly stats")
    return {"success": True, "data": data}


@router.get("/monthly", dependencies=[Depends(teacher_only)])
async def monthly_stats(analytics: AnalyticsService = Depends(get_analytics)):
    data = await _safe(analytics.visits.monthly_stats(), [], "monthly stats")
    return {"success": True, "data": data}


@router.get("/popular-pages", dependencies=[Depends(teacher_only)])
async def popular_pages(
    days: int = Query(7, ge=1, le=365),
    limit: int = Query(20, ge=1, le=100),
    analytics: AnalyticsService = Depends(get_analytics)
):
    data = await _safe(analytics.visits.popular_pages(days=days, limit=limit), [], "popular pages")
    return {"success": True, "data": data}


@router.get("/referrers", dependencies=[Depends(teacher_only)])
async def referrers(
    days: int = Query(7, ge=1, le=365),
    limit: int = Query(10, ge=1, le=100),
    analytics: AnalyticsService = Depends(get_analytics)
):
    data = await _safe(analytics.visits.top_referrers(days=days, limit=limit), [], "referrers")
    return {"success": True, "data": data}


@router.get("/online-details", dependencies=[Depends(teacher_only)])
async def online_details(analytics: AnalyticsService = Depends(get_analytics)):
    data = await _safe(analytics.presence.list_online(), [], "online details")
    return {"success": True, "data": data}


@router.get("/dashboard", dependencies=[Depends(teacher_only)])
async def dashboard(
    analytics: AnalyticsService = Depends(get_analytics),
    db: AsyncSession = Depends(get_db)
):
    visits = analytics.visits
    totals = await _safe(
        _account_totals(db),
        {"totalUsers": 0, "totalTeachers": 0, "totalStudents": 0},
        "account totals"
    )
    today = await _safe(visits.today_stats(), empty_window_stats(), "today stats")
    yesterday = await _safe(visits.yesterday_stats(), empty_window_stats(), "yesterday stats")

    return {
        "success": True,
        "data": {
            "overview": {
                "totalVisitors": await _safe(visits.total_visitors(), 0, "visitor total"),
                "totalPageViews": await _safe(visits.total_page_views(), 0, "page view total"),
                **totals,
            },
            "today": {
                **today,
                "visitorChange": _change(today["totalVisitors"], yesterday["totalVisitors"]),
                "pageViewChange": _change(today["totalPageViews"], yesterday["totalPageViews"]),
            },
            "online": await analytics.presence.online_stats(),
        },
    }
