"""
Visit Log Aggregator

Write path: one atomic upsert per page view on `visitors` (keyed by ip +
session id, counter incremented in SQL) plus one `visitor_pages` row.

Read path: projections over `visitor_pages.visit_time`, so a visitor that
browsed on several days contributes to each of those days.
"""

from datetime import datetime, timedelta, date
from typing import Callable, Dict, List, Any, Optional, Tuple

from sqlalchemy import select, func, delete, distinct, case
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import dialect_insert
from app.core.logging_config import logger
from app.core.types import generate_uuid, utcnow
from app.models.analytics import Visitor, VisitorPage
from app.services.request_info import RequestInfo

BREAKDOWN_COLUMNS = {
    "device": Visitor.device,
    "browser": Visitor.browser_name,
    "country": Visitor.country,
}


def empty_window_stats() -> Dict[str, int]:
    return {"totalVisitors": 0, "uniqueVisitors": 0, "totalPageViews": 0, "avgDuration": 0}


def _as_date(value: Any) -> Optional[date]:
    """func.date() yields a date on PostgreSQL and an ISO string on SQLite"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class VisitLogAggregator:
    """Append-style visit history with daily, page and referrer projections"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retention_days: int = 30,
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.retention = timedelta(days=retention_days)
        self.clock = clock

    # =====================================================
    # WRITE PATH
    # =====================================================

    async def record_visit(self, info: RequestInfo, duration: Optional[int] = None) -> str:
        """
        Record one page view and return the visitor id.

        Insert starts `visit_count` at 1; a conflict on (ip, session_id)
        increments it in SQL and refreshes last_visit and the device fields.
        `first_visit` and `referrer` keep their inserted values.
        """
        seen_at = info.occurred_at
        refreshed = {
            "last_visit": seen_at,
            "user_agent": info.user_agent,
            "device": info.agent.device,
            "browser_name": info.agent.browser_name,
            "browser_version": info.agent.browser_version,
            "os_name": info.agent.os_name,
            "os_version": info.agent.os_version,
            "country": info.location.country,
            "region": info.location.region,
            "city": info.location.city,
            "timezone": info.location.timezone,
            "subject_id": info.subject_id,
            "subject_kind": info.role if info.subject_id else None,
        }
        table = Visitor.__table__

        async with self.session_factory() as session:
            stmt = dialect_insert(session, table).values(
                id=generate_uuid(),
                ip=info.ip,
                session_id=info.session_id,
                referrer=(info.referrer or "direct")[:500],
                first_visit=seen_at,
                visit_count=1,
                total_duration=duration or 0,
                is_bot=False,
                **refreshed
            )
            update_set = {key: stmt.excluded[key] for key in refreshed}
            update_set["visit_count"] = table.c.visit_count + 1
            if duration:
                update_set["total_duration"] = table.c.total_duration + duration
            stmt = stmt.on_conflict_do_update(
                index_elements=["ip", "session_id"],
                set_=update_set
            )
            await session.execute(stmt)

            result = await session.execute(
                select(Visitor.id).where(
                    Visitor.ip == info.ip,
                    Visitor.session_id == info.session_id
                )
            )
            visitor_id = result.scalar_one()

            session.add(VisitorPage(
                visitor_id=visitor_id,
                url=info.path[:500],
                title=(info.title or info.path)[:255],
                visit_time=seen_at,
                duration=duration,
            ))
            await session.commit()

        return visitor_id

    # =====================================================
    # WINDOWS
    # =====================================================

    def _today(self) -> datetime:
        now = self.clock()
        return datetime(now.year, now.month, now.day)

    def _since(self, days: int) -> datetime:
        return self.clock() - timedelta(days=max(days, 1))

    def today_bounds(self) -> Tuple[datetime, datetime]:
        """[midnight, next midnight) of the current UTC day"""
        start = self._today()
        return start, start + timedelta(days=1)

    def _window(self, days: int, start: Optional[datetime] = None, end: Optional[datetime] = None):
        """
        Page-view time filter: [start, end) when bounds are given, otherwise
        the trailing `days` days up to now.
        """
        condition = VisitorPage.visit_time >= (start if start is not None else self._since(days))
        if end is not None:
            condition = condition & (VisitorPage.visit_time < end)
        return condition

    async def window_stats(self, start: datetime, end: datetime) -> Dict[str, int]:
        """Visitors, unique IPs, page views and rounded mean visit duration in [start, end)"""
        in_window = (VisitorPage.visit_time >= start) & (VisitorPage.visit_time < end)

        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    func.count(distinct(VisitorPage.visitor_id)),
                    func.count(distinct(Visitor.ip)),
                    func.count(VisitorPage.id),
                )
                .select_from(VisitorPage)
                .join(Visitor, Visitor.id == VisitorPage.visitor_id)
                .where(in_window)
            )
            visitors, unique_ips, page_views = result.one()

            visitor_ids = select(VisitorPage.visitor_id).where(in_window)
            avg_result = await session.execute(
                select(func.avg(Visitor.total_duration)).where(Visitor.id.in_(visitor_ids))
            )
            avg_duration = avg_result.scalar()

        return {
            "totalVisitors": visitors or 0,
            "uniqueVisitors": unique_ips or 0,
            "totalPageViews": page_views or 0,
            "avgDuration": int(round(avg_duration)) if avg_duration else 0,
        }

    async def today_stats(self) -> Dict[str, int]:
        return await self.window_stats(*self.today_bounds())

    async def yesterday_stats(self) -> Dict[str, int]:
        today = self._today()
        return await self.window_stats(today - timedelta(days=1), today)

    # =====================================================
    # SERIES
    # =====================================================

    async def daily_series(self, days: int) -> List[Dict[str, Any]]:
        """
        One entry per calendar day for the last `days` days (today included),
        zero-filled: visitors, uniqueVisitors, pageViews, newVisitors.
        """
        days = max(days, 1)
        today = self._today()
        start = today - timedelta(days=days - 1)

        page_day = func.date(VisitorPage.visit_time)
        first_day = func.date(Visitor.first_visit)

        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    page_day,
                    func.count(distinct(VisitorPage.visitor_id)),
                    func.count(distinct(Visitor.ip)),
                    func.count(VisitorPage.id),
                    func.count(distinct(case((first_day == page_day, Visitor.id)))),
                )
                .select_from(VisitorPage)
                .join(Visitor, Visitor.id == VisitorPage.visitor_id)
                .where(VisitorPage.visit_time >= start)
                .group_by(page_day)
            )
            rows = result.all()

        by_day: Dict[date, Tuple[int, int, int, int]] = {}
        for day, visitors, unique_ips, page_views, new_visitors in rows:
            by_day[_as_date(day)] = (visitors, unique_ips, page_views, new_visitors)

        series = []
        for offset in range(days):
            day = (start + timedelta(days=offset)).date()
            visitors, unique_ips, page_views, new_visitors = by_day.get(day, (0, 0, 0, 0))
            series.append({
                "date": day.isoformat(),
                "visitors": visitors,
                "uniqueVisitors": unique_ips,
                "pageViews": page_views,
                "newVisitors": new_visitors,
            })
        return series

    async def weekly_stats(self) -> List[Dict[str, Any]]:
        return await self.daily_series(7)

    async def monthly_stats(self) -> List[Dict[str, Any]]:
        return await self.daily_series(30)

    # =====================================================
    # RANKINGS
    # =====================================================

    async def popular_pages(
        self,
        days: int = 7,
        limit: int = 20,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        async with self.session_factory() as session:
            views = func.count(VisitorPage.id)
            result = await session.execute(
                select(
                    VisitorPage.url,
                    func.max(VisitorPage.title),
                    views,
                    func.count(distinct(Visitor.ip)),
                )
                .select_from(VisitorPage)
                .join(Visitor, Visitor.id == VisitorPage.visitor_id)
                .where(self._window(days, start, end))
                .group_by(VisitorPage.url)
                .order_by(views.desc(), VisitorPage.url)
                .limit(limit)
            )
            return [
                {"url": url, "title": title, "views": count, "uniqueVisitors": unique_ips}
                for url, title, count, unique_ips in result.all()
            ]

    async def top_referrers(
        self,
        days: int = 7,
        limit: int = 10,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Referrers of visitors active in the window; direct traffic excluded"""
        active = select(VisitorPage.visitor_id).where(self._window(days, start, end))
        async with self.session_factory() as session:
            visitors = func.count(Visitor.id)
            result = await session.execute(
                select(Visitor.referrer, visitors, func.count(distinct(Visitor.ip)))
                .where(Visitor.id.in_(active), Visitor.referrer != "direct")
                .group_by(Visitor.referrer)
                .order_by(visitors.desc(), Visitor.referrer)
                .limit(limit)
            )
            return [
                {"referrer": referrer, "visitors": count, "uniqueVisitors": unique_ips}
                for referrer, count, unique_ips in result.all()
            ]

    async def breakdown(
        self,
        field: str,
        days: int = 1,
        limit: int = 10,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Visitor counts grouped by device, browser or country"""
        column = BREAKDOWN_COLUMNS.get(field)
        if column is None:
            raise ValueError(f"Unknown breakdown field: {field}")

        active = select(VisitorPage.visitor_id).where(self._window(days, start, end))
        async with self.session_factory() as session:
            count = func.count(Visitor.id)
            result = await session.execute(
                select(column, count)
                .where(Visitor.id.in_(active))
                .group_by(column)
                .order_by(count.desc(), column)
                .limit(limit)
            )
            return [{"name": name or "Unknown", "count": total} for name, total in result.all()]

    # =====================================================
    # TOTALS & RETENTION
    # =====================================================

    async def total_page_views(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count(VisitorPage.id)))
            return result.scalar() or 0

    async def total_visitors(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count(Visitor.id)))
            return result.scalar() or 0

    async def sweep(self) -> int:
        """Delete visitors (and their pages) not seen within the retention period"""
        cutoff = self.clock() - self.retention
        stale = select(Visitor.id).where(Visitor.last_visit < cutoff)

        async with self.session_factory() as session:
            await session.execute(
                delete(VisitorPage).where(VisitorPage.visitor_id.in_(stale))
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(
                delete(Visitor).where(Visitor.last_visit < cutoff)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            removed = result.rowcount or 0

        if removed:
            logger.log_analytics_event("visit_sweep", removed=removed, cutoff=cutoff.isoformat())
        return removed
