"""
Visitor Presence Tracker

Keeps one `online_sessions` row per visitor session. A session counts as
online while its last activity is inside the presence window; stale rows are
filtered out at query time and removed by `purge_expired`.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Any

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import dialect_insert
from app.core.logging_config import logger
from app.core.types import generate_uuid, utcnow
from app.models.analytics import OnlineSession
from app.services.request_info import RequestInfo

ROLE_BUCKETS = {
    "guest": "guests",
    "student": "students",
    "teacher": "teachers",
    "admin": "admins",
}


def empty_online_stats() -> Dict[str, int]:
    return {"total": 0, "guests": 0, "students": 0, "teachers": 0, "admins": 0}


class PresenceTracker:
    """Sliding-window online presence backed by `online_sessions`"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        window: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utcnow
    ):
        self.session_factory = session_factory
        self.window = window
        self.clock = clock

    def _cutoff(self) -> datetime:
        return self.clock() - self.window

    async def touch(self, info: RequestInfo) -> None:
        """
        Upsert the presence row for `info.session_id`.

        Everything is overwritten on conflict except `login_time`, which keeps
        the value from the first insert.
        """
        seen_at = info.occurred_at
        values = {
            "subject_id": info.subject_id,
            "ip": info.ip,
            "user_agent": info.user_agent,
            "browser_name": info.agent.browser_name,
            "browser_version": info.agent.browser_version,
            "os_name": info.agent.os_name,
            "os_version": info.agent.os_version,
            "device": info.agent.device,
            "country": info.location.country,
            "region": info.location.region,
            "city": info.location.city,
            "timezone": info.location.timezone,
            "is_authenticated": info.is_authenticated,
            "role": info.role,
            "current_page": info.path[:500],
            "last_activity": seen_at,
        }

        async with self.session_factory() as session:
            stmt = dialect_insert(session, OnlineSession.__table__).values(
                id=generate_uuid(),
                session_id=info.session_id,
                login_time=seen_at,
                **values
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["session_id"],
                set_={key: stmt.excluded[key] for key in values}
            )
            await session.execute(stmt)
            await session.commit()

    async def count_online(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(OnlineSession.id))
                .where(OnlineSession.last_activity >= self._cutoff())
            )
            return result.scalar() or 0

    async def count_online_by_role(self) -> Dict[str, int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OnlineSession.role, func.count(OnlineSession.id))
                .where(OnlineSession.last_activity >= self._cutoff())
                .group_by(OnlineSession.role)
            )
            return {role: count for role, count in result.all()}

    async def online_stats(self) -> Dict[str, int]:
        """`{total, guests, students, teachers, admins}`; zeros when the store fails"""
        try:
            by_role = await self.count_online_by_role()
        except Exception as e:
            logger.error(f"[Presence] Failed to read online stats: {e}")
            return empty_online_stats()

        stats = empty_online_stats()
        for role, count in by_role.items():
            bucket = ROLE_BUCKETS.get(role)
            if bucket:
                stats[bucket] += count
        stats["total"] = sum(by_role.values())
        return stats

    async def list_online(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Live sessions, most recent activity first"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(OnlineSession)
                .where(OnlineSession.last_activity >= self._cutoff())
                .order_by(OnlineSession.last_activity.desc())
                .limit(limit)
            )
            rows = result.scalars().all()

        return [
            {
                "sessionId": row.session_id,
                "role": row.role,
                "isAuthenticated": row.is_authenticated,
                "currentPage": row.current_page,
                "device": row.device,
                "browser": {"name": row.browser_name, "version": row.browser_version},
                "os": {"name": row.os_name, "version": row.os_version},
                "location": {
                    "country": row.country,
                    "region": row.region,
                    "city": row.city,
                    "timezone": row.timezone,
                },
                "loginTime": row.login_time,
                "lastActivity": row.last_activity,
            }
            for row in rows
        ]

    async def purge_expired(self) -> int:
        """Delete rows outside the presence window; returns the number removed"""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(OnlineSession).where(OnlineSession.last_activity < self._cutoff())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount or 0
