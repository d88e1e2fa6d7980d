"""
Analytics Service - visitor tracking side channel

Owns the presence tracker and visit log, and turns a request snapshot into
recording work that runs as background tasks. User agent parsing and geo
lookup happen inside that work, off the request path. Recording never delays or
fails the request it observes: tasks are fire-and-forget and their errors
are logged and swallowed.

A maintenance loop (same shape as the other periodic services) runs the
visit retention sweep and the presence purge once per interval.

Usage (in lifespan):
    analytics = AnalyticsService(get_session_local())
    await analytics.start()
    app.state.analytics = analytics
    ...
    await analytics.stop()
"""

import asyncio
from dataclasses import replace
from datetime import timedelta
from typing import Dict, Optional, Set, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.logging_config import logger
from app.services.presence_tracker import PresenceTracker
from app.services.request_info import (
    RequestInfo,
    qualifies_for_presence,
    qualifies_for_visit,
)
from app.services.user_agent import GeoResolver, GeoLookup, analyze_user_agent, is_bot
from app.services.visit_log import VisitLogAggregator


class AnalyticsService:
    """Presence + visit recording with background scheduling and periodic cleanup"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        presence_window_minutes: int = None,
        retention_days: int = None,
        sweep_interval_hours: float = None,
        geo_lookup: Optional[GeoLookup] = None,
        enabled: bool = None
    ):
        window = presence_window_minutes or settings.PRESENCE_WINDOW_MINUTES
        retention = retention_days or settings.VISIT_RETENTION_DAYS
        interval = sweep_interval_hours or settings.ANALYTICS_SWEEP_INTERVAL_HOURS

        self.presence = PresenceTracker(session_factory, window=timedelta(minutes=window))
        self.visits = VisitLogAggregator(session_factory, retention_days=retention)
        self.geo = GeoResolver(settings.LOCAL_COUNTRY, settings.LOCAL_TIMEZONE, lookup=geo_lookup)
        self.sweep_interval = timedelta(hours=interval)
        self.enabled = settings.ANALYTICS_ENABLED if enabled is None else enabled

        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        self.stats: Dict[str, Any] = {
            "recorded_presence": 0,
            "recorded_visits": 0,
            "skipped_bots": 0,
            "errors": 0,
            "last_sweep": None,
        }

    # =====================================================
    # RECORDING
    # =====================================================

    def build_info(
        self,
        *,
        session_id: str,
        ip: str,
        path: str,
        user_agent: str = "",
        subject_id: Optional[str] = None,
        role: str = "guest",
        referrer: Optional[str] = None,
        title: Optional[str] = None
    ) -> RequestInfo:
        """Raw request snapshot; agent and location are filled in by `enrich`"""
        return RequestInfo(
            session_id=session_id,
            ip=ip,
            path=path,
            user_agent=user_agent or "",
            subject_id=subject_id,
            role=role if subject_id else "guest",
            referrer=referrer or "direct",
            title=title,
        )

    def enrich(self, info: RequestInfo) -> RequestInfo:
        """User agent analysis plus geolocation"""
        return replace(
            info,
            agent=analyze_user_agent(info.user_agent),
            location=self.geo.resolve(info.ip),
        )

    def observe(self, info: RequestInfo) -> int:
        """
        Schedule recording for a request snapshot.

        Returns the number of recordings scheduled (0 for bots, ignored
        paths, or when analytics is disabled). Enrichment and recording
        both happen in the background task.
        """
        if not self.enabled:
            return 0
        if is_bot(info.user_agent):
            self.stats["skipped_bots"] += 1
            return 0

        presence = qualifies_for_presence(info.path)
        visit = qualifies_for_visit(info.path)
        scheduled = int(presence) + int(visit)
        if scheduled:
            self._spawn(self._record(info, presence=presence, visit=visit))
        return scheduled

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record(self, info: RequestInfo, presence: bool, visit: bool) -> None:
        try:
            info = await asyncio.to_thread(self.enrich, info)
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(f"[Analytics] Enrichment failed for {info.path}: {e}")

        if presence:
            await self._record_presence(info)
        if visit:
            await self._record_visit(info)

    async def _record_presence(self, info: RequestInfo) -> None:
        try:
            await self.presence.touch(info)
            self.stats["recorded_presence"] += 1
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(f"[Analytics] Presence tracking failed for {info.path}: {e}")

    async def _record_visit(self, info: RequestInfo) -> None:
        try:
            await self.visits.record_visit(info)
            self.stats["recorded_visits"] += 1
        except Exception as e:
            self.stats["errors"] += 1
            logger.error(f"[Analytics] Visit tracking failed for {info.path}: {e}")

    async def drain(self) -> None:
        """Wait for every scheduled recording task to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # =====================================================
    # MAINTENANCE
    # =====================================================

    async def start(self):
        """Start the background maintenance loop"""
        if self.running:
            logger.warning("[Analytics] Maintenance loop already running")
            return

        self.running = True
        self._task = asyncio.create_task(self._maintenance_loop())
        logger.info(f"[Analytics] Started - sweep interval: {self.sweep_interval}")

    async def stop(self):
        """Stop the maintenance loop and flush pending recordings"""
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.drain()
        logger.info("[Analytics] Stopped")

    async def _maintenance_loop(self):
        while self.running:
            await self.run_maintenance()
            await asyncio.sleep(self.sweep_interval.total_seconds())

    async def run_maintenance(self) -> Dict[str, int]:
        """Retention sweep plus presence purge; failures are logged, never raised"""
        results = {"visitors_removed": 0, "sessions_purged": 0}

        try:
            results["visitors_removed"] = await self.visits.sweep()
        except Exception as e:
            logger.error(f"[Analytics] Visit sweep failed: {e}", exc_info=True)

        try:
            results["sessions_purged"] = await self.presence.purge_expired()
        except Exception as e:
            logger.error(f"[Analytics] Presence purge failed: {e}", exc_info=True)

        self.stats["last_sweep"] = self.presence.clock().isoformat()
        logger.log_analytics_event("maintenance", **results)
        return results
