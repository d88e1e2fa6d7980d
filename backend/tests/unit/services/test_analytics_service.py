"""
Unit Tests for Analytics Service
Tests for: request snapshots, enrichment, background scheduling, bot skipping, maintenance
"""
import pytest

from app.core.database import get_session_local
from app.services.analytics_service import AnalyticsService
from app.services.user_agent import AgentInfo, Location

CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class TestBuildInfo:
    """Test request snapshots"""

    def test_snapshot_is_not_analysed(self):
        service = AnalyticsService(get_session_local(), enabled=False)

        info = service.build_info(session_id="s1", ip="192.168.1.20", path="/", user_agent=CHROME)

        assert info.user_agent == CHROME
        assert info.agent == AgentInfo()
        assert info.location == Location()
        assert info.role == "guest"
        assert info.referrer == "direct"
        assert info.is_authenticated is False

    def test_role_requires_subject(self):
        service = AnalyticsService(get_session_local(), enabled=False)

        anonymous = service.build_info(session_id="s1", ip="127.0.0.1", path="/", role="teacher")
        known = service.build_info(
            session_id="s1", ip="127.0.0.1", path="/", subject_id="t-1", role="teacher"
        )

        assert anonymous.role == "guest"
        assert known.role == "teacher"
        assert known.is_authenticated is True


class TestEnrich:
    """Test user agent analysis and geolocation of a snapshot"""

    def test_local_address(self):
        service = AnalyticsService(get_session_local(), enabled=False)
        info = service.build_info(session_id="s1", ip="192.168.1.20", path="/", user_agent=CHROME)

        enriched = service.enrich(info)

        assert enriched.agent.browser_name == "Chrome"
        assert enriched.agent.device == "desktop"
        assert enriched.location.region == "Local"
        assert enriched.session_id == "s1"

    def test_public_address_uses_geo_lookup(self):
        service = AnalyticsService(
            get_session_local(),
            enabled=False,
            geo_lookup=lambda ip: Location(country="Germany", region="Berlin", city="Berlin")
        )
        info = service.build_info(session_id="s1", ip="85.214.1.1", path="/", user_agent=CHROME)

        assert service.enrich(info).location.country == "Germany"


class TestObserve:
    """Test which requests schedule recording"""

    @pytest.mark.asyncio
    async def test_page_schedules_presence_and_visit(self, analytics):
        info = analytics.build_info(session_id="s1", ip="127.0.0.1", path="/dashboard", user_agent=CHROME)

        assert analytics.observe(info) == 2
        await analytics.drain()

        assert await analytics.presence.count_online() == 1
        assert await analytics.visits.total_page_views() == 1
        assert analytics.stats["recorded_visits"] == 1

    @pytest.mark.asyncio
    async def test_api_call_schedules_presence_only(self, analytics):
        info = analytics.build_info(session_id="s1", ip="127.0.0.1", path="/api/auth/me", user_agent=CHROME)

        assert analytics.observe(info) == 1
        await analytics.drain()

        assert await analytics.visits.total_page_views() == 0

    @pytest.mark.asyncio
    async def test_bots_are_skipped(self, analytics):
        info = analytics.build_info(
            session_id="s1", ip="127.0.0.1", path="/", user_agent="Googlebot/2.1"
        )

        assert analytics.observe(info) == 0
        assert analytics.stats["skipped_bots"] == 1

    @pytest.mark.asyncio
    async def test_ignored_path(self, analytics):
        info = analytics.build_info(session_id="s1", ip="127.0.0.1", path="/favicon.ico", user_agent=CHROME)

        assert analytics.observe(info) == 0

    @pytest.mark.asyncio
    async def test_disabled(self, db_session):
        service = AnalyticsService(get_session_local(), enabled=False)
        info = service.build_info(session_id="s1", ip="127.0.0.1", path="/", user_agent=CHROME)

        assert service.observe(info) == 0

    @pytest.mark.asyncio
    async def test_recorded_snapshot_is_enriched(self, analytics):
        recorded = []

        async def capture(info, duration=None):
            recorded.append(info)

        analytics.visits.record_visit = capture
        info = analytics.build_info(session_id="s1", ip="127.0.0.1", path="/", user_agent=CHROME)

        analytics.observe(info)
        await analytics.drain()

        assert len(recorded) == 1
        assert recorded[0].agent.browser_name == "Chrome"
        assert recorded[0].location.city == "Local"

    @pytest.mark.asyncio
    async def test_enrichment_failure_still_records(self, analytics):
        def broken(info):
            raise RuntimeError("geo database unreadable")

        analytics.enrich = broken
        info = analytics.build_info(session_id="s1", ip="127.0.0.1", path="/", user_agent=CHROME)

        assert analytics.observe(info) == 2
        await analytics.drain()

        assert analytics.stats["errors"] == 1
        assert analytics.stats["recorded_visits"] == 1
        assert analytics.stats["recorded_presence"] == 1

    @pytest.mark.asyncio
    async def test_recording_failure_is_swallowed(self, analytics):
        async def broken(info, duration=None):
            raise RuntimeError("database unavailable")

        analytics.visits.record_visit = broken
        info = analytics.build_info(session_id="s1", ip="127.0.0.1", path="/", user_agent=CHROME)

        analytics.observe(info)
        await analytics.drain()

        assert analytics.stats["errors"] == 1
        assert analytics.stats["recorded_presence"] == 1


class TestMaintenance:
    """Test the periodic sweep"""

    @pytest.mark.asyncio
    async def test_run_maintenance(self, analytics):
        results = await analytics.run_maintenance()

        assert results == {"visitors_removed": 0, "sessions_purged": 0}
        assert analytics.stats["last_sweep"] is not None

    @pytest.mark.asyncio
    async def test_start_and_stop(self, analytics):
        await analytics.start()
        assert analytics.running is True

        await analytics.stop()
        assert analytics.running is False
