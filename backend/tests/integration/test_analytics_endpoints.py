"""
Integration Tests for Visitor Analytics
Tests for: request tracking middleware, public stats, staff dashboards
"""
import pytest
from httpx import AsyncClient

from app.core.config import settings

CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
BROWSER = {'User-Agent': CHROME}


class TestTrackingMiddleware:
    """Every request is handed to the analytics service"""

    @pytest.mark.asyncio
    async def test_page_view_assigns_session_cookie(self, tracking_client: AsyncClient, analytics):
        response = await tracking_client.get('/', headers=BROWSER)
        await analytics.drain()

        assert response.status_code == 200
        assert settings.VISITOR_SESSION_COOKIE in response.cookies
        assert await analytics.visits.total_page_views() == 1
        assert (await analytics.presence.online_stats())['guests'] == 1

    @pytest.mark.asyncio
    async def test_same_session_is_one_visitor(self, tracking_client: AsyncClient, analytics):
        await tracking_client.get('/', headers=BROWSER)
        await analytics.drain()
        await tracking_client.get('/about', headers=BROWSER)
        await analytics.drain()

        assert await analytics.visits.total_visitors() == 1
        assert await analytics.visits.total_page_views() == 2

    @pytest.mark.asyncio
    async def test_api_calls_are_presence_only(self, tracking_client: AsyncClient, analytics):
        await tracking_client.get('/api/auth/check', headers=BROWSER)
        await analytics.drain()

        assert await analytics.visits.total_page_views() == 0
        assert await analytics.presence.count_online() == 1

    @pytest.mark.asyncio
    async def test_authenticated_presence(self, tracking_client: AsyncClient, analytics, teacher_headers):
        await tracking_client.get('/api/auth/me', headers={**BROWSER, **teacher_headers})
        await analytics.drain()

        stats = await analytics.presence.online_stats()
        assert stats['teachers'] == 1
        assert stats['guests'] == 0

    @pytest.mark.asyncio
    async def test_bots_are_ignored(self, tracking_client: AsyncClient, analytics):
        await tracking_client.get('/', headers={'User-Agent': 'Googlebot/2.1'})
        await analytics.drain()

        assert await analytics.visits.total_page_views() == 0
        assert await analytics.presence.count_online() == 0


class TestPublicStats:
    """Unauthenticated analytics endpoints"""

    @pytest.mark.asyncio
    async def test_online(self, client: AsyncClient):
        response = await client.get('/api/analytics/online')

        assert response.status_code == 200
        assert set(response.json()['data']) == {'total', 'guests', 'students', 'teachers', 'admins'}

    @pytest.mark.asyncio
    async def test_today(self, tracking_client: AsyncClient, analytics):
        await tracking_client.get('/', headers=BROWSER)
        await analytics.drain()

        response = await tracking_client.get('/api/analytics/today', headers=BROWSER)

        assert response.status_code == 200
        data = response.json()['data']
        assert data['totalPageViews'] == 1
        assert data['popularPages'][0]['url'] == '/'
        assert data['deviceStats'] == [{'name': 'desktop', 'count': 1}]
        assert data['browserStats'][0]['name'] == 'Chrome'
        assert data['onlineUsers']['total'] == 1

    @pytest.mark.asyncio
    async def test_site_stats(self, client: AsyncClient, student, admin):
        response = await client.get('/api/analytics/site-stats')

        assert response.status_code == 200
        data = response.json()['data']
        assert data['totalUsers'] == 2
        assert data['totalTeachers'] == 1
        assert data['totalStudents'] == 1
        assert data['totalVisitors'] == 0
        assert 'lastUpdated' in data


class TestStaffStats:
    """Teacher/admin analytics endpoints"""

    @pytest.mark.asyncio
    async def test_weekly(self, client: AsyncClient, teacher_headers):
        response = await client.get('/api/analytics/weekly', headers=teacher_headers)

        assert response.status_code == 200
        assert len(response.json()['data']) == 7

    @pytest.mark.asyncio
    async def test_monthly(self, client: AsyncClient, admin_headers):
        response = await client.get('/api/analytics/monthly', headers=admin_headers)

        assert response.status_code == 200
        assert len(response.json()['data']) == 30

    @pytest.mark.asyncio
    async def test_student_is_forbidden(self, client: AsyncClient, student_headers):
        response = await client.get('/api/analytics/weekly', headers=student_headers)

        assert response.status_code == 403
        assert response.json()['code'] == 'INSUFFICIENT_PERMISSION'

    @pytest.mark.asyncio
    async def test_anonymous_is_unauthenticated(self, client: AsyncClient):
        response = await client.get('/api/analytics/dashboard')

        assert response.status_code == 401
        assert response.json()['code'] == 'NO_TOKEN'

    @pytest.mark.asyncio
    async def test_popular_pages_and_referrers(self, tracking_client: AsyncClient, analytics, teacher_headers):
        await tracking_client.get('/', headers={**BROWSER, 'Referer': 'https://google.com/'})
        await analytics.drain()

        pages = await tracking_client.get('/api/analytics/popular-pages?days=1&limit=5', headers=teacher_headers)
        referrers = await tracking_client.get('/api/analytics/referrers', headers=teacher_headers)

        assert pages.json()['data'][0]['url'] == '/'
        assert referrers.json()['data'][0]['referrer'] == 'https://google.com/'

    @pytest.mark.asyncio
    async def test_query_bounds(self, client: AsyncClient, teacher_headers):
        response = await client.get('/api/analytics/popular-pages?limit=0', headers=teacher_headers)

        assert response.status_code == 400
        assert response.json()['code'] == 'VALIDATION_ERROR'

    @pytest.mark.asyncio
    async def test_online_details(self, tracking_client: AsyncClient, analytics, teacher_headers):
        await tracking_client.get('/', headers=BROWSER)
        await analytics.drain()

        response = await tracking_client.get('/api/analytics/online-details', headers=teacher_headers)

        assert response.status_code == 200
        assert response.json()['data'][0]['currentPage'] == '/'

    @pytest.mark.asyncio
    async def test_dashboard(self, client: AsyncClient, teacher_headers):
        response = await client.get('/api/analytics/dashboard', headers=teacher_headers)

        assert response.status_code == 200
        data = response.json()['data']
        assert data['overview']['totalTeachers'] == 1
        assert data['today']['visitorChange'] == 0
        assert data['today']['pageViewChange'] == 0
        assert data['online']['total'] == 0
