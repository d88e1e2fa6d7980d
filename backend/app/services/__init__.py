from app.services.credential_store import CredentialStore
from app.services.presence_tracker import PresenceTracker
from app.services.visit_log import VisitLogAggregator
from app.services.analytics_service import AnalyticsService

__all__ = [
    # Identity
    "CredentialStore",
    # Visitor analytics
    "PresenceTracker",
    "VisitLogAggregator",
    "AnalyticsService",
]
