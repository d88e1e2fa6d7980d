"""Snapshot of a request as seen by visitor analytics"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from app.services.user_agent import AgentInfo, Location

# Never tracked at all
_IGNORED_PREFIXES = (
    "/uploads",
    "/favicon",
    "/static",
    "/.well-known/",
    "/docs",
    "/redoc",
    "/openapi.json",
)
_IGNORED_PATHS = {
    "/api/health",
    "/health",
    "/robots.txt",
    "/sitemap.xml",
}


@dataclass(frozen=True)
class RequestInfo:
    session_id: str
    ip: str
    path: str
    user_agent: str = ""
    agent: AgentInfo = field(default_factory=AgentInfo)
    location: Location = field(default_factory=Location)
    subject_id: Optional[str] = None
    role: str = "guest"
    referrer: str = "direct"
    title: Optional[str] = None
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_authenticated(self) -> bool:
        return self.subject_id is not None


def qualifies_for_presence(path: str) -> bool:
    if path in _IGNORED_PATHS:
        return False
    return not path.startswith(_IGNORED_PREFIXES)


def qualifies_for_visit(path: str) -> bool:
    """Page views only: presence rules plus nothing under /api"""
    if path == "/api" or path.startswith("/api/"):
        return False
    return qualifies_for_presence(path)
