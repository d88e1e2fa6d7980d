"""
Visitor Analytics Models
Online presence (short-lived) and visit history (30-day retention)
"""

from sqlalchemy import (
    Column, String, Boolean, DateTime, Integer, Text, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class OnlineSession(Base):
    """One row per visitor session; rows older than the presence window are stale"""
    __tablename__ = "online_sessions"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    session_id = Column(String(64), unique=True, nullable=False, index=True)
    subject_id = Column(GUID, nullable=True, index=True)

    ip = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=True)
    browser_name = Column(String(50), default="Unknown")
    browser_version = Column(String(50), default="Unknown")
    os_name = Column(String(50), default="Unknown")
    os_version = Column(String(50), default="Unknown")
    device = Column(String(20), default="unknown")  # desktop, mobile, tablet, unknown

    # Geolocation
    country = Column(String(100), default="Unknown")
    region = Column(String(100), default="Unknown")
    city = Column(String(100), default="Unknown")
    timezone = Column(String(64), default="Unknown")

    is_authenticated = Column(Boolean, default=False, nullable=False)
    role = Column(String(20), default="guest", nullable=False, index=True)  # admin, teacher, student, guest
    current_page = Column(String(500), nullable=True)

    last_activity = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    login_time = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<OnlineSession {self.session_id} {self.role}>"


class Visitor(Base):
    """Visit history keyed by (ip, session_id)"""
    __tablename__ = "visitors"
    __table_args__ = (
        UniqueConstraint("ip", "session_id", name="uq_visitor_ip_session"),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    ip = Column(String(64), nullable=False, index=True)
    session_id = Column(String(64), nullable=False)
    user_agent = Column(Text, nullable=True)

    # Device
    device = Column(String(20), default="unknown")
    browser_name = Column(String(50), default="Unknown")
    browser_version = Column(String(50), default="Unknown")
    os_name = Column(String(50), default="Unknown")
    os_version = Column(String(50), default="Unknown")

    # Geolocation
    country = Column(String(100), default="Unknown")
    region = Column(String(100), default="Unknown")
    city = Column(String(100), default="Unknown")
    timezone = Column(String(64), default="Unknown")

    referrer = Column(String(500), default="direct", nullable=False)
    subject_id = Column(GUID, nullable=True, index=True)
    subject_kind = Column(String(20), nullable=True)
    is_bot = Column(Boolean, default=False, nullable=False)

    first_visit = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    last_visit = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    visit_count = Column(Integer, default=1, nullable=False)
    total_duration = Column(Integer, default=0, nullable=False)  # seconds

    pages = relationship(
        "VisitorPage",
        back_populates="visitor",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="VisitorPage.visit_time"
    )

    def __repr__(self):
        return f"<Visitor {self.ip} x{self.visit_count}>"


class VisitorPage(Base):
    """Single page view, ordered by visit_time"""
    __tablename__ = "visitor_pages"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    visitor_id = Column(GUID, ForeignKey("visitors.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(500), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    visit_time = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    duration = Column(Integer, nullable=True)  # seconds

    visitor = relationship("Visitor", back_populates="pages")

    def __repr__(self):
        return f"<VisitorPage {self.url}>"
