# API endpoints
from . import auth, students, admin, analytics, health

__all__ = ["auth", "students", "admin", "analytics", "health"]
