from pydantic_settings import BaseSettings
from typing import List, Any, Optional
import json
from pathlib import Path


def parse_cors_origins(v: Any) -> List[str]:
    """Parse CORS origins from string or list"""
    if isinstance(v, list):
        return v
    if isinstance(v, str):
        # Try JSON parsing first
        if v.startswith('['):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        # Fall back to comma-separated
        return [origin.strip() for origin in v.split(',') if origin.strip()]
    return []


class Settings(BaseSettings):
    """Application settings - all configurable via environment variables"""

    # ==========================================
    # Application
    # ==========================================
    APP_NAME: str = "SchoolTrack"
    ENVIRONMENT: str = "development"  # development, testing, production
    DEBUG: bool = False
    API_PREFIX: str = "/api"

    # Server Configuration
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 5000

    # ==========================================
    # Database
    # ==========================================
    DATABASE_URL: str
    DB_ECHO: bool = False

    # ==========================================
    # Authentication
    # ==========================================
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 7
    JWT_COOKIE_EXPIRE_DAYS: int = 7
    SESSION_COOKIE_NAME: str = "token"
    COOKIE_SAMESITE: Optional[str] = None  # lax / strict; derived from ENVIRONMENT when unset
    BCRYPT_ROUNDS: int = 10  # 4 for tests (fast), 10+ for prod
    SUPER_ADMIN_EMAIL: str = ""

    # ==========================================
    # CORS (stored as comma-separated string, parsed to list)
    # ==========================================
    CORS_ORIGINS_STR: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return parse_cors_origins(self.CORS_ORIGINS_STR)

    # ==========================================
    # Rate Limiting
    # ==========================================
    RATE_LIMIT_ENABLED: Optional[bool] = None  # defaults to off in development/testing
    RATE_LIMIT_PER_MINUTE: int = 60
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # ==========================================
    # Logging
    # ==========================================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    SLOW_REQUEST_MS: int = 1000

    # ==========================================
    # Visitor Analytics
    # ==========================================
    PRESENCE_WINDOW_MINUTES: int = 30
    VISIT_RETENTION_DAYS: int = 30
    ANALYTICS_SWEEP_INTERVAL_HOURS: int = 24
    ANALYTICS_ENABLED: bool = True
    VISITOR_SESSION_COOKIE: str = "sid"
    LOCAL_COUNTRY: str = "Turkey"
    LOCAL_TIMEZONE: str = "Europe/Istanbul"
    # MaxMind GeoLite2/GeoIP2 City database; public IPs stay Unknown without it
    GEOIP_DATABASE_PATH: str = ""

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings

    @property
    def BASE_DIR(self) -> Path:
        return Path(__file__).resolve().parent.parent.parent

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def is_dev_mode(self) -> bool:
        """Check if running in local development mode"""
        return self.ENVIRONMENT == "development"

    @property
    def cookie_secure(self) -> bool:
        """Session cookies are Secure everywhere except local development"""
        return not self.is_dev_mode()

    @property
    def cookie_samesite(self) -> str:
        if self.COOKIE_SAMESITE:
            return self.COOKIE_SAMESITE.lower()
        return "strict" if self.is_production else "lax"

    @property
    def rate_limit_enabled(self) -> bool:
        if self.RATE_LIMIT_ENABLED is not None:
            return self.RATE_LIMIT_ENABLED
        return self.ENVIRONMENT not in ("development", "testing")


# Create settings instance
settings = Settings()
