"""
Request fingerprinting for visitor analytics: client IP, bot detection,
browser/OS/device family and coarse geolocation.

Agent strings are parsed with `user_agents` (ua-parser regexes); public
addresses are located with a MaxMind GeoIP2/GeoLite2 City database when
GEOIP_DATABASE_PATH points at one.
"""

import ipaddress
import re
from dataclasses import dataclass
from typing import Callable, Optional, Pattern, List

import geoip2.database
from geoip2.errors import AddressNotFoundError
from starlette.requests import Request
from user_agents import parse as parse_user_agent

from app.core.logging_config import logger

UNKNOWN = "Unknown"

BOT_PATTERNS: List[Pattern] = [
    re.compile(p, re.IGNORECASE) for p in (
        r"bot", r"crawler", r"spider", r"scraper",
        r"googlebot", r"bingbot", r"slurp", r"duckduckbot",
        r"baiduspider", r"yandexbot", r"facebookexternalhit",
        r"twitterbot", r"linkedinbot", r"whatsapp",
        r"telegrambot", r"applebot", r"curl", r"wget",
    )
]


@dataclass(frozen=True)
class AgentInfo:
    browser_name: str = UNKNOWN
    browser_version: str = UNKNOWN
    os_name: str = UNKNOWN
    os_version: str = UNKNOWN
    device: str = "unknown"


@dataclass(frozen=True)
class Location:
    country: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN
    timezone: str = UNKNOWN


def is_bot(user_agent: Optional[str]) -> bool:
    """True for crawlers and command-line clients; an empty agent is not a bot"""
    if not user_agent:
        return False
    return any(pattern.search(user_agent) for pattern in BOT_PATTERNS)


def _known(value: Optional[str]) -> str:
    # ua-parser reports unrecognised families as "Other"
    if not value or value == "Other":
        return UNKNOWN
    return value


def analyze_user_agent(user_agent: Optional[str]) -> AgentInfo:
    """Browser and OS family/version plus device class"""
    if not user_agent:
        return AgentInfo()

    parsed = parse_user_agent(user_agent)
    if parsed.is_tablet:
        device = "tablet"
    elif parsed.is_mobile:
        device = "mobile"
    else:
        device = "desktop"

    return AgentInfo(
        browser_name=_known(parsed.browser.family),
        browser_version=_known(parsed.browser.version_string),
        os_name=_known(parsed.os.family),
        os_version=_known(parsed.os.version_string),
        device=device,
    )


def get_client_ip(request: Request) -> str:
    """
    First X-Forwarded-For hop, then X-Real-IP, then the socket peer,
    then 127.0.0.1.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "127.0.0.1"


def is_local_address(ip: str) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return address.is_private or address.is_loopback


GeoLookup = Callable[[str], Optional[Location]]


class GeoResolver:
    """
    Coarse IP geolocation.

    Private and loopback addresses resolve to the configured local location.
    Public addresses go through the optional `lookup` callable; without one,
    or when it fails, they resolve to Unknown.
    """

    def __init__(
        self,
        local_country: str,
        local_timezone: str,
        lookup: Optional[GeoLookup] = None
    ):
        self.local = Location(
            country=local_country,
            region="Local",
            city="Local",
            timezone=local_timezone,
        )
        self.lookup = lookup

    def resolve(self, ip: str) -> Location:
        if is_local_address(ip):
            return self.local

        if self.lookup is None:
            return Location()

        try:
            location = self.lookup(ip)
        except Exception as e:
            logger.warning(f"[GeoResolver] Lookup failed for {ip}: {e}")
            return Location()
        return location or Location()


class GeoIP2Lookup:
    """
    City-level lookup against a local MaxMind database.

    Callable as a `GeoLookup`; addresses missing from the database give None.
    """

    def __init__(self, reader):
        self.reader = reader

    @classmethod
    def open(cls, database_path: str) -> "GeoIP2Lookup":
        return cls(geoip2.database.Reader(database_path))

    def __call__(self, ip: str) -> Optional[Location]:
        try:
            response = self.reader.city(ip)
        except (AddressNotFoundError, ValueError):
            return None

        return Location(
            country=response.country.name or UNKNOWN,
            region=response.subdivisions.most_specific.name or UNKNOWN,
            city=response.city.name or UNKNOWN,
            timezone=response.location.time_zone or UNKNOWN,
        )

    def close(self) -> None:
        self.reader.close()


def open_geo_lookup(database_path: str) -> Optional[GeoIP2Lookup]:
    """
    Open the configured GeoIP database.

    Returns None when no path is configured or the file cannot be opened;
    public addresses then resolve to Unknown.
    """
    if not database_path:
        return None
    try:
        lookup = GeoIP2Lookup.open(database_path)
    except (OSError, RuntimeError) as e:
        # maxminddb.InvalidDatabaseError is a RuntimeError
        logger.error(f"[GeoIP] Could not open {database_path}: {e}")
        return None
    logger.info(f"[GeoIP] Using {database_path}")
    return lookup
