"""
IP geolocation and risk signals.

Every lookup degrades to "unknown": a failed or timed-out lookup returns None
for the location and False for every flag, so callers never block on it.
"""
import ipaddress
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import httpx
from flask import current_app

from models.user_session import UserSession
from utils.clock import utcnow

LOCAL_COUNTRY_CODE = "LO"


@dataclass(frozen=True)
class GeoLocation:
    country: Optional[str] = None
    city: Optional[str] = None
    country_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_vpn: bool = False
    is_proxy: bool = False


LOCAL_LOCATION = GeoLocation(country="Local", city="Local", country_code=LOCAL_COUNTRY_CODE)


def is_local_or_private_ip(ip: str) -> bool:
    if not ip or ip == "localhost":
        return True
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return addr.is_loopback or addr.is_private or addr.is_link_local


class GeolocationProvider:
    """Provider that knows nothing. Used when lookups are disabled."""

    def get_location(self, ip: str) -> Optional[GeoLocation]:
        return None

    def is_location_suspicious(self, ip: str, user_id: Optional[int] = None) -> bool:
        return False

    def is_vpn_or_proxy(self, ip: str) -> bool:
        return False


class IpApiGeolocationProvider(GeolocationProvider):
    """Lookups against an ip-api.com compatible JSON endpoint."""

    FIELDS = "status,message,country,countryCode,city,lat,lon,proxy,hosting"

    def __init__(
        self,
        url: str = "http://ip-api.com/json/{ip}",
        timeout: float = 2.0,
        high_risk_countries=(),
        history_days: int = 30,
        cache_ttl_seconds: int = 3600,
        failure_ttl_seconds: int = 60,
        cache_max_entries: int = 10_000,
        client: Optional[httpx.Client] = None,
        clock=utcnow,
    ):
        self.url = url
        self.timeout = timeout
        self.high_risk_countries = {c.upper() for c in high_risk_countries}
        self.history_days = history_days
        self.cache_ttl_seconds = cache_ttl_seconds
        self.failure_ttl_seconds = failure_ttl_seconds
        self.cache_max_entries = cache_max_entries
        self._client = client
        self.clock = clock
        self._cache: dict[str, tuple[datetime, Optional[GeoLocation]]] = {}

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def get_location(self, ip: str) -> Optional[GeoLocation]:
        if is_local_or_private_ip(ip):
            return LOCAL_LOCATION

        now = self.clock()
        cached = self._cache.get(ip)
        if cached and cached[0] > now:
            return cached[1]

        location = self._fetch(ip)
        # Failed lookups are retried after failure_ttl_seconds; 0 disables caching them
        ttl = self.cache_ttl_seconds if location is not None else self.failure_ttl_seconds
        if ttl > 0:
            if len(self._cache) >= self.cache_max_entries:
                self._cache.clear()
            self._cache[ip] = (now + timedelta(seconds=ttl), location)
        else:
            self._cache.pop(ip, None)
        return location

    def _fetch(self, ip: str) -> Optional[GeoLocation]:
        try:
            resp = self.client.get(self.url.format(ip=ip), params={"fields": self.FIELDS})
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            current_app.logger.warning("Geolocation lookup failed for %s: %s", ip, exc)
            return None

        if not isinstance(data, dict):
            current_app.logger.warning("Geolocation lookup for %s returned a non-object body", ip)
            return None

        if data.get("status") != "success":
            current_app.logger.warning("Geolocation lookup rejected for %s: %s", ip, data.get("message"))
            return None

        return GeoLocation(
            country=data.get("country"),
            city=data.get("city"),
            country_code=(data.get("countryCode") or None),
            latitude=data.get("lat"),
            longitude=data.get("lon"),
            is_proxy=bool(data.get("proxy")),
            is_vpn=bool(data.get("hosting")),
        )

    def is_vpn_or_proxy(self, ip: str) -> bool:
        location = self.get_location(ip)
        return bool(location and (location.is_vpn or location.is_proxy))

    def is_location_suspicious(self, ip: str, user_id: Optional[int] = None) -> bool:
        location = self.get_location(ip)
        if location is None:
            return False
        if location.country_code in self.high_risk_countries:
            return True
        if location.is_vpn or location.is_proxy:
            return True
        if user_id is not None:
            return self._is_unusual_for_user(user_id, location)
        return False

    def _is_unusual_for_user(self, user_id: int, location: GeoLocation) -> bool:
        if not location.country_code or location.country_code == LOCAL_COUNTRY_CODE:
            return False

        since = self.clock() - timedelta(days=self.history_days)
        rows = (
            UserSession.query
            .with_entities(UserSession.country_code)
            .filter(
                UserSession.user_id == user_id,
                UserSession.created_at >= since,
                UserSession.country_code.isnot(None),
                UserSession.country_code != LOCAL_COUNTRY_CODE,
            )
            .distinct()
            .all()
        )
        known = {code for (code,) in rows}
        # No history yet: nothing to compare against
        if not known:
            return False
        return location.country_code not in known


def build_geolocation_provider(config, clock=utcnow) -> GeolocationProvider:
    if not config.get("GEOLOCATION_ENABLED", True):
        return GeolocationProvider()
    return IpApiGeolocationProvider(
        url=config.get("GEOLOCATION_URL", "http://ip-api.com/json/{ip}"),
        timeout=config.get("GEOLOCATION_TIMEOUT_SECONDS", 2.0),
        high_risk_countries=config.get("HIGH_RISK_COUNTRIES", []),
        history_days=config.get("GEOLOCATION_HISTORY_DAYS", 30),
        failure_ttl_seconds=config.get("GEOLOCATION_FAILURE_TTL_SECONDS", 60),
        clock=clock,
    )
