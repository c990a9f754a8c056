"""IP geolocation and suspicious login detection

Lookups use a MaxMind GeoLite2/GeoIP2 City database read through ``geoip2``.
Resolution is best effort: private addresses, a missing database or any lookup
error produce an empty :class:`GeoLocation` rather than an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
import ipaddress
import logging
import math
import threading

import geoip2.database
import geoip2.errors
from maxminddb.errors import InvalidDatabaseError

from authguard.config import SETTINGS

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371


@dataclass(frozen=True)
class GeoLocation:
    country: str | None = None
    city: str | None = None
    region: str | None = None
    timezone: str | None = None
    coordinates: tuple[float, float] | None = None

    def serialize(self):
        return {
            "country": self.country,
            "city": self.city,
            "region": self.region,
            "timezone": self.timezone,
            "coordinates": list(self.coordinates) if self.coordinates else None,
        }


UNKNOWN_LOCATION = GeoLocation()


class GeoIPResolver:
    """Lazily opened, process-wide GeoIP2 reader"""

    def __init__(self, database_path=None):
        self._database_path = database_path
        self._reader = None
        self._unavailable = False
        self._lock = threading.Lock()

    @property
    def database_path(self):
        if self._database_path:
            return self._database_path
        return SETTINGS.get("GEOLOCATION", {}).get("DATABASE_PATH")

    def _get_reader(self):
        if self._reader is not None or self._unavailable:
            return self._reader
        with self._lock:
            if self._reader is None and not self._unavailable:
                path = self.database_path
                if not path:
                    self._unavailable = True
                    return None
                try:
                    self._reader = geoip2.database.Reader(path)
                    logger.info(f"[GEO]: Opened GeoIP database {path}")
                except (OSError, InvalidDatabaseError) as e:
                    logger.error(f"[GEO]: Failed to open GeoIP database {path}: {e}")
                    self._unavailable = True
        return self._reader

    def resolve(self, ip: str | None) -> GeoLocation:
        if not ip:
            return UNKNOWN_LOCATION
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            logger.debug(f"[GEO]: Not an IP address: {ip!r}")
            return UNKNOWN_LOCATION
        if not address.is_global:
            return UNKNOWN_LOCATION

        reader = self._get_reader()
        if reader is None:
            return UNKNOWN_LOCATION

        try:
            response = reader.city(str(address))
        except geoip2.errors.AddressNotFoundError:
            return UNKNOWN_LOCATION
        except Exception as e:
            logger.warning(f"[GEO]: Lookup failed for {ip}: {e}")
            return UNKNOWN_LOCATION

        latitude = response.location.latitude
        longitude = response.location.longitude
        return GeoLocation(
            country=response.country.iso_code,
            city=response.city.name,
            region=response.subdivisions.most_specific.iso_code,
            timezone=response.location.time_zone,
            coordinates=(latitude, longitude)
            if latitude is not None and longitude is not None
            else None,
        )

    def close(self):
        with self._lock:
            if self._reader is not None:
                self._reader.close()
            self._reader = None
            self._unavailable = False


resolver = GeoIPResolver()


def resolve(ip: str | None) -> GeoLocation:
    return resolver.resolve(ip)


def haversine_km(a: tuple[float, float], b: tuple[float, float]) -> float:
    """Great-circle distance between two (latitude, longitude) pairs"""
    lat1, lon1 = a
    lat2, lon2 = b
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_suspicious(current: GeoLocation, previous: GeoLocation | None) -> bool:
    """Flag a login far away from, and in another country than, the previous one.

    Advisory only. Unknown locations on either side are never suspicious.
    """
    if previous is None or not current.coordinates or not previous.coordinates:
        return False

    threshold = SETTINGS.get("GEOLOCATION", {}).get("SUSPICIOUS_DISTANCE_KM", 1000)
    distance = haversine_km(current.coordinates, previous.coordinates)
    return distance > threshold and current.country != previous.country
