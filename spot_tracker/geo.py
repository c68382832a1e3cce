"""
Geospatial helpers.

Distances are computed with the haversine formula on a spherical earth.
Spot tables are small enough that matching is a linear scan, so there is no
spatial index here.
"""

import math
import re
from dataclasses import dataclass
from typing import Any

from .errors import ValidationError

EARTH_RADIUS_M = 6_371_000

_DISTRICT_RE = re.compile(r",\s*([^,]+)\s+District\s*,", re.IGNORECASE)


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    latitude: float
    longitude: float

    @classmethod
    def parse(cls, latitude: Any, longitude: Any) -> "Coordinate":
        """Build a coordinate from untrusted input, rejecting anything not finite and in range."""
        try:
            lat = float(latitude)
            lng = float(longitude)
        except (TypeError, ValueError) as exc:
            raise ValidationError("Valid latitude and longitude required") from exc

        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise ValidationError("Valid latitude and longitude required")
        if not -90.0 <= lat <= 90.0 or not -180.0 <= lng <= 180.0:
            raise ValidationError(
                "Latitude must be within [-90, 90] and longitude within [-180, 180]",
                latitude=lat,
                longitude=lng,
            )
        return cls(latitude=lat, longitude=lng)


def distance_meters(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters between two points."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(b.longitude - a.longitude)

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points.
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, h)))


def extract_district(address_text: str | None) -> str | None:
    """
    Pull the jurisdiction out of a reverse-geocoded label.

    "12 Galle Rd, Colombo 03, Colombo District, Western Province" -> "Colombo"
    """
    if not address_text:
        return None
    match = _DISTRICT_RE.search(address_text)
    if match is None:
        return None
    return match.group(1).strip() or None


def maps_link(latitude: float, longitude: float) -> str:
    return f"https://www.google.com/maps?q={latitude},{longitude}"
