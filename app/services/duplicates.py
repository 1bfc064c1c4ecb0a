# app/services/duplicates.py
from math import radians, cos, sin, atan2, sqrt, degrees
from typing import Iterable, TypeVar

from app.models.issue import IssueCategory

EARTH_RADIUS_KM = 6371.0
DEFAULT_RADIUS_KM = 0.5

T = TypeVar("T")


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    lat1, lon1, lat2, lon2 = map(radians, [lat1, lon1, lat2, lon2])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(a), sqrt(1 - a))


def find_duplicates(
    lat: float,
    lng: float,
    category: IssueCategory | str,
    radius_km: float = DEFAULT_RADIUS_KM,
    existing_issues: Iterable[T] = (),
) -> list[T]:
    """Issues of the same category within ``radius_km`` of (lat, lng).

    ``existing_issues`` is whatever snapshot the caller holds; anything with
    ``category``, ``latitude`` and ``longitude`` attributes works. Matches come
    back in input order, unranked and uncapped.
    """
    wanted = category.value if isinstance(category, IssueCategory) else str(category)
    matches = []
    for issue in existing_issues:
        if issue.category != wanted:
            continue
        if haversine_km(lat, lng, issue.latitude, issue.longitude) <= radius_km:
            matches.append(issue)
    return matches


def bounding_box(lat: float, lng: float, radius_km: float) -> tuple[float, float, float, float]:
    """(min_lat, min_lng, max_lat, max_lng) enclosing the search circle.

    Used to narrow the candidate query before the exact haversine pass. Near
    the poles or across the antimeridian the longitude span is widened to the
    full range.
    """
    dlat = degrees(radius_km / EARTH_RADIUS_KM)
    min_lat, max_lat = lat - dlat, lat + dlat
    if min_lat <= -90 or max_lat >= 90:
        return max(min_lat, -90.0), -180.0, min(max_lat, 90.0), 180.0
    dlng = degrees(radius_km / (EARTH_RADIUS_KM * cos(radians(lat))))
    min_lng, max_lng = lng - dlng, lng + dlng
    if min_lng < -180 or max_lng > 180:
        return min_lat, -180.0, max_lat, 180.0
    return min_lat, min_lng, max_lat, max_lng
