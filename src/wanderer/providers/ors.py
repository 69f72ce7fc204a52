from __future__ import annotations

from typing import Any, Dict, List, Sequence

from wanderer.core.errors import ProviderInvalidResponse
from wanderer.core.models import Coordinate, Route, RouteStep
from wanderer.providers.base import DirectionsProvider
from wanderer.providers.http import HTTPClient

ORS_BASE_URL = "https://api.openrouteservice.org/v2"
PROFILE = "foot-walking"


def route_from_ors(data: Dict[str, Any]) -> Route:
    """Normalize an ORS GeoJSON FeatureCollection into the canonical Route.

    Geometry arrives as [lon, lat] pairs; each step carries ``way_points``,
    an inclusive index range into that geometry.
    """
    features = data.get("features") if isinstance(data, dict) else None
    if not features:
        raise ProviderInvalidResponse("ORS returned no route", provider="ors")

    try:
        feature = features[0]
        raw_coords = feature["geometry"]["coordinates"]
        coords = [Coordinate(latitude=float(c[1]), longitude=float(c[0])) for c in raw_coords]
        properties = feature.get("properties") or {}
        segments = properties.get("segments") or []
    except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
        raise ProviderInvalidResponse(f"Malformed ORS feature: {e}", provider="ors") from e

    if len(coords) < 2:
        raise ProviderInvalidResponse("ORS route has fewer than 2 points", provider="ors")

    last = len(coords) - 1
    steps: List[RouteStep] = []
    distance = 0.0
    duration = 0.0
    prev_end = 0
    try:
        for seg in segments:
            distance += float(seg.get("distance", 0.0) or 0.0)
            duration += float(seg.get("duration", 0.0) or 0.0)
            for st in seg.get("steps") or []:
                wp = st.get("way_points") or [prev_end, prev_end]
                start = min(max(int(wp[0]), prev_end), last)
                end = min(max(int(wp[-1]), start), last)
                steps.append(
                    RouteStep(
                        instruction=str(st.get("instruction", "")),
                        distance_m=float(st.get("distance", 0.0) or 0.0),
                        duration_s=float(st.get("duration", 0.0) or 0.0),
                        start_index=start,
                        end_index=end,
                    )
                )
                prev_end = end

        if not segments:
            summary = properties.get("summary") or {}
            distance = float(summary.get("distance", 0.0) or 0.0)
            duration = float(summary.get("duration", 0.0) or 0.0)
    except (AttributeError, IndexError, TypeError, ValueError) as e:
        raise ProviderInvalidResponse(f"Malformed ORS segments: {e}", provider="ors") from e

    return Route.build(coords, distance, duration, steps, provider="ors")


class ORSDirectionsProvider(DirectionsProvider):
    """Secondary provider: OpenRouteService directions, foot-walking profile."""

    name = "ors"

    def __init__(self, http: HTTPClient, language: str = "en"):
        self.http = http
        self.language = language

    def build_body(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate],
    ) -> Dict[str, Any]:
        return {
            "coordinates": [origin.as_lonlat(), *[w.as_lonlat() for w in waypoints], destination.as_lonlat()],
            "instructions": True,
            "geometry": True,
            "elevation": False,
            "preference": "fastest",
            "language": self.language,
        }

    def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate],
        api_key: str,
    ) -> Route:
        data = self.http.post_json(
            f"{ORS_BASE_URL}/directions/{PROFILE}/geojson",
            self.build_body(origin, destination, waypoints),
            headers={
                "Authorization": api_key,
                "Content-Type": "application/json; charset=utf-8",
            },
        )
        return route_from_ors(data)
