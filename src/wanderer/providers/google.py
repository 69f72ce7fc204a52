from __future__ import annotations

import html
import re
from typing import Any, Dict, List, Optional, Sequence

from wanderer.core.errors import (
    ProviderInvalidRequest,
    ProviderInvalidResponse,
    ProviderQuotaExceeded,
)
from wanderer.core.models import Coordinate, Route, RouteStep
from wanderer.providers.base import DirectionsProvider
from wanderer.providers.http import HTTPClient

DIRECTIONS_API_URL = "https://maps.googleapis.com/maps/api/directions/json"

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")

# Directions API "status" values that another key might get past
_QUOTA_STATUSES = {"OVER_QUERY_LIMIT", "OVER_DAILY_LIMIT", "REQUEST_DENIED"}


def decode_polyline(encoded: str, precision: int = 5) -> List[Coordinate]:
    """Decode a Google encoded polyline into coordinates.

    Each value is a zig-zag encoded signed delta, split into 5-bit chunks
    offset by 63, with 0x20 marking continuation.
    """
    factor = float(10 ** precision)
    out: List[Coordinate] = []
    index = 0
    lat = 0
    lng = 0
    n = len(encoded)

    while index < n:
        deltas = []
        for _ in range(2):
            shift = 0
            value = 0
            while True:
                if index >= n:
                    raise ValueError("Truncated polyline")
                b = ord(encoded[index]) - 63
                index += 1
                value |= (b & 0x1F) << shift
                shift += 5
                if b < 0x20:
                    break
            deltas.append(~(value >> 1) if (value & 1) else (value >> 1))
        lat += deltas[0]
        lng += deltas[1]
        out.append(Coordinate(latitude=lat / factor, longitude=lng / factor))

    return out


def strip_markup(text: str) -> str:
    """Drop HTML tags/entities from an instruction and tidy whitespace."""
    text = _TAG_RE.sub(" ", text or "")
    text = html.unescape(text)
    return _WS_RE.sub(" ", text).strip()


def route_from_google(data: Dict[str, Any]) -> Route:
    """Normalize a Directions API JSON response into the canonical Route."""
    if not isinstance(data, dict):
        raise ProviderInvalidResponse("Google Directions returned a non-object body", provider="google")
    status = data.get("status")
    if status in _QUOTA_STATUSES:
        raise ProviderQuotaExceeded(
            f"Google Directions {status}: {data.get('error_message', '')}", provider="google"
        )
    if status in ("INVALID_REQUEST", "NOT_FOUND", "ZERO_RESULTS", "MAX_WAYPOINTS_EXCEEDED"):
        raise ProviderInvalidRequest(f"Google Directions {status}", provider="google")
    if status != "OK":
        raise ProviderInvalidResponse(f"Google Directions status {status!r}", provider="google")

    try:
        g_route = data["routes"][0]
        legs = g_route["legs"]
    except (KeyError, IndexError, TypeError) as e:
        raise ProviderInvalidResponse("Google Directions response has no routes", provider="google") from e

    coords: List[Coordinate] = []
    steps: List[RouteStep] = []
    total_distance = 0.0
    total_duration = 0.0

    try:
        for leg in legs:
            total_distance += float(leg["distance"]["value"])
            total_duration += float(leg["duration"]["value"])
            for step in leg.get("steps", []):
                pts = decode_polyline(step.get("polyline", {}).get("points", ""))
                if not pts:
                    continue
                # consecutive steps share their joining vertex
                if coords and coords[-1] == pts[0]:
                    start = len(coords) - 1
                    coords.extend(pts[1:])
                else:
                    start = len(coords)
                    coords.extend(pts)
                steps.append(
                    RouteStep(
                        instruction=strip_markup(step.get("html_instructions", "")),
                        distance_m=float(step["distance"]["value"]),
                        duration_s=float(step["duration"]["value"]),
                        start_index=start,
                        end_index=len(coords) - 1,
                    )
                )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ProviderInvalidResponse(f"Malformed Google Directions leg: {e}", provider="google") from e

    if len(coords) < 2:
        # no usable step geometry: fall back to the simplified overview line
        try:
            overview = (g_route.get("overview_polyline") or {}).get("points", "")
            coords = decode_polyline(overview)
        except (AttributeError, TypeError, ValueError) as e:
            raise ProviderInvalidResponse("Bad overview polyline", provider="google") from e
        last = max(0, len(coords) - 1)
        steps = [s.model_copy(update={"start_index": 0, "end_index": 0}) for s in steps[:1]] + [
            s.model_copy(update={"start_index": last, "end_index": last}) for s in steps[1:]
        ]

    if len(coords) < 2:
        raise ProviderInvalidResponse("Google route has fewer than 2 points", provider="google")

    return Route.build(coords, total_distance, total_duration, steps, provider="google")


class GoogleDirectionsProvider(DirectionsProvider):
    """Primary provider: Google Maps Directions API, walking mode."""

    name = "google"

    def __init__(self, http: HTTPClient, language: str = "en", region: Optional[str] = None):
        self.http = http
        self.language = language
        self.region = region

    def build_params(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate],
        api_key: str,
    ) -> Dict[str, str]:
        params = {
            "origin": f"{origin.latitude},{origin.longitude}",
            "destination": f"{destination.latitude},{destination.longitude}",
            "mode": "walking",
            "key": api_key,
            "language": self.language,
        }
        if self.region:
            params["region"] = self.region
        if waypoints:
            params["waypoints"] = "|".join(f"{w.latitude},{w.longitude}" for w in waypoints)
        return params

    def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate],
        api_key: str,
    ) -> Route:
        data = self.http.get_json(DIRECTIONS_API_URL, params=self.build_params(origin, destination, waypoints, api_key))
        if not isinstance(data, dict):
            raise ProviderInvalidResponse("Google Directions returned a non-object", provider=self.name)
        return route_from_google(data)
