from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, model_validator

# metres
DEFAULT_TRIGGER_RADIUS_M = 50.0


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float

    def as_lonlat(self) -> List[float]:
        """GeoJSON order: [lon, lat]."""
        return [self.longitude, self.latitude]

    @classmethod
    def parse(cls, text: str) -> "Coordinate":
        """Parse ``"lat,lon"``."""
        lat_s, lon_s = text.split(",", 1)
        return cls(latitude=float(lat_s), longitude=float(lon_s))


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_coordinates(cls, coords: Sequence[Coordinate]) -> "BoundingBox":
        if not coords:
            raise ValueError("Cannot build a bounding box from zero coordinates")
        lats = [c.latitude for c in coords]
        lons = [c.longitude for c in coords]
        return cls(min_lon=min(lons), min_lat=min(lats), max_lon=max(lons), max_lat=max(lats))

    def contains(self, c: Coordinate) -> bool:
        return self.min_lat <= c.latitude <= self.max_lat and self.min_lon <= c.longitude <= self.max_lon

    def as_list(self) -> List[float]:
        """[minLon, minLat, maxLon, maxLat]"""
        return [self.min_lon, self.min_lat, self.max_lon, self.max_lat]


class RouteStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    instruction: str
    distance_m: float = Field(ge=0)
    duration_s: float = Field(ge=0)
    # inclusive index range into Route.coordinates
    start_index: int = 0
    end_index: int = 0


class Route(BaseModel):
    """Canonical walking route, whatever provider produced it."""

    model_config = ConfigDict(frozen=True)

    coordinates: List[Coordinate]
    distance_m: float = Field(ge=0)
    duration_s: float = Field(ge=0)
    steps: List[RouteStep] = Field(default_factory=list)
    bbox: BoundingBox
    provider: str = "unknown"

    @model_validator(mode="after")
    def _check_invariants(self) -> "Route":
        n = len(self.coordinates)
        if n < 2:
            raise ValueError(f"Route needs at least 2 coordinates, got {n}")

        prev_end = 0
        for i, step in enumerate(self.steps):
            if not (0 <= step.start_index <= step.end_index < n):
                raise ValueError(
                    f"Step {i} index range [{step.start_index}, {step.end_index}] outside polyline of {n} points"
                )
            if step.start_index < prev_end:
                raise ValueError(f"Step {i} overlaps the previous step")
            prev_end = step.end_index
        return self

    @classmethod
    def build(
        cls,
        coordinates: Sequence[Coordinate],
        distance_m: float,
        duration_s: float,
        steps: Sequence[RouteStep] = (),
        provider: str = "unknown",
    ) -> "Route":
        """Construct a route with a bounding box derived from its coordinates."""
        coords = list(coordinates)
        return cls(
            coordinates=coords,
            distance_m=max(0.0, float(distance_m)),
            duration_s=max(0.0, float(duration_s)),
            steps=list(steps),
            bbox=BoundingBox.from_coordinates(coords),
            provider=provider,
        )

    @property
    def origin(self) -> Coordinate:
        return self.coordinates[0]

    @property
    def destination(self) -> Coordinate:
        return self.coordinates[-1]

    def length_m(self) -> float:
        """Summed length of the polyline itself."""
        from wanderer.core.geo import path_length

        return path_length(self.coordinates)


class RouteProgress(BaseModel):
    completed_distance_m: float
    remaining_distance_m: float
    percent: float
    nearest_index: int
    distance_to_route_m: float = 0.0
    off_route: bool = False


class CheckpointOnRoute(BaseModel):
    """Where a checkpoint falls along a route, measured from the start and from the walker."""

    checkpoint_id: str
    route_index: int
    distance_from_start_m: float
    eta_from_start_s: float
    distance_to_route_m: float
    # along-route distance still to walk; None without a position
    distance_ahead_m: Optional[float] = None
    eta_s: Optional[float] = None


class Checkpoint(BaseModel):
    id: str
    coordinate: Coordinate
    title: str = ""
    description: str = ""
    trigger_radius_m: float = Field(default=DEFAULT_TRIGGER_RADIUS_M, gt=0)

    # written only by the proximity monitor
    reached: bool = False
    reached_at: Optional[datetime] = None


class StoryChoice(BaseModel):
    id: str
    text: str
    consequence: str = ""


class StorySegment(BaseModel):
    id: str
    content: str
    duration_s: float = 60.0
    checkpoint_id: Optional[str] = None
    choices: List[StoryChoice] = Field(default_factory=list)
    title: Optional[str] = None


class Story(BaseModel):
    id: str
    title: str
    description: str = ""
    genre: str = "adventure"
    segments: List[StorySegment]
    total_duration_s: float = 0.0
    tags: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_segments(self) -> "Story":
        if not self.segments:
            raise ValueError("Story needs at least one segment")
        if self.segments[-1].choices:
            raise ValueError("The final segment ends the story and cannot offer choices")
        return self

    @property
    def is_fallback(self) -> bool:
        return "fallback" in self.tags


class WalkingSummary(BaseModel):
    total_time_s: float
    distance_m: float
    checkpoints_completed: int
    reached_checkpoint_ids: List[str] = Field(default_factory=list)
    story_choices_made: List[StoryChoice] = Field(default_factory=list)
    genre: str
    started_at: datetime
    ended_at: datetime
    completed: bool = True
    story_title: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)
