"""Tests for the offline route synthesizer."""

import pytest

from wanderer.core.geo import COMPASS_DIRECTIONS, distance
from wanderer.core.models import Coordinate
from wanderer.providers.fallback import LocalFallbackRouter

ORIGIN = Coordinate(latitude=10.762622, longitude=106.660172)
DESTINATION = Coordinate(latitude=10.771701, longitude=106.698059)
WAYPOINTS = [
    Coordinate(latitude=10.766000, longitude=106.673000),
    Coordinate(latitude=10.769000, longitude=106.686000),
]


@pytest.fixture
def route():
    return LocalFallbackRouter().route(ORIGIN, DESTINATION, WAYPOINTS)


class TestLocalFallbackRouter:

    def test_provider_and_endpoints(self, route):
        assert route.provider == "fallback"
        assert route.coordinates[0] == ORIGIN
        assert route.coordinates[-1] == DESTINATION
        for w in WAYPOINTS:
            assert w in route.coordinates

    def test_distance_is_sum_of_pair_distances(self, route):
        pts = [ORIGIN, *WAYPOINTS, DESTINATION]
        expected = sum(distance(a, b) for a, b in zip(pts, pts[1:]))
        assert route.distance_m == pytest.approx(expected)
        # small corridor factor over the straight line
        direct = distance(ORIGIN, DESTINATION)
        assert direct <= route.distance_m <= direct * 1.2

    def test_duration_uses_walking_speed(self, route):
        assert route.duration_s == pytest.approx(route.distance_m / 1.4)

    def test_one_step_per_pair(self, route):
        assert len(route.steps) == 3
        assert route.steps[0].instruction.startswith("Head ")
        for s in route.steps[1:]:
            assert s.instruction.startswith("Continue ")
        for s in route.steps:
            assert s.instruction.split()[1] in COMPASS_DIRECTIONS

    def test_steps_tile_the_polyline(self, route):
        assert route.steps[0].start_index == 0
        assert route.steps[-1].end_index == len(route.coordinates) - 1
        for prev, nxt in zip(route.steps, route.steps[1:]):
            assert nxt.start_index == prev.end_index

    def test_bbox_contains_everything(self, route):
        for p in route.coordinates:
            assert route.bbox.contains(p)

    def test_points_roughly_every_spacing(self):
        router = LocalFallbackRouter(spacing_m=30)
        a = Coordinate(latitude=0, longitude=0)
        b = Coordinate(latitude=0.009, longitude=0)   # ~1 km
        path = router.curved_path(a, b)
        assert len(path) == int(distance(a, b) // 30) + 1

    def test_short_hop_still_curves(self):
        router = LocalFallbackRouter()
        a = Coordinate(latitude=0, longitude=0)
        b = Coordinate(latitude=0.0001, longitude=0)
        path = router.curved_path(a, b)
        assert len(path) == 3
        assert path[1].longitude == pytest.approx(0.0001)

    def test_vietnamese_instructions(self):
        r = LocalFallbackRouter(language="vi").route(ORIGIN, DESTINATION)
        assert r.steps[0].instruction.startswith("Đi về phía")
