from __future__ import annotations

from typing import Optional, Sequence

from wanderer.core.geo import cumulative_distances, distance
from wanderer.core.models import Checkpoint, CheckpointOnRoute, Coordinate, Route, RouteProgress

OFF_ROUTE_THRESHOLD_M = 40.0
WALKING_SPEED_MPS = 1.4


def nearest_point_index(route: Route, position: Coordinate) -> int:
    """Index of the polyline vertex closest to ``position``; ties go to the lowest index."""
    best_i = 0
    best_d = float("inf")
    for i, c in enumerate(route.coordinates):
        d = distance(position, c)
        if d < best_d:
            best_i, best_d = i, d
    return best_i


def progress(
    route: Route,
    position: Coordinate,
    off_route_threshold_m: float = OFF_ROUTE_THRESHOLD_M,
) -> RouteProgress:
    """
    Snap ``position`` to the nearest route vertex and measure along the polyline.

    Percent is relative to the polyline's own length, not the provider's
    reported distance, so it always lands in [0, 100].
    """
    cum = cumulative_distances(route.coordinates)
    total = cum[-1]
    idx = nearest_point_index(route, position)
    completed = cum[idx]
    off_by = distance(position, route.coordinates[idx])

    percent = 0.0
    if total > 0:
        percent = min(100.0, max(0.0, completed / total * 100.0))

    return RouteProgress(
        completed_distance_m=completed,
        remaining_distance_m=max(0.0, total - completed),
        percent=percent,
        nearest_index=idx,
        distance_to_route_m=off_by,
        off_route=off_by > off_route_threshold_m,
    )


def locate_checkpoint(
    route: Route,
    checkpoint: Checkpoint,
    position: Optional[Coordinate] = None,
    walking_speed_mps: float = WALKING_SPEED_MPS,
) -> CheckpointOnRoute:
    """Snap a checkpoint onto the route and time it at walking pace.

    With a ``position`` the distance still ahead is measured along the
    polyline from the walker's snapped vertex; a checkpoint already behind
    the walker is 0 m ahead.
    """
    cum = cumulative_distances(route.coordinates)
    idx = nearest_point_index(route, checkpoint.coordinate)
    from_start = cum[idx]

    ahead = None
    eta = None
    if position is not None:
        ahead = max(0.0, from_start - cum[nearest_point_index(route, position)])
        eta = ahead / walking_speed_mps

    return CheckpointOnRoute(
        checkpoint_id=checkpoint.id,
        route_index=idx,
        distance_from_start_m=from_start,
        eta_from_start_s=from_start / walking_speed_mps,
        distance_to_route_m=distance(checkpoint.coordinate, route.coordinates[idx]),
        distance_ahead_m=ahead,
        eta_s=eta,
    )


def nearest_checkpoint_on_route(
    route: Route,
    checkpoints: Sequence[Checkpoint],
    position: Coordinate,
    walking_speed_mps: float = WALKING_SPEED_MPS,
) -> Optional[CheckpointOnRoute]:
    """The checkpoint closest to ``position`` as the crow flies, located on the route."""
    best: Optional[Checkpoint] = None
    best_d = float("inf")
    for cp in checkpoints:
        d = distance(position, cp.coordinate)
        if d < best_d:
            best, best_d = cp, d
    if best is None:
        return None
    return locate_checkpoint(route, best, position, walking_speed_mps)
