from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from wanderer.core.geo import bearing, compass_sector, curve_offset, distance, interpolate
from wanderer.core.instructions import walking_instruction
from wanderer.core.models import Coordinate, Route, RouteStep
from wanderer.core.progress import WALKING_SPEED_MPS


@dataclass
class LocalFallbackRouter:
    """
    Offline route synthesis so planning never fails.

    Walks origin -> waypoints -> destination pair by pair, laying a gently
    curved line of points about every ``spacing_m`` metres and one compass
    instruction per pair. Duration assumes a constant walking speed.
    """

    walking_speed_mps: float = WALKING_SPEED_MPS
    spacing_m: float = 30.0
    curve_deg: float = 0.0001
    language: str = "en"

    name = "fallback"

    def curved_path(self, a: Coordinate, b: Coordinate) -> List[Coordinate]:
        d = distance(a, b)
        n = max(2, int(d // self.spacing_m))
        out = [a]
        for i in range(1, n):
            ratio = i / n
            p = interpolate(a, b, ratio)
            off = curve_offset(ratio, self.curve_deg)
            out.append(Coordinate(latitude=p.latitude + off, longitude=p.longitude + off))
        out.append(b)
        return out

    def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate] = (),
    ) -> Route:
        points = [origin, *waypoints, destination]

        coords: List[Coordinate] = []
        steps: List[RouteStep] = []
        total_distance = 0.0

        for i in range(len(points) - 1):
            a, b = points[i], points[i + 1]
            path = self.curved_path(a, b)

            if coords:
                # previous pair already ended on `a`
                start = len(coords) - 1
                coords.extend(path[1:])
            else:
                start = 0
                coords.extend(path)

            seg_d = distance(a, b)
            total_distance += seg_d
            steps.append(
                RouteStep(
                    instruction=walking_instruction(
                        compass_sector(bearing(a, b)), seg_d, first=(i == 0), language=self.language
                    ),
                    distance_m=seg_d,
                    duration_s=seg_d / self.walking_speed_mps,
                    start_index=start,
                    end_index=len(coords) - 1,
                )
            )

        return Route.build(
            coords,
            total_distance,
            total_distance / self.walking_speed_mps,
            steps,
            provider=self.name,
        )
