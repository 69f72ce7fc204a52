"""Checkpoint proximity: which checkpoints has the walker just reached?"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Tuple

from wanderer.core.geo import distance
from wanderer.core.models import Checkpoint, Coordinate

log = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProximityMonitor:
    """
    Owns the reached flag of each checkpoint.

    ``update`` reports every pending checkpoint strictly inside its trigger
    radius, in checkpoint-list order. A checkpoint is reported once and then
    never evaluated again until ``reset``.
    """

    def __init__(self, checkpoints: Sequence[Checkpoint], clock: Callable[[], datetime] = utcnow):
        self.checkpoints: List[Checkpoint] = list(checkpoints)
        self.clock = clock

    def update(self, position: Coordinate) -> List[Checkpoint]:
        newly: List[Checkpoint] = []
        for i, cp in enumerate(self.checkpoints):
            if cp.reached:
                continue
            d = distance(position, cp.coordinate)
            if d < cp.trigger_radius_m:
                reached = cp.model_copy(update={"reached": True, "reached_at": self.clock()})
                self.checkpoints[i] = reached
                newly.append(reached)
                log.info("Reached checkpoint %s (%.1f m)", cp.id, d)
        return newly

    def pending(self) -> List[Checkpoint]:
        return [cp for cp in self.checkpoints if not cp.reached]

    def reached(self) -> List[Checkpoint]:
        return [cp for cp in self.checkpoints if cp.reached]

    def nearest_pending(self, position: Coordinate) -> Optional[Tuple[Checkpoint, float]]:
        """Closest unreached checkpoint and its distance, or None when all are reached."""
        best: Optional[Tuple[Checkpoint, float]] = None
        for cp in self.pending():
            d = distance(position, cp.coordinate)
            if best is None or d < best[1]:
                best = (cp, d)
        return best

    def reset(self) -> None:
        self.checkpoints = [
            cp.model_copy(update={"reached": False, "reached_at": None}) for cp in self.checkpoints
        ]
