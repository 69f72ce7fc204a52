"""Redis key naming conventions for the wanderer cache layer."""
from __future__ import annotations

import hashlib
from typing import Sequence

from wanderer.core.models import Coordinate

_PREFIX = "wd"


def _coord(c: Coordinate) -> str:
    # ~1 m resolution is plenty for a walking route
    return f"{c.latitude:.5f},{c.longitude:.5f}"


# ── Routes ───────────────────────────────────────────────────────────────

def route(provider: str, origin: Coordinate, destination: Coordinate, waypoints: Sequence[Coordinate], lang: str) -> str:
    """Key for a provider's route between origin and destination via waypoints."""
    raw = "|".join([_coord(origin), *[_coord(w) for w in waypoints], _coord(destination), lang])
    h = hashlib.sha256(raw.encode()).hexdigest()[:16]
    return f"{_PREFIX}:route:{provider}:{h}"
