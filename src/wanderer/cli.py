from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from wanderer.cache.redis_client import JSONCache
from wanderer.config import settings
from wanderer.core.interfaces import TracePositionSource, TranscriptNarrator
from wanderer.core.models import Checkpoint, Coordinate, Route
from wanderer.core.session import SessionEvent, WalkSession
from wanderer.core.story import StoryGenerator
from wanderer.providers.combined import DEFAULT_NARRATIVE, DEFAULT_ROUTING, build_narrative_provider, build_routing_chain
from wanderer.providers.credentials import CredentialRotator

log = logging.getLogger(__name__)


def _save_json(path: Path, obj) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2, ensure_ascii=False), encoding="utf-8")


def _coord(obj) -> Coordinate:
    if isinstance(obj, str):
        return Coordinate.parse(obj)
    if isinstance(obj, (list, tuple)):
        return Coordinate(latitude=obj[0], longitude=obj[1])
    return Coordinate(latitude=obj.get("latitude", obj.get("lat")), longitude=obj.get("longitude", obj.get("lon")))


class SimulatedClock:
    """Wall clock for replayed walks: advances only when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def tick(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def _route_table(route: Route, source: str) -> Table:
    table = Table(title=f"Walking route ({source}): {route.distance_m:.0f} m, {route.duration_s / 60:.1f} min")
    table.add_column("#")
    table.add_column("Instruction")
    table.add_column("Dist m")
    table.add_column("Time s")
    table.add_column("Points")
    for i, step in enumerate(route.steps, 1):
        table.add_row(
            str(i),
            step.instruction,
            f"{step.distance_m:.0f}",
            f"{step.duration_s:.0f}",
            f"{step.start_index}-{step.end_index}",
        )
    return table


def cmd_route(args, console: Console) -> int:
    chain = build_routing_chain(args.provider, settings, cache=JSONCache.from_url(settings.redis_url))
    plan = chain.plan(
        Coordinate.parse(args.origin),
        Coordinate.parse(args.destination),
        [Coordinate.parse(w) for w in args.waypoint or []],
    )
    route = plan.route
    console.print(_route_table(route, plan.source))
    for err in plan.errors:
        console.print(f"[yellow]skipped[/yellow] {err}")

    out = Path(args.out)
    _save_json(out, route.model_dump(mode="json"))
    console.print(f"Saved: {out.resolve()}")
    return 0


def cmd_walk(args, console: Console) -> int:
    trip = json.loads(Path(args.trip).read_text(encoding="utf-8"))

    origin = _coord(trip["origin"])
    destination = _coord(trip["destination"])
    waypoints = [_coord(w) for w in trip.get("waypoints", [])]
    radius = float(trip.get("trigger_radius_m", settings.default_trigger_radius_m))

    raw_cps = trip.get("checkpoints") or [
        {"id": f"checkpoint_{i + 1}", "coordinate": w.model_dump()} for i, w in enumerate(waypoints + [destination])
    ]
    checkpoints: List[Checkpoint] = []
    for i, cp in enumerate(raw_cps):
        checkpoints.append(
            Checkpoint(
                id=str(cp.get("id") or f"checkpoint_{i + 1}"),
                coordinate=_coord(cp.get("coordinate", cp)),
                title=cp.get("title", ""),
                description=cp.get("description", ""),
                trigger_radius_m=float(cp.get("trigger_radius_m", radius)),
            )
        )

    rotator = CredentialRotator.from_settings(settings)
    chain = build_routing_chain(args.provider or trip.get("provider", DEFAULT_ROUTING), settings, rotator)
    route = chain.route(origin, destination, waypoints)

    story_provider = build_narrative_provider(args.story_provider or trip.get("story_provider", DEFAULT_NARRATIVE), settings)
    generator = StoryGenerator(story_provider, rotator, settings.story_max_tokens, settings.story_temperature)

    trace = [_coord(p) for p in trip["trace"]] if trip.get("trace") else list(route.coordinates)
    source = TracePositionSource(trace)
    narrator = TranscriptNarrator(auto_complete=True)
    clock = SimulatedClock()

    session = WalkSession(
        route,
        checkpoints,
        source,
        narrator,
        generator,
        genre=trip.get("genre", "adventure"),
        mood=trip.get("mood", "relaxing"),
        cfg=settings,
        clock=clock,
    )

    table = Table(title=f"Walk: {trip.get('trip_id', Path(args.trip).stem)}")
    table.add_column("t+s")
    table.add_column("Event")
    table.add_column("Detail")

    def row(event: str, detail: str) -> None:
        elapsed = (clock() - (session.started_at or clock())).total_seconds()
        table.add_row(f"{elapsed:.0f}", event, detail)

    def on_event(kind: SessionEvent, payload) -> None:
        if kind is SessionEvent.STORY_READY:
            row("story", f"{payload.title} ({len(payload.segments)} segments, {session.story_source})")
        elif kind is SessionEvent.SEGMENT_STARTED:
            row("narrate", f"{payload.id}: {payload.content[:60]}")
        elif kind is SessionEvent.CHECKPOINT_REACHED:
            row("checkpoint", payload.title or payload.id)
        elif kind is SessionEvent.AWAITING_CHOICE and payload.choices:
            pick = payload.choices[min(args.choice, len(payload.choices) - 1)]
            row("choice", pick.text)
            session.select_choice(pick.id)
        elif kind is SessionEvent.COMPLETED:
            row("completed", f"{payload.checkpoints_completed} checkpoints")

    for kind in SessionEvent:
        session.add_listener(kind, on_event)

    session.start()
    while session.summary is None and source.emit_next():
        clock.tick(settings.position_interval_s)
    summary = session.summary or session.stop()

    console.print(table)
    out = Path(args.out)
    _save_json(out, summary.model_dump(mode="json"))
    console.print(f"Saved: {out.resolve()}")
    return 0 if summary.completed else 1


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="wanderer")
    ap.add_argument("--debug", action="store_true")
    sub = ap.add_subparsers(dest="command", required=True)

    rp = sub.add_parser("route", help="Plan a walking route")
    rp.add_argument("--origin", required=True, help="lat,lon")
    rp.add_argument("--destination", required=True, help="lat,lon")
    rp.add_argument("--waypoint", action="append", help="lat,lon (repeatable)")
    rp.add_argument("--provider", default=DEFAULT_ROUTING, help="e.g. google+ors")
    rp.add_argument("--out", default="trips/last_route.json")

    wp = sub.add_parser("walk", help="Simulate a walk from a trip file")
    wp.add_argument("--trip", default="trips/sample_walk.json", help="Path to a walk JSON file")
    wp.add_argument("--provider", default=None, help="Routing providers, e.g. google+ors")
    wp.add_argument("--story-provider", default=None, help="groq | gemini | none")
    wp.add_argument("--choice", type=int, default=0, help="Index of the choice to take at each branch")
    wp.add_argument("--out", default="trips/last_walk_summary.json")

    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [wanderer] %(levelname)s %(message)s",
    )

    console = Console()
    if args.command == "route":
        return cmd_route(args, console)
    return cmd_walk(args, console)


if __name__ == "__main__":
    raise SystemExit(main())
