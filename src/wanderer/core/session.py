"""
Walk session: one walk from the first position fix to the summary.

Every input (position fixes, checkpoint hits, narration ends, choices, the
generated story) becomes an Event on a FIFO queue. Events are handled one at
a time to completion; collaborator callbacks only enqueue, so state is only
ever touched in arrival order.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from wanderer.config import Settings, settings as default_settings
from wanderer.core.errors import InvalidChoice
from wanderer.core.geo import distance
from wanderer.core.interfaces import NarrationSink, PositionSource, Subscription
from wanderer.core.models import (
    Checkpoint,
    CheckpointOnRoute,
    Coordinate,
    Route,
    RouteProgress,
    StoryChoice,
    WalkingSummary,
)
from wanderer.core.progress import nearest_checkpoint_on_route, progress
from wanderer.core.proximity import ProximityMonitor, utcnow
from wanderer.core.story import StoryGenerator, StoryRequest
from wanderer.core.story_machine import StoryMachine, StoryState

log = logging.getLogger(__name__)


class EventType(str, Enum):
    POSITION = "position"
    CHECKPOINT_REACHED = "checkpoint_reached"
    NARRATION_DONE = "narration_done"
    CHOICE_SELECTED = "choice_selected"
    STORY_READY = "story_ready"


@dataclass
class Event:
    type: EventType
    payload: Any = None


class SessionEvent(str, Enum):
    """What listeners can subscribe to."""

    STORY_READY = "story_ready"
    PROGRESS = "progress"
    CHECKPOINT_REACHED = "checkpoint_reached"
    SEGMENT_STARTED = "segment_started"
    AWAITING_CHOICE = "awaiting_choice"
    COMPLETED = "completed"
    STOPPED = "stopped"


Listener = Callable[[SessionEvent, Any], None]


class WalkSession:
    def __init__(
        self,
        route: Route,
        checkpoints: Sequence[Checkpoint],
        position_source: PositionSource,
        narrator: NarrationSink,
        story_generator: StoryGenerator,
        genre: str = "adventure",
        mood: str = "relaxing",
        cfg: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cfg = cfg or default_settings
        self.route = route
        self.position_source = position_source
        self.story_generator = story_generator
        self.genre = genre
        self.mood = mood
        self.clock = clock

        self.monitor = ProximityMonitor(checkpoints, clock=clock)
        self.machine = StoryMachine(
            narrator,
            checkpoint_ids=[cp.id for cp in checkpoints],
            narration_listener=lambda i: self.post(Event(EventType.NARRATION_DONE, i)),
            language=self.cfg.speech_language,
            rate=self.cfg.speech_rate,
            on_transition=self._on_transition,
        )

        self.started_at: Optional[datetime] = None
        self.reached_ids: List[str] = []
        self.last_position: Optional[Coordinate] = None
        self.last_progress: Optional[RouteProgress] = None
        self.walked_m = 0.0
        self.story_source: Optional[str] = None
        self.summary: Optional[WalkingSummary] = None
        self.stopped = False

        self._queue: Deque[Event] = deque()
        self._draining = False
        self._subscription: Optional[Subscription] = None
        self._listeners: Dict[SessionEvent, List[Listener]] = {}

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, kind: SessionEvent, fn: Listener) -> None:
        self._listeners.setdefault(kind, []).append(fn)

    def remove_listener(self, kind: SessionEvent, fn: Listener) -> None:
        fns = self._listeners.get(kind, [])
        if fn in fns:
            fns.remove(fn)

    def _notify(self, kind: SessionEvent, payload: Any = None) -> None:
        for fn in list(self._listeners.get(kind, [])):
            try:
                fn(kind, payload)
            except Exception:
                log.exception("Listener for %s failed", kind.value)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> StoryState:
        return self.machine.state

    @property
    def checkpoints(self) -> List[Checkpoint]:
        return self.monitor.checkpoints

    def next_checkpoint(self) -> Optional[CheckpointOnRoute]:
        """Nearest pending checkpoint to the last fix, with along-route distance and ETA."""
        if self.last_position is None:
            return None
        return nearest_checkpoint_on_route(
            self.route, self.monitor.pending(), self.last_position, self.cfg.walking_speed_mps
        )

    def story_request(self) -> StoryRequest:
        return StoryRequest(
            genre=self.genre,
            mood=self.mood,
            language=self.cfg.language,
            start_location=_fmt(self.route.origin),
            end_location=_fmt(self.route.destination),
            distance_km=self.route.distance_m / 1000.0,
            duration_min=self.route.duration_s / 60.0,
            checkpoints=self.monitor.checkpoints,
            waypoint_count=len(self.monitor.checkpoints),
        )

    def start(self) -> None:
        """
        Get a first fix, start tracking, then generate and begin the story.

        PermissionDenied / LocationUnavailable propagate to the caller and
        leave the session unstarted.
        """
        if self.started_at is not None:
            return
        first = self.position_source.get_current_position()
        self.started_at = self.clock()
        self._subscription = self.position_source.subscribe(
            lambda pos: self.post(Event(EventType.POSITION, pos)),
            interval_s=self.cfg.position_interval_s,
            min_distance_m=self.cfg.position_min_distance_m,
        )
        log.info("Walk started at %s", _fmt(first))

        self.machine.begin_generating()
        self.post(Event(EventType.POSITION, first))
        generated = self.story_generator.compose(self.story_request())
        self.story_source = generated.source
        self.post(Event(EventType.STORY_READY, generated.story))

    def select_choice(self, choice_id: str) -> StoryChoice:
        """Pick a choice for the segment awaiting one; InvalidChoice if it is not offered."""
        seg = self.machine.current_segment
        if self.machine.state is not StoryState.AWAITING_CHOICE or seg is None:
            raise InvalidChoice("No choice is pending")
        for choice in seg.choices:
            if choice.id == choice_id:
                self.post(Event(EventType.CHOICE_SELECTED, choice_id))
                return choice
        raise InvalidChoice(f"Segment {seg.id} offers no choice '{choice_id}'")

    def stop(self) -> WalkingSummary:
        """End the walk early. Idempotent; returns the (possibly earlier) summary."""
        if self.summary is not None:
            return self.summary
        self.stopped = True
        self.machine.stop()
        self._unsubscribe()
        self._queue.clear()
        self.summary = self._finalize(completed=False)
        log.info("Walk stopped after %.0f s", self.summary.total_time_s)
        self._notify(SessionEvent.STOPPED, self.summary)
        return self.summary

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def post(self, event: Event) -> None:
        self._queue.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._queue:
                self._handle(self._queue.popleft())
        finally:
            self._draining = False

    def _handle(self, event: Event) -> None:
        if self.summary is not None:
            log.debug("Dropping %s after session end", event.type.value)
            return

        if event.type is EventType.POSITION:
            self._on_position(event.payload)
        elif event.type is EventType.CHECKPOINT_REACHED:
            cp: Checkpoint = event.payload
            self.reached_ids.append(cp.id)
            self._notify(SessionEvent.CHECKPOINT_REACHED, cp)
            self.machine.checkpoint_reached(cp.id)
        elif event.type is EventType.NARRATION_DONE:
            self.machine.narration_done(event.payload)
        elif event.type is EventType.CHOICE_SELECTED:
            try:
                self.machine.select_choice(event.payload)
            except InvalidChoice as e:
                log.warning("Dropped stale choice: %s", e)
        elif event.type is EventType.STORY_READY:
            self._notify(SessionEvent.STORY_READY, event.payload)
            self.machine.load(event.payload)

        if self.machine.state is StoryState.COMPLETED and self.summary is None:
            self._unsubscribe()
            self.summary = self._finalize(completed=True)
            log.info("Walk completed: %d checkpoints, %d choices",
                     self.summary.checkpoints_completed, len(self.summary.story_choices_made))
            self._notify(SessionEvent.COMPLETED, self.summary)

    def _on_position(self, pos: Coordinate) -> None:
        if self.last_position is not None:
            self.walked_m += distance(self.last_position, pos)
        self.last_position = pos

        self.last_progress = progress(self.route, pos, self.cfg.off_route_threshold_m)
        self._notify(SessionEvent.PROGRESS, self.last_progress)

        for cp in self.monitor.update(pos):
            self.post(Event(EventType.CHECKPOINT_REACHED, cp))

    def _on_transition(self, state: StoryState, index: int) -> None:
        if state is StoryState.NARRATING:
            self._notify(SessionEvent.SEGMENT_STARTED, self.machine.current_segment)
        elif state is StoryState.AWAITING_CHOICE:
            self._notify(SessionEvent.AWAITING_CHOICE, self.machine.current_segment)

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _finalize(self, completed: bool) -> WalkingSummary:
        ended = self.clock()
        started = self.started_at or ended
        story = self.machine.story
        return WalkingSummary(
            total_time_s=max(0.0, (ended - started).total_seconds()),
            distance_m=self.route.distance_m,
            checkpoints_completed=len(self.reached_ids),
            reached_checkpoint_ids=list(self.reached_ids),
            story_choices_made=list(self.machine.choices_made),
            genre=self.genre,
            started_at=started,
            ended_at=ended,
            completed=completed,
            story_title=story.title if story is not None else None,
            meta={
                "walked_m": round(self.walked_m, 1),
                "route_provider": self.route.provider,
                "story_source": self.story_source,
                "segments_total": len(story.segments) if story is not None else 0,
                "segment_index": self.machine.index,
            },
        )


def _fmt(c: Coordinate) -> str:
    return f"{c.latitude:.6f},{c.longitude:.6f}"
