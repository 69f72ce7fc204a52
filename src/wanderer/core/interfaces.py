"""Collaborator contracts: where positions come from and where narration goes.

Both ship with an in-memory implementation used by the CLI walk simulator
and the tests.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from wanderer.core.errors import LocationError, LocationUnavailable
from wanderer.core.geo import distance
from wanderer.core.models import Coordinate

log = logging.getLogger(__name__)

PositionCallback = Callable[[Coordinate], None]
NarrationListener = Callable[[], None]


class Subscription:
    """Handle returned by ``PositionSource.subscribe``."""

    def __init__(self, on_unsubscribe: Callable[["Subscription"], None]):
        self._on_unsubscribe = on_unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._on_unsubscribe(self)


class PositionSource(ABC):
    @abstractmethod
    def get_current_position(self) -> Coordinate:
        """One-shot fix. Raises PermissionDenied or LocationUnavailable."""
        raise NotImplementedError

    @abstractmethod
    def subscribe(
        self,
        callback: PositionCallback,
        interval_s: float = 3.0,
        min_distance_m: float = 5.0,
    ) -> Subscription:
        raise NotImplementedError


class NarrationSink(ABC):
    @abstractmethod
    def speak(self, text: str, language: str, rate: float, listener: Optional[NarrationListener] = None) -> None:
        """Start narrating ``text``; ``listener`` fires once when it finishes on its own."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Interrupt narration. The pending listener is dropped, not called."""
        raise NotImplementedError


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class TracePositionSource(PositionSource):
    """
    Replays a recorded list of positions.

    ``emit_next()`` pushes the next position to subscribers, skipping points
    closer than a subscriber's ``min_distance_m`` to the last one it received.
    """

    def __init__(self, positions: Sequence[Coordinate], error: Optional[LocationError] = None):
        self.positions: List[Coordinate] = list(positions)
        self.error = error
        self.cursor = 0
        self._subs: List[tuple] = []   # (subscription, callback, min_distance_m, [last])

    def get_current_position(self) -> Coordinate:
        if self.error is not None:
            raise self.error
        if not self.positions:
            raise LocationUnavailable("Trace has no positions")
        return self.positions[min(self.cursor, len(self.positions) - 1)]

    def subscribe(
        self,
        callback: PositionCallback,
        interval_s: float = 3.0,
        min_distance_m: float = 5.0,
    ) -> Subscription:
        if self.error is not None:
            raise self.error
        sub = Subscription(self._remove)
        self._subs.append((sub, callback, min_distance_m, [None]))
        return sub

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= len(self.positions)

    def emit(self, position: Coordinate) -> None:
        for sub, callback, min_d, last in list(self._subs):
            if not sub.active:
                continue
            if last[0] is not None and distance(last[0], position) < min_d:
                continue
            last[0] = position
            callback(position)

    def emit_next(self) -> bool:
        """Emit one recorded position. Returns False once the trace is used up."""
        if self.exhausted:
            return False
        position = self.positions[self.cursor]
        self.cursor += 1
        self.emit(position)
        return True

    def replay(self) -> int:
        n = 0
        while self.emit_next():
            n += 1
        return n

    def _remove(self, sub: Subscription) -> None:
        self._subs = [s for s in self._subs if s[0] is not sub]


@dataclass
class NarrationCue:
    text: str
    language: str
    rate: float
    interrupted: bool = False
    finished: bool = False


class TranscriptNarrator(NarrationSink):
    """
    Records what would have been spoken.

    With ``auto_complete`` every cue finishes as soon as it starts; otherwise
    call ``finish()`` to end the current cue.
    """

    def __init__(self, auto_complete: bool = False):
        self.auto_complete = auto_complete
        self.cues: List[NarrationCue] = []
        self._listener: Optional[NarrationListener] = None

    @property
    def speaking(self) -> bool:
        return bool(self.cues) and not (self.cues[-1].finished or self.cues[-1].interrupted)

    @property
    def current(self) -> Optional[NarrationCue]:
        return self.cues[-1] if self.speaking else None

    def speak(self, text: str, language: str, rate: float, listener: Optional[NarrationListener] = None) -> None:
        if self.speaking:
            self.stop()
        self.cues.append(NarrationCue(text=text, language=language, rate=rate))
        self._listener = listener
        log.debug("narrate [%s x%.1f] %.60s", language, rate, text)
        if self.auto_complete:
            self.finish()

    def finish(self) -> bool:
        """Complete the current cue as if playback reached its end."""
        if not self.speaking:
            return False
        self.cues[-1].finished = True
        listener, self._listener = self._listener, None
        if listener is not None:
            listener()
        return True

    def stop(self) -> None:
        if self.speaking:
            self.cues[-1].interrupted = True
        self._listener = None

    @property
    def transcript(self) -> List[str]:
        return [c.text for c in self.cues]
