"""Story progression: narrate a segment, pause at its checkpoint, take a choice, move on."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

from wanderer.core.errors import InvalidChoice
from wanderer.core.interfaces import NarrationSink
from wanderer.core.models import Story, StoryChoice, StorySegment

log = logging.getLogger(__name__)


class StoryState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    NARRATING = "narrating"
    AWAITING_CHOICE = "awaiting_choice"
    COMPLETED = "completed"
    STOPPED = "stopped"


class StoryMachine:
    """
    Segment i is bound to checkpoint i by position; surplus segments are unbound.

    narrating(i):
      - bound checkpoint reached            -> interrupt narration, awaiting_choice(i)
      - narration done, unbound segment     -> awaiting_choice(i)
      - narration done, checkpoint already
        reached before the segment began    -> awaiting_choice(i)
      - narration done, checkpoint pending  -> keep waiting for the checkpoint
    awaiting_choice(i):
      - no choices                          -> advance at once
      - choices                             -> advance on select_choice()
    advance: narrating(i+1), or completed after the last segment.

    The machine never reads the clock or the position feed; the session feeds
    it events one at a time. ``narration_listener(i)`` is handed to the sink
    and is expected to post a "narration done" event for segment i.
    """

    def __init__(
        self,
        narrator: NarrationSink,
        checkpoint_ids: Sequence[str] = (),
        narration_listener: Optional[Callable[[int], None]] = None,
        language: str = "en-US",
        rate: float = 1.0,
        on_transition: Optional[Callable[["StoryState", int], None]] = None,
    ):
        self.narrator = narrator
        self.checkpoint_ids: List[str] = list(checkpoint_ids)
        self.narration_listener = narration_listener or (lambda i: self.narration_done(i))
        self.language = language
        self.rate = rate
        self.on_transition = on_transition

        self.state = StoryState.IDLE
        self.story: Optional[Story] = None
        self.index = 0
        self.reached_ids: List[str] = []
        self.choices_made: List[StoryChoice] = []
        self.narration_finished = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current_segment(self) -> Optional[StorySegment]:
        if self.story is None or self.index >= len(self.story.segments):
            return None
        return self.story.segments[self.index]

    def bound_checkpoint(self, index: int) -> Optional[str]:
        return self.checkpoint_ids[index] if index < len(self.checkpoint_ids) else None

    @property
    def finished(self) -> bool:
        return self.state in (StoryState.COMPLETED, StoryState.STOPPED)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def begin_generating(self) -> None:
        if self.state is StoryState.IDLE:
            self._set(StoryState.GENERATING)

    def load(self, story: Story) -> None:
        if self.finished:
            log.info("Ignoring story %s: session already %s", story.id, self.state.value)
            return
        self.story = story
        self.index = 0
        self._narrate()

    def checkpoint_reached(self, checkpoint_id: str) -> None:
        if checkpoint_id not in self.reached_ids:
            self.reached_ids.append(checkpoint_id)
        if self.state is StoryState.NARRATING and self.bound_checkpoint(self.index) == checkpoint_id:
            if not self.narration_finished:
                self.narrator.stop()
            self._await_choice()

    def narration_done(self, index: int) -> None:
        if self.state is not StoryState.NARRATING or index != self.index:
            return
        self.narration_finished = True
        bound = self.bound_checkpoint(self.index)
        if bound is None or bound in self.reached_ids:
            self._await_choice()

    def select_choice(self, choice_id: str) -> StoryChoice:
        if self.state is not StoryState.AWAITING_CHOICE:
            raise InvalidChoice(f"No choice is pending (state: {self.state.value})")
        seg = self.current_segment
        for choice in seg.choices:
            if choice.id == choice_id:
                self.choices_made.append(choice)
                log.info("Choice %s on %s: %s", choice.id, seg.id, choice.text)
                self._advance()
                return choice
        raise InvalidChoice(f"Segment {seg.id} offers no choice '{choice_id}'")

    def stop(self) -> None:
        if self.finished:
            return
        self.narrator.stop()
        self._set(StoryState.STOPPED)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _narrate(self) -> None:
        seg = self.current_segment
        self.narration_finished = False
        self._set(StoryState.NARRATING)
        index = self.index
        self.narrator.speak(seg.content, self.language, self.rate, lambda: self.narration_listener(index))

    def _await_choice(self) -> None:
        self._set(StoryState.AWAITING_CHOICE)
        if not self.current_segment.choices:
            self._advance()

    def _advance(self) -> None:
        if self.index + 1 < len(self.story.segments):
            self.index += 1
            self._narrate()
        else:
            self._set(StoryState.COMPLETED)

    def _set(self, state: StoryState) -> None:
        self.state = state
        log.debug("story -> %s(%d)", state.value, self.index)
        if self.on_transition is not None:
            self.on_transition(state, self.index)
