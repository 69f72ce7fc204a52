"""Tests for the story progression state machine."""

import pytest

from wanderer.core.errors import InvalidChoice
from wanderer.core.interfaces import TranscriptNarrator
from wanderer.core.models import Story, StoryChoice, StorySegment
from wanderer.core.story_machine import StoryMachine, StoryState


def make_story(n=3, choices_on=(0, 1)):
    segments = []
    for i in range(n):
        choices = []
        if i in choices_on:
            choices = [
                StoryChoice(id=f"s{i}a", text="Ahead"),
                StoryChoice(id=f"s{i}b", text="Around"),
            ]
        segments.append(StorySegment(id=f"seg{i}", content=f"Segment {i}", choices=choices))
    return Story(id="st", title="Test", segments=segments)


@pytest.fixture
def narrator():
    return TranscriptNarrator()


@pytest.fixture
def machine(narrator):
    m = StoryMachine(narrator, checkpoint_ids=["c1", "c2", "c3"])
    m.begin_generating()
    return m


class TestLifecycle:

    def test_idle_then_generating(self, narrator):
        m = StoryMachine(narrator)
        assert m.state is StoryState.IDLE
        m.begin_generating()
        assert m.state is StoryState.GENERATING

    def test_load_starts_first_segment(self, machine, narrator):
        machine.load(make_story())
        assert machine.state is StoryState.NARRATING
        assert machine.index == 0
        assert narrator.transcript == ["Segment 0"]


class TestCheckpointInterrupts:

    def test_bound_checkpoint_interrupts_narration(self, machine, narrator):
        machine.load(make_story())
        machine.checkpoint_reached("c1")
        assert machine.state is StoryState.AWAITING_CHOICE
        assert narrator.cues[0].interrupted

    def test_other_checkpoint_does_not_interrupt(self, machine, narrator):
        machine.load(make_story())
        machine.checkpoint_reached("c2")
        assert machine.state is StoryState.NARRATING
        assert narrator.speaking
        assert machine.reached_ids == ["c2"]

    def test_narration_end_waits_for_bound_checkpoint(self, machine, narrator):
        machine.load(make_story())
        narrator.finish()
        assert machine.state is StoryState.NARRATING
        assert machine.narration_finished
        machine.checkpoint_reached("c1")
        assert machine.state is StoryState.AWAITING_CHOICE

    def test_checkpoint_reached_early_lets_narration_finish(self, machine, narrator):
        machine.checkpoint_reached("c1")        # while still generating
        machine.load(make_story())
        assert machine.state is StoryState.NARRATING
        narrator.finish()
        assert machine.state is StoryState.AWAITING_CHOICE


class TestChoices:

    def test_waits_for_choice(self, machine):
        machine.load(make_story())
        machine.checkpoint_reached("c1")
        machine.narration_done(0)
        assert machine.state is StoryState.AWAITING_CHOICE
        assert machine.index == 0

    def test_select_advances(self, machine, narrator):
        machine.load(make_story())
        machine.checkpoint_reached("c1")
        chosen = machine.select_choice("s0b")
        assert chosen.text == "Around"
        assert machine.state is StoryState.NARRATING
        assert machine.index == 1
        assert narrator.transcript[-1] == "Segment 1"

    def test_unknown_choice_rejected(self, machine):
        machine.load(make_story())
        machine.checkpoint_reached("c1")
        with pytest.raises(InvalidChoice):
            machine.select_choice("nope")
        assert machine.state is StoryState.AWAITING_CHOICE

    def test_choice_while_narrating_rejected(self, machine):
        machine.load(make_story())
        with pytest.raises(InvalidChoice):
            machine.select_choice("s0a")

    def test_segment_without_choices_auto_advances(self, narrator):
        m = StoryMachine(narrator, checkpoint_ids=["c1", "c2"])
        m.load(make_story(2, choices_on=()))
        m.checkpoint_reached("c1")
        assert m.state is StoryState.NARRATING
        assert m.index == 1


class TestCompletion:

    def test_full_walk(self, machine, narrator):
        machine.load(make_story())
        machine.checkpoint_reached("c1")
        machine.select_choice("s0a")
        machine.checkpoint_reached("c2")
        machine.select_choice("s1b")
        machine.checkpoint_reached("c3")
        assert machine.state is StoryState.COMPLETED
        assert [c.id for c in machine.choices_made] == ["s0a", "s1b"]
        assert machine.reached_ids == ["c1", "c2", "c3"]

    def test_surplus_segments_advance_on_narration_end(self, narrator):
        m = StoryMachine(narrator, checkpoint_ids=["c1"])
        m.load(make_story(3, choices_on=()))
        m.checkpoint_reached("c1")
        assert m.index == 1
        narrator.finish()
        assert m.index == 2
        narrator.finish()
        assert m.state is StoryState.COMPLETED

    def test_stale_narration_done_ignored(self, machine):
        machine.load(make_story())
        machine.checkpoint_reached("c1")
        machine.select_choice("s0a")
        machine.narration_done(0)
        assert machine.index == 1
        assert machine.state is StoryState.NARRATING

    def test_auto_complete_narrator_runs_unbound_story_to_end(self):
        m = StoryMachine(TranscriptNarrator(auto_complete=True))
        m.load(make_story(3, choices_on=()))
        assert m.state is StoryState.COMPLETED


class TestStop:

    def test_stop_interrupts(self, machine, narrator):
        machine.load(make_story())
        machine.stop()
        assert machine.state is StoryState.STOPPED
        assert narrator.cues[-1].interrupted

    def test_story_after_stop_ignored(self, machine, narrator):
        machine.stop()
        machine.load(make_story())
        assert machine.story is None
        assert narrator.cues == []

    def test_transitions_reported(self, narrator):
        seen = []
        m = StoryMachine(narrator, checkpoint_ids=["c1"], on_transition=lambda s, i: seen.append((s, i)))
        m.begin_generating()
        m.load(make_story(1, choices_on=()))
        m.checkpoint_reached("c1")
        assert seen == [
            (StoryState.GENERATING, 0),
            (StoryState.NARRATING, 0),
            (StoryState.AWAITING_CHOICE, 0),
            (StoryState.COMPLETED, 0),
        ]
