"""
Tests for story generation.

Covers the tolerant parser against the wrappers LLMs put around JSON, the
offline fallback stories, and key rotation in the generator.
"""

import json

import pytest
from requests.exceptions import ChunkedEncodingError

from wanderer.core.errors import NetworkError, ProviderInvalidResponse, ProviderQuotaExceeded, StoryParseFailure
from wanderer.core.models import Checkpoint, Coordinate
from wanderer.core.story import (
    StoryGenerator,
    StoryRequest,
    build_prompt,
    extract_json_object,
    fallback_story,
    parse_story,
)
from wanderer.providers.base import NarrativeProvider
from wanderer.providers.credentials import CredentialRotator, KeyRing
from wanderer.providers.groq import GroqProvider
from wanderer.providers.http import HTTPClient


def checkpoints(n):
    return [
        Checkpoint(id=f"cp{i + 1}", coordinate=Coordinate(latitude=10.76 + i * 0.002, longitude=106.66))
        for i in range(n)
    ]


def story_json(n=3, key="chapters", with_choices=True):
    chapters = []
    for i in range(n):
        ch = {"title": f"Chapter {i + 1}", "content": f"Part {i + 1} of the walk.", "estimatedDuration": 90}
        if with_choices:
            ch["choices"] = [{"text": "Left", "consequence": "x"}, {"text": "Right", "consequence": "y"}]
        chapters.append(ch)
    return json.dumps({"title": "The Lantern", "description": "A night walk", key: chapters})


# =============================================================================
# Tolerant parse
# =============================================================================

class TestExtractJSON:

    def test_plain(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_markdown_fence(self):
        assert extract_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_chatter_around_object(self):
        text = 'Sure! Here is your story:\n{"a": {"b": 2}}\nEnjoy your walk.'
        assert extract_json_object(text) == {"a": {"b": 2}}

    def test_no_braces(self):
        with pytest.raises(StoryParseFailure):
            extract_json_object("I cannot help with that.")

    def test_broken_json(self):
        with pytest.raises(StoryParseFailure):
            extract_json_object('{"a": 1,,}')

    def test_array_is_not_an_object(self):
        with pytest.raises(StoryParseFailure):
            extract_json_object('[{"a": 1}]')


class TestParseStory:

    def test_chapters_bound_to_checkpoints_in_order(self):
        req = StoryRequest(genre="mystery", checkpoints=checkpoints(3))
        story = parse_story("```json\n" + story_json(3) + "\n```", req)
        assert story.title == "The Lantern"
        assert [s.checkpoint_id for s in story.segments] == ["cp1", "cp2", "cp3"]
        assert "ai-generated" in story.tags
        assert not story.is_fallback

    def test_declared_checkpoint_ids_ignored(self):
        raw = json.dumps({
            "title": "t",
            "chapters": [
                {"content": "One.", "checkpointId": "cp2"},
                {"content": "Two.", "checkpointId": "cp2"},
            ],
        })
        story = parse_story(raw, StoryRequest(checkpoints=checkpoints(2)))
        assert [s.checkpoint_id for s in story.segments] == ["cp1", "cp2"]

    def test_segments_key_accepted(self):
        story = parse_story(story_json(2, key="segments"), StoryRequest())
        assert len(story.segments) == 2

    def test_terminal_segment_choices_stripped(self):
        story = parse_story(story_json(3), StoryRequest())
        assert [len(s.choices) for s in story.segments] == [2, 2, 0]

    def test_surplus_segments_unbound(self):
        story = parse_story(story_json(3), StoryRequest(checkpoints=checkpoints(1)))
        assert [s.checkpoint_id for s in story.segments] == ["cp1", None, None]

    def test_duration_at_least_word_rate(self):
        long_text = " ".join(["word"] * 250)
        raw = json.dumps({"title": "t", "chapters": [{"content": long_text, "estimatedDuration": 60}]})
        story = parse_story(raw, StoryRequest())
        assert story.segments[0].duration_s == pytest.approx(100.0)

    def test_declared_duration_kept_when_longer(self):
        story = parse_story(story_json(1), StoryRequest())
        assert story.segments[0].duration_s == 90
        assert story.total_duration_s == 90

    def test_salvage_from_truncated_json(self):
        text = (
            '{"title": "Lost Streets", "chapters": ['
            '{"title": "One", "content": "First part."}, '
            '{"title": "Two", "content": "Second \\"quoted\\" part."'
        )
        story = parse_story(text, StoryRequest(checkpoints=checkpoints(2)))
        assert story.title == "Lost Streets"
        assert [s.title for s in story.segments] == ["One", "Two"]
        assert story.segments[1].content == 'Second "quoted" part.'
        assert [s.checkpoint_id for s in story.segments] == ["cp1", "cp2"]
        assert "ai-generated-alt" in story.tags

    def test_empty_chapters_fall_to_salvage_then_fail(self):
        with pytest.raises(StoryParseFailure):
            parse_story('{"title": "x", "chapters": []}', StoryRequest())

    def test_garbage_raises(self):
        with pytest.raises(StoryParseFailure):
            parse_story("The model is overloaded, please retry.", StoryRequest())


# =============================================================================
# Fallback stories
# =============================================================================

class TestFallbackStory:

    def test_one_segment_per_checkpoint(self):
        story = fallback_story(StoryRequest(genre="mystery", checkpoints=checkpoints(4), duration_min=40))
        assert len(story.segments) == 4
        assert [s.checkpoint_id for s in story.segments] == ["cp1", "cp2", "cp3", "cp4"]
        assert story.is_fallback
        assert story.segments[0].duration_s == pytest.approx(600)
        assert story.total_duration_s == pytest.approx(2400)

    def test_choices_on_all_but_last(self):
        story = fallback_story(StoryRequest(checkpoints=checkpoints(3)))
        assert [len(s.choices) for s in story.segments] == [2, 2, 0]
        assert [c.text for c in story.segments[0].choices] == [
            "Continue along the path ahead",
            "Explore the surroundings",
        ]
        ids = [c.id for s in story.segments for c in s.choices]
        assert len(ids) == len(set(ids))

    @pytest.mark.parametrize("waypoints, expected", [(0, 3), (1, 3), (4, 4), (5, 5), (9, 5)])
    def test_simplified_segment_count(self, waypoints, expected):
        story = fallback_story(StoryRequest(waypoint_count=waypoints))
        assert len(story.segments) == expected
        assert all(s.checkpoint_id is None for s in story.segments)

    def test_genre_templates(self):
        assert fallback_story(StoryRequest(genre="fantasy")).title == "The Magic Kingdom"
        assert fallback_story(StoryRequest(genre="polka")).title == "An Urban Adventure"

    def test_vietnamese(self):
        story = fallback_story(StoryRequest(genre="historical", language="vi", checkpoints=checkpoints(2)))
        assert story.title == "Hành trình xuyên thời gian"
        assert story.segments[0].choices[0].text == "Đi theo con đường phía trước"

    def test_vietnamese_unknown_genre_uses_adventure(self):
        story = fallback_story(StoryRequest(genre="romance", language="vi"))
        assert story.title == "Cuộc phiêu lưu thú vị"

    def test_opening_and_ending_beats(self):
        story = fallback_story(StoryRequest(genre="mystery", waypoint_count=5))
        contents = [s.content for s in story.segments]
        assert contents[0] != contents[-1]
        assert contents[1] == contents[2] == contents[3]


# =============================================================================
# Prompt
# =============================================================================

class TestPrompt:

    def test_mentions_chapters_and_stops(self):
        cps = checkpoints(3)
        cps[1] = cps[1].model_copy(update={"title": "Ben Thanh Market"})
        prompt = build_prompt(StoryRequest(genre="comedy", duration_min=30, checkpoints=cps))
        assert "exactly 3 chapters" in prompt
        assert "Ben Thanh Market" in prompt
        assert '"chapters"' in prompt


# =============================================================================
# Generator
# =============================================================================

class FakeLLM(NarrativeProvider):
    name = "groq"

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.keys_used = []

    def complete(self, prompt, max_tokens, temperature, api_key):
        self.keys_used.append(api_key)
        out = self.outcomes.pop(0)
        if isinstance(out, Exception):
            raise out
        return out


def rotator(*keys):
    return CredentialRotator([KeyRing("groq", list(keys))])


class TestStoryGenerator:

    def test_success(self):
        llm = FakeLLM([story_json(2)])
        gen = StoryGenerator(llm, rotator("k1"))
        result = gen.compose(StoryRequest(checkpoints=checkpoints(2)))
        assert result.story.title == "The Lantern"
        assert result.source == "groq"

    def test_quota_rotates_key(self):
        llm = FakeLLM([ProviderQuotaExceeded("429"), story_json(2)])
        gen = StoryGenerator(llm, rotator("k1", "k2"))
        story = gen.generate(StoryRequest())
        assert not story.is_fallback
        assert llm.keys_used == ["k1", "k2"]

    def test_network_and_bad_response_advance_too(self):
        llm = FakeLLM([NetworkError("timeout"), ProviderInvalidResponse("empty"), story_json(1)])
        gen = StoryGenerator(llm, rotator("k1", "k2", "k3"))
        assert not gen.generate(StoryRequest()).is_fallback
        assert llm.keys_used == ["k1", "k2", "k3"]

    def test_exhaustion_gives_fallback(self):
        llm = FakeLLM([ProviderQuotaExceeded("q"), ProviderQuotaExceeded("q")])
        gen = StoryGenerator(llm, rotator("k1", "k2"))
        result = gen.compose(StoryRequest(checkpoints=checkpoints(3)))
        assert result.story.is_fallback
        assert len(result.story.segments) == 3
        assert result.source == "fallback"

    def test_no_keys_gives_fallback_without_calling(self):
        llm = FakeLLM([story_json(1)])
        gen = StoryGenerator(llm, rotator())
        assert gen.generate(StoryRequest()).is_fallback
        assert llm.keys_used == []

    def test_parse_failure_gives_fallback_immediately(self):
        llm = FakeLLM(["no json here", story_json(1)])
        gen = StoryGenerator(llm, rotator("k1", "k2"))
        assert gen.generate(StoryRequest()).is_fallback
        assert llm.keys_used == ["k1"]

    def test_keys_reset_each_generate(self):
        llm = FakeLLM([ProviderQuotaExceeded("q"), story_json(1)])
        gen = StoryGenerator(llm, rotator("k1"))
        assert gen.generate(StoryRequest()).is_fallback
        assert not gen.generate(StoryRequest()).is_fallback
        assert llm.keys_used == ["k1", "k1"]

    def test_without_provider(self):
        gen = StoryGenerator(None, rotator("k1"))
        assert gen.generate(StoryRequest()).is_fallback

    def test_broken_transport_gives_fallback(self):
        class ResetSession:
            def request(self, method, url, **kwargs):
                raise ChunkedEncodingError("reset")

        http = HTTPClient("test-agent", provider="groq", tries=1)
        http.s = ResetSession()
        gen = StoryGenerator(GroqProvider(http), rotator("k1"))
        result = gen.compose(StoryRequest(checkpoints=checkpoints(1)))
        assert result.source == "fallback"
        assert [s.checkpoint_id for s in result.story.segments] == ["cp1"]

    def test_unexpected_provider_crash_gives_fallback(self):
        llm = FakeLLM([RuntimeError("boom"), story_json(1)])
        gen = StoryGenerator(llm, rotator("k1", "k2"))
        assert gen.generate(StoryRequest()).is_fallback
        assert llm.keys_used == ["k1"]
