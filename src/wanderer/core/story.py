"""Story generation: prompt building, tolerant parsing and offline fallbacks.

``StoryGenerator.generate`` never raises. Any provider or parse failure ends
in a template story so a walk can always start.
"""
from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from wanderer.core.errors import NoKeysConfigured, ProviderError, StoryParseFailure
from wanderer.core.models import Checkpoint, Story, StoryChoice, StorySegment

log = logging.getLogger(__name__)

# narration pace used to lower-bound a segment's duration
WORDS_PER_SECOND = 2.5
DEFAULT_SEGMENT_DURATION_S = 60.0


class StoryRequest(BaseModel):
    genre: str = "adventure"
    mood: str = "relaxing"
    language: str = "en"
    start_location: str = ""
    end_location: str = ""
    distance_km: float = 0.0
    duration_min: float = 0.0
    checkpoints: List[Checkpoint] = Field(default_factory=list)
    # used only when no checkpoints are known
    waypoint_count: int = 0

    @property
    def chapter_count(self) -> int:
        return len(self.checkpoints) or max(1, self.waypoint_count)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

GENRE_DESCRIPTIONS = {
    "romance": "a sweet, romantic love story",
    "mystery": "a gripping mystery full of clues",
    "adventure": "an adventure full of challenges and discovery",
    "sci-fi": "a science-fiction story with future technology",
    "horror": "an eerie, suspenseful horror story",
    "comedy": "a light-hearted, funny story",
    "fantasy": "a fantasy tale with magic and strange creatures",
    "historical": "a journey through the history of the places passed",
}

LANGUAGE_NAMES = {"en": "English", "vi": "Vietnamese"}


def build_prompt(request: StoryRequest) -> str:
    chapters = request.chapter_count
    minutes_per_chapter = max(1, int(request.duration_min // chapters)) if request.duration_min else 2
    words_per_chapter = minutes_per_chapter * 150
    genre = GENRE_DESCRIPTIONS.get(request.genre, GENRE_DESCRIPTIONS["adventure"])
    language = LANGUAGE_NAMES.get(request.language, request.language)

    stops = ""
    if request.checkpoints:
        stops = "\n".join(
            f"  {i + 1}. {cp.title or cp.id} ({cp.coordinate.latitude:.5f}, {cp.coordinate.longitude:.5f})"
            for i, cp in enumerate(request.checkpoints)
        )
        stops = f"- Stops along the way:\n{stops}\n"

    return f"""Write {genre} for a walk with the following details.

ROUTE:
- Start: {request.start_location or "unknown"}
- End: {request.end_location or "unknown"}
- Distance: {request.distance_km:.1f} km
- Estimated time: {request.duration_min:.0f} minutes
{stops}
REQUIREMENTS:
1. Split the story into exactly {chapters} chapters, one per stop on the route, in order.
2. Each chapter should take about {minutes_per_chapter} minutes to narrate (about {words_per_chapter} words).
3. Describe surroundings, plot, characters and dialogue in vivid detail.
4. Keep the chapters tightly connected and weave the real places into the plot.
5. Tone: {request.mood}. Language: {language}.
6. Every chapter except the last may offer up to two short choices for the listener.

Reply with plain JSON only, in exactly this shape:
{{
  "title": "Story title",
  "description": "One-paragraph description",
  "chapters": [
    {{
      "title": "Chapter title",
      "content": "Full chapter text",
      "estimatedDuration": {minutes_per_chapter * 60},
      "choices": [{{"text": "Choice text", "consequence": "What happens"}}]
    }}
  ]
}}
"""


# ---------------------------------------------------------------------------
# Tolerant parsing
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"```[a-zA-Z]*")
_PAIR_RE = re.compile(
    r'"title"\s*:\s*"((?:[^"\\]|\\.)*)"\s*,\s*"content"\s*:\s*"((?:[^"\\]|\\.)*)"',
    re.DOTALL,
)
_TITLE_RE = re.compile(r'"title"\s*:\s*"((?:[^"\\]|\\.)*)"')


def extract_json_object(text: str) -> Dict[str, Any]:
    """Pull the outermost JSON object out of an LLM reply.

    Markdown fences and any chatter before the first ``{`` or after the last
    ``}`` are dropped.
    """
    cleaned = _FENCE_RE.sub("", text or "")
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise StoryParseFailure("No JSON object found in response")
    try:
        data = json.loads(cleaned[start:end + 1])
    except ValueError as e:
        raise StoryParseFailure(f"Malformed JSON: {e}") from e
    if not isinstance(data, dict):
        raise StoryParseFailure("Top-level JSON value is not an object")
    return data


def _unescape(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"')
    except ValueError:
        return raw.replace('\\"', '"').replace("\\n", "\n")


def _duration_for(content: str, given: Any) -> float:
    try:
        declared = float(given) if given is not None else DEFAULT_SEGMENT_DURATION_S
    except (TypeError, ValueError):
        declared = DEFAULT_SEGMENT_DURATION_S
    words = len(content.split())
    return max(declared, words / WORDS_PER_SECOND)


def _choices_from(raw: Any, seg_no: int) -> List[StoryChoice]:
    out: List[StoryChoice] = []
    if not isinstance(raw, list):
        return out
    for j, item in enumerate(raw):
        if isinstance(item, str):
            item = {"text": item}
        if not isinstance(item, dict) or not str(item.get("text") or "").strip():
            continue
        out.append(
            StoryChoice(
                id=str(item.get("id") or f"choice_{seg_no}_{j + 1}"),
                text=str(item["text"]).strip(),
                consequence=str(item.get("consequence") or ""),
            )
        )
    return out


def _bind_checkpoint(request: StoryRequest, index: int) -> Optional[str]:
    # segment i belongs to checkpoint i, whatever id the model claims
    ids = [cp.id for cp in request.checkpoints]
    return ids[index] if index < len(ids) else None


def _finish(
    request: StoryRequest,
    title: str,
    description: str,
    segments: List[StorySegment],
    tags: List[str],
) -> Story:
    # the last segment ends the story, so it can never branch
    last = segments[-1]
    if last.choices:
        segments[-1] = last.model_copy(update={"choices": []})
    return Story(
        id=f"story_{uuid.uuid4().hex[:12]}",
        title=title or _fallback_title(request),
        description=description,
        genre=request.genre,
        segments=segments,
        total_duration_s=sum(s.duration_s for s in segments),
        tags=tags,
    )


def parse_story(text: str, request: StoryRequest) -> Story:
    """Turn an LLM reply into a Story, or raise StoryParseFailure."""
    try:
        data = extract_json_object(text)
    except StoryParseFailure as e:
        log.info("Strict story parse failed (%s), trying salvage", e)
        return salvage_story(text, request)

    items = data.get("segments")
    if not isinstance(items, list) or not items:
        items = data.get("chapters")
    if not isinstance(items, list) or not items:
        return salvage_story(text, request)

    segments: List[StorySegment] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        content = str(item.get("content") or "").strip()
        if not content:
            continue
        i = len(segments)
        given = item.get("duration", item.get("estimatedDuration"))
        segments.append(
            StorySegment(
                id=str(item.get("id") or f"segment_{i + 1}"),
                title=str(item["title"]) if item.get("title") else None,
                content=content,
                duration_s=_duration_for(content, given),
                checkpoint_id=_bind_checkpoint(request, i),
                choices=_choices_from(item.get("choices"), i + 1),
            )
        )
    if not segments:
        raise StoryParseFailure("Story JSON has no usable segments")

    return _finish(
        request,
        str(data.get("title") or ""),
        str(data.get("description") or ""),
        segments,
        [request.genre, request.mood, "ai-generated"],
    )


def salvage_story(text: str, request: StoryRequest) -> Story:
    """Recover ``"title"``/``"content"`` pairs from JSON too broken to load."""
    pairs = _PAIR_RE.findall(text or "")
    if not pairs:
        raise StoryParseFailure("No title/content pairs could be salvaged")

    segments: List[StorySegment] = []
    for i, (raw_title, raw_content) in enumerate(pairs):
        content = _unescape(raw_content).strip()
        if not content:
            continue
        segments.append(
            StorySegment(
                id=f"segment_{len(segments) + 1}",
                title=_unescape(raw_title) or None,
                content=content,
                duration_s=_duration_for(content, None),
                checkpoint_id=_bind_checkpoint(request, len(segments)),
            )
        )
    if not segments:
        raise StoryParseFailure("Salvaged pairs were all empty")

    # a story title precedes the first chapter's title/content pair
    title = ""
    first = _TITLE_RE.search(text)
    if first is not None and first.start() < _PAIR_RE.search(text).start():
        title = _unescape(first.group(1))

    return _finish(request, title, "", segments, [request.genre, request.mood, "ai-generated-alt"])


# ---------------------------------------------------------------------------
# Fallback stories
# ---------------------------------------------------------------------------

# (title, description, [opening, middle, ending])
FALLBACK_TEMPLATES: Dict[str, Dict[str, tuple]] = {
    "en": {
        "adventure": (
            "An Urban Adventure",
            "An exciting adventure in the heart of the city",
            [
                "You are setting out on an exciting adventure. The road ahead leads to surprises, and every step carries the thrill of what is about to happen.",
                "The journey goes on through beautiful surroundings. Something in the air has changed, a sign that something special is waiting further ahead.",
                "As you near the end, your excitement peaks. This adventure has given you moments you will not forget.",
            ],
        ),
        "romance": (
            "A Love Story in the Streets",
            "A sweet love story unfolding along your walk",
            [
                "As you walk this road, old memories of love drift back to you like a half-remembered song.",
                "A chance meeting by the roadside turns into a long conversation. The city seems softer than it did a moment ago.",
                "At the end of the path, two stories have become one. You carry the warmth of it home with you.",
            ],
        ),
        "mystery": (
            "A Mystery to Solve",
            "A mystery waiting to be uncovered",
            [
                "A mystery is waiting for you. Small clues start to appear along the path, and any detail could be the key to the puzzle.",
                "The mystery deepens as you go. Strange signs show up more often, and you weigh every one of them carefully.",
                "At last the final piece falls into place. The truth comes out in a way nobody expected.",
            ],
        ),
        "sci-fi": (
            "The Future Within Reach",
            "A science-fiction journey through tomorrow's city",
            [
                "The street around you flickers, and for a moment you see the city as it will be in a hundred years.",
                "Machines hum beneath the pavement and a drone guides you around a corner that was not there before.",
                "The vision fades as you arrive, leaving behind the quiet certainty that the future has already begun.",
            ],
        ),
        "horror": (
            "Shadows in the Night",
            "A chilling story told in the dark",
            [
                "As dusk settles, the familiar street grows quiet in a way that makes you walk a little faster.",
                "Footsteps echo behind you, always one beat late. When you turn around, the road is empty.",
                "You reach the light at the end of the path. Whatever followed you has stayed behind, for now.",
            ],
        ),
        "comedy": (
            "A Funny Little Trip",
            "A walk full of laughter",
            [
                "A comic adventure is waiting! Funny things start happening from your very first steps.",
                "The trip gets sillier with every stop, full of odd characters and situations you could not make up.",
                "It all ends with a grand finale that leaves everyone laughing.",
            ],
        ),
        "fantasy": (
            "The Magic Kingdom",
            "An adventure full of magic",
            [
                "You step into a wondrous world where magic and mythical creatures are real.",
                "Friendly creatures appear to show you the way, and you learn small spells to help you along.",
                "The journey ends with a wish come true. You leave with fond memories and new strength.",
            ],
        ),
        "historical": (
            "A Journey Through Time",
            "A walk back through the history of these streets",
            [
                "You are travelling back in time, discovering the stories that shaped these streets.",
                "The journey continues with new glimpses of the past, as if history were happening before your eyes.",
                "Your trip through time ends with a deeper understanding of the past and lessons for today.",
            ],
        ),
    },
    "vi": {
        "adventure": (
            "Cuộc phiêu lưu thú vị",
            "Một cuộc phiêu lưu thú vị giữa lòng thành phố",
            [
                "Bạn đang bước vào một cuộc phiêu lưu đầy thú vị. Trước mặt bạn là một con đường dẫn đến những điều bất ngờ.",
                "Cuộc hành trình tiếp tục với những cảnh quan tuyệt đẹp xung quanh. Điều gì đó đặc biệt đang chờ đợi phía trước.",
                "Khi bạn tiến gần đến đích, tâm trạng trở nên phấn khích hơn bao giờ hết. Cuộc phiêu lưu này thật khó quên.",
            ],
        ),
        "mystery": (
            "Bí ẩn cần giải mã",
            "Một câu chuyện bí ẩn chờ đợi được khám phá",
            [
                "Một bí ẩn đang chờ đợi bạn giải mã. Những manh mối nhỏ bắt đầu xuất hiện xung quanh con đường bạn đi.",
                "Bí ẩn ngày càng sâu sắc khi bạn tiến xa hơn. Những dấu hiệu kỳ lạ xuất hiện thường xuyên hơn.",
                "Cuối cùng, mảnh ghép cuối cùng của bí ẩn đã được tìm thấy. Sự thật được hé lộ một cách bất ngờ.",
            ],
        ),
        "fantasy": (
            "Thế giới phép thuật",
            "Một cuộc phiêu lưu đầy ma thuật",
            [
                "Bạn bước vào một thế giới kỳ diệu nơi phép thuật và những sinh vật huyền bí tồn tại.",
                "Những sinh vật thân thiện xuất hiện để chỉ đường, và bạn học được những phép thuật nhỏ.",
                "Cuộc phiêu lưu kết thúc với một điều ước được thực hiện. Bạn mang theo những kỷ niệm đẹp.",
            ],
        ),
        "historical": (
            "Hành trình xuyên thời gian",
            "Một chuyến đi ngược dòng lịch sử",
            [
                "Bạn đang du hành ngược thời gian, khám phá những câu chuyện lịch sử thú vị.",
                "Hành trình lịch sử tiếp tục với những khám phá mới về quá khứ.",
                "Cuộc du hành thời gian kết thúc với những hiểu biết sâu sắc về lịch sử.",
            ],
        ),
        "comedy": (
            "Chuyến đi vui nhộn",
            "Một cuộc phiêu lưu đầy tiếng cười",
            [
                "Một cuộc phiêu lưu vui nhộn đang chờ đợi bạn! Những tình huống hài hước bắt đầu ngay từ những bước đầu tiên.",
                "Cuộc hành trình trở nên thú vị hơn với những nhân vật hài hước và những tình huống dở khóc dở cười.",
                "Cuối cùng, cuộc phiêu lưu hài hước kết thúc khiến tất cả mọi người đều bật cười.",
            ],
        ),
    },
}

FALLBACK_CHOICES = {
    "en": (
        ("Continue along the path ahead", "You carry on with the journey as planned"),
        ("Explore the surroundings", "You discover more interesting things around here"),
    ),
    "vi": (
        ("Đi theo con đường phía trước", "Bạn tiếp tục cuộc hành trình một cách bình thường"),
        ("Khám phá khu vực xung quanh", "Bạn khám phá thêm những điều thú vị ở khu vực này"),
    ),
}


def _template(request: StoryRequest) -> tuple:
    by_genre = FALLBACK_TEMPLATES.get(request.language, FALLBACK_TEMPLATES["en"])
    return by_genre.get(request.genre, by_genre["adventure"])


def _fallback_title(request: StoryRequest) -> str:
    return _template(request)[0]


def _beat(beats: List[str], index: int, count: int) -> str:
    if index == 0:
        return beats[0]
    if index == count - 1:
        return beats[-1]
    return beats[1]


def fallback_story(request: StoryRequest) -> Story:
    """Offline story.

    With checkpoints: exactly one segment per checkpoint, bound in order.
    Without: ``max(3, min(waypoint_count, 5))`` unbound segments.
    Every segment but the last offers the same two choices.
    """
    title, description, beats = _template(request)
    choice_pairs = FALLBACK_CHOICES.get(request.language, FALLBACK_CHOICES["en"])

    if request.checkpoints:
        count = len(request.checkpoints)
        bound = [cp.id for cp in request.checkpoints]
    else:
        count = max(3, min(request.waypoint_count, 5))
        bound = [None] * count

    per_segment = (request.duration_min * 60.0 / count) if request.duration_min else DEFAULT_SEGMENT_DURATION_S

    segments: List[StorySegment] = []
    for i in range(count):
        choices: List[StoryChoice] = []
        if i < count - 1:
            choices = [
                StoryChoice(id=f"choice_{i * 2 + j + 1}", text=text, consequence=consequence)
                for j, (text, consequence) in enumerate(choice_pairs)
            ]
        segments.append(
            StorySegment(
                id=f"segment_{i + 1}",
                content=_beat(beats, i, count),
                duration_s=per_segment,
                checkpoint_id=bound[i],
                choices=choices,
            )
        )

    return Story(
        id=f"fallback_story_{uuid.uuid4().hex[:12]}",
        title=title,
        description=description,
        genre=request.genre,
        segments=segments,
        total_duration_s=per_segment * count,
        tags=[request.genre, "fallback", request.language],
    )


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------

@dataclass
class GeneratedStory:
    story: Story
    # provider name, or "fallback"
    source: str


class StoryGenerator:
    """Ask a narrative provider for a story, rotating keys, else fall back."""

    def __init__(
        self,
        provider,
        rotator,
        max_tokens: int = 8000,
        temperature: float = 0.8,
    ):
        self.provider = provider
        self.rotator = rotator
        self.max_tokens = max_tokens
        self.temperature = temperature

    def generate(self, request: StoryRequest) -> Story:
        return self.compose(request).story

    def compose(self, request: StoryRequest) -> GeneratedStory:
        if self.provider is None:
            log.info("No narrative provider configured, using fallback story")
            return self._fallback(request)

        name = self.provider.name
        self.rotator.reset(name)
        prompt = build_prompt(request)

        while True:
            try:
                key = self.rotator.current_key(name)
            except NoKeysConfigured as e:
                log.info("%s unavailable (%s), using fallback story", name, e)
                return self._fallback(request)

            try:
                text = self.provider.complete(prompt, self.max_tokens, self.temperature, key)
                self.rotator.record_request(name)
            except ProviderError as e:
                log.warning("%s story request failed: %s", name, e)
                if not self.rotator.advance(name):
                    return self._fallback(request)
                continue
            except Exception:
                log.exception("%s story request crashed, using fallback story", name)
                return self._fallback(request)

            try:
                story = parse_story(text, request)
            except StoryParseFailure as e:
                log.warning("Could not parse %s story: %s", name, e)
                return self._fallback(request)

            log.info("Story from %s: %r, %d segments", name, story.title, len(story.segments))
            return GeneratedStory(story, name)

    def _fallback(self, request: StoryRequest) -> GeneratedStory:
        return GeneratedStory(fallback_story(request), "fallback")
