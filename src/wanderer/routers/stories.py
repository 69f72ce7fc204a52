"""Story generation endpoint."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from wanderer import deps
from wanderer.core.models import Story
from wanderer.core.story import StoryRequest
from wanderer.providers.combined import DEFAULT_NARRATIVE

router = APIRouter(prefix="/stories", tags=["stories"])


class GenerateRequest(StoryRequest):
    provider: str = DEFAULT_NARRATIVE


class GenerateResponse(BaseModel):
    story: Story
    source: str
    fallback: bool


@router.post("/generate", response_model=GenerateResponse)
def generate_story(req: GenerateRequest):
    try:
        generator = deps.get_story_generator(req.provider)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    request = StoryRequest(**req.model_dump(exclude={"provider"}))
    generated = generator.compose(request)
    return GenerateResponse(story=generated.story, source=generated.source, fallback=generated.story.is_fallback)
