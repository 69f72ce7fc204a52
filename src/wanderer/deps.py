"""
Service wiring for the API, overridable in tests.

FastAPI runs sync handlers in a threadpool, so every request gets its own
CredentialRotator and with it its own chain and generator. Only the Redis
cache is shared across requests.
"""
from __future__ import annotations

from typing import Dict, Optional

from wanderer.cache.redis_client import JSONCache
from wanderer.config import settings
from wanderer.core.story import StoryGenerator
from wanderer.providers.chain import RoutingChain
from wanderer.providers.combined import build_narrative_provider, build_routing_chain
from wanderer.providers.credentials import CredentialRotator

_cache: Optional[JSONCache] = None


def new_rotator() -> CredentialRotator:
    return CredentialRotator.from_settings(settings)


def get_cache() -> JSONCache:
    global _cache
    if _cache is None:
        _cache = JSONCache.from_url(settings.redis_url)
    return _cache


def get_routing_chain(provider_str: str) -> RoutingChain:
    return build_routing_chain(provider_str, settings, new_rotator(), get_cache())


def get_story_generator(provider_str: str) -> StoryGenerator:
    return StoryGenerator(
        build_narrative_provider(provider_str, settings),
        new_rotator(),
        settings.story_max_tokens,
        settings.story_temperature,
    )


def key_totals() -> Dict[str, int]:
    return {name: s.total for name, s in new_rotator().stats_all().items()}


def reset() -> None:
    """Forget the shared cache (settings changed, or between tests)."""
    global _cache
    _cache = None
