from __future__ import annotations

from typing import List, Optional

from wanderer.cache.redis_client import JSONCache
from wanderer.config import Settings, settings as default_settings
from wanderer.providers.base import DirectionsProvider, NarrativeProvider
from wanderer.providers.credentials import CredentialRotator
from wanderer.providers.fallback import LocalFallbackRouter
from wanderer.providers.http import HTTPClient

DEFAULT_ROUTING = "google+ors"
DEFAULT_NARRATIVE = "groq"


def _tokens(provider_str: str) -> List[str]:
    return [t.strip().lower() for t in (provider_str or "").split("+") if t.strip()]


def build_directions_providers(provider_str: str, cfg: Settings) -> List[DirectionsProvider]:
    """
    Build the ordered directions providers from a string like:
      "google+ors"
      "ors"
      ""            (fallback only)

    Providers switched off in settings are left out. The chain owns retries,
    so each HTTP client makes a single try per call.
    """
    from wanderer.providers.google import GoogleDirectionsProvider
    from wanderer.providers.ors import ORSDirectionsProvider

    providers: List[DirectionsProvider] = []
    for t in _tokens(provider_str):
        if t in ("google", "gmaps"):
            if cfg.enable_google_maps:
                http = HTTPClient(cfg.user_agent, provider="google", timeout_s=cfg.http_timeout_s, tries=1)
                providers.append(GoogleDirectionsProvider(http, language=cfg.language, region=cfg.region or None))
        elif t in ("ors", "openrouteservice"):
            if cfg.enable_ors:
                http = HTTPClient(cfg.user_agent, provider="ors", timeout_s=cfg.http_timeout_s, tries=1)
                providers.append(ORSDirectionsProvider(http, language=cfg.language))
        elif t in ("fallback", "local"):
            # the local fallback always closes the chain
            continue
        else:
            raise ValueError(f"Unknown directions provider token: '{t}' (supported: google, ors, fallback)")
    return providers


def build_routing_chain(
    provider_str: str = DEFAULT_ROUTING,
    cfg: Optional[Settings] = None,
    rotator: Optional[CredentialRotator] = None,
    cache: Optional[JSONCache] = None,
):
    from wanderer.providers.chain import RoutingChain

    cfg = cfg or default_settings
    return RoutingChain(
        build_directions_providers(provider_str, cfg),
        rotator or CredentialRotator.from_settings(cfg),
        fallback=LocalFallbackRouter(
            walking_speed_mps=cfg.walking_speed_mps,
            spacing_m=cfg.fallback_spacing_m,
            curve_deg=cfg.fallback_curve_deg,
            language=cfg.language,
        ),
        max_retries=cfg.max_retries,
        backoff_s=cfg.backoff_s,
        cache=cache,
        cache_ttl=cfg.ttl_route,
        language=cfg.language,
    )


def build_narrative_provider(provider_str: str, cfg: Settings) -> Optional[NarrativeProvider]:
    """First enabled LLM provider named in e.g. "groq" or "gemini+groq"; None if none."""
    from wanderer.providers.gemini import GeminiProvider
    from wanderer.providers.groq import GroqProvider

    for t in _tokens(provider_str):
        if t == "groq":
            if cfg.enable_groq:
                http = HTTPClient(
                    cfg.user_agent, provider="groq", timeout_s=max(cfg.http_timeout_s, 60),
                    tries=cfg.max_retries, backoff_s=cfg.backoff_s,
                )
                return GroqProvider(http, model=cfg.groq_model)
        elif t == "gemini":
            if cfg.enable_gemini:
                http = HTTPClient(
                    cfg.user_agent, provider="gemini", timeout_s=max(cfg.http_timeout_s, 60),
                    tries=cfg.max_retries, backoff_s=cfg.backoff_s,
                )
                return GeminiProvider(http, model=cfg.gemini_model)
        elif t in ("none", "fallback"):
            return None
        else:
            raise ValueError(f"Unknown narrative provider token: '{t}' (supported: groq, gemini, none)")
    return None
