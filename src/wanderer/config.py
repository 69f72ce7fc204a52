"""Centralized settings for the wanderer core."""
from __future__ import annotations

from typing import List

from pydantic_settings import BaseSettings

from wanderer.core.models import DEFAULT_TRIGGER_RADIUS_M
from wanderer.core.progress import OFF_ROUTE_THRESHOLD_M, WALKING_SPEED_MPS


class Settings(BaseSettings):
    model_config = {"env_prefix": "WANDERER_"}

    # API keys: JSON lists in the environment, e.g. WANDERER_GOOGLE_MAPS_KEYS='["k1","k2"]'
    google_maps_keys: List[str] = []
    ors_keys: List[str] = []
    groq_keys: List[str] = []
    gemini_keys: List[str] = []

    # Provider switches: a disabled provider is simply left out of its chain
    enable_google_maps: bool = True
    enable_ors: bool = True
    enable_groq: bool = True
    enable_gemini: bool = False

    # HTTP
    user_agent: str = "Wanderer/0.1.0"
    http_timeout_s: int = 20
    max_retries: int = 3
    backoff_s: float = 1.0            # delay = backoff_s * attempt

    # Key rotation: 0 disables the per-key request limit
    max_requests_per_key: int = 0

    # Routing
    language: str = "en"              # "en" | "vi"
    region: str = ""                  # Google region bias, e.g. "VN"
    walking_speed_mps: float = WALKING_SPEED_MPS
    fallback_spacing_m: float = 30.0
    fallback_curve_deg: float = 0.0001

    # Walking
    default_trigger_radius_m: float = DEFAULT_TRIGGER_RADIUS_M
    off_route_threshold_m: float = OFF_ROUTE_THRESHOLD_M
    position_interval_s: float = 3.0
    position_min_distance_m: float = 5.0
    speech_rate: float = 1.0

    # Story generation
    groq_model: str = "llama3-8b-8192"
    gemini_model: str = "gemini-pro"
    story_max_tokens: int = 8000
    story_temperature: float = 0.8

    # Redis: empty string means disabled (graceful fallback)
    redis_url: str = ""
    ttl_route: int = 86400            # 24 h

    @property
    def speech_language(self) -> str:
        return {"vi": "vi-VN", "en": "en-US"}.get(self.language, self.language)


settings = Settings()
