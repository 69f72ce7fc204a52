from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from wanderer.core.models import Coordinate, Route


class DirectionsProvider(ABC):
    """Fetch a walking route from one external routing service."""

    # key ring name in the CredentialRotator
    name: str = "directions"

    @abstractmethod
    def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate],
        api_key: str,
    ) -> Route:
        raise NotImplementedError


class NarrativeProvider(ABC):
    """Text completion against an LLM API."""

    name: str = "llm"

    @abstractmethod
    def complete(self, prompt: str, max_tokens: int, temperature: float, api_key: str) -> str:
        raise NotImplementedError
