"""Per-provider API key rotation.

Each provider gets an ordered list of keys. Callers ask for the current key,
and on a quota-type failure advance to the next one. Rotation is strictly
sequential: once a key has been passed over it is not tried again until the
ring is reset at the start of the next independent operation.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from wanderer.core.errors import KeysExhausted, NoKeysConfigured

log = logging.getLogger(__name__)


@dataclass
class KeyStats:
    total: int
    current: int      # 1-based
    remaining: int
    has_keys: bool
    exhausted: bool


@dataclass
class KeyRing:
    provider: str
    keys: List[str] = field(default_factory=list)
    max_requests_per_key: int = 0

    index: int = 0
    exhausted: bool = False
    request_count: int = 0

    def __post_init__(self) -> None:
        # Template placeholders and blanks are never real keys
        self.keys = [k for k in self.keys if k and not k.startswith("YOUR_")]

    def current(self) -> str:
        if not self.keys:
            raise NoKeysConfigured(self.provider)
        if self.exhausted:
            raise KeysExhausted(self.provider)
        return self.keys[self.index]

    def advance(self) -> bool:
        self.request_count = 0
        if self.exhausted:
            return False
        self.index += 1
        if self.index >= len(self.keys):
            self.exhausted = True
            log.warning("All %s API keys exhausted", self.provider)
            return False
        log.info("Switched %s to API key %d/%d", self.provider, self.index + 1, len(self.keys))
        return True

    def reset(self) -> None:
        self.index = 0
        self.exhausted = False
        self.request_count = 0

    def record_request(self) -> None:
        """Count a request against the current key, rotating at the per-key limit."""
        self.request_count += 1
        if self.max_requests_per_key and self.request_count >= self.max_requests_per_key:
            self.advance()

    def stats(self) -> KeyStats:
        total = len(self.keys)
        return KeyStats(
            total=total,
            current=min(self.index + 1, total),
            remaining=max(0, total - self.index),
            has_keys=total > 0,
            exhausted=self.exhausted,
        )


class CredentialRotator:
    """Independent key rings for each provider, looked up by name."""

    def __init__(self, rings: Optional[Iterable[KeyRing]] = None):
        self._rings: Dict[str, KeyRing] = {}
        for ring in rings or []:
            self._rings[ring.provider] = ring

    @classmethod
    def from_settings(cls, settings) -> "CredentialRotator":
        limit = settings.max_requests_per_key
        return cls(
            [
                KeyRing("google", list(settings.google_maps_keys), limit),
                KeyRing("ors", list(settings.ors_keys), limit),
                KeyRing("groq", list(settings.groq_keys), limit),
                KeyRing("gemini", list(settings.gemini_keys), limit),
            ]
        )

    def add(self, provider: str, keys: Iterable[str], max_requests_per_key: int = 0) -> KeyRing:
        ring = KeyRing(provider, list(keys), max_requests_per_key)
        self._rings[provider] = ring
        return ring

    def ring(self, provider: str) -> KeyRing:
        r = self._rings.get(provider)
        if r is None:
            # unknown provider behaves like one with an empty key list
            r = self.add(provider, [])
        return r

    def current_key(self, provider: str) -> str:
        return self.ring(provider).current()

    def advance(self, provider: str) -> bool:
        return self.ring(provider).advance()

    def reset(self, provider: str) -> None:
        self.ring(provider).reset()

    def reset_all(self) -> None:
        for r in self._rings.values():
            r.reset()

    def record_request(self, provider: str) -> None:
        self.ring(provider).record_request()

    def has_keys(self, provider: str) -> bool:
        return self.ring(provider).stats().has_keys

    def stats(self, provider: str) -> KeyStats:
        return self.ring(provider).stats()

    def stats_all(self) -> Dict[str, KeyStats]:
        return {name: r.stats() for name, r in self._rings.items()}
