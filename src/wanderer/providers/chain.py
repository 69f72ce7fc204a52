from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from pydantic import ValidationError

from wanderer.cache import keys
from wanderer.cache.redis_client import JSONCache
from wanderer.core.errors import (
    NetworkError,
    NoKeysConfigured,
    ProviderError,
    ProviderQuotaExceeded,
)
from wanderer.core.models import Coordinate, Route
from wanderer.providers.base import DirectionsProvider
from wanderer.providers.credentials import CredentialRotator
from wanderer.providers.fallback import LocalFallbackRouter

log = logging.getLogger(__name__)


@dataclass
class RoutePlan:
    route: Route
    # name of the source that produced the route, and why earlier ones were skipped
    source: str
    errors: List[str] = field(default_factory=list)


class RoutingChain:
    """
    Try directions providers in priority order, then synthesize locally.

    Per provider:
      - no keys configured / keys exhausted -> skip without using a retry
      - NetworkError                        -> retry (backoff_s * attempt)
      - ProviderQuotaExceeded               -> rotate key, retry with next key
      - anything else                       -> give up on this provider
    The local fallback cannot fail, so ``route()`` always returns a Route.

    The chain keeps no per-call state of its own, but key rotation lives in
    the rotator: give concurrent callers their own CredentialRotator.
    """

    def __init__(
        self,
        providers: Sequence[DirectionsProvider],
        rotator: CredentialRotator,
        fallback: Optional[LocalFallbackRouter] = None,
        max_retries: int = 3,
        backoff_s: float = 1.0,
        cache: Optional[JSONCache] = None,
        cache_ttl: int = 86400,
        language: str = "en",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.providers: List[DirectionsProvider] = list(providers)
        self.rotator = rotator
        self.fallback = fallback or LocalFallbackRouter(language=language)
        self.max_retries = max(1, max_retries)
        self.backoff_s = backoff_s
        self.cache = cache or JSONCache()
        self.cache_ttl = cache_ttl
        self.language = language
        self.sleep = sleep

    def route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate] = (),
    ) -> Route:
        return self.plan(origin, destination, waypoints).route

    def plan(
        self,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate] = (),
    ) -> RoutePlan:
        waypoints = list(waypoints)
        errors: List[str] = []

        for prov in self.providers:
            cache_key = keys.route(prov.name, origin, destination, waypoints, self.language)
            cached = self._from_cache(cache_key)
            if cached is not None:
                log.info("Route cache hit (%s)", prov.name)
                return RoutePlan(cached, prov.name, errors)

            try:
                result = self._attempt(prov, origin, destination, waypoints)
            except NoKeysConfigured as e:
                log.info("Skipping %s: %s", prov.name, e)
                errors.append(f"{prov.name}: {e}")
                continue
            except ProviderError as e:
                log.warning("%s directions failed: %s", prov.name, e)
                errors.append(f"{prov.name}: {type(e).__name__}: {e}")
                continue
            except ValidationError as e:
                # provider answered with geometry that breaks Route invariants
                log.warning("%s returned an invalid route: %s", prov.name, e)
                errors.append(f"{prov.name}: invalid route")
                continue
            except Exception as e:
                log.exception("%s directions crashed", prov.name)
                errors.append(f"{prov.name}: {type(e).__name__}: {e}")
                continue

            log.info("Route from %s: %.0f m, %d points", prov.name, result.distance_m, len(result.coordinates))
            self.cache.set_json(cache_key, result.model_dump(mode="json"), self.cache_ttl)
            return RoutePlan(result, prov.name, errors)

        log.info("Using local fallback route")
        return RoutePlan(self.fallback.route(origin, destination, waypoints), self.fallback.name, errors)

    def _attempt(
        self,
        prov: DirectionsProvider,
        origin: Coordinate,
        destination: Coordinate,
        waypoints: Sequence[Coordinate],
    ) -> Route:
        self.rotator.reset(prov.name)
        attempt = 0
        while True:
            # raises NoKeysConfigured / KeysExhausted
            key = self.rotator.current_key(prov.name)
            try:
                result = prov.route(origin, destination, waypoints, key)
                self.rotator.record_request(prov.name)
                return result
            except ProviderQuotaExceeded as e:
                log.warning("%s key quota hit (%s), rotating", prov.name, e)
                if not self.rotator.advance(prov.name):
                    raise
            except NetworkError:
                attempt += 1
                if attempt >= self.max_retries:
                    raise
                delay = self.backoff_s * attempt
                log.info("%s transient failure, retry %d/%d in %.1fs", prov.name, attempt, self.max_retries, delay)
                self.sleep(delay)

    def _from_cache(self, key: str) -> Optional[Route]:
        raw = self.cache.get_json(key)
        if raw is None:
            return None
        try:
            return Route.model_validate(raw)
        except ValidationError:
            return None
